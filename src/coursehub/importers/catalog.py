"""
src/coursehub/importers/catalog.py
==================================
Catalog CSV reader.

- repairs one legacy mis-decoding (UTF-8 text that was read as a single-byte
  codepage and saved again as UTF-8, e.g. "Khoa Há»c" for "Khoa Học")
- tokenizes quoted fields ("" inside quotes is a literal quote)
- carries the current program / section down the file and tags each course row
"""

import csv
import io
import logging
from pathlib import Path
from typing import Dict, List

from coursehub.config.settings import get_active_config
from coursehub.models.course import CatalogCourse
from coursehub.text import clean_cell, fold_text, normalize_course_code, parse_leading_int

logger = logging.getLogger(__name__)

SECTION_KEYWORDS = ("required courses", "major electives", "free electives", "hust political theory")


# ---------- decoding ----------
def _single_byte(ch):
    if ord(ch) < 256:
        return bytes([ord(ch)])
    try:
        return ch.encode("cp1252")
    except UnicodeEncodeError:
        return bytes([ord(ch) & 0xFF])


def count_mojibake_markers(text, markers=None):
    markers = markers if markers is not None else get_active_config()["mojibake_markers"]
    return sum(text.count(marker) for marker in markers)


def decode_catalog_bytes(raw: bytes, config=None) -> str:
    """
    Decode catalog bytes, undoing the double-encoding corruption when its
    signature is present and the repaired text contains a known-good word.
    """
    config = config or get_active_config()
    text = raw.decode("utf-8", errors="replace")
    if text.startswith("\ufeff"):
        text = text[1:]

    hits = count_mojibake_markers(text, config["mojibake_markers"])
    if hits < config["mojibake_threshold"]:
        return text

    reinterpreted = b"".join(_single_byte(ch) for ch in text)
    repaired = reinterpreted.decode("utf-8", errors="replace")
    if any(word in repaired for word in config["mojibake_known_good"]):
        logger.info("Repaired legacy catalog encoding (%d suspicious markers)", hits)
        return repaired

    logger.warning("Catalog looks mis-decoded (%d markers) but repair was not confirmed; keeping original text", hits)
    return text


# ---------- tokenizing ----------
def parse_csv_text(text: str) -> List[List[str]]:
    return [row for row in csv.reader(io.StringIO(text, newline=""))]


# ---------- row classification ----------
def _is_header_row(first, second):
    return fold_text(first) == "no." or fold_text(second) == "ma hp"


def parse_catalog_rows(rows) -> Dict[str, CatalogCourse]:
    catalog: Dict[str, CatalogCourse] = {}
    current_program = None
    current_section = None

    for row in rows:
        cells = [clean_cell(cell) for cell in row]
        non_empty = [cell for cell in cells if cell]
        if not non_empty:
            continue

        def cell(index):
            return cells[index] if index < len(cells) else ""

        code = normalize_course_code(cell(1))
        if code:
            catalog[code] = CatalogCourse(
                code=code,
                name_en=cell(2) or None,
                name_vi=cell(3) or None,
                credits=parse_leading_int(cell(4)),
                prerequisite=cell(5) or None,
                note=cell(6) or None,
                program=current_program,
                section=current_section,
            )
            continue

        first, second = cell(0), cell(1)
        folded = fold_text(f"{first} {second}")

        if "program" in folded:
            current_program = first or second or None
            current_section = None
            continue

        if any(keyword in folded for keyword in SECTION_KEYWORDS):
            current_section = first or second or None
            continue

        if _is_header_row(first, second):
            continue

        if len(non_empty) == 1:
            current_section = non_empty[0]

    return catalog


def load_catalog(path, config=None) -> Dict[str, CatalogCourse]:
    """Read and parse the catalog CSV; a missing file yields an empty catalog."""
    path = Path(path)
    if not path.exists():
        logger.warning("Catalog file not found at %s", path)
        return {}
    text = decode_catalog_bytes(path.read_bytes(), config)
    catalog = parse_catalog_rows(parse_csv_text(text))
    logger.info("Parsed %d catalog courses from %s", len(catalog), path)
    return catalog
