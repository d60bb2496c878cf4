"""
src/coursehub/text.py
=====================
Normalization helpers shared by the importers, the resolver and the admin
surface: cell cleaning, diacritic folding, course codes, class groups,
semester keys, instruction codes and slugs.
"""

import re
import unicodedata
from typing import List, Optional

COURSE_CODE_RE = re.compile(r"^([A-Z]{2,6})(\d{3,4})$")
TIME_RE = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b")


def clean_cell(value) -> str:
    """Stringify a spreadsheet/CSV cell, turning None into "" and NBSP into spaces."""
    if value is None:
        return ""
    return str(value).replace("\u00a0", " ").strip()


def fold_text(value: str) -> str:
    """Lowercase and strip combining diacritics ("Chiều" -> "chieu")."""
    decomposed = unicodedata.normalize("NFD", value or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    # đ/Đ has no decomposition
    return stripped.replace("đ", "d").replace("Đ", "D").lower()


def normalize_course_code(raw) -> Optional[str]:
    """
    "cs2255" -> "CS 2255", "CS  2255" -> "CS 2255".
    Anything that is not a 2-6 letter prefix followed by 3-4 digits gives None.
    """
    text = clean_cell(raw).upper()
    if not text:
        return None
    compact = re.sub(r"\s+", "", text)
    matched = COURSE_CODE_RE.match(compact)
    if not matched:
        return None
    return f"{matched.group(1)} {matched.group(2)}"


def normalize_course_code_safe(raw) -> str:
    return normalize_course_code(raw) or re.sub(r"\s+", " ", clean_cell(raw).upper())


def _group_token_re(prefix: str):
    return re.compile(rf"\b{re.escape(prefix)}\s*(\d{{1,2}})(?!\d)", re.IGNORECASE)


def _group_span_re(prefix: str):
    p = re.escape(prefix)
    return re.compile(
        rf"\b{p}\s*(\d{{1,2}})(?!\d)(?:\s*[-–]\s*(?:{p}\s*)?(\d{{1,2}})(?!\d))?",
        re.IGNORECASE,
    )


def format_class_group(index: int, prefix: str = "IT") -> str:
    return f"{prefix.upper()} {index:02d}"


def normalize_class_group(raw, prefix: str = "IT") -> Optional[str]:
    """First "IT n" token in ``raw`` as a canonical "IT 0n" name."""
    matched = _group_token_re(prefix).search(clean_cell(raw))
    if not matched:
        return None
    return format_class_group(int(matched.group(1)), prefix)


def expand_class_groups(label, prefix: str = "IT", max_span: int = 20) -> List[str]:
    """
    "IT 01-05"     -> ["IT 01", "IT 02", "IT 03", "IT 04", "IT 05"]
    "IT 03, IT 07" -> ["IT 03", "IT 07"]

    A hyphenated pair only expands when the second number is above the first
    by at most ``max_span``; otherwise both numbers are kept as single groups.
    """
    groups: List[str] = []
    for matched in _group_span_re(prefix).finditer(clean_cell(label)):
        start = int(matched.group(1))
        end = int(matched.group(2)) if matched.group(2) else None
        if end is not None and start < end <= start + max_span:
            numbers = range(start, end + 1)
        elif end is not None:
            numbers = [start, end]
        else:
            numbers = [start]
        for number in numbers:
            name = format_class_group(number, prefix)
            if name not in groups:
                groups.append(name)
    return groups


def normalize_class_group_name(raw) -> str:
    """Admin/resolver form of a class group: uppercased, whitespace collapsed, "" when empty."""
    return re.sub(r"\s+", " ", clean_cell(raw).upper())


def normalize_instruction_code(raw) -> str:
    return re.sub(r"[^A-Z0-9]+", "", clean_cell(raw).upper())


def extract_instruction_code(value, prefix: str = "IHA") -> str:
    """Pull a parallel-section code such as "IHA12" out of room or time text."""
    text = clean_cell(value).upper()
    matched = re.search(rf"\b{re.escape(prefix.upper())}[A-Z0-9]{{1,4}}\b", text)
    if not matched:
        return ""
    return normalize_instruction_code(matched.group(0))


def normalize_semester_key(raw) -> str:
    """Canonical semester key: "Spring 2026" -> "SPRING_2026"."""
    key = re.sub(r"[^A-Z0-9]+", "_", clean_cell(raw).upper())
    return key.strip("_")


def normalize_cohort_code(raw) -> str:
    return re.sub(r"\s+", " ", clean_cell(raw).upper())


def normalize_time(raw) -> Optional[str]:
    """First HH:MM in the text, zero padded ("8:05" -> "08:05")."""
    matched = TIME_RE.search(clean_cell(raw))
    if not matched:
        return None
    return f"{int(matched.group(1)):02d}:{matched.group(2)}"


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", fold_text(value))
    return slug.strip("-")[:120]


def parse_leading_int(raw) -> Optional[int]:
    matched = re.match(r"^\s*([-+]?\d+)", clean_cell(raw))
    return int(matched.group(1)) if matched else None
