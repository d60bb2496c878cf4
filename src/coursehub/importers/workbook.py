"""
src/coursehub/importers/workbook.py
===================================
Timetable workbook parser.

- picks the schedule sheets by name ("SPRING 2026 K69", ...)
- reads semester label / DURATION dates from the title block
- finds the "Time | Mon | Tue ..." header row
- folds over the body rows carrying the currently declared class groups
- decodes multi-line day cells (code / room / time) into ParsedEvents
- reads the small course table embedded under the grid
"""

import io
import logging
import re
from dataclasses import dataclass, replace
from functools import reduce
from pathlib import Path
from typing import List, Optional, Tuple

import pandas as pd
from openpyxl import load_workbook

from coursehub.config.settings import get_active_config
from coursehub.errors import WorkbookStructureError
from coursehub.models.course import CatalogCourse
from coursehub.models.schedule import ParsedCell, ParsedEvent, ParsedSheet
from coursehub.text import (
    clean_cell,
    expand_class_groups,
    fold_text,
    normalize_class_group,
    normalize_course_code,
    normalize_semester_key,
    normalize_time,
    parse_leading_int,
)

logger = logging.getLogger(__name__)

SCHEDULE_TITLE_RE = re.compile(r"SCHEDULE\s+FOR\s+(.+?)\s*-\s*K\d+", re.IGNORECASE)
DURATION_RE = re.compile(r"DURATION\s*:\s*(.+)$", re.IGNORECASE)
NOT_A_DECLARATION = ("room", "time", "sang", "chieu", "morning", "afternoon")


# ---------- grid reading ----------
def read_grids(source):
    """
    Open a workbook from a path, raw bytes or a binary file object and return
    [(sheet_name, [(row_number, [cell, ...]), ...]), ...] with 1-based row numbers.
    """
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    elif isinstance(source, (str, Path)):
        source = str(source)

    workbook = load_workbook(source, data_only=True)
    try:
        grids = []
        for worksheet in workbook.worksheets:
            rows = [
                (row_number, list(values))
                for row_number, values in enumerate(worksheet.iter_rows(min_row=1, values_only=True), start=1)
            ]
            grids.append((worksheet.title, rows))
        return grids
    finally:
        workbook.close()


def _cell(cells, index):
    return clean_cell(cells[index]) if 0 <= index < len(cells) else ""


# ---------- title block ----------
def parse_date_value(raw) -> Optional[object]:
    text = clean_cell(raw)
    if not text:
        return None
    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date()


def parse_duration(text):
    """"DURATION: Jan 12, 2026 - May 10, 2026" -> (date, date); anything unreadable -> None."""
    matched = DURATION_RE.search(clean_cell(text))
    if not matched:
        return None, None

    body = matched.group(1).strip()
    parts = re.split(r"\s+[-–]\s+", body, maxsplit=1)
    if len(parts) == 2:
        return parse_date_value(parts[0]), parse_date_value(parts[1])

    # ISO dates carry their own hyphens: a lone date wins over a bare split
    single = parse_date_value(body)
    if single:
        return single, None
    for separator in re.finditer(r"[-–]", body):
        start = parse_date_value(body[:separator.start()])
        end = parse_date_value(body[separator.end():])
        if start and end and start <= end:
            return start, end
    return None, None


def parse_semester_label(sheet_name, rows, config=None) -> str:
    config = config or get_active_config()
    for _, cells in rows:
        for value in cells:
            matched = SCHEDULE_TITLE_RE.search(clean_cell(value))
            if matched:
                return matched.group(1).strip().upper()

    fallback = re.search(config["semester_family_pattern"], sheet_name, re.IGNORECASE)
    return fallback.group(0).upper() if fallback else sheet_name.strip().upper()


def find_duration(rows):
    for _, cells in rows:
        for value in cells:
            text = clean_cell(value)
            if DURATION_RE.search(text):
                return parse_duration(text)
    return None, None


def find_header_row(rows, config=None) -> Optional[Tuple[int, int]]:
    """Position in ``rows`` of the grid header and the column holding "Time"."""
    config = config or get_active_config()
    labels = tuple(config["header_labels"])
    width = len(labels)
    for position, (_, cells) in enumerate(rows):
        folded = [fold_text(clean_cell(value)) for value in cells]
        for column in range(0, len(folded) - width + 1):
            if tuple(folded[column:column + width]) == labels:
                return position, column
    return None


# ---------- row classification ----------
def get_session_period(label, config=None) -> str:
    config = config or get_active_config()
    folded = fold_text(label)
    for session, keywords in config["session_keywords"].items():
        if any(keyword in folded for keyword in keywords):
            return session
    return "UNKNOWN"


def looks_like_class_group_row(value, config=None) -> bool:
    config = config or get_active_config()
    if normalize_class_group(value, config["class_group_prefix"]) is None:
        return False
    folded = fold_text(value)
    return not any(word in folded for word in NOT_A_DECLARATION)


def parse_schedule_cell(cell_text, config=None) -> Optional[ParsedCell]:
    """
    Decode one day cell:
        line 1  course code  (cell skipped when it is not a code)
        line 2  room
        line 3  raw time text, may carry "08:00" and an inline "IT 03"
    """
    config = config or get_active_config()
    lines = [clean_cell(line) for line in re.split(r"\r?\n", clean_cell(cell_text))]
    lines = [line for line in lines if line]
    if not lines:
        return None

    course_code = normalize_course_code(lines[0])
    if not course_code:
        return None

    room = lines[1] if len(lines) > 1 else None
    raw_time = lines[2] if len(lines) > 2 else None
    time_text = raw_time if raw_time is not None else clean_cell(cell_text)

    return ParsedCell(
        course_code=course_code,
        room=room,
        raw_time=raw_time,
        start_time=normalize_time(time_text),
        class_hint=normalize_class_group(time_text, config["class_group_prefix"]),
    )


# ---------- body scan ----------
@dataclass(frozen=True)
class ScanState:
    declared_groups: Tuple[str, ...] = ()
    events: Tuple[ParsedEvent, ...] = ()
    finished: bool = False


def make_row_step(sheet_name, lead_column, config=None):
    """
    Build the reducer used over the body rows. Each call takes the state and
    one (row_number, cells) pair and returns the next state.
    """
    config = config or get_active_config()
    sentinel_re = re.compile(config["schedule_sentinels"], re.IGNORECASE)
    day_columns = list(config["day_columns"])
    prefix = config["class_group_prefix"]
    max_span = config["class_group_max_span"]

    def step(state: ScanState, row) -> ScanState:
        if state.finished:
            return state

        row_number, cells = row
        lead = _cell(cells, lead_column)

        if sentinel_re.search(lead):
            return replace(state, finished=True)

        if looks_like_class_group_row(lead, config):
            return replace(state, declared_groups=tuple(expand_class_groups(lead, prefix, max_span)))

        session = get_session_period(lead, config)
        if session == "UNKNOWN":
            return state

        new_events = []
        for offset, day in enumerate(day_columns, start=1):
            text = _cell(cells, lead_column + offset)
            if not text:
                continue
            parsed = parse_schedule_cell(text, config)
            if parsed is None:
                continue

            # an inline hint only redirects this one cell
            targets = (parsed.class_hint,) if parsed.class_hint else state.declared_groups
            for group in targets:
                new_events.append(
                    ParsedEvent(
                        class_group_name=group,
                        day_of_week=day,
                        session=session,
                        start_time=parsed.start_time,
                        raw_time=parsed.raw_time,
                        room=parsed.room,
                        course_code=parsed.course_code,
                        source_sheet=sheet_name,
                        source_row=row_number,
                    )
                )

        if not new_events:
            return state
        return replace(state, events=state.events + tuple(new_events))

    return step


def scan_body(sheet_name, body_rows, lead_column, config=None) -> ScanState:
    return reduce(make_row_step(sheet_name, lead_column, config), body_rows, ScanState())


# ---------- embedded catalog ----------
def parse_embedded_catalog(rows, config=None):
    config = config or get_active_config()
    marker = config["catalog_header_marker"]
    footer_re = re.compile(config["catalog_footers"], re.IGNORECASE)
    offsets = config["catalog_offsets"]
    blank_limit = config["catalog_blank_limit"]

    header = None
    for position, (_, cells) in enumerate(rows):
        for column, value in enumerate(cells):
            if marker in fold_text(clean_cell(value)):
                header = (position, column)
                break
        if header:
            break

    catalog = {}
    if header is None:
        return catalog

    start, code_column = header
    misses = 0
    for _, cells in rows[start + 1:]:
        code_text = _cell(cells, code_column)
        if footer_re.search(code_text):
            break

        code = normalize_course_code(code_text)
        if not code:
            misses += 1
            if misses > blank_limit:
                break
            continue

        misses = 0
        catalog[code] = CatalogCourse(
            code=code,
            name_en=_cell(cells, code_column + offsets["name_en"]) or None,
            name_vi=_cell(cells, code_column + offsets["name_vi"]) or None,
            credits=parse_leading_int(_cell(cells, code_column + offsets["credits"])),
            prerequisite=_cell(cells, code_column + offsets["prerequisite"]) or None,
        )
    return catalog


# ---------- sheets ----------
def parse_sheet(sheet_name, rows, config=None) -> ParsedSheet:
    config = config or get_active_config()

    cohort = re.search(config["cohort_pattern"], sheet_name, re.IGNORECASE)
    if not cohort:
        raise WorkbookStructureError(f"Could not find cohort code in sheet {sheet_name}")

    header = find_header_row(rows, config)
    if header is None:
        raise WorkbookStructureError(f"Could not find schedule header row in sheet {sheet_name}")
    header_position, lead_column = header

    title_rows = rows[:header_position]
    semester_label = parse_semester_label(sheet_name, title_rows, config)
    start_date, end_date = find_duration(title_rows)

    state = scan_body(sheet_name, rows[header_position + 1:], lead_column, config)
    catalog = parse_embedded_catalog(rows, config)

    sheet = ParsedSheet(
        sheet_name=sheet_name,
        cohort_code=cohort.group(0).upper(),
        semester_label=semester_label,
        semester_key=normalize_semester_key(semester_label),
        start_date=start_date,
        end_date=end_date,
        events=list(state.events),
        catalog=catalog,
    )
    logger.info(
        "Sheet %s: %d events, %d class groups, %d catalog rows",
        sheet_name, len(sheet.events), len(sheet.class_group_names()), len(catalog),
    )
    return sheet


def select_schedule_sheets(sheet_names, config=None) -> List[str]:
    config = config or get_active_config()
    pattern = re.compile(config["sheet_pattern"], re.IGNORECASE)
    return [name for name in sheet_names if pattern.match(name.strip())]


def parse_workbook(source, config=None) -> List[ParsedSheet]:
    """Parse every schedule sheet of a workbook (path, bytes or file object)."""
    config = config or get_active_config()
    grids = read_grids(source)
    wanted = set(select_schedule_sheets([name for name, _ in grids], config))
    if not wanted:
        raise WorkbookStructureError(
            f"No sheets matched pattern {config['sheet_pattern']}; found: {', '.join(name for name, _ in grids)}"
        )
    return [parse_sheet(name, rows, config) for name, rows in grids if name in wanted]
