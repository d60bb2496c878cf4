"""
src/coursehub/models/schedule.py
================================
Records produced by the workbook parser and returned by the importer.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from coursehub.models.course import CatalogCourse

DAY_ORDER = ["MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN"]
DAY_LABEL = {
    "MON": "Mon",
    "TUE": "Tue",
    "WED": "Wed",
    "THU": "Thu",
    "FRI": "Fri",
    "SAT": "Sat",
    "SUN": "Sun",
}
SESSION_PERIODS = ["MORNING", "AFTERNOON", "EVENING", "UNKNOWN"]


@dataclass(frozen=True)
class ParsedCell:
    course_code: str
    room: Optional[str]
    raw_time: Optional[str]
    start_time: Optional[str]
    class_hint: Optional[str]


@dataclass(frozen=True)
class ParsedEvent:
    class_group_name: str
    day_of_week: str
    session: str
    start_time: Optional[str]
    raw_time: Optional[str]
    room: Optional[str]
    course_code: str
    source_sheet: str
    source_row: int


@dataclass
class ParsedSheet:
    sheet_name: str
    cohort_code: str
    semester_label: str
    semester_key: str
    start_date: Optional[date]
    end_date: Optional[date]
    events: List[ParsedEvent] = field(default_factory=list)
    catalog: Dict[str, CatalogCourse] = field(default_factory=dict)

    def class_group_names(self):
        return sorted({event.class_group_name for event in self.events})

    def course_codes(self):
        codes = {event.course_code for event in self.events}
        codes.update(self.catalog.keys())
        return sorted(codes)


@dataclass
class ImportSummary:
    source_file: str
    semester_key: str
    semester_label: str
    cohorts: List[str]
    class_groups: int
    courses: int
    entries: int
