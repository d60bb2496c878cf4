"""
src/coursehub/semester.py
=========================
Ordering and display helpers for semester keys such as "SPRING_2026".
"""

import re
from functools import cmp_to_key

TERM_ORDER = {"SPRING": 1, "SUMMER": 2, "FALL": 3, "WINTER": 4}
SEMESTER_RE = re.compile(r"(?:^|_)(SPRING|SUMMER|FALL|WINTER)_?(\d{4})(?:_|$)")


def parse_semester(raw):
    """"Spring 2026" / "SPRING_2026" -> ("SPRING", 2026, 1); None when unrecognised."""
    if not raw:
        return None
    normalized = re.sub(r"[^A-Z0-9]+", "_", str(raw).strip().upper())
    matched = SEMESTER_RE.search(normalized)
    if not matched:
        return None
    term = matched.group(1)
    return term, int(matched.group(2)), TERM_ORDER[term]


def _desc(a, b):
    return (a < b) - (a > b)


def compare_semester_key_desc(a, b):
    """Newest first: year, then term; unrecognised keys sort after recognised ones."""
    left, right = parse_semester(a), parse_semester(b)
    if left and right:
        if left[1] != right[1]:
            return right[1] - left[1]
        if left[2] != right[2]:
            return right[2] - left[2]
        return _desc(a, b)
    if left and not right:
        return -1
    if right and not left:
        return 1
    return _desc(a, b)


def sort_semester_keys(keys):
    return sorted(keys, key=cmp_to_key(compare_semester_key_desc))


def label_from_semester_key(key):
    parsed = parse_semester(key)
    if not parsed:
        return key
    term, year, _ = parsed
    return f"{term.capitalize()} {year}"
