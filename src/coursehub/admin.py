"""
src/coursehub/admin.py
======================
Manual edits to the stored schedule and the lecturer tables.

Lecturer attach / detach never deletes rows: they upsert on the full natural
key with enabled = True / False, so repeating a request is harmless.
"""

import logging
import re
import sqlite3
import unicodedata

from coursehub.errors import ConflictError, NotFoundError, ValidationError
from coursehub.importers.workbook import parse_date_value
from coursehub.models.schedule import DAY_ORDER, SESSION_PERIODS
from coursehub.semester import label_from_semester_key
from coursehub.storage.database import to_iso_date, utc_now
from coursehub.text import (
    clean_cell,
    normalize_class_group_name,
    normalize_cohort_code,
    normalize_course_code,
    normalize_instruction_code,
    normalize_semester_key,
    normalize_time,
)

logger = logging.getLogger(__name__)

MANUAL_SOURCE = "ADMIN_MANUAL"
SCOPES = ("GLOBAL", "SEMESTER")
_UNSET = object()


def normalize_lecturer_id(raw):
    text = unicodedata.normalize("NFD", clean_cell(raw))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"[^a-zA-Z0-9._-]+", "-", text)
    text = re.sub(r"-+", "-", text).strip("-").lower()
    return text or None


def _date(value):
    if value is None or value == "":
        return None
    if isinstance(value, str):
        parsed = parse_date_value(value)
        if parsed is None:
            raise ValidationError(f"Invalid date: {value!r}")
        return parsed
    return value


# ---------- lookups ----------
def _semester(db, semester_key):
    key = normalize_semester_key(semester_key)
    if not key:
        raise ValidationError("Semester key is required.")
    row = db.get_semester(key)
    if row is None:
        raise NotFoundError(f"Semester {key} not found.")
    return row


def _cohort(db, semester_key, cohort_code):
    semester = _semester(db, semester_key)
    code = normalize_cohort_code(cohort_code)
    if not code:
        raise ValidationError("Cohort code is required.")
    row = db.get_cohort(semester["id"], code)
    if row is None:
        raise NotFoundError(f"Cohort {code} not found in {semester['key']}.")
    return semester, row


def _class_group(db, semester_key, cohort_code, class_group_name):
    semester, cohort = _cohort(db, semester_key, cohort_code)
    name = normalize_class_group_name(class_group_name)
    if not name:
        raise ValidationError("Class group name is required.")
    row = db.get_class_group(cohort["id"], name)
    if row is None:
        raise NotFoundError(f"Class group {name} not found in {cohort['code']}.")
    return semester, cohort, row


def _update(db, sql, params, conflict_message):
    try:
        return db.execute(sql, params)
    except sqlite3.IntegrityError as exc:
        raise ConflictError(conflict_message) from exc


# ---------- semesters ----------
def create_semester(db, semester_key, label=None, start_date=None, end_date=None):
    key = normalize_semester_key(semester_key)
    if not key:
        raise ValidationError("Semester key is required.")
    if db.get_semester(key) is not None:
        raise ConflictError(f"Semester {key} already exists.")
    semester_id = db.upsert_semester(key, clean_cell(label) or label_from_semester_key(key), _date(start_date), _date(end_date), MANUAL_SOURCE)
    logger.info("Created semester %s", key)
    return semester_id


def update_semester(db, semester_key, new_key=None, label=None, start_date=_UNSET, end_date=_UNSET):
    semester = _semester(db, semester_key)
    patch = {}
    new_key = normalize_semester_key(new_key) if new_key else ""
    if new_key and new_key != semester["key"]:
        patch["key"] = new_key
    if clean_cell(label):
        patch["label"] = clean_cell(label)
    if start_date is not _UNSET:
        patch["start_date"] = to_iso_date(_date(start_date))
    if end_date is not _UNSET:
        patch["end_date"] = to_iso_date(_date(end_date))
    if not patch:
        raise ValidationError("No update fields provided.")

    assignments = ", ".join(f"{column} = ?" for column in patch)
    _update(
        db,
        f"UPDATE semester SET {assignments}, updated_at = ? WHERE id = ?",
        (*patch.values(), utc_now(), semester["id"]),
        f"Semester {new_key} already exists.",
    )
    if "key" in patch:
        for table in ("course_lecturer_override", "course_teaching_assignment"):
            db.execute(f"UPDATE {table} SET semester_key = ? WHERE semester_key = ?", (new_key, semester["key"]))
        logger.info("Renamed semester %s -> %s", semester["key"], new_key)
    return patch.get("key", semester["key"])


def delete_semester(db, semester_key):
    semester = _semester(db, semester_key)
    for table in ("course_lecturer_override", "course_teaching_assignment"):
        db.execute(f"DELETE FROM {table} WHERE semester_key = ?", (semester["key"],))
    db.execute("DELETE FROM semester WHERE id = ?", (semester["id"],))
    logger.info("Deleted semester %s", semester["key"])


# ---------- cohorts ----------
def create_cohort(db, semester_key, cohort_code):
    semester = _semester(db, semester_key)
    code = normalize_cohort_code(cohort_code)
    if not code:
        raise ValidationError("Cohort code is required.")
    if db.get_cohort(semester["id"], code) is not None:
        raise ConflictError(f"Cohort {code} already exists.")
    return db.upsert_cohort(semester["id"], code)


def rename_cohort(db, semester_key, cohort_code, new_code):
    _, cohort = _cohort(db, semester_key, cohort_code)
    new_code = normalize_cohort_code(new_code)
    if not new_code:
        raise ValidationError("New cohort code is required.")
    _update(db, "UPDATE cohort SET code = ? WHERE id = ?", (new_code, cohort["id"]), f"Cohort {new_code} already exists.")
    return new_code


def _delete_group_assignments(db, semester_key, names):
    for name in names:
        db.execute(
            "DELETE FROM course_teaching_assignment WHERE semester_key = ? AND class_group_name = ?",
            (semester_key, name),
        )


def delete_cohort(db, semester_key, cohort_code):
    semester, cohort = _cohort(db, semester_key, cohort_code)
    names = [group["name"] for group in db.list_class_groups(cohort["id"])]
    _delete_group_assignments(db, semester["key"], names)
    db.execute("DELETE FROM cohort WHERE id = ?", (cohort["id"],))
    logger.info("Deleted cohort %s/%s", semester["key"], cohort["code"])


# ---------- class groups ----------
def create_class_group(db, semester_key, cohort_code, class_group_name, copy_from=None):
    """
    Create a class group, optionally copying the schedule entries and the
    enabled teaching assignments of another group in the same cohort.
    Returns {"id", "copied_entries", "copied_assignments"}.
    """
    semester, cohort = _cohort(db, semester_key, cohort_code)
    name = normalize_class_group_name(class_group_name)
    if not name:
        raise ValidationError("Class group name is required.")
    if db.get_class_group(cohort["id"], name) is not None:
        raise ConflictError(f"Class group {name} already exists.")

    source = None
    copy_from = normalize_class_group_name(copy_from)
    if copy_from:
        source = db.get_class_group(cohort["id"], copy_from)
        if source is None:
            raise NotFoundError(f"Class group {copy_from} to copy was not found in {cohort['code']}.")

    db.create_class_groups(cohort["id"], [name])
    group_id = db.get_class_group(cohort["id"], name)["id"]
    result = {"id": group_id, "copied_entries": 0, "copied_assignments": 0}
    if source is None:
        return result

    entries = db.query(
        """
        SELECT course_id, day_of_week, session, start_time, raw_time, room, source_sheet, source_row
        FROM schedule_entry WHERE semester_id = ? AND class_group_id = ?
        """,
        (semester["id"], source["id"]),
    )
    result["copied_entries"] = db.insert_schedule_entries(
        (semester["id"], group_id, row["course_id"], row["day_of_week"], row["session"], row["start_time"],
         row["raw_time"], row["room"], row["source_sheet"], row["source_row"])
        for row in entries
    )

    assignments = db.query(
        "SELECT * FROM course_teaching_assignment WHERE semester_key = ? AND class_group_name = ? AND enabled = 1",
        (semester["key"], copy_from),
    )
    for row in assignments:
        db.upsert_assignment(row["course_code"], semester["key"], name, row["instruction_code"], row["lecturer_id"], True)
    result["copied_assignments"] = len(assignments)
    logger.info("Created class group %s from %s (%d entries, %d assignments)",
                name, copy_from, result["copied_entries"], result["copied_assignments"])
    return result


def rename_class_group(db, semester_key, cohort_code, class_group_name, new_name):
    semester, cohort, group = _class_group(db, semester_key, cohort_code, class_group_name)
    new_name = normalize_class_group_name(new_name)
    if not new_name:
        raise ValidationError("New class group name is required.")
    if new_name == group["name"]:
        return new_name
    _update(db, "UPDATE class_group SET name = ? WHERE id = ?", (new_name, group["id"]), f"Class group {new_name} already exists.")
    _update(
        db,
        "UPDATE course_teaching_assignment SET class_group_name = ? WHERE semester_key = ? AND class_group_name = ?",
        (new_name, semester["key"], group["name"]),
        f"Assignments for {new_name} already exist.",
    )
    return new_name


def delete_class_group(db, semester_key, cohort_code, class_group_name):
    semester, _, group = _class_group(db, semester_key, cohort_code, class_group_name)
    _delete_group_assignments(db, semester["key"], [group["name"]])
    db.execute("DELETE FROM class_group WHERE id = ?", (group["id"],))


# ---------- schedule entries ----------
def _day(value):
    day = clean_cell(value).upper()[:3]
    if day not in DAY_ORDER:
        raise ValidationError(f"Invalid day of week: {value!r}")
    return day


def _session(value):
    session = clean_cell(value).upper()
    if session not in SESSION_PERIODS:
        raise ValidationError(f"Invalid session: {value!r}")
    return session


def _start_time(value):
    if not clean_cell(value):
        return None
    parsed = normalize_time(value)
    if parsed is None:
        raise ValidationError("Invalid start time. Use HH:MM.")
    return parsed


def _course_id(db, course_code, name_en=None, name_vi=None):
    code = normalize_course_code(course_code)
    if not code:
        raise ValidationError(f"Invalid course code: {course_code!r}")
    fields = {}
    if clean_cell(name_en):
        fields["name_en"] = clean_cell(name_en)
    if clean_cell(name_vi):
        fields["name_vi"] = clean_cell(name_vi)
    return db.upsert_course(code, fields)


def create_schedule_entry(db, semester_key, cohort_code, class_group_name, course_code, day_of_week, session,
                          start_time=None, raw_time=None, room=None, source_sheet=None, source_row=None,
                          course_name_en=None, course_name_vi=None):
    semester, _, group = _class_group(db, semester_key, cohort_code, class_group_name)
    day = _day(day_of_week)
    period = _session(session)
    start = _start_time(start_time)
    course_id = _course_id(db, course_code, course_name_en, course_name_vi)
    if source_row is None:
        source_row = db.query_one(
            "SELECT COALESCE(MAX(source_row), 0) + 1 AS n FROM schedule_entry WHERE class_group_id = ?",
            (group["id"],),
        )["n"]

    cursor = _update(
        db,
        """
        INSERT INTO schedule_entry (
            semester_id, class_group_id, course_id, day_of_week, session, start_time,
            raw_time, room, source_sheet, source_row, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (semester["id"], group["id"], course_id, day, period, start, clean_cell(raw_time) or None,
         clean_cell(room) or None, clean_cell(source_sheet) or MANUAL_SOURCE, int(source_row), utc_now()),
        "An identical schedule entry already exists.",
    )
    return cursor.lastrowid


def update_schedule_entry(db, entry_id, **changes):
    """Partial update; accepted keys: course_code, day_of_week, session, start_time, raw_time, room, source_sheet, source_row."""
    entry = db.query_one("SELECT * FROM schedule_entry WHERE id = ?", (entry_id,))
    if entry is None:
        raise NotFoundError(f"Schedule entry {entry_id} not found.")

    patch = {}
    for key, value in changes.items():
        if key == "course_code":
            patch["course_id"] = _course_id(db, value)
        elif key == "day_of_week":
            patch["day_of_week"] = _day(value)
        elif key == "session":
            patch["session"] = _session(value)
        elif key == "start_time":
            patch["start_time"] = _start_time(value)
        elif key in ("raw_time", "room"):
            patch[key] = clean_cell(value) or None
        elif key == "source_sheet":
            patch[key] = clean_cell(value) or MANUAL_SOURCE
        elif key == "source_row":
            try:
                patch[key] = int(value)
            except (TypeError, ValueError) as exc:
                raise ValidationError(f"Invalid source row: {value!r}") from exc
        else:
            raise ValidationError(f"Unknown schedule entry field: {key}")
    if not patch:
        raise ValidationError("No update fields provided.")

    assignments = ", ".join(f"{column} = ?" for column in patch)
    _update(db, f"UPDATE schedule_entry SET {assignments} WHERE id = ?", (*patch.values(), entry_id),
            "An identical schedule entry already exists.")


def delete_schedule_entry(db, entry_id):
    if db.execute("DELETE FROM schedule_entry WHERE id = ?", (entry_id,)).rowcount == 0:
        raise NotFoundError(f"Schedule entry {entry_id} not found.")


# ---------- lecturers ----------
def _lecturer_target(db, course_code, lecturer_id, scope, semester_key, class_group_name, instruction_code, knowledge):
    code = normalize_course_code(course_code)
    lecturer = normalize_lecturer_id(lecturer_id)
    if not code or not lecturer:
        raise ValidationError("Invalid course or lecturer.")
    if db.get_course(code) is None and (knowledge is None or knowledge.course(code) is None):
        raise NotFoundError(f"Unknown course {code}")

    scope = clean_cell(scope).upper() or "SEMESTER"
    if scope not in SCOPES:
        raise ValidationError(f"Invalid scope: {scope}")
    group = normalize_class_group_name(class_group_name)
    instruction = normalize_instruction_code(instruction_code)
    if scope == "GLOBAL":
        if group or instruction:
            raise ValidationError("A global assignment covers the whole course: no class group or instruction code.")
        key = ""
    else:
        key = _semester(db, semester_key)["key"]
    return code, lecturer, key, group, instruction


def _set_lecturer(db, enabled, course_code, lecturer_id, scope="SEMESTER", semester_key=None,
                  class_group_name="", instruction_code="", lecturer_name=None, updated_by=None, knowledge=None):
    code, lecturer, key, group, instruction = _lecturer_target(
        db, course_code, lecturer_id, scope, semester_key, class_group_name, instruction_code, knowledge,
    )
    if not group and not instruction:
        db.upsert_override(code, key, lecturer, enabled, updated_by)
    else:
        db.upsert_assignment(code, key, group, instruction, lecturer, enabled, updated_by)
    if clean_cell(lecturer_name):
        db.upsert_lecturer_profile(lecturer, updated_by=updated_by, name=clean_cell(lecturer_name))

    logger.info(
        "%s %s for %s (semester=%r, group=%r, code=%r)",
        "Attached" if enabled else "Detached", lecturer, code, key, group, instruction,
    )
    return {
        "course_code": code,
        "semester_key": key,
        "lecturer_id": lecturer,
        "class_group_name": group or None,
        "instruction_code": instruction or None,
        "enabled": enabled,
    }


def attach_lecturer(db, course_code, lecturer_id, **kwargs):
    return _set_lecturer(db, True, course_code, lecturer_id, **kwargs)


def detach_lecturer(db, course_code, lecturer_id, **kwargs):
    return _set_lecturer(db, False, course_code, lecturer_id, **kwargs)
