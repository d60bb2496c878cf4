"""
src/coursehub/importers/normalizer.py
=====================================
Writes parsed workbook sheets into the store.

Per import:
    ImportRun RUNNING -> parse -> semesters -> per cohort destructive refresh
    -> ImportRun SUCCESS / FAILED

Every step commits on its own; a failure part way leaves the cohorts already
written in place and is recovered by importing the workbook again.
"""

import logging
from collections import OrderedDict
from pathlib import Path

from coursehub.importers.workbook import parse_workbook
from coursehub.models.schedule import ImportSummary

logger = logging.getLogger(__name__)


def merge_semesters(parsed_sheets):
    """
    Group sheets by semester key; the label of the last sheet wins, dates
    widen to the earliest start and the latest end.
    """
    merged = OrderedDict()
    for sheet in parsed_sheets:
        current = merged.setdefault(
            sheet.semester_key,
            {"key": sheet.semester_key, "label": sheet.semester_label, "start_date": None, "end_date": None},
        )
        current["label"] = sheet.semester_label
        if sheet.start_date and (current["start_date"] is None or sheet.start_date < current["start_date"]):
            current["start_date"] = sheet.start_date
        if sheet.end_date and (current["end_date"] is None or sheet.end_date > current["end_date"]):
            current["end_date"] = sheet.end_date
    return list(merged.values())


def write_cohort(db, semester_id, sheet):
    """Destructive refresh of one cohort; returns (class_groups, course_codes, entries)."""
    cohort_id = db.upsert_cohort(semester_id, sheet.cohort_code)

    removed = db.delete_cohort_schedule(cohort_id)
    if removed:
        logger.debug("Cohort %s: removed %d previous entries", sheet.cohort_code, removed)

    group_names = sheet.class_group_names()
    db.create_class_groups(cohort_id, group_names)

    course_codes = sheet.course_codes()
    for code in course_codes:
        meta = sheet.catalog.get(code)
        db.upsert_course(code, meta.supplied_fields() if meta else {})

    group_ids = db.class_group_id_map(cohort_id)
    course_ids = db.course_id_map(course_codes)

    rows = []
    for event in sheet.events:
        group_id = group_ids.get(event.class_group_name)
        course_id = course_ids.get(event.course_code)
        if not group_id or not course_id:
            continue
        rows.append((
            semester_id, group_id, course_id, event.day_of_week, event.session,
            event.start_time, event.raw_time, event.room, event.source_sheet, event.source_row,
        ))

    entries = db.insert_schedule_entries(rows)
    dropped = len(sheet.events) - len(rows)
    if dropped:
        logger.debug("Cohort %s: %d events had no class group or course", sheet.cohort_code, dropped)
    return len(group_names), course_codes, entries


def write_import(db, parsed_sheets, source_file):
    semesters = merge_semesters(parsed_sheets)
    semester_ids = {}
    for semester in semesters:
        semester_ids[semester["key"]] = db.upsert_semester(
            semester["key"], semester["label"], semester["start_date"], semester["end_date"], source_file,
        )

    total_groups = 0
    total_entries = 0
    all_codes = set()
    for sheet in parsed_sheets:
        groups, codes, entries = write_cohort(db, semester_ids[sheet.semester_key], sheet)
        total_groups += groups
        total_entries += entries
        all_codes.update(codes)
        logger.info("Cohort %s (%s): %d class groups, %d entries", sheet.cohort_code, sheet.semester_key, groups, entries)

    primary = semesters[0]
    summary = ImportSummary(
        source_file=source_file,
        semester_key=primary["key"],
        semester_label=primary["label"],
        cohorts=[sheet.cohort_code for sheet in parsed_sheets],
        class_groups=total_groups,
        courses=len(all_codes),
        entries=total_entries,
    )
    return summary, semester_ids[primary["key"]]


def import_workbook(db, source, source_name=None, config=None) -> ImportSummary:
    """
    Parse and store one workbook. The ImportRun row records the outcome; any
    failure (structural parse errors included) is noted on it and re-raised.
    """
    if source_name is None:
        source_name = str(Path(source).resolve()) if isinstance(source, (str, Path)) else "upload.xlsx"

    run_id = db.create_import_run(source_name, note=f"Preparing import of {source_name}")
    try:
        parsed_sheets = parse_workbook(source, config)
        summary, semester_id = write_import(db, parsed_sheets, source_name)
    except Exception as exc:
        db.finish_import_run(run_id, "FAILED", str(exc) or exc.__class__.__name__)
        logger.error("Import of %s failed: %s", source_name, exc)
        raise

    db.finish_import_run(run_id, "SUCCESS", f"Imported {summary.entries} schedule entries", semester_id)
    logger.info("Imported %s: %d entries across %s", source_name, summary.entries, ", ".join(summary.cohorts))
    return summary
