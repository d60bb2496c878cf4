"""
src/coursehub/portal.py
=======================
Read models over the store and the knowledge bundle:
schedule view with resolved lecturers and conflicts, course / lecturer views,
the academic bundle and a flat CSV export.
"""

import logging
import os

import pandas as pd

from coursehub.config.settings import get_active_config
from coursehub.errors import NotFoundError
from coursehub.models.schedule import DAY_LABEL, DAY_ORDER
from coursehub.resolver.assignments import entry_instruction_code, load_resolver, override_tier
from coursehub.semester import sort_semester_keys
from coursehub.text import normalize_class_group_name, normalize_course_code, normalize_semester_key

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "day", "session", "start_time", "course_code", "course_name",
    "room", "raw_time", "instruction_code", "lecturers",
]


# ---------- helpers ----------
def sort_entries(entries):
    """Day order, then start time; entries without a time go last in their day."""
    return sorted(
        entries,
        key=lambda entry: (DAY_ORDER.index(entry["day_of_week"]), entry["start_time"] or "99:99"),
    )


def compute_conflicts(entries):
    """Slots (day, start time) that hold more than one distinct course code."""
    grouped = {}
    for entry in entries:
        if not entry["start_time"]:
            continue
        slot = grouped.setdefault(
            (entry["day_of_week"], entry["start_time"]),
            {"day_of_week": entry["day_of_week"], "start_time": entry["start_time"], "courses": []},
        )
        if entry["course_code"] not in slot["courses"]:
            slot["courses"].append(entry["course_code"])
    return [slot for slot in grouped.values() if len(slot["courses"]) > 1]


def lecturer_name_map(db, knowledge=None):
    names = knowledge.lecturer_names() if knowledge else {}
    for lecturer_id, profile in db.lecturer_profiles().items():
        if profile["name"] and profile["name"].strip():
            names[lecturer_id] = profile["name"].strip()
    return names


def _lecturer_list(ids, names):
    return sorted(({"id": i, "name": names.get(i, i)} for i in ids), key=lambda item: item["name"])


def _defaults(knowledge):
    return knowledge.default_lecturers_by_course() if knowledge else {}


# ---------- meta ----------
def get_portal_meta(db):
    semesters = []
    rows = db.list_semesters()
    # start date desc; undated semesters follow, newest key first
    undated = {row["key"]: row for row in rows if not row["start_date"]}
    ordered = [row for row in rows if row["start_date"]] + [undated[key] for key in sort_semester_keys(undated)]
    for semester in ordered:
        cohorts = []
        for cohort in db.list_cohorts(semester["id"]):
            cohorts.append({
                "code": cohort["code"],
                "class_groups": [group["name"] for group in db.list_class_groups(cohort["id"])],
            })
        semesters.append({
            "key": semester["key"],
            "label": semester["label"],
            "start_date": semester["start_date"],
            "end_date": semester["end_date"],
            "cohorts": cohorts,
        })
    return {"semesters": semesters}


def _pick(options, wanted, key=lambda option: option):
    for option in options:
        if key(option) == wanted:
            return option
    return options[0] if options else None


# ---------- schedule ----------
def get_schedule(db, knowledge=None, semester_key=None, cohort_code=None, class_group_name=None, day="ALL"):
    """
    Ordered entries of one class group, each with its instruction code and
    resolved lecturers, plus the conflict list. Missing selections fall back
    to the first available semester / cohort / class group.
    """
    meta = get_portal_meta(db)
    semester = _pick(meta["semesters"], semester_key, key=lambda item: item["key"])
    cohort = _pick(semester["cohorts"], cohort_code, key=lambda item: item["code"]) if semester else None
    group = _pick(cohort["class_groups"], class_group_name) if cohort else None
    day = (day or "ALL").upper()

    view = {
        "meta": meta,
        "selected": {
            "semester_key": semester["key"] if semester else None,
            "cohort_code": cohort["code"] if cohort else None,
            "class_group_name": group,
            "day": day,
        },
        "entries": [],
        "conflicts": [],
    }
    if not group:
        return view

    rows = db.fetch_schedule(
        semester_key=semester["key"],
        cohort_code=cohort["code"],
        class_group_name=group,
        day=None if day == "ALL" else day,
    )
    resolver = load_resolver(db, _defaults(knowledge), normalize_semester_key(semester["key"]))
    names = lecturer_name_map(db, knowledge)

    entries = []
    prefix = get_active_config()["instruction_code_prefix"]
    for row in rows:
        known = knowledge.course(row["course_code"]) if knowledge else None
        catalog = known.catalog if known else None
        instruction_code = entry_instruction_code(row["room"], row["raw_time"], prefix)
        lecturers = resolver.resolve(row["course_code"], normalize_class_group_name(group), instruction_code)
        entries.append({
            "id": row["id"],
            "day_of_week": row["day_of_week"],
            "day_label": DAY_LABEL[row["day_of_week"]],
            "session": row["session"],
            "start_time": row["start_time"],
            "raw_time": row["raw_time"],
            "room": row["room"],
            "course_code": row["course_code"],
            "name_en": row["name_en"] or (catalog.name_en if catalog else None),
            "name_vi": row["name_vi"] or (catalog.name_vi if catalog else None),
            "instruction_code": instruction_code or None,
            "lecturers": _lecturer_list(lecturers, names),
        })

    view["entries"] = sort_entries(entries)
    view["conflicts"] = compute_conflicts(view["entries"])
    return view


def export_schedule_csv(view, path):
    rows = []
    for entry in view["entries"]:
        rows.append({
            "day": entry["day_of_week"],
            "session": entry["session"],
            "start_time": entry["start_time"],
            "course_code": entry["course_code"],
            "course_name": entry["name_en"] or entry["name_vi"],
            "room": entry["room"],
            "raw_time": entry["raw_time"],
            "instruction_code": entry["instruction_code"],
            "lecturers": "; ".join(lecturer["name"] for lecturer in entry["lecturers"]),
        })
    directory = os.path.dirname(str(path))
    if directory:
        os.makedirs(directory, exist_ok=True)
    df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
    df.to_csv(path, index=False, encoding="utf-8")
    logger.info("Saved %d schedule rows to %s", len(df), path)
    return df


# ---------- courses / lecturers ----------
def build_academic_bundle(db, knowledge=None):
    """
    Course and lecturer directory: catalog-seeded lecturers with global
    overrides applied, lecturer display data from admin profiles.
    """
    resolver = load_resolver(db, _defaults(knowledge), None)
    names = lecturer_name_map(db, knowledge)
    profiles = db.lecturer_profiles()

    lecturers = {}

    def ensure(lecturer_id):
        return lecturers.setdefault(lecturer_id, {
            "id": lecturer_id,
            "name": names.get(lecturer_id, lecturer_id),
            "profile_url": None,
            "title": None,
            "department": None,
            "email": None,
            "courses": set(),
            "review_count": 0,
            "average_rating": None,
            "is_customized": False,
        })

    for lecturer in (knowledge.lecturers if knowledge else []):
        item = ensure(lecturer.id)
        item.update(profile_url=lecturer.profile_url, review_count=lecturer.review_count,
                    average_rating=lecturer.average_rating)
    for lecturer_id, profile in profiles.items():
        item = ensure(lecturer_id)
        if profile["profile_url"]:
            item["profile_url"] = profile["profile_url"]
        item.update(title=profile["title"], department=profile["department"], email=profile["email"], is_customized=True)

    courses = []
    for course in (knowledge.courses if knowledge else []):
        lecturer_ids = override_tier(resolver, course.code, "", "")
        for lecturer_id in lecturer_ids:
            ensure(lecturer_id)["courses"].add(course.code)
        catalog = course.catalog
        courses.append({
            "code": course.code,
            "name_en": catalog.name_en if catalog else None,
            "name_vi": catalog.name_vi if catalog else None,
            "credits": catalog.credits if catalog else None,
            "program": catalog.program if catalog else None,
            "section": catalog.section if catalog else None,
            "resources": len(course.resources),
            "lecturers": _lecturer_list(lecturer_ids, names),
            "review_count": len(course.reviews),
            "average_rating": course.average_rating,
        })

    lecturer_list = []
    for item in sorted(lecturers.values(), key=lambda value: value["name"]):
        item["courses"] = sorted(item["courses"])
        lecturer_list.append(item)
    return {
        "stats": {
            "courses": len(courses),
            "lecturers": len(lecturer_list),
            "reviews": sum(course["review_count"] for course in courses),
            "resources": sum(course["resources"] for course in courses),
        },
        "courses": courses,
        "lecturers": lecturer_list,
    }


def course_scopes(db, course_code, semester_key=None):
    """Distinct (class group, instruction code) pairs a course is scheduled in."""
    scopes = set()
    prefix = get_active_config()["instruction_code_prefix"]
    for row in db.fetch_schedule(semester_key=semester_key, course_code=course_code):
        scopes.add((row["class_group_name"], entry_instruction_code(row["room"], row["raw_time"], prefix)))
    return sorted(scopes)


def get_course_view(db, knowledge, code, semester_key=None):
    normalized = normalize_course_code(code)
    if not normalized:
        raise NotFoundError(f"Not a course code: {code!r}")

    stored = db.get_course(normalized)
    known = knowledge.course(normalized) if knowledge else None
    if stored is None and known is None:
        raise NotFoundError(f"Unknown course {normalized}")

    semester_key = normalize_semester_key(semester_key) if semester_key else None
    resolver = load_resolver(db, _defaults(knowledge), semester_key)
    names = lecturer_name_map(db, knowledge)
    scopes = course_scopes(db, normalized, semester_key)
    team = resolver.teaching_team(normalized, scopes)

    assignments = [
        {
            "semester_key": row["semester_key"] or None,
            "class_group_name": row["class_group_name"] or None,
            "instruction_code": row["instruction_code"] or None,
            "lecturer_id": row["lecturer_id"],
            "lecturer_name": names.get(row["lecturer_id"], row["lecturer_id"]),
            "updated_at": row["updated_at"],
        }
        for row in db.list_assignments(course_code=normalized, semester_key=semester_key, enabled_only=True)
    ]
    assignments.sort(key=lambda item: (item["semester_key"] or "", item["class_group_name"] or "", item["instruction_code"] or ""))

    catalog = known.catalog if known else None
    return {
        "code": normalized,
        "name_en": (stored["name_en"] if stored else None) or (catalog.name_en if catalog else None),
        "name_vi": (stored["name_vi"] if stored else None) or (catalog.name_vi if catalog else None),
        "credits": stored["credits"] if stored and stored["credits"] is not None else (catalog.credits if catalog else None),
        "prerequisite": (stored["prerequisite"] if stored else None) or (catalog.prerequisite if catalog else None),
        "semester_key": semester_key,
        "scopes": scopes,
        "teaching_team": _lecturer_list(team, names),
        "assignments": assignments,
        "resources": known.resources if known else [],
        "reviews": known.reviews if known else [],
        "average_rating": known.average_rating if known else None,
    }


def get_lecturer_view(db, knowledge, lecturer_id):
    bundle = build_academic_bundle(db, knowledge)
    lecturer = next((item for item in bundle["lecturers"] if item["id"] == lecturer_id), None)
    if lecturer is None:
        raise NotFoundError(f"Unknown lecturer {lecturer_id}")

    courses = knowledge.courses if knowledge else []
    reviews = [review for course in courses for review in course.reviews if review.lecturer_id == lecturer_id]
    assignments = [
        {
            "course_code": row["course_code"],
            "semester_key": row["semester_key"] or None,
            "class_group_name": row["class_group_name"] or None,
            "instruction_code": row["instruction_code"] or None,
        }
        for row in db.list_assignments(enabled_only=True)
        if row["lecturer_id"] == lecturer_id
    ]
    return dict(lecturer, reviews=reviews, assignments=assignments)
