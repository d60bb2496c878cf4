"""
src/coursehub/resolver/assignments.py
=====================================
Effective lecturer set for (course, class group, instruction code).

Tiers are tried in order and the first non-empty answer wins; tiers are
never merged.

    1. scoped_assignment_tier  course_teaching_assignment rows, most specific match
    2. override_tier           catalog defaults + global overrides + semester overrides

Both tiers work on frozen snapshots loaded once per query, so they can be
exercised without a database.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from coursehub.config.settings import get_active_config
from coursehub.models.lecturer import CourseLecturerOverride, TeachingAssignment
from coursehub.text import (
    extract_instruction_code,
    normalize_class_group_name,
    normalize_course_code_safe,
    normalize_instruction_code,
)

logger = logging.getLogger(__name__)

CLASS_GROUP_WEIGHT = 2
INSTRUCTION_CODE_WEIGHT = 1


@dataclass(frozen=True)
class AssignmentSnapshot:
    """Enabled teaching assignments for one semester scope."""
    assignments: Tuple[TeachingAssignment, ...] = ()

    def for_course(self, course_code):
        return [row for row in self.assignments if row.course_code == course_code]


@dataclass(frozen=True)
class OverrideSnapshot:
    """Catalog-seeded defaults plus overrides, each tuple kept in storage order."""
    defaults: Dict[str, FrozenSet[str]] = field(default_factory=dict)
    global_overrides: Tuple[CourseLecturerOverride, ...] = ()
    semester_overrides: Tuple[CourseLecturerOverride, ...] = ()


def score_assignment(assignment, class_group_name, instruction_code) -> Optional[int]:
    """Specificity of one assignment for the query, or None when it does not apply."""
    score = 0
    group = normalize_class_group_name(assignment.class_group_name)
    if group:
        if group != class_group_name:
            return None
        score += CLASS_GROUP_WEIGHT
    code = normalize_instruction_code(assignment.instruction_code)
    if code:
        if code != instruction_code:
            return None
        score += INSTRUCTION_CODE_WEIGHT
    return score


def scoped_assignment_tier(resolver, course_code, class_group_name, instruction_code):
    best = -1
    matched = []
    for assignment in resolver.assignments.for_course(course_code):
        score = score_assignment(assignment, class_group_name, instruction_code)
        if score is None:
            continue
        if score > best:
            best = score
            matched = [assignment.lecturer_id]
        elif score == best:
            matched.append(assignment.lecturer_id)
    return frozenset(matched)


def _apply(lecturers, overrides, course_code):
    for override in overrides:
        if override.course_code != course_code:
            continue
        if override.enabled:
            lecturers.add(override.lecturer_id)
        else:
            lecturers.discard(override.lecturer_id)


def override_tier(resolver, course_code, class_group_name, instruction_code):
    lecturers = set(resolver.overrides.defaults.get(course_code, ()))
    _apply(lecturers, resolver.overrides.global_overrides, course_code)
    _apply(lecturers, resolver.overrides.semester_overrides, course_code)
    return frozenset(lecturers)


TIERS = (scoped_assignment_tier, override_tier)


@dataclass(frozen=True)
class LecturerResolver:
    assignments: AssignmentSnapshot = field(default_factory=AssignmentSnapshot)
    overrides: OverrideSnapshot = field(default_factory=OverrideSnapshot)
    semester_key: Optional[str] = None
    tiers: Tuple = TIERS

    def resolve(self, course_code, class_group_name="", instruction_code="") -> FrozenSet[str]:
        course_code = normalize_course_code_safe(course_code)
        class_group_name = normalize_class_group_name(class_group_name)
        instruction_code = normalize_instruction_code(instruction_code)
        for tier in self.tiers:
            lecturers = tier(self, course_code, class_group_name, instruction_code)
            if lecturers:
                return lecturers
        return frozenset()

    def resolve_entry(self, course_code, class_group_name, room=None, raw_time=None):
        return self.resolve(course_code, class_group_name, entry_instruction_code(room, raw_time))

    def teaching_team(self, course_code, scopes: Iterable[Tuple[str, str]] = ()) -> FrozenSet[str]:
        """
        Union of ``resolve`` over each distinct (class group, instruction code)
        scope the course is taught in; a course with no observed scope resolves
        once with both dimensions empty.
        """
        distinct = {
            (normalize_class_group_name(group), normalize_instruction_code(code))
            for group, code in scopes
        } or {("", "")}
        team = set()
        for group, code in sorted(distinct):
            team.update(self.resolve(course_code, group, code))
        return frozenset(team)


def entry_instruction_code(room=None, raw_time=None, prefix=None) -> str:
    """Instruction code from the room text, else the raw time text."""
    prefix = prefix or get_active_config()["instruction_code_prefix"]
    return extract_instruction_code(room, prefix) or extract_instruction_code(raw_time, prefix)


def _to_override(row):
    return CourseLecturerOverride(
        course_code=normalize_course_code_safe(row["course_code"]),
        semester_key=row["semester_key"],
        lecturer_id=row["lecturer_id"].strip(),
        enabled=bool(row["enabled"]),
    )


def _to_assignment(row):
    return TeachingAssignment(
        course_code=normalize_course_code_safe(row["course_code"]),
        semester_key=row["semester_key"],
        class_group_name=row["class_group_name"],
        instruction_code=row["instruction_code"],
        lecturer_id=row["lecturer_id"].strip(),
        enabled=bool(row["enabled"]),
    )


def load_resolver(db, defaults=None, semester_key=None) -> LecturerResolver:
    """
    Snapshot the assignment and override tables for one semester.

    ``semester_key=None`` is the semester-agnostic lookup: only rows stored
    with an empty semester key take part.
    """
    scope = semester_key or ""
    assignments = tuple(_to_assignment(row) for row in db.list_assignments(semester_key=scope, enabled_only=True))
    global_overrides = tuple(_to_override(row) for row in db.list_overrides(semester_keys=[""]))
    semester_overrides = ()
    if scope:
        semester_overrides = tuple(_to_override(row) for row in db.list_overrides(semester_keys=[scope]))

    frozen_defaults = {
        normalize_course_code_safe(code): frozenset(ids) for code, ids in (defaults or {}).items()
    }
    logger.debug(
        "Resolver snapshot for %r: %d assignments, %d global and %d semester overrides",
        scope, len(assignments), len(global_overrides), len(semester_overrides),
    )
    return LecturerResolver(
        assignments=AssignmentSnapshot(assignments),
        overrides=OverrideSnapshot(frozen_defaults, global_overrides, semester_overrides),
        semester_key=semester_key,
    )
