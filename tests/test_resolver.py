import pytest

from coursehub.config.settings import get_active_config
from coursehub.models.lecturer import CourseLecturerOverride, TeachingAssignment
from coursehub.resolver import assignments
from coursehub.resolver.assignments import (
    AssignmentSnapshot,
    LecturerResolver,
    OverrideSnapshot,
    entry_instruction_code,
    load_resolver,
    override_tier,
    score_assignment,
    scoped_assignment_tier,
)

X = "CS 2255"


def assignment(lecturer_id, group="", code="", course=X):
    return TeachingAssignment(course, "SPRING_2026", group, code, lecturer_id)


def override(lecturer_id, enabled=True, semester_key="", course=X):
    return CourseLecturerOverride(course, semester_key, lecturer_id, enabled)


def resolver(*assignments, defaults=None, global_overrides=(), semester_overrides=()):
    return LecturerResolver(
        assignments=AssignmentSnapshot(tuple(assignments)),
        overrides=OverrideSnapshot(defaults or {}, tuple(global_overrides), tuple(semester_overrides)),
        semester_key="SPRING_2026",
    )


def test_score_assignment():
    assert score_assignment(assignment("a"), "IT 01", "IHA1") == 0
    assert score_assignment(assignment("a", group="it 01"), "IT 01", "") == 2
    assert score_assignment(assignment("a", code="iha1"), "IT 01", "IHA1") == 1
    assert score_assignment(assignment("a", "IT 01", "IHA1"), "IT 01", "IHA1") == 3
    assert score_assignment(assignment("a", group="IT 02"), "IT 01", "") is None
    assert score_assignment(assignment("a", code="IHA2"), "IT 01", "IHA1") is None


def test_specific_group_beats_wildcard():
    r = resolver(assignment("lec-a"), assignment("lec-b", group="IT 01"))
    assert r.resolve(X, "IT 01", "IHA9") == {"lec-b"}
    assert r.resolve(X, "IT 02", "IHA9") == {"lec-a"}


def test_ties_are_all_returned():
    r = resolver(assignment("lec-a", group="IT 01"), assignment("lec-b", group="IT 01"))
    assert r.resolve(X, "IT 01", "") == {"lec-a", "lec-b"}


def test_instruction_code_breaks_tie_within_group():
    r = resolver(
        assignment("lec-a", group="IT 01"),
        assignment("lec-b", group="IT 01", code="IHA12"),
    )
    assert r.resolve(X, "IT 01", "IHA12") == {"lec-b"}
    assert r.resolve(X, "IT 01", "IHA13") == {"lec-a"}


def test_query_arguments_are_normalized():
    r = resolver(assignment("lec-a", group="IT 01", code="IHA12"))
    assert r.resolve("cs2255", " it  01 ", "iha-12") == {"lec-a"}


def test_other_courses_are_ignored():
    r = resolver(assignment("lec-z", course="MATH 101"), defaults={X: frozenset({"lec-default"})})
    assert r.resolve(X, "IT 01") == {"lec-default"}


def test_falls_back_to_override_tier_when_every_assignment_is_rejected():
    r = resolver(
        assignment("lec-a", group="IT 05"),
        defaults={X: frozenset({"lec-default"})},
    )
    assert r.resolve(X, "IT 01") == {"lec-default"}


def test_tiers_are_never_merged():
    r = resolver(
        assignment("lec-a", group="IT 01"),
        defaults={X: frozenset({"lec-default"})},
        global_overrides=[override("lec-g")],
    )
    assert r.resolve(X, "IT 01") == {"lec-a"}


def test_override_tier_layers_defaults_global_then_semester():
    r = resolver(
        defaults={X: frozenset({"lec-1", "lec-2"})},
        global_overrides=[override("lec-2", enabled=False), override("lec-3")],
        semester_overrides=[override("lec-3", enabled=False, semester_key="SPRING_2026"),
                            override("lec-4", semester_key="SPRING_2026")],
    )
    assert override_tier(r, X, "", "") == {"lec-1", "lec-4"}


def test_semester_override_can_restore_globally_disabled_lecturer():
    r = resolver(
        defaults={X: frozenset({"lec-1"})},
        global_overrides=[override("lec-1", enabled=False)],
        semester_overrides=[override("lec-1", semester_key="SPRING_2026")],
    )
    assert r.resolve(X) == {"lec-1"}


def test_no_source_resolves_to_empty_set():
    assert resolver().resolve(X, "IT 01") == frozenset()


def test_tiers_can_be_swapped_out():
    r = LecturerResolver(
        assignments=AssignmentSnapshot((assignment("lec-a"),)),
        tiers=(scoped_assignment_tier,),
    )
    assert r.resolve(X, "IT 01") == {"lec-a"}
    assert r.resolve("MATH 101", "IT 01") == frozenset()


def test_teaching_team_unions_scopes():
    r = resolver(
        assignment("lec-a", group="IT 01"),
        assignment("lec-b", group="IT 03"),
        assignment("lec-c", code="IHA12"),
        defaults={X: frozenset({"lec-default"})},
    )
    scopes = [("IT 01", ""), ("it 01", ""), ("IT 03", ""), ("IT 02", "IHA12"), ("IT 04", "")]
    assert r.teaching_team(X, scopes) == {"lec-a", "lec-b", "lec-c", "lec-default"}


def test_teaching_team_without_scopes_resolves_wildcards_once():
    r = resolver(assignment("lec-a"), assignment("lec-b", group="IT 01"))
    assert r.teaching_team(X) == {"lec-a"}


@pytest.mark.parametrize("room, raw_time, expected", [
    ("IHA12 Room C3", "08:00", "IHA12"),
    ("A101", "08:00 IHA3", "IHA3"),
    ("IHA1", "IHA2", "IHA1"),
    ("A101", "08:00", ""),
    (None, None, ""),
])
def test_entry_instruction_code(room, raw_time, expected):
    assert entry_instruction_code(room, raw_time) == expected


def test_entry_instruction_code_follows_configured_prefix(monkeypatch):
    config = dict(get_active_config(), instruction_code_prefix="LAB")
    monkeypatch.setattr(assignments, "get_active_config", lambda: config)

    assert entry_instruction_code("LAB7 Room C3") == "LAB7"
    assert entry_instruction_code("IHA12 Room C3") == ""
    assert entry_instruction_code("IHA12 Room C3", prefix="IHA") == "IHA12"


def test_resolve_entry_reads_code_from_room():
    r = resolver(assignment("lec-a", group="IT 01"), assignment("lec-b", group="IT 01", code="IHA12"))
    assert r.resolve_entry(X, "IT 01", room="IHA12 Room C3", raw_time="13:30") == {"lec-b"}


def test_load_resolver_filters_by_semester(db):
    db.upsert_assignment(X, "SPRING_2026", "IT 01", "", "lec-spring", True)
    db.upsert_assignment(X, "FALL_2025", "IT 01", "", "lec-fall", True)
    db.upsert_assignment(X, "SPRING_2026", "IT 01", "", "lec-off", False)
    db.upsert_assignment(X, "", "", "", "lec-any", True)
    db.upsert_override(X, "", "lec-global", True)
    db.upsert_override(X, "SPRING_2026", "lec-semester", True)
    db.upsert_override(X, "FALL_2025", "lec-other", True)

    spring = load_resolver(db, {X: {"lec-default"}}, "SPRING_2026")
    assert spring.semester_key == "SPRING_2026"
    assert spring.resolve(X, "IT 01") == {"lec-spring"}
    assert spring.resolve(X, "IT 02") == {"lec-default", "lec-global", "lec-semester"}

    agnostic = load_resolver(db, {X: {"lec-default"}})
    assert agnostic.resolve(X, "IT 01") == {"lec-any"}
    assert override_tier(agnostic, X, "", "") == {"lec-default", "lec-global"}


def test_load_resolver_accepts_raw_course_codes(db):
    db.upsert_override("cs2255", "", "lec-global", True)
    r = load_resolver(db, {"cs2255": {"lec-default"}})
    assert r.resolve(X) == {"lec-default", "lec-global"}
