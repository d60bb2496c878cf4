from datetime import date

import pytest

from coursehub.errors import WorkbookStructureError
from coursehub.importers.normalizer import import_workbook, merge_semesters
from coursehub.models.schedule import ParsedSheet
from coursehub.storage.database import Database
from tests.conftest import HEADER, K69_ROWS, K70_ROWS, write_workbook


def test_import_summary(db, workbook_path):
    summary = import_workbook(db, workbook_path)

    assert summary.semester_key == "SPRING_2026"
    assert summary.semester_label == "SPRING 2026"
    assert summary.cohorts == ["K69", "K70"]
    assert summary.class_groups == 4
    assert summary.courses == 3
    assert summary.entries == 8
    assert summary.source_file == str(workbook_path.resolve())


def test_import_writes_rows(imported_db):
    assert imported_db.count("schedule_entry") == 8
    assert imported_db.count("class_group") == 4
    assert imported_db.count("course") == 3

    semester = imported_db.get_semester("SPRING_2026")
    assert semester["label"] == "SPRING 2026"
    assert semester["start_date"] == "2026-01-05"
    assert semester["end_date"] == "2026-05-10"
    assert [row["code"] for row in imported_db.list_cohorts(semester["id"])] == ["K69", "K70"]

    course = imported_db.get_course("CS 2255")
    assert course["name_en"] == "Data Structures"
    assert course["credits"] == 3
    assert imported_db.get_course("ENG 1001")["name_en"] is None

    entry = imported_db.fetch_schedule("SPRING_2026", "K69", "IT 01", "MON", "CS 2255")[0]
    assert entry["source_row"] == 6
    assert entry["session"] == "MORNING"


def test_import_run_is_recorded(imported_db):
    run = imported_db.list_import_runs()[0]
    assert run["status"] == "SUCCESS"
    assert run["note"] == "Imported 8 schedule entries"
    assert run["finished_at"] is not None
    assert run["semester_id"] == imported_db.get_semester("SPRING_2026")["id"]


def test_reimport_is_idempotent(imported_db, workbook_path):
    semester_id = imported_db.get_semester("SPRING_2026")["id"]
    cohort_id = imported_db.get_cohort(semester_id, "K69")["id"]

    summary = import_workbook(imported_db, workbook_path)

    assert summary.entries == 8
    assert imported_db.count("schedule_entry") == 8
    assert imported_db.count("class_group") == 4
    assert imported_db.get_semester("SPRING_2026")["id"] == semester_id
    assert imported_db.get_cohort(semester_id, "K69")["id"] == cohort_id
    assert len(imported_db.list_import_runs()) == 2


def test_reimport_keeps_course_metadata_not_in_workbook(imported_db, workbook_path):
    imported_db.execute("UPDATE course SET name_en = 'English' WHERE code = 'ENG 1001'")
    imported_db.execute("UPDATE course SET name_vi = 'Tên cũ', prerequisite = 'X' WHERE code = 'CS 2255'")

    import_workbook(imported_db, workbook_path)

    assert imported_db.get_course("ENG 1001")["name_en"] == "English"
    cs = imported_db.get_course("CS 2255")
    assert cs["name_vi"] == "Cấu trúc dữ liệu"
    assert cs["prerequisite"] == "CS 1001"


def test_reimport_replaces_only_imported_cohorts(imported_db, tmp_path):
    smaller = write_workbook(tmp_path / "k70.xlsx", {"SPRING 2026 K70": K70_ROWS[:4]})
    summary = import_workbook(imported_db, smaller)

    assert summary.entries == 0
    assert imported_db.fetch_schedule(cohort_code="K70") == []
    assert len(imported_db.fetch_schedule(cohort_code="K69")) == 6


def test_events_without_course_are_dropped(db, workbook_path, monkeypatch):
    original = Database.course_id_map

    def without_english(self, codes):
        ids = original(self, codes)
        ids.pop("ENG 1001", None)
        return ids

    monkeypatch.setattr(Database, "course_id_map", without_english)
    summary = import_workbook(db, workbook_path)

    assert summary.entries == 6
    assert db.fetch_schedule(course_code="ENG 1001") == []


def test_failed_import_is_recorded(db, tmp_path):
    path = write_workbook(tmp_path / "broken.xlsx", {"SPRING 2026 K69": [[None, "IT 01"]]})

    with pytest.raises(WorkbookStructureError):
        import_workbook(db, path)

    run = db.list_import_runs()[0]
    assert run["status"] == "FAILED"
    assert "header" in run["note"]
    assert db.count("schedule_entry") == 0


def test_import_from_bytes_uses_upload_name(db, workbook_path):
    summary = import_workbook(db, workbook_path.read_bytes())
    assert summary.source_file == "upload.xlsx"
    assert db.get_semester("SPRING_2026")["source_file"] == "upload.xlsx"


def sheet(key, label, start, end):
    return ParsedSheet("x", "K1", label, key, start, end)


def test_merge_semesters_widens_dates_and_keeps_last_label():
    merged = merge_semesters([
        sheet("SPRING_2026", "Spring 2026", date(2026, 1, 12), date(2026, 5, 1)),
        sheet("FALL_2025", "FALL 2025", None, None),
        sheet("SPRING_2026", "SPRING 2026", date(2026, 1, 5), None),
    ])
    assert [item["key"] for item in merged] == ["SPRING_2026", "FALL_2025"]
    assert merged[0]["label"] == "SPRING 2026"
    assert merged[0]["start_date"] == date(2026, 1, 5)
    assert merged[0]["end_date"] == date(2026, 5, 1)
    assert merged[1]["start_date"] is None


def test_summary_reports_first_semester_of_workbook(db, tmp_path):
    fall = [
        [None, "SCHEDULE FOR FALL 2025 - K68"],
        HEADER,
        [None, "IT 01"],
        [None, "Sáng", "CS2255\nA101\n08:00"],
    ]
    path = write_workbook(tmp_path / "two.xlsx", {"SPRING 2026 K69": K69_ROWS, "FALL 2025 K68": fall})

    summary = import_workbook(db, path)

    assert summary.semester_key == "SPRING_2026"
    assert summary.cohorts == ["K69", "K68"]
    assert db.list_import_runs()[0]["semester_id"] == db.get_semester("SPRING_2026")["id"]
