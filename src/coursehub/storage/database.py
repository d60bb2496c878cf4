"""
src/coursehub/storage/database.py
=================================
SQLite store for semesters, cohorts, class groups, courses, schedule entries,
import runs and the lecturer override / assignment tables.

The connection runs in autocommit mode: every statement stands on its own and
only bulk inserts are wrapped in BEGIN/COMMIT.
"""

import logging
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS semester (
    id INTEGER PRIMARY KEY,
    key TEXT NOT NULL UNIQUE,
    label TEXT NOT NULL,
    start_date TEXT,
    end_date TEXT,
    source_file TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS cohort (
    id INTEGER PRIMARY KEY,
    semester_id INTEGER NOT NULL REFERENCES semester(id) ON DELETE CASCADE,
    code TEXT NOT NULL,
    UNIQUE(semester_id, code)
);
CREATE TABLE IF NOT EXISTS class_group (
    id INTEGER PRIMARY KEY,
    cohort_id INTEGER NOT NULL REFERENCES cohort(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE(cohort_id, name)
);
CREATE TABLE IF NOT EXISTS course (
    id INTEGER PRIMARY KEY,
    code TEXT NOT NULL UNIQUE,
    name_en TEXT,
    name_vi TEXT,
    credits INTEGER,
    prerequisite TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS schedule_entry (
    id INTEGER PRIMARY KEY,
    semester_id INTEGER NOT NULL REFERENCES semester(id) ON DELETE CASCADE,
    class_group_id INTEGER NOT NULL REFERENCES class_group(id) ON DELETE CASCADE,
    course_id INTEGER NOT NULL REFERENCES course(id) ON DELETE CASCADE,
    day_of_week TEXT NOT NULL CHECK (day_of_week IN ('MON','TUE','WED','THU','FRI','SAT','SUN')),
    session TEXT NOT NULL CHECK (session IN ('MORNING','AFTERNOON','EVENING','UNKNOWN')),
    start_time TEXT,
    raw_time TEXT,
    room TEXT,
    source_sheet TEXT NOT NULL,
    source_row INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE(semester_id, class_group_id, day_of_week, start_time, course_id, source_row)
);
CREATE TABLE IF NOT EXISTS import_run (
    id INTEGER PRIMARY KEY,
    semester_id INTEGER REFERENCES semester(id) ON DELETE SET NULL,
    source_file TEXT NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('RUNNING','SUCCESS','FAILED')),
    note TEXT,
    started_at TEXT NOT NULL,
    finished_at TEXT
);
CREATE TABLE IF NOT EXISTS course_lecturer_override (
    id INTEGER PRIMARY KEY,
    course_code TEXT NOT NULL,
    semester_key TEXT NOT NULL DEFAULT '',
    lecturer_id TEXT NOT NULL,
    enabled INTEGER NOT NULL DEFAULT 1,
    updated_by TEXT,
    updated_at TEXT NOT NULL,
    UNIQUE(course_code, semester_key, lecturer_id)
);
CREATE TABLE IF NOT EXISTS course_teaching_assignment (
    id INTEGER PRIMARY KEY,
    course_code TEXT NOT NULL,
    semester_key TEXT NOT NULL DEFAULT '',
    class_group_name TEXT NOT NULL DEFAULT '',
    instruction_code TEXT NOT NULL DEFAULT '',
    lecturer_id TEXT NOT NULL,
    enabled INTEGER NOT NULL DEFAULT 1,
    updated_by TEXT,
    updated_at TEXT NOT NULL,
    UNIQUE(course_code, semester_key, class_group_name, instruction_code, lecturer_id)
);
CREATE TABLE IF NOT EXISTS lecturer_profile (
    lecturer_id TEXT PRIMARY KEY,
    name TEXT,
    title TEXT,
    department TEXT,
    email TEXT,
    profile_url TEXT,
    updated_by TEXT,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_entry_semester ON schedule_entry(semester_id);
CREATE INDEX IF NOT EXISTS idx_entry_group ON schedule_entry(class_group_id);
CREATE INDEX IF NOT EXISTS idx_override_course ON course_lecturer_override(course_code, semester_key);
CREATE INDEX IF NOT EXISTS idx_assignment_course ON course_teaching_assignment(course_code, semester_key);
"""

PROFILE_FIELDS = ("name", "title", "department", "email", "profile_url")


def utc_now():
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def to_iso_date(value):
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    return str(value)


class Database:
    def __init__(self, path=":memory:"):
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.path, isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.conn.executescript(SCHEMA)
        logger.debug("Opened database %s", self.path)

    def close(self):
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ---------- primitives ----------
    def execute(self, sql, params=()):
        return self.conn.execute(sql, params)

    def query(self, sql, params=()):
        return self.conn.execute(sql, params).fetchall()

    def query_one(self, sql, params=()):
        return self.conn.execute(sql, params).fetchone()

    def bulk(self, sql, rows) -> int:
        """Run one executemany inside BEGIN/COMMIT; returns the number of rows written."""
        rows = list(rows)
        if not rows:
            return 0
        self.conn.execute("BEGIN")
        try:
            cursor = self.conn.executemany(sql, rows)
        except sqlite3.Error:
            self.conn.execute("ROLLBACK")
            raise
        self.conn.execute("COMMIT")
        return cursor.rowcount

    # ---------- import runs ----------
    def create_import_run(self, source_file, note=None) -> int:
        cursor = self.execute(
            "INSERT INTO import_run (source_file, status, note, started_at) VALUES (?, 'RUNNING', ?, ?)",
            (source_file, note, utc_now()),
        )
        return cursor.lastrowid

    def finish_import_run(self, run_id, status, note, semester_id=None):
        self.execute(
            "UPDATE import_run SET status = ?, note = ?, semester_id = COALESCE(?, semester_id), finished_at = ? WHERE id = ?",
            (status, note, semester_id, utc_now(), run_id),
        )

    def list_import_runs(self, limit=20):
        return self.query("SELECT * FROM import_run ORDER BY started_at DESC, id DESC LIMIT ?", (limit,))

    # ---------- semesters / cohorts / class groups ----------
    def upsert_semester(self, key, label, start_date=None, end_date=None, source_file=None) -> int:
        now = utc_now()
        self.execute(
            """
            INSERT INTO semester (key, label, start_date, end_date, source_file, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                label = excluded.label,
                start_date = excluded.start_date,
                end_date = excluded.end_date,
                source_file = excluded.source_file,
                updated_at = excluded.updated_at
            """,
            (key, label, to_iso_date(start_date), to_iso_date(end_date), source_file, now, now),
        )
        return self.get_semester(key)["id"]

    def get_semester(self, key):
        return self.query_one("SELECT * FROM semester WHERE key = ?", (key,))

    def list_semesters(self):
        return self.query("SELECT * FROM semester ORDER BY start_date DESC, updated_at DESC, id DESC")

    def upsert_cohort(self, semester_id, code) -> int:
        self.execute(
            "INSERT INTO cohort (semester_id, code) VALUES (?, ?) ON CONFLICT(semester_id, code) DO NOTHING",
            (semester_id, code),
        )
        return self.get_cohort(semester_id, code)["id"]

    def get_cohort(self, semester_id, code):
        return self.query_one("SELECT * FROM cohort WHERE semester_id = ? AND code = ?", (semester_id, code))

    def list_cohorts(self, semester_id=None):
        if semester_id is None:
            return self.query("SELECT * FROM cohort ORDER BY code")
        return self.query("SELECT * FROM cohort WHERE semester_id = ? ORDER BY code", (semester_id,))

    def class_group_ids(self, cohort_id):
        return [row["id"] for row in self.query("SELECT id FROM class_group WHERE cohort_id = ?", (cohort_id,))]

    def class_group_id_map(self, cohort_id):
        return {row["name"]: row["id"] for row in self.query("SELECT id, name FROM class_group WHERE cohort_id = ?", (cohort_id,))}

    def get_class_group(self, cohort_id, name):
        return self.query_one("SELECT * FROM class_group WHERE cohort_id = ? AND name = ?", (cohort_id, name))

    def list_class_groups(self, cohort_id=None):
        if cohort_id is None:
            return self.query("SELECT * FROM class_group ORDER BY name")
        return self.query("SELECT * FROM class_group WHERE cohort_id = ? ORDER BY name", (cohort_id,))

    def create_class_groups(self, cohort_id, names) -> int:
        now = utc_now()
        return self.bulk(
            "INSERT OR IGNORE INTO class_group (cohort_id, name, created_at) VALUES (?, ?, ?)",
            [(cohort_id, name, now) for name in names],
        )

    def delete_cohort_schedule(self, cohort_id):
        """Drop every schedule entry of the cohort, then its class groups."""
        ids = self.class_group_ids(cohort_id)
        if not ids:
            return 0
        marks = ",".join("?" * len(ids))
        removed = self.execute(f"DELETE FROM schedule_entry WHERE class_group_id IN ({marks})", ids).rowcount
        self.execute(f"DELETE FROM class_group WHERE id IN ({marks})", ids)
        return removed

    # ---------- courses ----------
    def upsert_course(self, code, fields=None):
        """Insert the course, or overwrite only the metadata fields supplied."""
        fields = dict(fields or {})
        now = utc_now()
        columns = ["name_en", "name_vi", "credits", "prerequisite"]
        values = [fields.get(column) for column in columns]
        if fields:
            assignments = ", ".join(f"{column} = excluded.{column}" for column in columns if column in fields)
            conflict = f"DO UPDATE SET {assignments}, updated_at = excluded.updated_at"
        else:
            conflict = "DO NOTHING"
        self.execute(
            f"""
            INSERT INTO course (code, name_en, name_vi, credits, prerequisite, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(code) {conflict}
            """,
            (code, *values, now, now),
        )
        return self.get_course(code)["id"]

    def get_course(self, code):
        return self.query_one("SELECT * FROM course WHERE code = ?", (code,))

    def course_id_map(self, codes):
        codes = list(codes)
        if not codes:
            return {}
        marks = ",".join("?" * len(codes))
        rows = self.query(f"SELECT id, code FROM course WHERE code IN ({marks})", codes)
        return {row["code"]: row["id"] for row in rows}

    # ---------- schedule entries ----------
    def insert_schedule_entries(self, rows) -> int:
        now = utc_now()
        return self.bulk(
            """
            INSERT OR IGNORE INTO schedule_entry (
                semester_id, class_group_id, course_id, day_of_week, session,
                start_time, raw_time, room, source_sheet, source_row, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [tuple(row) + (now,) for row in rows],
        )

    def fetch_schedule(self, semester_key=None, cohort_code=None, class_group_name=None, day=None, course_code=None):
        sql = """
            SELECT se.id, se.day_of_week, se.session, se.start_time, se.raw_time, se.room,
                   se.source_sheet, se.source_row,
                   s.key AS semester_key, s.label AS semester_label,
                   co.code AS cohort_code, cg.name AS class_group_name,
                   c.code AS course_code, c.name_en, c.name_vi, c.credits
            FROM schedule_entry se
            JOIN semester s ON s.id = se.semester_id
            JOIN class_group cg ON cg.id = se.class_group_id
            JOIN cohort co ON co.id = cg.cohort_id
            JOIN course c ON c.id = se.course_id
            WHERE 1 = 1
        """
        params = []
        for column, value in (
            ("s.key", semester_key),
            ("co.code", cohort_code),
            ("cg.name", class_group_name),
            ("se.day_of_week", day),
            ("c.code", course_code),
        ):
            if value:
                sql += f" AND {column} = ?"
                params.append(value)
        sql += " ORDER BY se.id"
        return self.query(sql, params)

    def count(self, table):
        return self.query_one(f"SELECT COUNT(*) AS n FROM {table}")["n"]

    # ---------- lecturer overrides / assignments ----------
    def upsert_override(self, course_code, semester_key, lecturer_id, enabled, updated_by=None):
        self.execute(
            """
            INSERT INTO course_lecturer_override (course_code, semester_key, lecturer_id, enabled, updated_by, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(course_code, semester_key, lecturer_id) DO UPDATE SET
                enabled = excluded.enabled,
                updated_by = excluded.updated_by,
                updated_at = excluded.updated_at
            """,
            (course_code, semester_key, lecturer_id, int(bool(enabled)), updated_by, utc_now()),
        )

    def list_overrides(self, course_code=None, semester_keys=None):
        sql = "SELECT * FROM course_lecturer_override WHERE 1 = 1"
        params = []
        if course_code:
            sql += " AND course_code = ?"
            params.append(course_code)
        if semester_keys is not None:
            keys = list(semester_keys)
            sql += f" AND semester_key IN ({','.join('?' * len(keys))})"
            params.extend(keys)
        return self.query(sql + " ORDER BY updated_at, id", params)

    def upsert_assignment(self, course_code, semester_key, class_group_name, instruction_code, lecturer_id, enabled, updated_by=None):
        self.execute(
            """
            INSERT INTO course_teaching_assignment (
                course_code, semester_key, class_group_name, instruction_code,
                lecturer_id, enabled, updated_by, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(course_code, semester_key, class_group_name, instruction_code, lecturer_id) DO UPDATE SET
                enabled = excluded.enabled,
                updated_by = excluded.updated_by,
                updated_at = excluded.updated_at
            """,
            (course_code, semester_key, class_group_name, instruction_code, lecturer_id,
             int(bool(enabled)), updated_by, utc_now()),
        )

    def list_assignments(self, course_code=None, semester_key=None, enabled_only=False):
        sql = "SELECT * FROM course_teaching_assignment WHERE 1 = 1"
        params = []
        if course_code:
            sql += " AND course_code = ?"
            params.append(course_code)
        if semester_key is not None:
            sql += " AND semester_key = ?"
            params.append(semester_key)
        if enabled_only:
            sql += " AND enabled = 1"
        return self.query(sql + " ORDER BY updated_at, id", params)

    # ---------- lecturer profiles ----------
    def upsert_lecturer_profile(self, lecturer_id, updated_by=None, **fields):
        unknown = set(fields) - set(PROFILE_FIELDS)
        if unknown:
            raise KeyError(f"Unknown lecturer profile fields: {sorted(unknown)}")
        columns = [column for column in PROFILE_FIELDS if column in fields]
        updates = "".join(f"{column} = excluded.{column}, " for column in columns)
        self.execute(
            f"""
            INSERT INTO lecturer_profile (lecturer_id, {''.join(c + ', ' for c in columns)}updated_by, updated_at)
            VALUES ({'?, ' * (len(columns) + 1)}?, ?)
            ON CONFLICT(lecturer_id) DO UPDATE SET {updates}updated_by = excluded.updated_by, updated_at = excluded.updated_at
            """,
            (lecturer_id, *[fields[column] for column in columns], updated_by, utc_now()),
        )

    def lecturer_profiles(self):
        return {row["lecturer_id"]: row for row in self.query("SELECT * FROM lecturer_profile")}
