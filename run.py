"""
run.py — Entry point for coursehub
==================================
Imports the timetable workbook into the SQLite store and answers schedule,
course and lecturer questions from the command line.

    python run.py import [workbook.xlsx]
    python run.py schedule --semester SPRING_2026 --cohort K69 --group "IT 01" [--export out.csv]
    python run.py course "CS 2255" [--semester SPRING_2026]
    python run.py attach "CS 2255" nguyen-van-a --scope SEMESTER --semester SPRING_2026 [--group "IT 01"]
    python run.py detach "CS 2255" nguyen-van-a --scope GLOBAL
"""

import argparse
import logging
import sys

from coursehub.admin import attach_lecturer, detach_lecturer
from coursehub.config.settings import get_active_config
from coursehub.errors import CoursehubError
from coursehub.importers.normalizer import import_workbook
from coursehub.knowledge.extractor import load_knowledge
from coursehub.portal import export_schedule_csv, get_course_view, get_schedule
from coursehub.storage.database import Database


def cmd_import(db, config, args):
    path = args.workbook or config["workbook_path"]
    print(f"Importing {path} ...")
    summary = import_workbook(db, path)
    print(f"\n✅ {summary.semester_label} ({summary.semester_key})")
    print(f"   cohorts:       {', '.join(summary.cohorts)}")
    print(f"   class groups:  {summary.class_groups}")
    print(f"   courses:       {summary.courses}")
    print(f"   entries:       {summary.entries}")


def cmd_runs(db, config, args):
    for run in db.list_import_runs(args.limit):
        print(f"{run['started_at']}  {run['status']:<8} {run['source_file']}  {run['note'] or ''}")


def cmd_schedule(db, config, args):
    view = get_schedule(
        db, load_knowledge(config),
        semester_key=args.semester, cohort_code=args.cohort, class_group_name=args.group, day=args.day,
    )
    selected = view["selected"]
    if not selected["class_group_name"]:
        print("⚠️ Nothing imported yet, run `python run.py import` first.")
        return

    print(f"\n📅 {selected['semester_key']} / {selected['cohort_code']} / {selected['class_group_name']} ({selected['day']})\n")
    for entry in view["entries"]:
        lecturers = ", ".join(lecturer["name"] for lecturer in entry["lecturers"]) or "-"
        print(f"{entry['day_label']:<4} {entry['start_time'] or '--:--'}  {entry['course_code']:<10} "
              f"{entry['room'] or '':<18} {lecturers}")
    for conflict in view["conflicts"]:
        print(f"⚠️ Conflict {conflict['day_of_week']} {conflict['start_time']}: {', '.join(conflict['courses'])}")

    if args.export:
        export_schedule_csv(view, args.export)
        print(f"\nSaved {args.export}")


def cmd_course(db, config, args):
    view = get_course_view(db, load_knowledge(config), args.code, args.semester)
    print(f"\n📘 {view['code']}  {view['name_en'] or ''}")
    if view["name_vi"]:
        print(f"   {view['name_vi']}")
    print(f"   credits: {view['credits'] if view['credits'] is not None else '-'}")
    print(f"   teaching team: {', '.join(item['name'] for item in view['teaching_team']) or '-'}")
    for assignment in view["assignments"]:
        print(f"   - {assignment['lecturer_name']}  group={assignment['class_group_name'] or '*'} "
              f"code={assignment['instruction_code'] or '*'} semester={assignment['semester_key'] or '*'}")
    if view["average_rating"] is not None:
        print(f"   rating: {view['average_rating']} ({len(view['reviews'])} reviews)")


def _lecturer_change(action):
    def run(db, config, args):
        result = action(
            db, args.course, args.lecturer,
            scope=args.scope, semester_key=args.semester,
            class_group_name=args.group or "", instruction_code=args.code or "",
            lecturer_name=args.name, updated_by="cli", knowledge=load_knowledge(config),
        )
        verb = "Attached" if result["enabled"] else "Detached"
        print(f"✅ {verb} {result['lecturer_id']} for {result['course_code']} "
              f"(semester={result['semester_key'] or 'GLOBAL'}, group={result['class_group_name'] or '*'}, "
              f"code={result['instruction_code'] or '*'})")
    return run


def build_parser():
    parser = argparse.ArgumentParser(description="coursehub timetable importer")
    parser.add_argument("--db", help="SQLite database path (default: COURSEHUB_DB_PATH or data/coursehub.db)")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import", help="import a timetable workbook")
    p.add_argument("workbook", nargs="?")
    p.set_defaults(handler=cmd_import)

    p = sub.add_parser("runs", help="list recent import runs")
    p.add_argument("--limit", type=int, default=10)
    p.set_defaults(handler=cmd_runs)

    p = sub.add_parser("schedule", help="show one class group's week")
    p.add_argument("--semester")
    p.add_argument("--cohort")
    p.add_argument("--group")
    p.add_argument("--day", default="ALL")
    p.add_argument("--export", help="write the schedule to this CSV file")
    p.set_defaults(handler=cmd_schedule)

    p = sub.add_parser("course", help="show a course and its teaching team")
    p.add_argument("code")
    p.add_argument("--semester")
    p.set_defaults(handler=cmd_course)

    for name, action in (("attach", attach_lecturer), ("detach", detach_lecturer)):
        p = sub.add_parser(name, help=f"{name} a lecturer for a course")
        p.add_argument("course")
        p.add_argument("lecturer")
        p.add_argument("--scope", choices=["GLOBAL", "SEMESTER"], default="SEMESTER")
        p.add_argument("--semester")
        p.add_argument("--group")
        p.add_argument("--code", help="instruction code, e.g. IHA12")
        p.add_argument("--name", help="lecturer display name")
        p.set_defaults(handler=_lecturer_change(action))
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = get_active_config()
    db = Database(args.db or config["db_path"])
    try:
        args.handler(db, config, args)
    except CoursehubError as e:
        print(f"❌ {e}")
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
