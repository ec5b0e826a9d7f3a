from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from pathlib import Path

from qr_attendance.config import UserSettingsStore, refresh_settings_from_store
from qr_attendance.data import Database
from qr_attendance.models import Course, Issuer, Student, Subject
from qr_attendance.services import AttendanceService

DEMO_COURSES = (
    Course(code="BSCIT", name="BSc Information Technology"),
    Course(code="BCOM", name="Bachelor of Commerce"),
)
DEMO_SUBJECTS = (
    Subject(code="IT101", name="Introduction to Programming", course_code="BSCIT"),
    Subject(code="IT102", name="Database Systems", course_code="BSCIT"),
    Subject(code="COM101", name="Financial Accounting", course_code="BCOM"),
)


def seed_demo_catalog(service: AttendanceService) -> None:
    for course in DEMO_COURSES:
        service.add_course(course)
    for subject in DEMO_SUBJECTS:
        service.add_subject(subject)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="QR code attendance for lecturers and students.")
    parser.add_argument("--database", type=Path, help="SQLite database path (overrides DATABASE_PATH).")
    parser.add_argument("--seed-demo", action="store_true", help="Load a demo course and subject catalog.")
    parser.add_argument("--log-level", default="INFO", help="Logging level, e.g. DEBUG or WARNING.")
    parser.add_argument("--lecturer-id", default="lecturer-1")
    parser.add_argument("--lecturer-name", default="Demo Lecturer")
    parser.add_argument("--student-id", default="student-1")
    parser.add_argument("--student-name", default="Demo Student")
    parser.add_argument("--student-number", default=None)
    return parser


def _split_name(full_name: str) -> tuple[str | None, str | None]:
    first, _, last = full_name.strip().partition(" ")
    return first or None, last or None


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = refresh_settings_from_store(UserSettingsStore())
    if args.database is not None:
        settings = replace(settings, database_path=args.database.expanduser())
    logging.getLogger(__name__).debug("Loaded %s", settings)

    if args.seed_demo:
        service = AttendanceService(Database(settings.database_path))
        service.initialize()
        seed_demo_catalog(service)

    issuer = Issuer(args.lecturer_id, *_split_name(args.lecturer_name))
    student_first, student_last = _split_name(args.student_name)
    student = Student(args.student_id, student_first, student_last, args.student_number)

    from qr_attendance.ui.app import AttendanceApp

    AttendanceApp(settings, issuer=issuer, student=student).run()


if __name__ == "__main__":
    main()
