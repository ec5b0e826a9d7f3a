from __future__ import annotations

from datetime import datetime

import pytest

from qr_attendance.data import Database
from qr_attendance.models import Course, Issuer, Student, Subject
from qr_attendance.services import AttendanceService
from qr_attendance.utils import to_millis


@pytest.fixture
def database(tmp_path) -> Database:
    database = Database(tmp_path / "attendance.db")
    database.initialize()
    return database


@pytest.fixture
def service(database: Database) -> AttendanceService:
    service = AttendanceService(database)
    service.add_course(Course(code="BSCIT", name="BSc Information Technology"))
    service.add_course(Course(code="BCOM", name="Bachelor of Commerce"))
    service.add_subject(Subject(code="IT101", name="Introduction to Programming", course_code="BSCIT"))
    service.add_subject(Subject(code="COM101", name="Financial Accounting", course_code="BCOM"))
    return service


@pytest.fixture
def issuer() -> Issuer:
    return Issuer(issuer_id="lect1", first_name="Grace", last_name="Hopper")


@pytest.fixture
def student() -> Student:
    return Student(student_id="stu1", first_name="John", last_name="Doe", student_number="2025001")


@pytest.fixture
def other_student() -> Student:
    return Student(student_id="stu2", first_name="Jane", last_name="Roe", student_number="2025002")


@pytest.fixture
def session_start_ms() -> int:
    return to_millis(datetime(2025, 10, 31, 8, 0))
