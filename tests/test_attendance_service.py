import pytest

from qr_attendance.models import AttendanceRecord, AttendanceSession
from qr_attendance.services import DuplicateAttendanceError

HOUR = 60 * 60 * 1000


def _session(session_id: str, *, created_at: int = 1_000, issuer_id: str = "lect1") -> AttendanceSession:
    return AttendanceSession(
        id=session_id,
        issuer_id=issuer_id,
        issuer_name="Grace Hopper",
        subject_code="IT101",
        subject_name="Introduction to Programming",
        course_code="BSCIT",
        location="A101",
        date="2025-10-31",
        start_time="08:00",
        end_time="09:00",
        token="{}",
        active=True,
        created_at=created_at,
        expires_at=created_at + 2 * HOUR,
    )


def _record(session_id: str, student_id: str, *, timestamp: int = 5_000, name: str = "John Doe") -> AttendanceRecord:
    return AttendanceRecord(
        id=None,
        session_id=session_id,
        student_id=student_id,
        student_name=name,
        student_identifier="2025001",
        status="present",
        timestamp=timestamp,
    )


def test_create_attendance_record_prevents_duplicates(service):
    service.create_session_record(_session("s1"))

    first_record_id = service.create_attendance_record(_record("s1", "stu1"))
    assert first_record_id > 0
    assert service.record_exists("s1", "stu1")
    assert not service.record_exists("s1", "stu2")

    with pytest.raises(DuplicateAttendanceError):
        service.create_attendance_record(_record("s1", "stu1", timestamp=6_000))

    assert len(service.list_records_for_session("s1")) == 1


def test_records_for_unknown_sessions_are_stored(service):
    record_id = service.create_attendance_record(_record("never-created", "stu1"))
    assert record_id > 0


def test_list_records_for_student_newest_first(service):
    service.create_attendance_record(_record("s1", "stu1", timestamp=1_000))
    service.create_attendance_record(_record("s2", "stu1", timestamp=3_000))
    service.create_attendance_record(_record("s3", "stu2", timestamp=2_000))

    records = service.list_records_for_student("stu1")

    assert [record.session_id for record in records] == ["s2", "s1"]
    assert all(record.id is not None for record in records)


def test_list_records_for_session_sorted_by_name(service):
    service.create_attendance_record(_record("s1", "stu2", name="zoe Adams"))
    service.create_attendance_record(_record("s1", "stu1", name="Alex Brown"))

    names = [record.student_name for record in service.list_records_for_session("s1")]

    assert names == ["Alex Brown", "zoe Adams"]


def test_sessions_round_trip_and_list_newest_first(service):
    service.create_session_record(_session("older", created_at=1_000))
    service.create_session_record(_session("newer", created_at=2_000))
    service.create_session_record(_session("someone-else", issuer_id="lect2"))

    stored = service.get_session("older")
    assert stored == _session("older", created_at=1_000)
    assert [session.id for session in service.list_sessions_for_issuer("lect1")] == ["newer", "older"]
    assert service.get_session("missing") is None


def test_deactivate_session_record(service):
    service.create_session_record(_session("s1"))

    assert service.deactivate_session_record("s1") is True
    assert service.get_session("s1").active is False
    assert service.deactivate_session_record("missing") is False


def test_expire_sessions_only_touches_lapsed_active_sessions(service):
    service.create_session_record(_session("old", created_at=0))
    service.create_session_record(_session("fresh", created_at=10 * HOUR))

    assert service.expire_sessions(3 * HOUR) == 1
    assert service.get_session("old").active is False
    assert service.get_session("fresh").active is True
    assert service.expire_sessions(3 * HOUR) == 0


def test_catalog_lookups(service):
    assert [course.code for course in service.list_courses()] == ["BSCIT", "BCOM"]
    assert [subject.code for subject in service.list_subjects_for_course("BSCIT")] == ["IT101"]
    assert service.get_subject("IT101").course_code == "BSCIT"
    assert service.get_course("NOPE") is None
