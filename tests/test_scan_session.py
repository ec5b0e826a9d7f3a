import json

import pytest

from qr_attendance.data import StoreUnavailableError
from qr_attendance.models import CameraState
from qr_attendance.services import (
    CameraController,
    CameraErrorKind,
    OutcomeKind,
    RedemptionValidator,
    ScanPhase,
    ScanSession,
    token_codec,
)

from fakes import OK, FakeSource

MINUTE = 60 * 1000


class ScriptedDetector:
    def __init__(self, payload: str) -> None:
        self.payload = payload

    def detect(self, frame):
        return [self.payload]


class FlakyWriteService:
    """Wraps the real service and fails the first record write."""

    def __init__(self, service) -> None:
        self._service = service
        self.failures_left = 1

    def record_exists(self, session_id, student_id):
        return self._service.record_exists(session_id, student_id)

    def create_attendance_record(self, record):
        if self.failures_left:
            self.failures_left -= 1
            raise StoreUnavailableError("disk I/O error")
        return self._service.create_attendance_record(record)


def _token(issued_at: int) -> str:
    token = token_codec.issue_token(
        "sess1", "lect1", "IT101", "BSCIT", "A101", "2025-10-31", "08:00", "09:00", now=issued_at
    )
    return token_codec.encode(token)


def _open_session(service, student, payload, now, source=None):
    outcomes = []
    source = source or FakeSource(OK)
    camera = CameraController(source, sleep=lambda seconds: None)
    validator = RedemptionValidator(service, clock=lambda: now)
    scan_session = ScanSession(
        camera,
        ScriptedDetector(payload),
        validator,
        student,
        on_outcome=outcomes.append,
    )
    scan_session.open(run_loop=False)
    return scan_session, source, outcomes


def test_validated_scan_stops_camera_and_waits_for_confirmation(service, student, session_start_ms):
    scan_session, source, outcomes = _open_session(service, student, _token(session_start_ms), session_start_ms)
    assert scan_session.phase is ScanPhase.SCANNING

    scan_session.scanner.tick()

    assert scan_session.phase is ScanPhase.CONFIRMING
    assert scan_session.pending.session_id == "sess1"
    assert source.streams[0].active is False
    assert scan_session.camera.state is CameraState.IDLE
    assert [outcome.kind for outcome in outcomes] == [OutcomeKind.VALIDATED]
    assert service.list_records_for_student(student.student_id) == []

    outcome = scan_session.confirm()

    assert outcome.kind is OutcomeKind.SUCCESS
    assert scan_session.phase is ScanPhase.DONE
    assert scan_session.pending is None
    assert len(service.list_records_for_student(student.student_id)) == 1


def test_rejected_scan_keeps_scanning(service, student, session_start_ms):
    payload = json.dumps({"hello": "world"})
    scan_session, source, outcomes = _open_session(service, student, payload, session_start_ms)

    scan_session.scanner.tick()

    assert scan_session.phase is ScanPhase.SCANNING
    assert source.streams[0].active
    assert outcomes[0].kind is OutcomeKind.INVALID_CODE


def test_expired_scan_keeps_scanning(service, student, session_start_ms):
    now = session_start_ms + 30 * MINUTE
    scan_session, source, outcomes = _open_session(service, student, _token(session_start_ms), now)

    scan_session.scanner.tick()

    assert scan_session.phase is ScanPhase.SCANNING
    assert outcomes[0].kind is OutcomeKind.EXPIRED


def test_failed_write_keeps_token_pending(service, student, session_start_ms):
    flaky = FlakyWriteService(service)
    scan_session, _, _ = _open_session(flaky, student, _token(session_start_ms), session_start_ms)
    scan_session.scanner.tick()

    first = scan_session.confirm()
    assert first.kind is OutcomeKind.STORE_UNAVAILABLE
    assert scan_session.phase is ScanPhase.CONFIRMING
    assert scan_session.pending is not None

    second = scan_session.confirm()
    assert second.kind is OutcomeKind.SUCCESS
    assert scan_session.phase is ScanPhase.DONE


def test_confirm_without_pending_scan_raises(service, student, session_start_ms):
    scan_session, _, _ = _open_session(service, student, "{}", session_start_ms)

    with pytest.raises(RuntimeError):
        scan_session.confirm()


def test_dismiss_drops_pending_token(service, student, session_start_ms):
    scan_session, _, _ = _open_session(service, student, _token(session_start_ms), session_start_ms)
    scan_session.scanner.tick()

    scan_session.dismiss()

    assert scan_session.pending is None
    assert scan_session.phase is ScanPhase.CLOSED
    assert service.list_records_for_student(student.student_id) == []


def test_camera_controls_are_ignored_while_confirming(service, student, session_start_ms):
    scan_session, source, _ = _open_session(service, student, _token(session_start_ms), session_start_ms)
    scan_session.scanner.tick()

    assert scan_session.switch_camera(run_loop=False) is False
    assert scan_session.retry_camera(run_loop=False) is False
    assert len(source.requests) == 1


def test_camera_failure_then_retry(service, student, session_start_ms):
    source = FakeSource(CameraErrorKind.PERMISSION_DENIED, OK)
    scan_session, _, _ = _open_session(service, student, "{}", session_start_ms, source=source)
    assert scan_session.phase is ScanPhase.CAMERA_ERROR

    assert scan_session.retry_camera(run_loop=False) is True
    assert scan_session.phase is ScanPhase.SCANNING


def test_close_releases_camera(service, student, session_start_ms):
    scan_session, source, _ = _open_session(service, student, "{}", session_start_ms)

    scan_session.close()

    assert scan_session.phase is ScanPhase.CLOSED
    assert source.streams[0].active is False
    assert not scan_session.scanner.is_running


def test_dismiss_while_scanning_releases_camera(service, student, session_start_ms):
    scan_session, source, outcomes = _open_session(service, student, _token(session_start_ms), session_start_ms)

    scan_session.dismiss()

    assert scan_session.phase is ScanPhase.CLOSED
    assert source.streams[0].active is False
    assert scan_session.camera.state is CameraState.IDLE
    assert scan_session.scanner.tick() is None
    assert outcomes == []
