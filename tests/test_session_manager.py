import pytest

from qr_attendance.services import SessionManager, SessionNotFoundError, SessionValidationError, token_codec

NOW = 1_761_897_600_000
HOUR = 60 * 60 * 1000


def _create(manager, issuer, **overrides):
    details = {
        "subject_code": "IT101",
        "course_code": "BSCIT",
        "location": "A101",
        "date": "2025-10-31",
        "start_time": "08:00",
        "end_time": "09:00",
    }
    details.update(overrides)
    return manager.create_session(issuer, now=NOW, **details)


def test_create_session_persists_active_session_with_token(service, issuer):
    manager = SessionManager(service)

    session = _create(manager, issuer, location="  A101  ")

    assert session.active is True
    assert session.location == "A101"
    assert session.created_at == NOW
    assert session.expires_at == NOW + 2 * HOUR
    assert session.issuer_name == "Grace Hopper"
    assert session.subject_name == "Introduction to Programming"
    assert service.get_session(session.id) == session

    token = token_codec.decode(session.token)
    assert token is not None
    assert token.session_id == session.id
    assert token.issuer_id == "lect1"
    assert token.location == "A101"
    assert token.issued_at == NOW


def test_session_ids_are_unique(service, issuer):
    manager = SessionManager(service)
    first = _create(manager, issuer)
    second = _create(manager, issuer)
    assert first.id != second.id


def test_session_ttl_is_configurable(service, issuer):
    manager = SessionManager(service, session_ttl_hours=1)
    assert _create(manager, issuer).expires_at == NOW + HOUR


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"subject_code": ""}, "Please select valid subject and course."),
        ({"course_code": "  "}, "Please select valid subject and course."),
        ({"course_code": "NOPE"}, "Please select valid subject and course."),
        ({"subject_code": "NOPE"}, "Please select valid subject and course."),
        ({"subject_code": "COM101"}, "Subject COM101 is not part of course BSCIT."),
        ({"location": "   "}, "Venue is required."),
        ({"end_time": "07:00"}, "End time must be later than start time."),
        ({"date": "tomorrow"}, "Date must use the YYYY-MM-DD format."),
    ],
)
def test_create_session_rejects_invalid_details(service, issuer, overrides, message):
    manager = SessionManager(service)

    with pytest.raises(SessionValidationError) as excinfo:
        _create(manager, issuer, **overrides)

    assert str(excinfo.value) == message
    assert manager.list_sessions(issuer.issuer_id) == []


def test_deactivate_session_is_idempotent(service, issuer):
    manager = SessionManager(service)
    session = _create(manager, issuer)

    manager.deactivate_session(session.id)
    manager.deactivate_session(session.id)

    assert manager.get_session(session.id).active is False


def test_unknown_sessions_raise(service):
    manager = SessionManager(service)

    with pytest.raises(SessionNotFoundError):
        manager.deactivate_session("missing")
    with pytest.raises(SessionNotFoundError):
        manager.get_session("missing")


def test_regenerate_display_reuses_issued_token(service, issuer):
    manager = SessionManager(service)
    session = _create(manager, issuer)

    first = manager.regenerate_display(session)
    second = manager.regenerate_display(manager.get_session(session.id))

    assert manager.get_session(session.id).token == session.token
    assert first.size == (300, 300)
    assert first.tobytes() == second.tobytes()


def test_display_data_url(service, issuer):
    manager = SessionManager(service)
    session = _create(manager, issuer)

    assert manager.display_data_url(session).startswith("data:image/png;base64,")


def test_export_display_names_file_after_subject_and_date(service, issuer, tmp_path):
    manager = SessionManager(service)
    session = _create(manager, issuer)

    path = manager.export_display(session, tmp_path / "exports")

    assert path == tmp_path / "exports" / "attendance-qr-IT101-2025-10-31.png"
    assert path.read_bytes().startswith(b"\x89PNG")


def test_rendered_code_scans_back_to_token(service, issuer):
    zxingcpp = pytest.importorskip("zxingcpp")
    manager = SessionManager(service)
    session = _create(manager, issuer)

    results = zxingcpp.read_barcodes(manager.regenerate_display(session))

    assert [result.text for result in results] == [session.token]


def test_expire_sessions_and_listing(service, issuer):
    clock = {"now": NOW}
    manager = SessionManager(service, clock=lambda: clock["now"])
    old = manager.create_session(issuer, "IT101", "BSCIT", "A101", "2025-10-31", "08:00", "09:00")
    clock["now"] = NOW + HOUR
    recent = manager.create_session(issuer, "IT101", "BSCIT", "B202", "2025-10-31", "10:00", "11:00")

    clock["now"] = NOW + 2 * HOUR + 1
    assert manager.expire_sessions() == 1

    sessions = manager.list_sessions(issuer.issuer_id)
    assert [session.id for session in sessions] == [recent.id, old.id]
    assert [session.active for session in sessions] == [True, False]


def test_session_attendance_lists_records(service, issuer, student):
    manager = SessionManager(service)
    session = _create(manager, issuer)

    assert manager.session_attendance(session.id) == []
