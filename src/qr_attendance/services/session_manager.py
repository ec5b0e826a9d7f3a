from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path
from typing import Callable

from PIL import Image

from qr_attendance.models import AttendanceRecord, AttendanceSession, Issuer
from qr_attendance.services import qr_renderer, token_codec
from qr_attendance.services.attendance_service import AttendanceService
from qr_attendance.utils import InvalidSessionWindow, current_millis, parse_session_window

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL_HOURS = 2
MILLIS_PER_HOUR = 60 * 60 * 1000


class SessionValidationError(ValueError):
    """Raised when a session cannot be created from the submitted details."""


class SessionNotFoundError(LookupError):
    """Raised when an attendance session id is unknown."""


def _slug(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]+", "-", value.strip()).strip("-") or "session"


class SessionManager:
    """Lecturer-side lifecycle of attendance sessions and their QR codes."""

    def __init__(
        self,
        service: AttendanceService,
        *,
        session_ttl_hours: float = DEFAULT_SESSION_TTL_HOURS,
        clock: Callable[[], int] = current_millis,
    ) -> None:
        self._service = service
        self._session_ttl_ms = int(session_ttl_hours * MILLIS_PER_HOUR)
        self._clock = clock

    def create_session(
        self,
        issuer: Issuer,
        subject_code: str,
        course_code: str,
        location: str,
        date: str,
        start_time: str,
        end_time: str,
        *,
        now: int | None = None,
    ) -> AttendanceSession:
        subject_code = (subject_code or "").strip()
        course_code = (course_code or "").strip()
        location = (location or "").strip()

        if not subject_code or not course_code:
            raise SessionValidationError("Please select valid subject and course.")

        course = self._service.get_course(course_code)
        subject = self._service.get_subject(subject_code)
        if course is None or subject is None:
            raise SessionValidationError("Please select valid subject and course.")
        if subject.course_code != course.code:
            raise SessionValidationError(f"Subject {subject.code} is not part of course {course.code}.")
        if not location:
            raise SessionValidationError("Venue is required.")

        try:
            parse_session_window(date, start_time, end_time)
        except InvalidSessionWindow as exc:
            raise SessionValidationError(str(exc)) from exc

        created_at = self._clock() if now is None else now
        session_id = uuid.uuid4().hex
        token = token_codec.issue_token(
            session_id,
            issuer.issuer_id,
            subject.code,
            course.code,
            location,
            date.strip(),
            start_time.strip(),
            end_time.strip(),
            now=created_at,
        )

        session = AttendanceSession(
            id=session_id,
            issuer_id=issuer.issuer_id,
            issuer_name=issuer.display_name,
            subject_code=subject.code,
            subject_name=subject.name,
            course_code=course.code,
            location=location,
            date=token.date or "",
            start_time=token.start_time or "",
            end_time=token.end_time or "",
            token=token_codec.encode(token),
            active=True,
            created_at=created_at,
            expires_at=created_at + self._session_ttl_ms,
        )
        self._service.create_session_record(session)
        logger.info("Created attendance session %s for %s", session.id, session.subject_code)
        return session

    def deactivate_session(self, session_id: str) -> None:
        session = self._service.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Unknown attendance session: {session_id}")
        if not session.active:
            return
        self._service.deactivate_session_record(session_id)
        logger.info("Stopped attendance session %s", session_id)

    def get_session(self, session_id: str) -> AttendanceSession:
        session = self._service.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Unknown attendance session: {session_id}")
        return session

    def regenerate_display(self, session: AttendanceSession) -> Image.Image:
        """Render the session's already issued token again."""

        return qr_renderer.render_qr(session.token)

    def display_data_url(self, session: AttendanceSession) -> str:
        return qr_renderer.to_data_url(self.regenerate_display(session))

    def export_display(self, session: AttendanceSession, directory: Path) -> Path:
        filename = f"attendance-qr-{_slug(session.subject_code)}-{_slug(session.date)}.png"
        return qr_renderer.save_qr(self.regenerate_display(session), Path(directory) / filename)

    def list_sessions(self, issuer_id: str) -> list[AttendanceSession]:
        return self._service.list_sessions_for_issuer(issuer_id)

    def session_attendance(self, session_id: str) -> list[AttendanceRecord]:
        return self._service.list_records_for_session(session_id)

    def expire_sessions(self, *, now: int | None = None) -> int:
        reference = self._clock() if now is None else now
        expired = self._service.expire_sessions(reference)
        if expired:
            logger.info("Expired %d attendance session(s)", expired)
        return expired
