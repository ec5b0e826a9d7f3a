"""Turning a scanned attendance code into an attendance record.

Redemption happens in two phases. :meth:`RedemptionValidator.validate` only
reads: it decodes the scan and runs the rejection checks in a fixed order,
first failure wins. :meth:`RedemptionValidator.confirm` runs after the
student has acknowledged the session details and is the only step that
writes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from qr_attendance.data import StoreUnavailableError
from qr_attendance.models import TOKEN_KIND, AttendanceRecord, AttendanceStatus, AttendanceToken, Student
from qr_attendance.services import token_codec
from qr_attendance.services.attendance_service import AttendanceService, DuplicateAttendanceError
from qr_attendance.utils import MILLIS_PER_MINUTE, InvalidSessionWindow, current_millis, scheduled_start_millis

logger = logging.getLogger(__name__)

DEFAULT_GRACE_MINUTES = 15
LATE_NOTE = "Marked attendance after grace period"


class OutcomeKind(str, Enum):
    VALIDATED = "validated"
    SUCCESS = "success"
    INVALID_CODE = "invalid_code"
    WRONG_CODE_TYPE = "wrong_code_type"
    CORRUPT_CODE = "corrupt_code"
    EXPIRED = "expired"
    ALREADY_REDEEMED = "already_redeemed"
    STORE_UNAVAILABLE = "store_unavailable"


OUTCOME_MESSAGES: dict[OutcomeKind, tuple[str, str]] = {
    OutcomeKind.VALIDATED: ("Confirm Attendance", "Are you sure you want to mark attendance for this session?"),
    OutcomeKind.SUCCESS: ("Attendance Marked", "Attendance marked successfully"),
    OutcomeKind.INVALID_CODE: ("Invalid QR Code", "The scanned QR code is not valid"),
    OutcomeKind.WRONG_CODE_TYPE: ("Wrong QR Code", "The scanned QR code is not an attendance code"),
    OutcomeKind.CORRUPT_CODE: ("Damaged QR Code", "The scanned attendance code is incomplete"),
    OutcomeKind.EXPIRED: ("QR Code Expired", "This attendance QR code has expired"),
    OutcomeKind.ALREADY_REDEEMED: ("Already Marked", "You have already marked attendance for this session"),
    OutcomeKind.STORE_UNAVAILABLE: ("Marking Failed", "Failed to mark attendance. Please try again"),
}


@dataclass(frozen=True)
class RedemptionOutcome:
    kind: OutcomeKind
    token: Optional[AttendanceToken] = None
    record: Optional[AttendanceRecord] = None
    missing_fields: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.kind in (OutcomeKind.VALIDATED, OutcomeKind.SUCCESS)

    @property
    def title(self) -> str:
        return OUTCOME_MESSAGES[self.kind][0]

    @property
    def message(self) -> str:
        base = OUTCOME_MESSAGES[self.kind][1]
        if self.kind is OutcomeKind.CORRUPT_CODE and self.missing_fields:
            return f"{base} (missing or malformed: {', '.join(self.missing_fields)})"
        if self.kind is OutcomeKind.SUCCESS and self.record is not None and self.record.status == AttendanceStatus.LATE:
            return f"{base} (Late)"
        return base


class RedemptionValidator:
    def __init__(
        self,
        service: AttendanceService,
        *,
        token_ttl_minutes: float = token_codec.DEFAULT_TOKEN_TTL_MINUTES,
        grace_minutes: float = DEFAULT_GRACE_MINUTES,
        clock: Callable[[], int] = current_millis,
    ) -> None:
        self._service = service
        self._token_ttl_minutes = token_ttl_minutes
        self._grace_ms = int(grace_minutes * MILLIS_PER_MINUTE)
        self._clock = clock

    def validate(self, raw: str, student_id: str, *, now: int | None = None) -> RedemptionOutcome:
        reference = self._clock() if now is None else now

        token = token_codec.decode(raw)
        if token is None:
            return RedemptionOutcome(OutcomeKind.INVALID_CODE)

        if token.kind != TOKEN_KIND:
            return RedemptionOutcome(OutcomeKind.WRONG_CODE_TYPE, token=token)

        missing = token.missing_fields()
        if missing:
            return RedemptionOutcome(OutcomeKind.CORRUPT_CODE, token=token, missing_fields=tuple(missing))
        try:
            scheduled_start_millis(token.date or "", token.start_time or "")
        except InvalidSessionWindow:
            return RedemptionOutcome(OutcomeKind.CORRUPT_CODE, token=token, missing_fields=("date", "startTime"))

        if token_codec.is_expired(token.issued_at or 0, self._token_ttl_minutes, now=reference):
            return RedemptionOutcome(OutcomeKind.EXPIRED, token=token)

        try:
            already = self._service.record_exists(token.session_id or "", student_id)
        except StoreUnavailableError:
            logger.exception("Duplicate check failed for session %s", token.session_id)
            return RedemptionOutcome(OutcomeKind.STORE_UNAVAILABLE, token=token)
        if already:
            return RedemptionOutcome(OutcomeKind.ALREADY_REDEEMED, token=token)

        return RedemptionOutcome(OutcomeKind.VALIDATED, token=token)

    def classify(self, token: AttendanceToken, *, now: int | None = None) -> str:
        """``late`` once the grace period after the declared start has passed."""

        reference = self._clock() if now is None else now
        starts_at = scheduled_start_millis(token.date or "", token.start_time or "")
        return AttendanceStatus.LATE if reference > starts_at + self._grace_ms else AttendanceStatus.PRESENT

    def confirm(self, token: AttendanceToken, student: Student, *, now: int | None = None) -> RedemptionOutcome:
        reference = self._clock() if now is None else now
        status = self.classify(token, now=reference)

        record = AttendanceRecord(
            id=None,
            session_id=token.session_id or "",
            student_id=student.student_id,
            student_name=student.display_name,
            student_identifier=student.student_number or "N/A",
            status=status,
            timestamp=reference,
            notes=LATE_NOTE if status == AttendanceStatus.LATE else None,
        )

        try:
            record.id = self._service.create_attendance_record(record)
        except DuplicateAttendanceError:
            return RedemptionOutcome(OutcomeKind.ALREADY_REDEEMED, token=token)
        except StoreUnavailableError:
            logger.exception("Attendance write failed for session %s", token.session_id)
            return RedemptionOutcome(OutcomeKind.STORE_UNAVAILABLE, token=token)

        logger.info("Recorded %s as %s for session %s", student.student_id, status, token.session_id)
        return RedemptionOutcome(OutcomeKind.SUCCESS, token=token, record=record)

    def redeem(self, raw: str, student: Student, *, now: int | None = None) -> RedemptionOutcome:
        outcome = self.validate(raw, student.student_id, now=now)
        if outcome.kind is not OutcomeKind.VALIDATED or outcome.token is None:
            return outcome
        return self.confirm(outcome.token, student, now=now)
