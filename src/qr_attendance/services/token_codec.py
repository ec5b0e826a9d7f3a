"""Attendance token issuance and the JSON transport used inside QR codes.

Tokens are plain JSON. Nothing is signed, so a token is only as trustworthy
as the channel it is redeemed over.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Optional

from qr_attendance.models import TOKEN_KIND, TOKEN_WIRE_NAMES, AttendanceToken
from qr_attendance.utils import MILLIS_PER_MINUTE, current_millis

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL_MINUTES = 15

IDENTIFYING_KEYS = ("sessionId", "lecturerId", "subjectCode")
SHORT_FORM_KEYS = ("sessionId", "timestamp", "type")


def issue_token(
    session_id: str,
    issuer_id: str,
    subject_code: str,
    course_code: str,
    location: str,
    date: str,
    start_time: str,
    end_time: str,
    *,
    now: int | None = None,
) -> AttendanceToken:
    return AttendanceToken(
        kind=TOKEN_KIND,
        session_id=session_id,
        issuer_id=issuer_id,
        subject_code=subject_code,
        course_code=course_code,
        location=location,
        date=date,
        start_time=start_time,
        end_time=end_time,
        issued_at=current_millis() if now is None else int(now),
    )


def encode(token: AttendanceToken) -> str:
    return json.dumps(token.to_payload(), separators=(",", ":"))


def _text(payload: dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    return value if isinstance(value, str) else None


def _millis(payload: dict[str, Any], key: str) -> Optional[int]:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return int(value)


def decode(raw: str | bytes | None) -> AttendanceToken | None:
    """Parse a scanned string into a token, or ``None`` when it is not one.

    Accepts either the full payload (identified by session, lecturer and
    subject) or the short form carrying only session, timestamp and type.
    Shape problems beyond that are left for the caller to report.
    """

    if not raw:
        return None

    try:
        payload = json.loads(raw)
    except (TypeError, ValueError, RecursionError) as exc:
        logger.debug("Scanned text is not JSON: %s", exc)
        return None

    if not isinstance(payload, dict):
        return None

    full_form = all(payload.get(key) for key in IDENTIFYING_KEYS)
    short_form = all(payload.get(key) for key in SHORT_FORM_KEYS)
    if not (full_form or short_form):
        logger.debug("Scanned JSON lacks attendance identifiers: %s", sorted(payload))
        return None

    values: dict[str, Any] = {}
    for attribute, wire_name in TOKEN_WIRE_NAMES.items():
        if attribute == "issued_at":
            values[attribute] = _millis(payload, wire_name)
        else:
            values[attribute] = _text(payload, wire_name)
    return AttendanceToken(**values)


def is_expired(
    issued_at: int,
    window_minutes: float = DEFAULT_TOKEN_TTL_MINUTES,
    *,
    now: int | None = None,
) -> bool:
    reference = current_millis() if now is None else now
    return reference > issued_at + int(window_minutes * MILLIS_PER_MINUTE)
