from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Optional

TOKEN_KIND = "attendance"

# Wire names of the QR payload, keyed by token attribute.
TOKEN_WIRE_NAMES: dict[str, str] = {
    "kind": "type",
    "session_id": "sessionId",
    "issuer_id": "lecturerId",
    "subject_code": "subjectCode",
    "course_code": "courseCode",
    "location": "venue",
    "date": "date",
    "start_time": "startTime",
    "end_time": "endTime",
    "issued_at": "timestamp",
}

REQUIRED_TOKEN_FIELDS: tuple[str, ...] = (
    "session_id",
    "issuer_id",
    "subject_code",
    "course_code",
    "location",
    "date",
    "start_time",
    "end_time",
    "issued_at",
)


class AttendanceStatus:
    PRESENT = "present"
    LATE = "late"
    ABSENT = "absent"

    ALL = (PRESENT, LATE, ABSENT)


class CameraState(str, Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    STREAMING = "streaming"
    ERROR = "error"
    RECOVERING = "recovering"


@dataclass(frozen=True, slots=True)
class AttendanceToken:
    """The payload carried by an attendance QR code.

    Tokens built by the codec are always complete. Tokens read back from a
    scan may miss fields, which is why every attribute is optional here.
    """

    kind: Optional[str]
    session_id: Optional[str]
    issuer_id: Optional[str]
    subject_code: Optional[str]
    course_code: Optional[str]
    location: Optional[str]
    date: Optional[str]
    start_time: Optional[str]
    end_time: Optional[str]
    issued_at: Optional[int]

    def missing_fields(self) -> list[str]:
        missing: list[str] = []
        for name in REQUIRED_TOKEN_FIELDS:
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(TOKEN_WIRE_NAMES[name])
        return missing

    def to_payload(self) -> dict[str, object]:
        return {TOKEN_WIRE_NAMES[item.name]: getattr(self, item.name) for item in fields(self)}


@dataclass(slots=True)
class AttendanceSession:
    id: str
    issuer_id: str
    issuer_name: str
    subject_code: str
    subject_name: str
    course_code: str
    location: str
    date: str
    start_time: str
    end_time: str
    token: str
    active: bool
    created_at: int
    expires_at: int

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at

    def display_label(self) -> str:
        return f"{self.subject_code} · {self.location} · {self.date} {self.start_time}-{self.end_time}"


@dataclass(slots=True)
class AttendanceRecord:
    id: int | None
    session_id: str
    student_id: str
    student_name: str
    student_identifier: str
    status: str
    timestamp: int
    notes: Optional[str] = None


@dataclass(slots=True)
class Student:
    student_id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    student_number: Optional[str] = None

    @property
    def display_name(self) -> str:
        parts = [self.first_name or "", self.last_name or ""]
        name = " ".join(part for part in parts if part).strip()
        return name if name else self.student_id


@dataclass(slots=True)
class Issuer:
    issuer_id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        parts = [self.first_name or "", self.last_name or ""]
        name = " ".join(part for part in parts if part).strip()
        return name if name else self.issuer_id


@dataclass(frozen=True, slots=True)
class Course:
    code: str
    name: str


@dataclass(frozen=True, slots=True)
class Subject:
    code: str
    name: str
    course_code: str
