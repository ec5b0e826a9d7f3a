from .attendance import (
    REQUIRED_TOKEN_FIELDS,
    TOKEN_KIND,
    TOKEN_WIRE_NAMES,
    AttendanceRecord,
    AttendanceSession,
    AttendanceStatus,
    AttendanceToken,
    CameraState,
    Course,
    Issuer,
    Student,
    Subject,
)

__all__ = [
    "AttendanceRecord",
    "AttendanceSession",
    "AttendanceStatus",
    "AttendanceToken",
    "CameraState",
    "Course",
    "Issuer",
    "REQUIRED_TOKEN_FIELDS",
    "Student",
    "Subject",
    "TOKEN_KIND",
    "TOKEN_WIRE_NAMES",
]
