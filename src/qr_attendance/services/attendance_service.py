from __future__ import annotations

import sqlite3

from qr_attendance.data import Database
from qr_attendance.models import AttendanceRecord, AttendanceSession, Course, Subject

SESSION_COLUMNS = (
    "id, issuer_id, issuer_name, subject_code, subject_name, course_code, location, "
    "date, start_time, end_time, token, active, created_at, expires_at"
)
RECORD_COLUMNS = "id, session_id, student_id, student_name, student_identifier, status, timestamp, notes"


class DuplicateAttendanceError(RuntimeError):
    """Raised when a student has already been logged for the session."""


def _session_from_row(row: sqlite3.Row) -> AttendanceSession:
    return AttendanceSession(
        id=row["id"],
        issuer_id=row["issuer_id"],
        issuer_name=row["issuer_name"],
        subject_code=row["subject_code"],
        subject_name=row["subject_name"],
        course_code=row["course_code"],
        location=row["location"],
        date=row["date"],
        start_time=row["start_time"],
        end_time=row["end_time"],
        token=row["token"],
        active=bool(row["active"]),
        created_at=int(row["created_at"]),
        expires_at=int(row["expires_at"]),
    )


def _record_from_row(row: sqlite3.Row) -> AttendanceRecord:
    return AttendanceRecord(
        id=int(row["id"]),
        session_id=row["session_id"],
        student_id=row["student_id"],
        student_name=row["student_name"],
        student_identifier=row["student_identifier"],
        status=row["status"],
        timestamp=int(row["timestamp"]),
        notes=row["notes"],
    )


class AttendanceService:
    """SQLite-backed store for the catalog, attendance sessions and records."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def initialize(self) -> None:
        self._database.initialize()

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------
    def add_course(self, course: Course) -> None:
        with self._database.connect() as connection:
            connection.execute(
                "INSERT OR REPLACE INTO courses (code, name) VALUES (?, ?)",
                (course.code.strip(), course.name.strip()),
            )

    def add_subject(self, subject: Subject) -> None:
        with self._database.connect() as connection:
            connection.execute(
                "INSERT OR REPLACE INTO subjects (code, name, course_code) VALUES (?, ?, ?)",
                (subject.code.strip(), subject.name.strip(), subject.course_code.strip()),
            )

    def get_course(self, code: str) -> Course | None:
        with self._database.connect() as connection:
            row = connection.execute("SELECT code, name FROM courses WHERE code = ?", (code,)).fetchone()
        return Course(code=row["code"], name=row["name"]) if row else None

    def get_subject(self, code: str) -> Subject | None:
        with self._database.connect() as connection:
            row = connection.execute(
                "SELECT code, name, course_code FROM subjects WHERE code = ?",
                (code,),
            ).fetchone()
        return Subject(code=row["code"], name=row["name"], course_code=row["course_code"]) if row else None

    def list_courses(self) -> list[Course]:
        with self._database.connect() as connection:
            rows = connection.execute("SELECT code, name FROM courses ORDER BY name, code").fetchall()
        return [Course(code=row["code"], name=row["name"]) for row in rows]

    def list_subjects_for_course(self, course_code: str) -> list[Subject]:
        with self._database.connect() as connection:
            rows = connection.execute(
                """
                SELECT code, name, course_code
                  FROM subjects
                 WHERE course_code = ?
              ORDER BY name, code
                """,
                (course_code,),
            ).fetchall()
        return [Subject(code=row["code"], name=row["name"], course_code=row["course_code"]) for row in rows]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------
    def create_session_record(self, session: AttendanceSession) -> str:
        with self._database.connect() as connection:
            connection.execute(
                f"""
                INSERT INTO attendance_sessions ({SESSION_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session.id,
                    session.issuer_id,
                    session.issuer_name,
                    session.subject_code,
                    session.subject_name,
                    session.course_code,
                    session.location.strip(),
                    session.date,
                    session.start_time,
                    session.end_time,
                    session.token,
                    int(session.active),
                    session.created_at,
                    session.expires_at,
                ),
            )
        return session.id

    def deactivate_session_record(self, session_id: str) -> bool:
        """Mark a session inactive. Returns False when no such session exists."""

        with self._database.connect() as connection:
            cursor = connection.execute(
                "UPDATE attendance_sessions SET active = 0 WHERE id = ?",
                (session_id,),
            )
            return cursor.rowcount > 0

    def get_session(self, session_id: str) -> AttendanceSession | None:
        with self._database.connect() as connection:
            row = connection.execute(
                f"SELECT {SESSION_COLUMNS} FROM attendance_sessions WHERE id = ?",
                (session_id,),
            ).fetchone()
        return _session_from_row(row) if row else None

    def list_sessions_for_issuer(self, issuer_id: str) -> list[AttendanceSession]:
        with self._database.connect() as connection:
            rows = connection.execute(
                f"""
                SELECT {SESSION_COLUMNS}
                  FROM attendance_sessions
                 WHERE issuer_id = ?
              ORDER BY created_at DESC, id DESC
                """,
                (issuer_id,),
            ).fetchall()
        return [_session_from_row(row) for row in rows]

    def expire_sessions(self, now: int) -> int:
        with self._database.connect() as connection:
            cursor = connection.execute(
                "UPDATE attendance_sessions SET active = 0 WHERE active = 1 AND expires_at < ?",
                (now,),
            )
            return cursor.rowcount

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------
    def record_exists(self, session_id: str, student_id: str) -> bool:
        with self._database.connect() as connection:
            row = connection.execute(
                "SELECT 1 FROM attendance_records WHERE session_id = ? AND student_id = ?",
                (session_id, student_id),
            ).fetchone()
        return row is not None

    def create_attendance_record(self, record: AttendanceRecord) -> int:
        try:
            with self._database.connect() as connection:
                existing = connection.execute(
                    "SELECT id FROM attendance_records WHERE session_id = ? AND student_id = ?",
                    (record.session_id, record.student_id),
                ).fetchone()

                if existing:
                    raise DuplicateAttendanceError("Student already recorded for this session.")

                cursor = connection.execute(
                    """
                    INSERT INTO attendance_records (
                        session_id, student_id, student_name, student_identifier, status, timestamp, notes
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.session_id,
                        record.student_id,
                        record.student_name,
                        record.student_identifier,
                        record.status,
                        record.timestamp,
                        record.notes,
                    ),
                )
                return int(cursor.lastrowid)
        except sqlite3.IntegrityError as exc:
            # A concurrent redemption won the race for this pair.
            raise DuplicateAttendanceError("Student already recorded for this session.") from exc

    def list_records_for_student(self, student_id: str) -> list[AttendanceRecord]:
        with self._database.connect() as connection:
            rows = connection.execute(
                f"""
                SELECT {RECORD_COLUMNS}
                  FROM attendance_records
                 WHERE student_id = ?
              ORDER BY timestamp DESC, id DESC
                """,
                (student_id,),
            ).fetchall()
        return [_record_from_row(row) for row in rows]

    def list_records_for_session(self, session_id: str) -> list[AttendanceRecord]:
        with self._database.connect() as connection:
            rows = connection.execute(
                f"""
                SELECT {RECORD_COLUMNS}
                  FROM attendance_records
                 WHERE session_id = ?
              ORDER BY LOWER(student_name) ASC, student_id ASC
                """,
                (session_id,),
            ).fetchall()
        return [_record_from_row(row) for row in rows]
