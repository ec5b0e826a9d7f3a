from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from qr_attendance.data import Database, StoreUnavailableError


def test_initialize_creates_tables(tmp_path: Path) -> None:
    db_path = tmp_path / "attendance.db"
    database = Database(db_path)
    database.initialize()

    with database.connect() as connection:
        tables = {
            row[0]
            for row in connection.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            )
        }

    expected_tables = {
        "courses",
        "subjects",
        "attendance_sessions",
        "attendance_records",
        "schema_migrations",
    }

    assert expected_tables.issubset(tables)


def test_initialize_is_repeatable(tmp_path: Path) -> None:
    database = Database(tmp_path / "attendance.db")
    database.initialize()
    database.initialize()

    with database.connect() as connection:
        applied = connection.execute("SELECT COUNT(*) FROM schema_migrations").fetchone()[0]

    assert applied == 1


def test_records_are_unique_per_session_and_student(tmp_path: Path) -> None:
    database = Database(tmp_path / "attendance.db")
    database.initialize()

    insert = (
        "INSERT INTO attendance_records (session_id, student_id, student_name, student_identifier, status, timestamp)"
        " VALUES ('s1', 'stu1', 'John Doe', '2025001', 'present', 0)"
    )
    with database.connect() as connection:
        connection.execute(insert)

    with pytest.raises(sqlite3.IntegrityError):
        with database.connect() as connection:
            connection.execute(insert)


def test_operational_errors_surface_as_store_unavailable(tmp_path: Path) -> None:
    database = Database(tmp_path / "attendance.db")
    database.initialize()

    with pytest.raises(StoreUnavailableError):
        with database.connect() as connection:
            connection.execute("SELECT * FROM missing_table")


def test_corrupt_database_file_surfaces_as_store_unavailable(tmp_path: Path) -> None:
    db_path = tmp_path / "attendance.db"
    db_path.write_bytes(b"this is not a sqlite database file " * 64)
    database = Database(db_path)

    with pytest.raises(StoreUnavailableError):
        database.initialize()

    with pytest.raises(StoreUnavailableError):
        with database.connect() as connection:
            connection.execute("SELECT 1 FROM attendance_records").fetchone()
