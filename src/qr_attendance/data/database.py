from __future__ import annotations

import sqlite3
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Iterator

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


class StoreUnavailableError(RuntimeError):
    """Raised when the attendance store cannot be reached or written."""


class Database:
    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._db_path

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        try:
            connection = sqlite3.connect(self._db_path)
        except sqlite3.DatabaseError as exc:
            raise StoreUnavailableError(f"Unable to open attendance store: {exc}") from exc

        connection.row_factory = sqlite3.Row
        try:
            connection.execute("PRAGMA foreign_keys = ON")
            yield connection
            connection.commit()
        except sqlite3.IntegrityError:
            connection.rollback()
            raise
        except sqlite3.DatabaseError as exc:
            with suppress(sqlite3.Error):
                connection.rollback()
            raise StoreUnavailableError(f"Attendance store operation failed: {exc}") from exc
        except Exception:
            connection.rollback()
            raise
        finally:
            connection.close()

    def initialize(self) -> None:
        migration_files = sorted(MIGRATIONS_DIR.glob("*.sql"))

        with self.connect() as connection:
            self._ensure_migrations_table(connection)
            applied = {
                row["name"] for row in connection.execute("SELECT name FROM schema_migrations")
            }

            for migration in migration_files:
                if migration.name in applied:
                    continue
                sql_script = migration.read_text(encoding="utf-8")
                connection.executescript(sql_script)
                connection.execute(
                    "INSERT INTO schema_migrations(name) VALUES (?)",
                    (migration.name,),
                )

    @staticmethod
    def _ensure_migrations_table(connection: sqlite3.Connection) -> None:
        connection.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                name TEXT PRIMARY KEY,
                applied_at TEXT NOT NULL DEFAULT (datetime('now'))
            );
            """
        )
