from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from qr_attendance.config.user_settings_store import DEFAULT_APP_NAME, UserSettingsStore

BASE_DIR = Path(__file__).resolve().parents[2]
ENV_PATH = BASE_DIR / ".env"
load_dotenv(ENV_PATH)

APP_DATA_DIR = Path(os.path.expanduser("~")) / ".qr_attendance"


@dataclass(frozen=True)
class Settings:
    app_name: str = DEFAULT_APP_NAME
    database_path: Path = APP_DATA_DIR / "attendance.db"
    token_ttl_minutes: int = 15
    late_grace_minutes: int = 15
    session_ttl_hours: int = 2
    detection_cooldown_seconds: float = 2.0
    max_camera_retries: int = 3
    camera_retry_delay_seconds: float = 1.0
    rear_camera_index: int = 0
    front_camera_index: int = 1
    device_class: str = "desktop"
    qr_export_dir: Path = APP_DATA_DIR / "qr-codes"

    @classmethod
    def from_sources(cls, store: UserSettingsStore | None = None) -> "Settings":
        """Environment variables win over the user settings file, which wins over defaults."""

        def _value(env_name: str, key: str, fallback: Any) -> Any:
            if (raw := os.getenv(env_name)) not in (None, ""):
                return raw
            if store is not None and (stored := store.get(key)) not in (None, ""):
                return stored
            return fallback

        return cls(
            app_name=os.getenv("APP_NAME", DEFAULT_APP_NAME),
            database_path=Path(os.getenv("DATABASE_PATH", str(cls.database_path))).expanduser(),
            token_ttl_minutes=int(_value("TOKEN_TTL_MINUTES", "token_ttl_minutes", cls.token_ttl_minutes)),
            late_grace_minutes=int(_value("LATE_GRACE_MINUTES", "late_grace_minutes", cls.late_grace_minutes)),
            session_ttl_hours=int(_value("SESSION_TTL_HOURS", "session_ttl_hours", cls.session_ttl_hours)),
            detection_cooldown_seconds=float(
                _value("DETECTION_COOLDOWN_SECONDS", "detection_cooldown_seconds", cls.detection_cooldown_seconds)
            ),
            max_camera_retries=int(_value("MAX_CAMERA_RETRIES", "max_camera_retries", cls.max_camera_retries)),
            camera_retry_delay_seconds=float(
                _value("CAMERA_RETRY_DELAY_SECONDS", "camera_retry_delay_seconds", cls.camera_retry_delay_seconds)
            ),
            rear_camera_index=int(_value("REAR_CAMERA_INDEX", "rear_camera_index", cls.rear_camera_index)),
            front_camera_index=int(_value("FRONT_CAMERA_INDEX", "front_camera_index", cls.front_camera_index)),
            device_class=str(_value("DEVICE_CLASS", "device_class", cls.device_class)).strip().lower(),
            qr_export_dir=Path(str(_value("QR_EXPORT_DIR", "qr_export_dir", cls.qr_export_dir))).expanduser(),
        )

    def __str__(self) -> str:
        return (
            f"Settings(app_name={self.app_name}, "
            f"database_path={self.database_path}, "
            f"token_ttl_minutes={self.token_ttl_minutes}, "
            f"late_grace_minutes={self.late_grace_minutes}, "
            f"session_ttl_hours={self.session_ttl_hours}, "
            f"detection_cooldown_seconds={self.detection_cooldown_seconds}, "
            f"max_camera_retries={self.max_camera_retries}, "
            f"device_class={self.device_class})"
        )


settings = Settings.from_sources()


def refresh_settings_from_store(store: UserSettingsStore) -> Settings:
    """Rebuild the settings object from the current user store values."""

    global settings  # noqa: PLW0603 - module-level singleton

    store.reload()
    settings = Settings.from_sources(store)
    return settings
