from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

DEFAULT_APP_NAME = os.getenv("APP_NAME", "QR Attendance")
DEFAULT_SETTINGS_DIR = Path(os.path.expanduser("~")) / ".qr_attendance"
DEFAULT_SETTINGS_FILENAME = "user_settings.json"

# Keys a user may override from the settings file; values are the defaults.
DEFAULT_SETTINGS: Dict[str, Any] = {
	"token_ttl_minutes": 15,
	"late_grace_minutes": 15,
	"session_ttl_hours": 2,
	"detection_cooldown_seconds": 2.0,
	"max_camera_retries": 3,
	"camera_retry_delay_seconds": 1.0,
	"rear_camera_index": 0,
	"front_camera_index": 1,
	"device_class": "desktop",
	"qr_export_dir": None,
}


@dataclass
class UserSettingsStore:
	"""Load and persist user-configurable settings in a JSON file."""

	settings_dir: Path = field(default_factory=lambda: DEFAULT_SETTINGS_DIR)
	settings_filename: str = DEFAULT_SETTINGS_FILENAME
	_data: Dict[str, Any] = field(init=False, default_factory=dict)

	def __post_init__(self) -> None:
		self.reload()

	# ------------------------------------------------------------------
	# Public API
	# ------------------------------------------------------------------
	@property
	def settings_file(self) -> Path:
		return self.settings_dir / self.settings_filename

	@property
	def data(self) -> Dict[str, Any]:
		return dict(self._data)

	def get(self, key: str, default: Any = None) -> Any:
		return self._data.get(key, default)

	def reload(self) -> None:
		combined = dict(DEFAULT_SETTINGS)
		combined.update(
			{key: value for key, value in self._load_json(self.settings_file).items() if key in DEFAULT_SETTINGS}
		)

		export_dir = combined.get("qr_export_dir")
		if export_dir:
			combined["qr_export_dir"] = str(Path(export_dir).expanduser())

		self._data = combined

	def update(self, **kwargs: Any) -> Dict[str, Any]:
		new_data = dict(self._data)
		for key, value in kwargs.items():
			if key in DEFAULT_SETTINGS:
				new_data[key] = value

		self._data = new_data
		self._persist()
		return dict(self._data)

	# ------------------------------------------------------------------
	# Internal helpers
	# ------------------------------------------------------------------
	def _persist(self) -> None:
		self.settings_dir.mkdir(parents=True, exist_ok=True)
		with self.settings_file.open("w", encoding="utf-8") as handle:
			json.dump(self._data, handle, indent=2)

	@staticmethod
	def _load_json(path: Path) -> Dict[str, Any]:
		if not path.exists():
			return {}
		try:
			with path.open("r", encoding="utf-8") as handle:
				loaded = json.load(handle)
		except (OSError, json.JSONDecodeError) as exc:
			logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
			return {}
		return loaded if isinstance(loaded, dict) else {}
