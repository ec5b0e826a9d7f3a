from .settings import Settings, refresh_settings_from_store, settings
from .user_settings_store import UserSettingsStore

__all__ = ["Settings", "UserSettingsStore", "refresh_settings_from_store", "settings"]
