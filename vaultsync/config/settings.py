"""
Application settings consumed by the storage backends.
"""

import json
import logging
import threading
from dataclasses import asdict, dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from .constants import DEFAULT_OAUTH_REDIRECT_URI
from ..exceptions import ConfigurationError, create_error_context

logger = logging.getLogger(__name__)


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class StorageSettings:
    """Per-backend credentials and storage preferences."""
    dropbox: bool = True
    dropbox_folder: Optional[str] = None
    dropbox_app_key: Optional[str] = None
    dropbox_secret: Optional[str] = None
    gdrive: bool = True
    gdrive_folder: Optional[str] = None
    gdrive_client_id: Optional[str] = None
    gdrive_client_secret: Optional[str] = None
    short_lived_storage_token: bool = False
    self_hosted: bool = False
    oauth_redirect_uri: str = DEFAULT_OAUTH_REDIRECT_URI
    log_level: LogLevel = LogLevel.INFO

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["log_level"] = self.log_level.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StorageSettings":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if "log_level" in values:
            try:
                values["log_level"] = LogLevel(str(values["log_level"]).upper())
            except ValueError:
                values["log_level"] = LogLevel.INFO
        return cls(**values)


class SettingsManager:
    """
    Holds the live settings and persists them.

    Updates made through batch_set are all-or-nothing: either every key is
    applied and written, or the settings are left untouched.
    """

    def __init__(
        self,
        settings: Optional[StorageSettings] = None,
        path: Optional[Path] = None
    ):
        """
        Initialize settings manager.

        Args:
            settings: Initial settings (defaults if omitted)
            path: JSON file to persist to; None keeps settings in memory
        """
        self.settings = settings or StorageSettings()
        self.path = Path(path) if path else None
        self._lock = threading.RLock()

    @classmethod
    def load(cls, path: Path) -> "SettingsManager":
        """Load settings from a JSON file, falling back to defaults."""
        path = Path(path)
        settings = StorageSettings()
        if path.exists():
            try:
                with open(path, "r") as f:
                    settings = StorageSettings.from_dict(json.load(f))
            except (OSError, ValueError, TypeError) as e:
                logger.error(f"Failed to read settings from {path}: {e}")
        return cls(settings, path)

    def get(self, key: str) -> Any:
        self._check_key(key)
        return getattr(self.settings, key)

    def set(self, key: str, value: Any) -> None:
        self.batch_set({key: value})

    def batch_set(self, updates: Dict[str, Any]) -> None:
        """
        Apply several settings atomically.

        Args:
            updates: Mapping of setting name to new value

        Raises:
            ConfigurationError: Unknown key, or the settings could not be persisted
        """
        for key in updates:
            self._check_key(key)

        with self._lock:
            previous = {key: getattr(self.settings, key) for key in updates}
            for key, value in updates.items():
                setattr(self.settings, key, value)
            try:
                self.save()
            except OSError as e:
                for key, value in previous.items():
                    setattr(self.settings, key, value)
                raise ConfigurationError(
                    f"Failed to persist settings: {e}",
                    context=create_error_context(operation="batch_set", keys=list(updates)),
                    cause=e,
                )

        logger.debug(f"Updated settings: {', '.join(updates)}")

    def save(self) -> None:
        """Write settings to disk using a temp file and rename."""
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(self.settings.to_dict(), f, indent=2)
        tmp_path.replace(self.path)

    def _check_key(self, key: str) -> None:
        if key not in {f.name for f in fields(StorageSettings)}:
            raise ConfigurationError(
                f"Unknown setting: {key}",
                context=create_error_context(operation="settings", key=key),
            )
