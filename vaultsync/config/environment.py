"""
Environment variable handling for vaultsync configuration.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .constants import DEFAULT_OAUTH_REDIRECT_URI, DEFAULT_SETTINGS_PATH
from .settings import LogLevel, SettingsManager, StorageSettings


class EnvironmentLoader:
    """Loads configuration from environment variables."""

    @staticmethod
    def load_settings() -> StorageSettings:
        """Load storage settings from environment variables."""
        # Load .env file if it exists
        load_dotenv()

        log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
        log_level = LogLevel.INFO  # default
        try:
            log_level = LogLevel(log_level_str)
        except ValueError:
            pass  # Use default

        return StorageSettings(
            dropbox=EnvironmentLoader._parse_bool(os.getenv('VAULTSYNC_DROPBOX', 'true')),
            dropbox_folder=os.getenv('VAULTSYNC_DROPBOX_FOLDER') or None,
            dropbox_app_key=os.getenv('VAULTSYNC_DROPBOX_APP_KEY') or None,
            dropbox_secret=os.getenv('VAULTSYNC_DROPBOX_SECRET') or None,
            gdrive=EnvironmentLoader._parse_bool(os.getenv('VAULTSYNC_GDRIVE', 'true')),
            gdrive_folder=os.getenv('VAULTSYNC_GDRIVE_FOLDER') or None,
            gdrive_client_id=os.getenv('VAULTSYNC_GDRIVE_CLIENT_ID') or None,
            gdrive_client_secret=os.getenv('VAULTSYNC_GDRIVE_CLIENT_SECRET') or None,
            short_lived_storage_token=EnvironmentLoader._parse_bool(
                os.getenv('VAULTSYNC_SHORT_LIVED_TOKEN', 'false')
            ),
            self_hosted=EnvironmentLoader._parse_bool(os.getenv('VAULTSYNC_SELF_HOSTED', 'false')),
            oauth_redirect_uri=os.getenv('VAULTSYNC_OAUTH_REDIRECT_URI', DEFAULT_OAUTH_REDIRECT_URI),
            log_level=log_level,
        )

    @staticmethod
    def load_manager(settings_path: Optional[str] = None) -> SettingsManager:
        """
        Build the settings manager.

        A settings file, when present, wins over the environment since it
        holds what the user configured through the UI.
        """
        load_dotenv()
        path = Path(settings_path or os.getenv('VAULTSYNC_SETTINGS_PATH', DEFAULT_SETTINGS_PATH))
        if path.exists():
            return SettingsManager.load(path)
        return SettingsManager(EnvironmentLoader.load_settings(), path)

    @staticmethod
    def _parse_bool(value: str) -> bool:
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
