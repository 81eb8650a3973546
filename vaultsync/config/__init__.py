"""
Configuration for vaultsync.
"""

from .constants import DEFAULT_FILE_EXTENSION, CloudApp, DropboxApps
from .environment import EnvironmentLoader
from .locale import Locale
from .settings import LogLevel, SettingsManager, StorageSettings
from .validation import ConfigValidator

__all__ = [
    "DEFAULT_FILE_EXTENSION",
    "CloudApp",
    "DropboxApps",
    "EnvironmentLoader",
    "Locale",
    "LogLevel",
    "SettingsManager",
    "StorageSettings",
    "ConfigValidator",
]
