"""
Constants for vaultsync configuration.
"""

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_FILE_EXTENSION = ".kdbx"

DEFAULT_OAUTH_REDIRECT_URI = "http://localhost:8085/oauth/callback"

DEFAULT_SETTINGS_PATH = "data/settings.json"
DEFAULT_TOKENS_PATH = "data/.tokens"

DEFAULT_HTTP_TIMEOUT = 30.0


@dataclass(frozen=True)
class CloudApp:
    """A registered OAuth application shipped with the password manager."""
    id: str
    secret: Optional[str]


class DropboxApps:
    """Built-in Dropbox applications.

    The app ids are public; secrets are only available when the deployment
    supplies them through the environment.
    """
    AppFolder = CloudApp(
        id=os.environ.get("VAULTSYNC_DROPBOX_APP_FOLDER_KEY", "qp7ctun6qt5n9d6"),
        secret=os.environ.get("VAULTSYNC_DROPBOX_APP_FOLDER_SECRET"),
    )
    FullDropbox = CloudApp(
        id=os.environ.get("VAULTSYNC_DROPBOX_FULL_KEY", "eor7hvv6u6oslq9"),
        secret=os.environ.get("VAULTSYNC_DROPBOX_FULL_SECRET"),
    )

    @classmethod
    def is_built_in(cls, key: Optional[str]) -> bool:
        return key in (cls.AppFolder.id, cls.FullDropbox.id)
