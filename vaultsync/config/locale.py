"""
Human-facing strings for storage configuration fields.

The core never interprets these; they are passed through to the UI.
"""

from typing import Dict

STRINGS: Dict[str, str] = {
    "dropbox": "Dropbox",
    "dropboxAppKey": "Dropbox app key",
    "dropboxAppKeyDesc": "Your own Dropbox app key",
    "dropboxAppKeyHint": "enter your app key",
    "dropboxAppSecret": "Dropbox app secret",
    "dropboxAppSecretDesc": "Secret of your own Dropbox app",
    "dropboxFolder": "App folder",
    "dropboxFolderDesc": "Relative path to a folder, leave blank to use the root folder",
    "dropboxFolderPlaceholder": "e.g. Passwords",
    "dropboxFolderSettingsDesc": "Select a folder where files are stored",
    "dropboxSetupDesc": "Configure your own Dropbox app to store files",
    "dropboxLink": "Connection",
    "dropboxLinkApp": "App folder",
    "dropboxLinkFull": "Full Dropbox",
    "dropboxLinkCustom": "Custom app",
    "gdrive": "Google Drive",
    "gdriveClientId": "Client ID",
    "gdriveClientIdDesc": "OAuth client ID of your Google Cloud project",
    "gdriveClientSecret": "Client secret",
    "gdriveClientSecretDesc": "OAuth client secret of your Google Cloud project",
    "gdriveFolder": "Folder",
    "gdriveFolderDesc": "Folder path in your Drive, leave blank to use My Drive",
    "gdriveSetupDesc": "Connect a Google Cloud OAuth client to store files in Google Drive",
}


class Locale:
    """Lookup for UI strings, falling back to the key itself."""

    strings: Dict[str, str] = STRINGS

    @classmethod
    def get(cls, key: str) -> str:
        return cls.strings.get(key, key)
