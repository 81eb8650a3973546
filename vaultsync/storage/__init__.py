"""
Remote storage backends.

Each backend exposes the same file operations over a cloud provider's API,
with OAuth sign-in handled by a shared session.
"""

from typing import Dict, Optional, Type

from .api_call import ApiCallExecutor, encode_json_http_header, is_not_found_error
from .authorization import AuthorizationPrompt, AuthorizationResponse, CallbackAuthorizationPrompt
from .base import StorageBackend
from .config_fields import (
    ConfigFieldType,
    StorageConfigField,
    StorageOpenConfig,
    StorageSettingsConfig,
)
from .dropbox import DropboxStorage
from .gdrive import GoogleDriveStorage
from .models import StorageFileData, StorageFileStat, StorageListItem, StorageSaveResult
from .oauth import OAuthConfig, OAuthSession, OAuthTokens, SecureTokenStore, generate_pkce_pair
from .paths import PathResolver, normalize_path, sanitize_folder
from .transport import HttpTransport
from ..config.settings import SettingsManager
from ..exceptions import ConfigurationError

STORAGE_BACKENDS: Dict[str, Type[StorageBackend]] = {
    DropboxStorage.name: DropboxStorage,
    GoogleDriveStorage.name: GoogleDriveStorage,
}


def get_backend_class(name: str) -> Type[StorageBackend]:
    """Look up a backend class by name."""
    try:
        return STORAGE_BACKENDS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown storage backend: {name}")


def create_backends(
    settings: SettingsManager,
    transport: Optional[HttpTransport] = None,
    prompt: Optional[AuthorizationPrompt] = None,
    token_store: Optional[SecureTokenStore] = None
) -> Dict[str, StorageBackend]:
    """
    Instantiate every registered backend.

    Args:
        settings: Application settings shared by all backends
        transport: Shared HTTP transport; one is created when omitted
        prompt: Authorization prompt for interactive sign-in
        token_store: Persistence for OAuth tokens

    Returns:
        Backends keyed by name, ordered by their UI position
    """
    transport = transport or HttpTransport()
    backends = [
        cls(settings, transport=transport, prompt=prompt, token_store=token_store)
        for cls in STORAGE_BACKENDS.values()
    ]
    return {backend.name: backend for backend in sorted(backends, key=lambda b: b.uipos)}


__all__ = [
    "STORAGE_BACKENDS",
    "get_backend_class",
    "create_backends",
    # Backends
    "StorageBackend",
    "DropboxStorage",
    "GoogleDriveStorage",
    # Models
    "StorageFileData",
    "StorageFileStat",
    "StorageListItem",
    "StorageSaveResult",
    "ConfigFieldType",
    "StorageConfigField",
    "StorageOpenConfig",
    "StorageSettingsConfig",
    # OAuth
    "AuthorizationPrompt",
    "AuthorizationResponse",
    "CallbackAuthorizationPrompt",
    "OAuthConfig",
    "OAuthSession",
    "OAuthTokens",
    "SecureTokenStore",
    "generate_pkce_pair",
    # Plumbing
    "ApiCallExecutor",
    "HttpTransport",
    "PathResolver",
    "encode_json_http_header",
    "is_not_found_error",
    "normalize_path",
    "sanitize_folder",
]
