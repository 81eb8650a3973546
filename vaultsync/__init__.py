"""
VaultSync - remote storage backends for password database files.

Loads, saves and lists database files on cloud providers (Dropbox, Google
Drive) behind one storage interface, with OAuth sign-in.
"""

__version__ = "1.0.0"

from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    NetworkError,
    ProtocolError,
    RevisionConflictError,
    StorageApiError,
    StorageError,
    StorageFileNotFoundError,
)
from .storage import STORAGE_BACKENDS, StorageBackend, create_backends, get_backend_class

__all__ = [
    "__version__",
    "STORAGE_BACKENDS",
    "StorageBackend",
    "create_backends",
    "get_backend_class",
    "StorageError",
    "StorageFileNotFoundError",
    "RevisionConflictError",
    "AuthenticationError",
    "ConfigurationError",
    "NetworkError",
    "StorageApiError",
    "ProtocolError",
]
