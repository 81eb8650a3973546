"""
Exception hierarchy for vaultsync.
"""

from .base import ErrorContext, VaultSyncException, create_error_context
from .storage import (
    AuthenticationError,
    ConfigurationError,
    NetworkError,
    ProtocolError,
    RevisionConflictError,
    StorageApiError,
    StorageError,
    StorageFileNotFoundError,
)

__all__ = [
    "ErrorContext",
    "VaultSyncException",
    "create_error_context",
    "StorageError",
    "StorageFileNotFoundError",
    "RevisionConflictError",
    "AuthenticationError",
    "ConfigurationError",
    "NetworkError",
    "StorageApiError",
    "ProtocolError",
]
