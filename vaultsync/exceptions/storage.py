"""
Storage backend error taxonomy.

Every failure that leaves a storage backend is one of these classes, so the
UI can render distinct messaging for each.
"""

from typing import Optional

from .base import ErrorContext, VaultSyncException


class StorageError(VaultSyncException):
    """Base class for storage backend errors."""

    error_code = "STORAGE_ERROR"

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        user_message: Optional[str] = None,
        retryable: bool = False,
        cause: Optional[BaseException] = None
    ):
        super().__init__(
            message=message,
            error_code=type(self).error_code,
            context=context,
            user_message=user_message,
            retryable=retryable,
            cause=cause,
        )


class StorageFileNotFoundError(StorageError):
    """The target path does not exist on the backend."""

    error_code = "FILE_NOT_FOUND"

    def __init__(self, path: str = "", context: Optional[ErrorContext] = None):
        self.path = path
        super().__init__(
            message=f"File not found: {path}" if path else "File not found",
            context=context,
            user_message="The file was not found in remote storage.",
        )


class RevisionConflictError(StorageError):
    """A conditional save's revision precondition failed."""

    error_code = "REVISION_CONFLICT"

    def __init__(
        self,
        path: str = "",
        expected_rev: Optional[str] = None,
        actual_rev: Optional[str] = None,
        context: Optional[ErrorContext] = None
    ):
        self.path = path
        self.expected_rev = expected_rev
        self.actual_rev = actual_rev
        super().__init__(
            message=(
                f"Revision conflict for {path}: "
                f"expected {expected_rev}, remote is {actual_rev or 'unknown'}"
            ),
            context=context,
            user_message="The file was changed remotely. Reload it before saving.",
        )


class AuthenticationError(StorageError):
    """Authorization or token refresh failed."""

    error_code = "AUTH_FAILED"

    def __init__(
        self,
        message: str = "Authentication failed",
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(
            message=message,
            context=context,
            user_message="Please sign in to the storage provider again.",
            cause=cause,
        )


class ConfigurationError(StorageError):
    """Invalid or reserved configuration value."""

    error_code = "CONFIG_ERROR"


class NetworkError(StorageError):
    """Transport-level failure, including timeouts."""

    error_code = "NETWORK_ERROR"

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
        timeout: bool = False
    ):
        self.timeout = timeout
        super().__init__(
            message=message,
            context=context,
            user_message="Network error, please try again.",
            retryable=True,
            cause=cause,
        )


class StorageApiError(StorageError):
    """Non-2xx response that matched no more specific class."""

    error_code = "API_ERROR"

    def __init__(
        self,
        status: int,
        message: Optional[str] = None,
        context: Optional[ErrorContext] = None
    ):
        self.status = status
        super().__init__(
            message=message or f"API error, status code {status}",
            context=context,
        )


class ProtocolError(StorageError):
    """Response shape violates the expected contract."""

    error_code = "PROTOCOL_ERROR"
