"""
Base exception hierarchy for vaultsync.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class ErrorContext:
    """Where an error happened."""
    operation: str = ""
    backend: str = ""
    path: str = ""
    timestamp: datetime = field(default_factory=datetime.utcnow)
    additional: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "backend": self.backend,
            "path": self.path,
            "timestamp": self.timestamp.isoformat(),
            **self.additional,
        }


def create_error_context(
    operation: str = "",
    backend: str = "",
    path: str = "",
    **additional: Any
) -> ErrorContext:
    """Build an ErrorContext, collecting any extra keyword arguments."""
    return ErrorContext(
        operation=operation,
        backend=backend,
        path=path,
        additional=additional,
    )


class VaultSyncException(Exception):
    """Base class for all vaultsync errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        context: Optional[ErrorContext] = None,
        user_message: Optional[str] = None,
        retryable: bool = False,
        cause: Optional[BaseException] = None
    ):
        """
        Initialize exception.

        Args:
            message: Developer-facing description
            error_code: Stable machine-readable code
            context: Where the error happened
            user_message: Optional text safe to show to users
            retryable: Whether a caller-driven retry may succeed
            cause: Underlying exception, if any
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or ErrorContext()
        self.user_message = user_message or message
        self.retryable = retryable
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "user_message": self.user_message,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
        }

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"
