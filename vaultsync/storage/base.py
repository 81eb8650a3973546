"""
Base storage backend interface.

Every provider implements the same capability set: six data operations,
configuration descriptors and setters, and logout.
"""

import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from .api_call import ApiCallExecutor
from .authorization import AuthorizationPrompt
from .config_fields import StorageOpenConfig, StorageSettingsConfig
from .models import StorageFileData, StorageFileStat, StorageListItem, StorageSaveResult
from .oauth import OAuthConfig, OAuthSession, SecureTokenStore
from .paths import PathResolver
from .transport import HttpTransport
from ..config.constants import DEFAULT_FILE_EXTENSION
from ..config.settings import SettingsManager
from ..exceptions import StorageError, VaultSyncException

logger = logging.getLogger(__name__)


class OperationTimer:
    """Elapsed time of a running backend operation."""

    def __init__(self) -> None:
        self.started = time.monotonic()

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)


class StorageBackend(ABC):
    """Abstract base class for remote storage backends."""

    name: str = ""
    icon: str = ""
    uipos: int = 0
    backup: bool = False

    def __init__(
        self,
        settings: SettingsManager,
        transport: Optional[HttpTransport] = None,
        prompt: Optional[AuthorizationPrompt] = None,
        token_store: Optional[SecureTokenStore] = None
    ):
        """
        Initialize backend.

        Args:
            settings: Application settings
            transport: Shared HTTP transport
            prompt: Authorization prompt for interactive sign-in
            token_store: Optional persistence for OAuth tokens
        """
        self.settings = settings
        self.transport = transport or HttpTransport()
        self.oauth = OAuthSession(
            self.name,
            self.get_oauth_config,
            self.transport,
            prompt=prompt,
            token_store=token_store,
        )
        self.paths = PathResolver(self.get_root_folder)
        self.api = self.create_api_executor()

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """Whether the UI should offer this backend."""
        pass

    @property
    @abstractmethod
    def location_name(self) -> str:
        """Human-readable provider name."""
        pass

    @property
    def needs_open_config(self) -> bool:
        """True when credentials must be configured before first use."""
        return False

    def get_root_folder(self) -> Optional[str]:
        return None

    @abstractmethod
    def get_oauth_config(self) -> OAuthConfig:
        pass

    @abstractmethod
    def create_api_executor(self) -> ApiCallExecutor:
        pass

    @abstractmethod
    async def load(self, path: str) -> StorageFileData:
        """
        Download a file.

        Raises:
            StorageFileNotFoundError: The path does not exist
        """
        pass

    @abstractmethod
    async def stat(self, path: str) -> StorageFileStat:
        pass

    @abstractmethod
    async def save(self, path: str, data: bytes, rev: Optional[str] = None) -> StorageSaveResult:
        """
        Upload a file.

        Args:
            path: Logical path
            data: File content
            rev: Expected remote revision; when given the save fails with
                RevisionConflictError if the remote file has changed

        Returns:
            The new revision
        """
        pass

    @abstractmethod
    async def remove(self, path: str) -> None:
        pass

    @abstractmethod
    async def list(self, dir: Optional[str] = None) -> List[StorageListItem]:
        """List a directory, non-recursively."""
        pass

    @abstractmethod
    async def mkdir(self, path: str) -> None:
        pass

    @abstractmethod
    def get_open_config(self) -> StorageOpenConfig:
        pass

    @abstractmethod
    def get_settings_config(self) -> StorageSettingsConfig:
        pass

    @abstractmethod
    def apply_config(self, config: Dict[str, Optional[str]]) -> None:
        """
        Validate and store open-config values.

        Raises:
            ConfigurationError: Invalid or reserved value; nothing is stored
        """
        pass

    @abstractmethod
    async def apply_setting(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def logout(self) -> None:
        pass

    def get_path_for_name(self, file_name: str) -> str:
        return "/" + file_name + DEFAULT_FILE_EXTENSION

    async def logout_quietly(self) -> None:
        """Log out, logging instead of raising on failure."""
        try:
            await self.logout()
        except VaultSyncException as e:
            logger.warning(f"{self.name}: logout failed: {e}")

    @contextmanager
    def log_operation(self, operation: str, path: str = "") -> Iterator[OperationTimer]:
        """Log the start and failures of an operation, timing it."""
        logger.info(f"{self.name}: {operation} {path}".rstrip())
        timer = OperationTimer()
        try:
            yield timer
        except StorageError as e:
            logger.warning(
                f"{self.name}: {operation} {path} failed after {timer.elapsed_ms}ms: {e.error_code}"
            )
            raise

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
