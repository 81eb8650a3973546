"""
Authorization prompts: sending the user to the provider's consent page and
receiving the redirect back.
"""

import asyncio
import logging
import webbrowser
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from ..exceptions import AuthenticationError, create_error_context

logger = logging.getLogger(__name__)


@dataclass
class AuthorizationResponse:
    """Parameters delivered to the OAuth redirect URI."""
    state: str
    code: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None


@dataclass
class PendingAuthorization:
    """An authorization waiting for its redirect."""
    state: str
    backend: str
    future: "asyncio.Future[AuthorizationResponse]"
    created_at: datetime = field(default_factory=datetime.utcnow)

    def is_expired(self, ttl: timedelta) -> bool:
        return datetime.utcnow() > (self.created_at + ttl)


class AuthorizationPrompt(ABC):
    """Obtains the authorization redirect for an authorize URL."""

    @abstractmethod
    async def authorize(
        self,
        backend: str,
        auth_url: str,
        state: str,
        width: int = 600,
        height: int = 400
    ) -> AuthorizationResponse:
        """
        Present auth_url to the user and wait for the redirect.

        Args:
            backend: Name of the backend asking
            auth_url: Fully built authorize URL
            state: CSRF state embedded in auth_url
            width: Suggested popup width
            height: Suggested popup height

        Returns:
            The redirect parameters
        """
        pass


class CallbackAuthorizationPrompt(AuthorizationPrompt):
    """
    Opens the authorize URL in a browser and waits for the OAuth callback
    route to call complete() with the redirect parameters.
    """

    DEFAULT_TTL = timedelta(minutes=10)

    def __init__(
        self,
        opener: Optional[Callable[[str], object]] = None,
        ttl: timedelta = DEFAULT_TTL
    ):
        """
        Initialize prompt.

        Args:
            opener: Called with the authorize URL (default: webbrowser.open)
            ttl: How long a pending authorization stays valid
        """
        self.opener = opener or webbrowser.open
        self.ttl = ttl
        self._pending: Dict[str, PendingAuthorization] = {}

    async def authorize(
        self,
        backend: str,
        auth_url: str,
        state: str,
        width: int = 600,
        height: int = 400
    ) -> AuthorizationResponse:
        self._cleanup_expired()

        future = asyncio.get_running_loop().create_future()
        self._pending[state] = PendingAuthorization(state=state, backend=backend, future=future)

        logger.info(f"Opening authorization page for {backend}")
        self.opener(auth_url)

        try:
            return await asyncio.wait_for(future, timeout=self.ttl.total_seconds())
        except asyncio.TimeoutError:
            raise AuthenticationError(
                "Authorization timed out",
                context=create_error_context(operation="authorize", backend=backend),
            )
        finally:
            self._pending.pop(state, None)

    def complete(
        self,
        state: str,
        code: Optional[str] = None,
        error: Optional[str] = None,
        error_description: Optional[str] = None
    ) -> Optional[str]:
        """
        Deliver redirect parameters to the waiting authorization.

        Returns:
            Backend name if a pending authorization matched the state
        """
        pending = self._pending.get(state)
        if not pending or pending.future.done():
            logger.warning("OAuth callback with unknown or used state")
            return None

        if pending.is_expired(self.ttl):
            self._pending.pop(state, None)
            logger.warning(f"OAuth callback for {pending.backend} arrived after expiry")
            return None

        pending.future.set_result(AuthorizationResponse(
            state=state,
            code=code,
            error=error,
            error_description=error_description,
        ))
        return pending.backend

    def has_pending(self, state: str) -> bool:
        return state in self._pending

    def _cleanup_expired(self) -> None:
        """Remove expired pending authorizations."""
        expired = [
            state for state, pending in self._pending.items()
            if pending.is_expired(self.ttl)
        ]
        for state in expired:
            pending = self._pending.pop(state)
            if not pending.future.done():
                pending.future.cancel()
