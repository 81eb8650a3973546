"""
OAuth 2.0 authorization-code flow with PKCE, token refresh and revocation.

One OAuthSession exists per backend instance and owns that backend's
tokens. Refreshes and authorizations are serialized by a lock, so callers
arriving while one is in flight reuse its outcome.
"""

import asyncio
import base64
import hashlib
import json
import logging
import os
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlencode

from cryptography.fernet import Fernet, InvalidToken

from .authorization import AuthorizationPrompt
from .transport import HttpConnectionError, HttpStatusError, HttpTransport
from ..exceptions import (
    AuthenticationError,
    NetworkError,
    ProtocolError,
    create_error_context,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OAuthConfig:
    """How to authorize against one provider."""
    scope: str
    url: str
    token_url: str
    client_id: str
    redirect_uri: str
    client_secret: Optional[str] = None
    pkce: bool = True
    width: int = 600
    height: int = 400
    url_params: Dict[str, str] = field(default_factory=dict)


@dataclass
class OAuthTokens:
    """OAuth token storage."""
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_at: Optional[datetime] = None
    scope: str = ""
    account_id: Optional[str] = None

    def is_expired(self) -> bool:
        """Tokens without an expiry are long-lived."""
        if not self.expires_at:
            return False
        # Consider expired 5 minutes before actual expiry
        return datetime.utcnow() >= (self.expires_at - timedelta(minutes=5))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "scope": self.scope,
            "account_id": self.account_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OAuthTokens":
        expires_at = None
        if data.get("expires_at"):
            expires_at = datetime.fromisoformat(data["expires_at"])
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type", "Bearer"),
            expires_at=expires_at,
            scope=data.get("scope", ""),
            account_id=data.get("account_id"),
        )

    @classmethod
    def from_token_response(
        cls,
        data: Any,
        previous: Optional["OAuthTokens"] = None
    ) -> "OAuthTokens":
        """Build tokens from a token endpoint response body."""
        if not isinstance(data, dict) or not isinstance(data.get("access_token"), str):
            raise ProtocolError("Token response has no access_token")

        expires_at = None
        if "expires_in" in data:
            try:
                expires_in = int(data["expires_in"])
            except (TypeError, ValueError):
                raise ProtocolError(f"Bad expires_in in token response: {data['expires_in']!r}")
            expires_at = datetime.utcnow() + timedelta(seconds=expires_in)

        # Refresh responses usually omit the refresh token; keep the old one
        refresh_token = data.get("refresh_token")
        if not refresh_token and previous:
            refresh_token = previous.refresh_token

        return cls(
            access_token=data["access_token"],
            refresh_token=refresh_token,
            token_type=data.get("token_type", "Bearer"),
            expires_at=expires_at,
            scope=data.get("scope", previous.scope if previous else ""),
            account_id=data.get("account_id", previous.account_id if previous else None),
        )


def generate_pkce_pair() -> Tuple[str, str]:
    """
    Generate a PKCE code verifier and its S256 challenge.

    Returns:
        Tuple of (verifier, challenge)
    """
    verifier = secrets.token_urlsafe(64)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
    return verifier, challenge


class SecureTokenStore:
    """
    Secure storage for OAuth tokens.

    Tokens are encrypted at rest using Fernet symmetric encryption.
    """

    def __init__(self, storage_path: Path, key: Optional[str] = None):
        """
        Initialize token store.

        Args:
            storage_path: Directory to store encrypted tokens
            key: Encryption key (default: VAULTSYNC_TOKEN_ENCRYPTION_KEY)
        """
        self.storage_path = Path(storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self._cipher = self._get_cipher(key or os.environ.get("VAULTSYNC_TOKEN_ENCRYPTION_KEY"))

    @staticmethod
    def _get_cipher(key: Optional[str]) -> Fernet:
        """Get or create encryption cipher."""
        if not key:
            # Generate a key if not provided (will be lost on restart)
            logger.warning(
                "VAULTSYNC_TOKEN_ENCRYPTION_KEY not set. "
                "Using ephemeral key - tokens will be lost on restart."
            )
            key = Fernet.generate_key().decode()
        elif len(key) != 44:  # Fernet keys are 44 chars base64
            # Derive a key from a plain passphrase
            key = base64.urlsafe_b64encode(hashlib.sha256(key.encode()).digest()).decode()

        return Fernet(key.encode())

    def _get_token_path(self, token_id: str) -> Path:
        """Get path for a token file."""
        safe_id = "".join(c for c in token_id if c.isalnum() or c in "_-")
        return self.storage_path / f"{safe_id}.token"

    async def store_tokens(self, token_id: str, tokens: OAuthTokens) -> None:
        """Encrypt and write tokens."""
        token_path = self._get_token_path(token_id)
        encrypted = self._cipher.encrypt(json.dumps(tokens.to_dict()).encode())

        tmp_path = token_path.with_suffix(".tmp")
        tmp_path.write_bytes(encrypted)
        tmp_path.chmod(0o600)
        tmp_path.replace(token_path)
        logger.info(f"Stored tokens for {token_id}")

    async def get_tokens(self, token_id: str) -> Optional[OAuthTokens]:
        """Read and decrypt tokens, None if missing or unreadable."""
        token_path = self._get_token_path(token_id)

        if not token_path.exists():
            return None

        try:
            decrypted = self._cipher.decrypt(token_path.read_bytes())
            return OAuthTokens.from_dict(json.loads(decrypted.decode()))
        except (InvalidToken, ValueError, KeyError) as e:
            logger.error(f"Failed to decrypt tokens for {token_id}: {e}")
            return None

    async def delete_tokens(self, token_id: str) -> bool:
        """Delete tokens, True if a file was removed."""
        token_path = self._get_token_path(token_id)

        if token_path.exists():
            token_path.unlink()
            logger.info(f"Deleted tokens for {token_id}")
            return True
        return False

    async def has_tokens(self, token_id: str) -> bool:
        """Check if tokens exist."""
        return self._get_token_path(token_id).exists()


class OAuthSession:
    """
    Token lifecycle for one backend instance.

    States: unauthenticated (no tokens), authenticated, refreshing (lock
    held), logged out (tokens revoked and cleared).
    """

    def __init__(
        self,
        backend: str,
        config_factory: Callable[[], OAuthConfig],
        transport: HttpTransport,
        prompt: Optional[AuthorizationPrompt] = None,
        token_store: Optional[SecureTokenStore] = None
    ):
        """
        Initialize session.

        Args:
            backend: Backend name, also the token store key
            config_factory: Returns the current OAuth config (settings may change)
            transport: HTTP transport for token endpoint calls
            prompt: Sends the user to the authorize page
            token_store: Optional persistence for tokens
        """
        self.backend = backend
        self.config_factory = config_factory
        self.transport = transport
        self.prompt = prompt
        self.token_store = token_store
        self._tokens: Optional[OAuthTokens] = None
        self._stored_loaded = False
        self._lock = asyncio.Lock()

    @property
    def is_authenticated(self) -> bool:
        return self._tokens is not None

    async def get_access_token(self) -> str:
        """
        Return a usable access token, refreshing or authorizing first if
        needed.
        """
        tokens = self._tokens
        if tokens and not tokens.is_expired():
            return tokens.access_token

        async with self._lock:
            await self._load_stored_tokens()
            tokens = self._tokens
            if tokens and not tokens.is_expired():
                return tokens.access_token

            if tokens and tokens.refresh_token:
                logger.info(f"{self.backend}: access token expired, refreshing")
                return (await self._refresh(tokens)).access_token

            # No tokens, or an expired token we cannot refresh
            await self._clear_tokens()
            return (await self._authorize()).access_token

    async def handle_unauthorized(self, rejected_token: str) -> str:
        """
        React to a 401 received with rejected_token.

        Returns:
            Access token to retry with

        Raises:
            AuthenticationError: Token could not be refreshed
        """
        async with self._lock:
            tokens = self._tokens
            if tokens and tokens.access_token != rejected_token and not tokens.is_expired():
                # Someone else refreshed while this call was in flight
                return tokens.access_token

            if not tokens or not tokens.refresh_token:
                await self._clear_tokens()
                raise AuthenticationError(
                    "Access token was rejected and cannot be refreshed",
                    context=create_error_context(operation="refresh", backend=self.backend),
                )

            logger.info(f"{self.backend}: access token rejected, refreshing")
            return (await self._refresh(tokens)).access_token

    async def revoke(self, url: str, bearer: bool = True) -> None:
        """
        Revoke tokens at the provider and forget them locally.

        Revocation is best-effort: failures are logged and local state is
        cleared regardless.

        Args:
            url: Revocation endpoint
            bearer: Send the access token as a bearer header (Dropbox style)
                instead of a form-encoded token parameter (RFC 7009 style)
        """
        async with self._lock:
            await self._load_stored_tokens()
            tokens = self._tokens
            await self._clear_tokens()

        if not tokens:
            return

        try:
            if bearer:
                await self.transport.request(
                    url,
                    method="POST",
                    headers={"Authorization": f"Bearer {tokens.access_token}"},
                )
            else:
                await self.transport.request(
                    url,
                    method="POST",
                    data={"token": tokens.refresh_token or tokens.access_token},
                )
            logger.info(f"{self.backend}: token revoked")
        except (HttpStatusError, HttpConnectionError) as e:
            logger.warning(f"{self.backend}: token revocation failed: {e}")

    async def _authorize(self) -> OAuthTokens:
        """Run the interactive authorization-code flow."""
        if self.prompt is None:
            raise AuthenticationError(
                "Authorization required but no prompt is available",
                context=create_error_context(operation="authorize", backend=self.backend),
            )

        config = self.config_factory()
        state = secrets.token_urlsafe(32)
        params = {
            "client_id": config.client_id,
            "response_type": "code",
            "redirect_uri": config.redirect_uri,
            "state": state,
        }
        if config.scope:
            params["scope"] = config.scope

        verifier = None
        if config.pkce:
            verifier, challenge = generate_pkce_pair()
            params["code_challenge"] = challenge
            params["code_challenge_method"] = "S256"

        params.update(config.url_params)
        auth_url = f"{config.url}?{urlencode(params)}"

        logger.info(f"{self.backend}: starting authorization")
        response = await self.prompt.authorize(
            self.backend, auth_url, state, config.width, config.height
        )

        if response.state != state:
            raise AuthenticationError(
                "Authorization state mismatch",
                context=create_error_context(operation="authorize", backend=self.backend),
            )
        if response.error or not response.code:
            raise AuthenticationError(
                f"Authorization denied: {response.error_description or response.error or 'no code'}",
                context=create_error_context(operation="authorize", backend=self.backend),
            )

        data = {
            "grant_type": "authorization_code",
            "code": response.code,
            "client_id": config.client_id,
            "redirect_uri": config.redirect_uri,
        }
        if verifier:
            data["code_verifier"] = verifier
        if config.client_secret:
            data["client_secret"] = config.client_secret

        tokens = OAuthTokens.from_token_response(
            await self._token_request(config, data, "authorize")
        )
        await self._set_tokens(tokens)
        logger.info(f"{self.backend}: authorized")
        return tokens

    async def _refresh(self, tokens: OAuthTokens) -> OAuthTokens:
        """Exchange the refresh token; on rejection the session is cleared."""
        config = self.config_factory()
        data = {
            "grant_type": "refresh_token",
            "refresh_token": tokens.refresh_token,
            "client_id": config.client_id,
        }
        if config.client_secret:
            data["client_secret"] = config.client_secret

        try:
            body = await self._token_request(config, data, "refresh")
            new_tokens = OAuthTokens.from_token_response(body, previous=tokens)
        except (AuthenticationError, ProtocolError):
            await self._clear_tokens()
            raise

        await self._set_tokens(new_tokens)
        logger.info(f"{self.backend}: token refreshed")
        return new_tokens

    async def _token_request(self, config: OAuthConfig, data: Dict[str, str], operation: str) -> Any:
        try:
            response = await self.transport.request(config.token_url, method="POST", data=data)
        except HttpStatusError as e:
            logger.error(f"{self.backend}: token {operation} failed with status {e.status}")
            raise AuthenticationError(
                f"Token {operation} failed, status code {e.status}",
                context=create_error_context(operation=operation, backend=self.backend),
                cause=e,
            )
        except HttpConnectionError as e:
            raise NetworkError(
                str(e),
                context=create_error_context(operation=operation, backend=self.backend),
                cause=e,
                timeout=e.timeout,
            )
        return response.data

    async def _load_stored_tokens(self) -> None:
        if self._stored_loaded:
            return
        self._stored_loaded = True
        if self._tokens is None and self.token_store is not None:
            self._tokens = await self.token_store.get_tokens(self.backend)

    async def _set_tokens(self, tokens: OAuthTokens) -> None:
        self._tokens = tokens
        if self.token_store is not None:
            await self.token_store.store_tokens(self.backend, tokens)

    async def _clear_tokens(self) -> None:
        self._tokens = None
        if self.token_store is not None:
            await self.token_store.delete_tokens(self.backend)
