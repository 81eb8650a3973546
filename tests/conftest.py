"""
Shared fixtures: an in-memory settings manager and an HTTP transport whose
requests are answered by a routed httpx.MockTransport.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from vaultsync.config import SettingsManager, StorageSettings
from vaultsync.storage import AuthorizationPrompt, AuthorizationResponse, OAuthTokens
from vaultsync.storage.transport import HttpTransport


class MockApi:
    """Answers requests by (method, url without query) and records them.

    Responses registered for the same route are returned in order; the last
    one repeats.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Tuple[Any, Dict[str, Any]]]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, status: Any = 200, **kwargs) -> None:
        """Register a response; status may be a callable taking the request."""
        self.routes.setdefault((method, url), []).append((status, kwargs))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, f"{request.url.scheme}://{request.url.host}{request.url.path}")
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(500, text=f"unexpected request {key}")
        status, kwargs = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(status):
            return status(request)
        return httpx.Response(status, **kwargs)

    def calls(self, url_part: str) -> List[httpx.Request]:
        return [r for r in self.requests if url_part in str(r.url)]


class StaticPrompt(AuthorizationPrompt):
    """Completes every authorization immediately."""

    def __init__(self, code: Optional[str] = "auth-code", error: Optional[str] = None):
        self.code = code
        self.error = error
        self.urls: List[str] = []

    async def authorize(self, backend, auth_url, state, width=600, height=400):
        self.urls.append(auth_url)
        return AuthorizationResponse(state=state, code=self.code, error=self.error)


@pytest.fixture
def mock_api():
    return MockApi()


@pytest.fixture
def transport(mock_api):
    return HttpTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(mock_api)))


@pytest.fixture
def settings(tmp_path):
    return SettingsManager(StorageSettings(), tmp_path / "settings.json")


@pytest.fixture
def prompt():
    return StaticPrompt()


@pytest.fixture
def sign_in():
    """Give a backend's OAuth session tokens without running the flow."""

    async def _sign_in(
        backend,
        access_token: str = "access-1",
        refresh_token: Optional[str] = "refresh-1",
        expires_at: Optional[datetime] = None
    ) -> OAuthTokens:
        tokens = OAuthTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )
        await backend.oauth._set_tokens(tokens)
        return tokens

    return _sign_in
