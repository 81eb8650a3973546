"""
Tests for the OAuth session, token storage and authorization prompt.
"""

import asyncio
import base64
import hashlib
from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from cryptography.fernet import Fernet

from vaultsync.exceptions import AuthenticationError, NetworkError, ProtocolError
from vaultsync.storage import (
    AuthorizationResponse,
    CallbackAuthorizationPrompt,
    OAuthConfig,
    OAuthSession,
    OAuthTokens,
    SecureTokenStore,
    generate_pkce_pair,
)

TOKEN_URL = "https://auth.example.com/token"
REVOKE_URL = "https://auth.example.com/revoke"


def make_config():
    return OAuthConfig(
        scope="files",
        url="https://auth.example.com/authorize",
        token_url=TOKEN_URL,
        client_id="client",
        client_secret="secret",
        redirect_uri="http://localhost/cb",
        url_params={"token_access_type": "offline"},
    )


def form(request):
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


class TestPkce:
    """Tests for PKCE pair generation."""

    def test_challenge_is_s256_of_verifier(self):
        verifier, challenge = generate_pkce_pair()
        digest = hashlib.sha256(verifier.encode()).digest()
        assert challenge == base64.urlsafe_b64encode(digest).decode().rstrip("=")
        assert "=" not in challenge

    def test_verifier_length(self):
        verifier, _ = generate_pkce_pair()
        assert 43 <= len(verifier) <= 128

    def test_pairs_are_unique(self):
        assert generate_pkce_pair() != generate_pkce_pair()


class TestOAuthTokens:
    """Tests for OAuthTokens."""

    def test_no_expiry_is_not_expired(self):
        assert not OAuthTokens(access_token="a").is_expired()

    def test_expiry_skew(self):
        soon = datetime.utcnow() + timedelta(minutes=2)
        later = datetime.utcnow() + timedelta(hours=1)
        assert OAuthTokens(access_token="a", expires_at=soon).is_expired()
        assert not OAuthTokens(access_token="a", expires_at=later).is_expired()

    def test_dict_round_trip(self):
        tokens = OAuthTokens(
            access_token="a",
            refresh_token="r",
            expires_at=datetime(2030, 1, 1, 12, 0),
            account_id="dbid:1",
        )
        assert OAuthTokens.from_dict(tokens.to_dict()) == tokens

    def test_refresh_response_keeps_refresh_token(self):
        previous = OAuthTokens(access_token="a", refresh_token="r")
        tokens = OAuthTokens.from_token_response(
            {"access_token": "b", "expires_in": 14400}, previous=previous
        )
        assert tokens.access_token == "b"
        assert tokens.refresh_token == "r"
        assert tokens.expires_at is not None

    def test_missing_access_token(self):
        with pytest.raises(ProtocolError):
            OAuthTokens.from_token_response({"token_type": "bearer"})

    def test_bad_expires_in(self):
        with pytest.raises(ProtocolError):
            OAuthTokens.from_token_response({"access_token": "a", "expires_in": "soon"})


class TestSecureTokenStore:
    """Tests for SecureTokenStore."""

    @pytest.mark.asyncio
    async def test_store_and_get(self, tmp_path):
        store = SecureTokenStore(tmp_path, key=Fernet.generate_key().decode())
        tokens = OAuthTokens(access_token="a", refresh_token="r")

        await store.store_tokens("dropbox", tokens)

        assert await store.has_tokens("dropbox")
        assert await store.get_tokens("dropbox") == tokens
        assert b"access" not in (tmp_path / "dropbox.token").read_bytes()

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path):
        store = SecureTokenStore(tmp_path, key="passphrase")
        await store.store_tokens("gdrive", OAuthTokens(access_token="a"))

        assert await store.delete_tokens("gdrive")
        assert not await store.delete_tokens("gdrive")
        assert await store.get_tokens("gdrive") is None

    @pytest.mark.asyncio
    async def test_wrong_key_reads_nothing(self, tmp_path):
        await SecureTokenStore(tmp_path, key="one").store_tokens("dropbox", OAuthTokens(access_token="a"))
        assert await SecureTokenStore(tmp_path, key="two").get_tokens("dropbox") is None


class TestOAuthSession:
    """Tests for OAuthSession."""

    @pytest.mark.asyncio
    async def test_authorize_with_pkce(self, transport, prompt, mock_api):
        mock_api.add("POST", TOKEN_URL, 200, json={
            "access_token": "access-1",
            "refresh_token": "refresh-1",
            "expires_in": 14400,
            "account_id": "dbid:1",
        })
        session = OAuthSession("test", make_config, transport, prompt=prompt)

        assert await session.get_access_token() == "access-1"

        query = {k: v[0] for k, v in parse_qs(urlparse(prompt.urls[0]).query).items()}
        assert query["client_id"] == "client"
        assert query["response_type"] == "code"
        assert query["code_challenge_method"] == "S256"
        assert query["token_access_type"] == "offline"

        body = form(mock_api.requests[0])
        assert body["grant_type"] == "authorization_code"
        assert body["code"] == "auth-code"
        assert body["client_secret"] == "secret"
        digest = hashlib.sha256(body["code_verifier"].encode()).digest()
        assert query["code_challenge"] == base64.urlsafe_b64encode(digest).decode().rstrip("=")

    @pytest.mark.asyncio
    async def test_authorize_denied(self, transport, mock_api):
        class DeniedPrompt(CallbackAuthorizationPrompt):
            async def authorize(self, backend, auth_url, state, width=600, height=400):
                return AuthorizationResponse(state=state, error="access_denied")

        session = OAuthSession("test", make_config, transport, prompt=DeniedPrompt())

        with pytest.raises(AuthenticationError):
            await session.get_access_token()
        assert mock_api.requests == []

    @pytest.mark.asyncio
    async def test_authorize_state_mismatch(self, transport, mock_api):
        class WrongStatePrompt(CallbackAuthorizationPrompt):
            async def authorize(self, backend, auth_url, state, width=600, height=400):
                return AuthorizationResponse(state="forged", code="code")

        session = OAuthSession("test", make_config, transport, prompt=WrongStatePrompt())

        with pytest.raises(AuthenticationError):
            await session.get_access_token()
        assert mock_api.requests == []

    @pytest.mark.asyncio
    async def test_no_prompt(self, transport):
        session = OAuthSession("test", make_config, transport)
        with pytest.raises(AuthenticationError):
            await session.get_access_token()

    @pytest.mark.asyncio
    async def test_expired_token_refreshed(self, transport, mock_api):
        mock_api.add("POST", TOKEN_URL, 200, json={"access_token": "access-2", "expires_in": 14400})
        session = OAuthSession("test", make_config, transport)
        await session._set_tokens(OAuthTokens(
            access_token="access-1",
            refresh_token="refresh-1",
            expires_at=datetime.utcnow() - timedelta(minutes=1),
        ))

        assert await session.get_access_token() == "access-2"
        body = form(mock_api.requests[0])
        assert body["grant_type"] == "refresh_token"
        assert body["refresh_token"] == "refresh-1"

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, transport, mock_api):
        mock_api.add("POST", TOKEN_URL, 200, json={"access_token": "access-2", "expires_in": 14400})
        session = OAuthSession("test", make_config, transport)
        await session._set_tokens(OAuthTokens(
            access_token="access-1",
            refresh_token="refresh-1",
            expires_at=datetime.utcnow() - timedelta(minutes=1),
        ))

        results = await asyncio.gather(*[session.get_access_token() for _ in range(5)])

        assert results == ["access-2"] * 5
        assert len(mock_api.calls(TOKEN_URL)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_unauthorized_share_one_refresh(self, transport, mock_api):
        mock_api.add("POST", TOKEN_URL, 200, json={"access_token": "access-2", "expires_in": 14400})
        session = OAuthSession("test", make_config, transport)
        await session._set_tokens(OAuthTokens(access_token="access-1", refresh_token="refresh-1"))

        results = await asyncio.gather(
            session.handle_unauthorized("access-1"),
            session.handle_unauthorized("access-1"),
        )

        assert results == ["access-2", "access-2"]
        assert len(mock_api.calls(TOKEN_URL)) == 1

    @pytest.mark.asyncio
    async def test_refresh_rejected_clears_session(self, transport, mock_api, tmp_path):
        mock_api.add("POST", TOKEN_URL, 400, json={"error": "invalid_grant"})
        store = SecureTokenStore(tmp_path, key="k")
        session = OAuthSession("test", make_config, transport, token_store=store)
        await session._set_tokens(OAuthTokens(access_token="access-1", refresh_token="refresh-1"))

        with pytest.raises(AuthenticationError):
            await session.handle_unauthorized("access-1")

        assert not session.is_authenticated
        assert not await store.has_tokens("test")

    @pytest.mark.asyncio
    async def test_refresh_network_failure_keeps_tokens(self, transport, mock_api):
        def fail(request):
            raise httpx.ConnectError("offline", request=request)

        mock_api.add("POST", TOKEN_URL, fail)
        session = OAuthSession("test", make_config, transport)
        await session._set_tokens(OAuthTokens(access_token="access-1", refresh_token="refresh-1"))

        with pytest.raises(NetworkError):
            await session.handle_unauthorized("access-1")
        assert session.is_authenticated

    @pytest.mark.asyncio
    async def test_tokens_loaded_from_store(self, transport, tmp_path):
        store = SecureTokenStore(tmp_path, key="k")
        await store.store_tokens("test", OAuthTokens(access_token="stored"))
        session = OAuthSession("test", make_config, transport, token_store=store)

        assert await session.get_access_token() == "stored"

    @pytest.mark.asyncio
    async def test_revoke_bearer(self, transport, mock_api):
        mock_api.add("POST", REVOKE_URL, 200)
        session = OAuthSession("test", make_config, transport)
        await session._set_tokens(OAuthTokens(access_token="access-1", refresh_token="refresh-1"))

        await session.revoke(REVOKE_URL)

        assert mock_api.requests[0].headers["Authorization"] == "Bearer access-1"
        assert not session.is_authenticated

    @pytest.mark.asyncio
    async def test_revoke_form_token(self, transport, mock_api):
        mock_api.add("POST", REVOKE_URL, 200)
        session = OAuthSession("test", make_config, transport)
        await session._set_tokens(OAuthTokens(access_token="access-1", refresh_token="refresh-1"))

        await session.revoke(REVOKE_URL, bearer=False)

        assert form(mock_api.requests[0]) == {"token": "refresh-1"}

    @pytest.mark.asyncio
    async def test_revoke_failure_swallowed(self, transport, mock_api):
        mock_api.add("POST", REVOKE_URL, 500, text="down")
        session = OAuthSession("test", make_config, transport)
        await session._set_tokens(OAuthTokens(access_token="access-1"))

        await session.revoke(REVOKE_URL)

        assert not session.is_authenticated

    @pytest.mark.asyncio
    async def test_revoke_without_tokens_is_noop(self, transport, mock_api):
        session = OAuthSession("test", make_config, transport)
        await session.revoke(REVOKE_URL)
        assert mock_api.requests == []


class TestCallbackAuthorizationPrompt:
    """Tests for CallbackAuthorizationPrompt."""

    @pytest.mark.asyncio
    async def test_complete_delivers_code(self):
        opened = []
        prompt = CallbackAuthorizationPrompt(opener=opened.append)

        task = asyncio.create_task(prompt.authorize("dropbox", "https://auth/?state=s1", "s1"))
        await asyncio.sleep(0)

        assert opened == ["https://auth/?state=s1"]
        assert prompt.has_pending("s1")
        assert prompt.complete("s1", code="abc") == "dropbox"

        response = await task
        assert response.code == "abc"
        assert not prompt.has_pending("s1")

    @pytest.mark.asyncio
    async def test_unknown_state(self):
        prompt = CallbackAuthorizationPrompt(opener=lambda url: None)
        assert prompt.complete("nope", code="abc") is None

    @pytest.mark.asyncio
    async def test_timeout(self):
        prompt = CallbackAuthorizationPrompt(opener=lambda url: None, ttl=timedelta(milliseconds=10))

        with pytest.raises(AuthenticationError):
            await prompt.authorize("gdrive", "https://auth/", "s2")
        assert not prompt.has_pending("s2")
