"""
Tests for the storage HTTP API.
"""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from vaultsync.api import create_app
from vaultsync.config import DropboxApps
from vaultsync.storage import OAuthTokens, create_backends

API = "https://api.dropboxapi.com/2/"
CONTENT = "https://content.dropboxapi.com/2/"


class RecordingPrompt:
    """Stands in for the callback prompt, remembering completions."""

    def __init__(self, backend="dropbox"):
        self.backend = backend
        self.completed = []

    def complete(self, state, code=None, error=None, error_description=None):
        self.completed.append((state, code, error))
        return self.backend if state == "known" else None


@pytest.fixture
def backends(settings, transport):
    backends = create_backends(settings, transport=transport)
    for backend in backends.values():
        backend.oauth._tokens = OAuthTokens(access_token="access-1", refresh_token="refresh-1")
    return backends


@pytest.fixture
def callback_prompt():
    return RecordingPrompt()


@pytest.fixture
def client(backends, callback_prompt):
    return TestClient(create_app(backends, authorization_prompt=callback_prompt))


class TestBackendRoutes:
    """Tests for backend listing and configuration routes."""

    def test_list_backends(self, client):
        response = client.get("/storage")

        assert response.status_code == 200
        data = response.json()
        assert [b["name"] for b in data] == ["dropbox", "gdrive"]
        assert data[0]["location_name"] == "Dropbox"
        assert data[0]["needs_open_config"] is True

    def test_unknown_backend(self, client):
        assert client.get("/storage/onedrive/open-config").status_code == 404

    def test_open_config(self, client):
        response = client.get("/storage/dropbox/open-config")

        assert response.status_code == 200
        assert [f["id"] for f in response.json()["fields"]] == ["key", "secret", "folder"]

    def test_settings_config(self, client):
        response = client.get("/storage/dropbox/settings-config")
        assert response.json()["fields"][0]["value"] == "app"

    def test_apply_config(self, client, settings):
        response = client.post("/storage/dropbox/config", json={
            "values": {"key": "customkey", "secret": "customsecret"},
        })

        assert response.status_code == 200
        assert settings.get("dropbox_app_key") == "customkey"

    def test_apply_config_built_in_key(self, client, settings):
        response = client.post("/storage/dropbox/config", json={
            "values": {"key": DropboxApps.AppFolder.id, "secret": "s"},
        })

        assert response.status_code == 400
        assert response.json()["error_code"] == "CONFIG_ERROR"
        assert settings.get("dropbox_app_key") is None

    def test_apply_setting(self, client, settings):
        response = client.put("/storage/dropbox/settings/folder", json={"value": "/Vault"})

        assert response.status_code == 200
        assert settings.get("dropbox_folder") == "Vault"


class TestFileRoutes:
    """Tests for file operation routes."""

    def test_load(self, client, mock_api):
        mock_api.add("POST", CONTENT + "files/download", 200, content=b"kdbx",
                     headers={"dropbox-api-result": '{"rev": "a1"}'})

        response = client.get("/storage/dropbox/file", params={"path": "/db.kdbx"})

        assert response.status_code == 200
        assert response.content == b"kdbx"
        assert response.headers["X-Storage-Rev"] == "a1"

    def test_load_not_found(self, client, mock_api):
        mock_api.add("POST", CONTENT + "files/download", 409,
                     json={"error": {".tag": "path", "path": {".tag": "not_found"}}})

        response = client.get("/storage/dropbox/file", params={"path": "/missing.kdbx"})

        assert response.status_code == 404
        assert response.json()["error_code"] == "FILE_NOT_FOUND"

    def test_save_with_if_match(self, client, mock_api):
        mock_api.add("POST", CONTENT + "files/upload", 200, json={"rev": "a2"})

        response = client.put(
            "/storage/dropbox/file",
            params={"path": "/db.kdbx"},
            content=b"new",
            headers={"If-Match": '"a1"'},
        )

        assert response.status_code == 200
        assert response.json() == {"rev": "a2"}
        arg = json.loads(mock_api.requests[0].headers["Dropbox-API-Arg"])
        assert arg["mode"] == {".tag": "update", "update": "a1"}
        assert mock_api.requests[0].content == b"new"

    def test_save_conflict(self, client, mock_api):
        mock_api.add("POST", CONTENT + "files/upload", 409, json={
            "error": {".tag": "path", "path": {"reason": {".tag": "conflict"}}},
        })

        response = client.put(
            "/storage/dropbox/file",
            params={"path": "/db.kdbx"},
            content=b"new",
            headers={"If-Match": "a1"},
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "REVISION_CONFLICT"

    def test_stat(self, client, mock_api):
        mock_api.add("POST", API + "files/get_metadata", 200, json={".tag": "file", "rev": "a1"})

        response = client.get("/storage/dropbox/stat", params={"path": "/db.kdbx"})

        assert response.json() == {"rev": "a1", "folder": False}

    def test_list(self, client, mock_api):
        mock_api.add("POST", API + "files/list_folder", 200, json={"entries": [
            {".tag": "file", "name": "db.kdbx", "path_display": "/db.kdbx", "rev": "a1"},
        ], "has_more": False})

        response = client.get("/storage/dropbox/list")

        assert response.json() == [{"name": "db.kdbx", "path": "/db.kdbx", "rev": "a1", "dir": False}]

    def test_remove_and_mkdir(self, client, mock_api):
        mock_api.add("POST", API + "files/delete_v2", 200, json={})
        mock_api.add("POST", API + "files/create_folder_v2", 200, json={})

        assert client.delete("/storage/dropbox/file", params={"path": "/db.kdbx"}).status_code == 200
        assert client.post("/storage/dropbox/folder", params={"path": "/new"}).status_code == 200

    def test_logout(self, client, backends, mock_api):
        mock_api.add("POST", API + "auth/token/revoke", 200)

        response = client.post("/storage/dropbox/logout")

        assert response.status_code == 200
        assert not backends["dropbox"].oauth.is_authenticated

    def test_network_error(self, client, mock_api):
        def fail(request):
            raise httpx.ConnectError("offline", request=request)

        mock_api.add("POST", API + "files/get_metadata", fail)

        response = client.get("/storage/dropbox/stat", params={"path": "/db.kdbx"})

        assert response.status_code == 503
        assert response.json()["error_code"] == "NETWORK_ERROR"
        assert response.json()["retryable"] is True

    def test_api_error(self, client, mock_api):
        mock_api.add("POST", API + "files/get_metadata", 500, text="boom")

        response = client.get("/storage/dropbox/stat", params={"path": "/db.kdbx"})

        assert response.status_code == 502
        assert response.json()["error_code"] == "API_ERROR"

    def test_protocol_error(self, client, mock_api):
        mock_api.add("POST", API + "files/get_metadata", 200, json={"name": "no tag"})

        response = client.get("/storage/dropbox/stat", params={"path": "/db.kdbx"})

        assert response.status_code == 502
        assert response.json()["error_code"] == "PROTOCOL_ERROR"

    def test_auth_error(self, client, backends, mock_api):
        backends["dropbox"].oauth._tokens = OAuthTokens(access_token="access-1")
        mock_api.add("POST", API + "files/get_metadata", 401, json={})

        response = client.get("/storage/dropbox/stat", params={"path": "/db.kdbx"})

        assert response.status_code == 401
        assert response.json()["error_code"] == "AUTH_FAILED"


class TestOAuthCallback:
    """Tests for the OAuth redirect route."""

    def test_completes_pending_authorization(self, client, callback_prompt):
        response = client.get("/oauth/callback", params={"state": "known", "code": "abc"})

        assert response.status_code == 200
        assert response.json()["backend"] == "dropbox"
        assert callback_prompt.completed == [("known", "abc", None)]

    def test_provider_error(self, client):
        response = client.get("/oauth/callback", params={"state": "known", "error": "access_denied"})

        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_unknown_state(self, client):
        response = client.get("/oauth/callback", params={"state": "forged", "code": "abc"})
        assert response.status_code == 400
