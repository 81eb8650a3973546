"""
Google Drive storage backend.

Drive addresses files by id, so logical paths are resolved by walking
their segments from My Drive (or the configured folder). Folder ids are
cached per path; the file at the end of a path is always looked up fresh so
that its revision is current.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from .api_call import ApiCallExecutor
from .base import StorageBackend
from .config_fields import (
    ConfigFieldType,
    StorageConfigField,
    StorageOpenConfig,
    StorageSettingsConfig,
)
from .models import StorageFileData, StorageFileStat, StorageListItem, StorageSaveResult
from .oauth import OAuthConfig
from .paths import fix_slashes, sanitize_folder
from .transport import HttpStatusError
from ..config.locale import Locale
from ..config.validation import ConfigValidator
from ..exceptions import (
    ConfigurationError,
    ProtocolError,
    RevisionConflictError,
    StorageError,
    StorageFileNotFoundError,
    create_error_context,
)

logger = logging.getLogger(__name__)

DRIVE_API = "https://www.googleapis.com/drive/v3"
UPLOAD_API = "https://www.googleapis.com/upload/drive/v3"
REVOKE_URL = "https://oauth2.googleapis.com/revoke"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FILE_FIELDS = "id,name,mimeType,headRevisionId"


def _escape_query(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _split_path(full_path: str) -> Tuple[str, str]:
    """Split an absolute path into (parent path, name)."""
    parent, _, name = full_path.rpartition("/")
    return parent or "/", name


class GoogleDriveStorage(StorageBackend):
    """
    Google Drive backend using the Drive v3 REST API.

    Conditional saves are best-effort: the head revision is compared before
    the upload, but the upload itself carries no precondition, so a write
    landing between the two is overwritten.
    """

    name = "gdrive"
    icon = "google-drive"
    uipos = 30
    backup = True

    def __init__(self, *args, **kwargs):
        self._folder_cache: Dict[str, str] = {}
        super().__init__(*args, **kwargs)

    @property
    def enabled(self) -> bool:
        return bool(self.settings.get("gdrive"))

    @property
    def location_name(self) -> str:
        return Locale.get("gdrive")

    @property
    def needs_open_config(self) -> bool:
        return not self.settings.get("gdrive_client_id") or not self.settings.get("gdrive_client_secret")

    def get_root_folder(self) -> Optional[str]:
        return self.settings.get("gdrive_folder")

    def get_oauth_config(self) -> OAuthConfig:
        url_params = {} if self.settings.get("short_lived_storage_token") else {
            "access_type": "offline",
            "prompt": "consent",
        }
        return OAuthConfig(
            scope="https://www.googleapis.com/auth/drive",
            url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            client_id=self.settings.get("gdrive_client_id") or "",
            client_secret=self.settings.get("gdrive_client_secret"),
            redirect_uri=self.settings.get("oauth_redirect_uri"),
            pkce=True,
            width=600,
            height=400,
            url_params=url_params,
        )

    def create_api_executor(self) -> ApiCallExecutor:
        return ApiCallExecutor(
            self.name,
            self.oauth,
            self.transport,
            classify_error=self._classify_error,
        )

    def _classify_error(self, method: str, error: HttpStatusError, path: str) -> Optional[StorageError]:
        if error.status == 404:
            return StorageFileNotFoundError(path)
        body = error.data.get("error") if isinstance(error.data, dict) else None
        if not isinstance(body, dict):
            return None
        reasons = [
            item.get("reason") for item in body.get("errors") or []
            if isinstance(item, dict)
        ]
        if "notFound" in reasons or body.get("status") == "NOT_FOUND":
            return StorageFileNotFoundError(path)
        return None

    # ==================== Configuration ====================

    def _config_fields(self, with_values: bool) -> List[StorageConfigField]:
        return [
            StorageConfigField(
                id="key",
                title=Locale.get("gdriveClientId"),
                desc=Locale.get("gdriveClientIdDesc"),
                type=ConfigFieldType.TEXT,
                required=True,
                pattern="[\\w.-]+",
                value=self.settings.get("gdrive_client_id") if with_values else None,
            ),
            StorageConfigField(
                id="secret",
                title=Locale.get("gdriveClientSecret"),
                desc=Locale.get("gdriveClientSecretDesc"),
                type=ConfigFieldType.PASSWORD,
                required=True,
                pattern="[\\w-]+",
                value=(self.settings.get("gdrive_client_secret") or "") if with_values else None,
            ),
            StorageConfigField(
                id="folder",
                title=Locale.get("gdriveFolder"),
                desc=Locale.get("gdriveFolderDesc"),
                type=ConfigFieldType.TEXT,
                value=(self.settings.get("gdrive_folder") or "") if with_values else None,
            ),
        ]

    def get_open_config(self) -> StorageOpenConfig:
        return StorageOpenConfig(
            desc=Locale.get("gdriveSetupDesc"),
            fields=self._config_fields(with_values=False),
        )

    def get_settings_config(self) -> StorageSettingsConfig:
        return StorageSettingsConfig(fields=self._config_fields(with_values=True))

    def apply_config(self, config: Dict[str, Optional[str]]) -> None:
        errors = ConfigValidator.validate_fields(self.get_open_config().fields, config)
        if errors:
            raise ConfigurationError(
                "; ".join(errors),
                context=create_error_context(operation="apply_config", backend=self.name),
            )

        self.settings.batch_set({
            "gdrive_client_id": config.get("key"),
            "gdrive_client_secret": config.get("secret"),
            "gdrive_folder": sanitize_folder(config.get("folder")) or None,
        })
        self._folder_cache.clear()
        logger.info(f"{self.name}: configuration applied")

    async def apply_setting(self, key: str, value: str) -> None:
        if key == "key":
            self.settings.set("gdrive_client_id", value)
            await self.logout_quietly()
        elif key == "secret":
            self.settings.set("gdrive_client_secret", value)
            await self.logout_quietly()
        elif key == "folder":
            self.settings.set("gdrive_folder", sanitize_folder(value) or None)
            self._folder_cache.clear()

    # ==================== Path resolution ====================

    async def _find_child(self, parent_id: str, name: str) -> Optional[Dict[str, Any]]:
        query = (
            f"name = '{_escape_query(name)}' and "
            f"'{_escape_query(parent_id)}' in parents and "
            f"trashed = false"
        )
        response = await self.api.call(
            "files.list",
            url=f"{DRIVE_API}/files",
            http_method="GET",
            params={"q": query, "spaces": "drive", "fields": f"files({FILE_FIELDS})"},
            path=name,
        )
        files = response.data.get("files") if isinstance(response.data, dict) else None
        if not isinstance(files, list):
            raise ProtocolError("files.list response has no files")
        for item in files:
            if isinstance(item, dict) and isinstance(item.get("id"), str):
                return item
        return None

    async def _find_item(self, full_path: str) -> Optional[Dict[str, Any]]:
        """Resolve an absolute path to its Drive file resource."""
        if full_path == "/":
            return {"id": "root", "mimeType": FOLDER_MIME_TYPE}

        parts = [part for part in full_path.split("/") if part]
        parent_id = "root"
        item = None

        for depth, part in enumerate(parts):
            prefix = "/" + "/".join(parts[:depth + 1])
            is_last = depth == len(parts) - 1

            if not is_last and prefix in self._folder_cache:
                parent_id = self._folder_cache[prefix]
                continue

            item = await self._find_child(parent_id, part)
            if item is None:
                return None
            if not is_last:
                if item.get("mimeType") != FOLDER_MIME_TYPE:
                    return None
                self._folder_cache[prefix] = item["id"]
            parent_id = item["id"]

        return item

    async def _find_folder_id(self, full_path: str) -> str:
        item = await self._find_item(full_path)
        if item is None:
            raise StorageFileNotFoundError(full_path)
        if item.get("mimeType") != FOLDER_MIME_TYPE:
            raise ProtocolError(f"Not a folder: {full_path}")
        return item["id"]

    def _forget(self, full_path: str) -> None:
        for cached in [p for p in self._folder_cache if p == full_path or p.startswith(full_path + "/")]:
            del self._folder_cache[cached]

    async def _discard_created(self, file_id: str, full_path: str) -> None:
        """Delete a file created for an upload that then failed."""
        try:
            await self.api.call(
                "files.delete",
                url=f"{DRIVE_API}/files/{file_id}",
                http_method="DELETE",
                statuses=(200, 204),
                path=full_path,
            )
        except StorageError as e:
            logger.warning(f"{self.name}: could not remove empty file {full_path} after failed upload: {e}")

    # ==================== Operations ====================

    async def load(self, path: str) -> StorageFileData:
        with self.log_operation("Load", path) as timer:
            full_path = self.paths.to_backend_path(path)
            item = await self._find_item(full_path)
            if item is None:
                raise StorageFileNotFoundError(full_path)
            if item.get("mimeType") == FOLDER_MIME_TYPE:
                raise ProtocolError(f"Cannot load a folder: {full_path}")

            response = await self.api.call(
                "files.get",
                url=f"{DRIVE_API}/files/{item['id']}",
                http_method="GET",
                params={"alt": "media"},
                response_type="bytes",
                path=full_path,
            )
            rev = item.get("headRevisionId")

            logger.info(f"{self.name}: loaded {full_path}, rev={rev} ({timer.elapsed_ms}ms)")
            return StorageFileData(data=response.data, rev=rev)

    async def stat(self, path: str) -> StorageFileStat:
        with self.log_operation("Stat", path) as timer:
            full_path = self.paths.to_backend_path(path)
            item = await self._find_item(full_path)
            if item is None:
                raise StorageFileNotFoundError(full_path)

            mime_type = item.get("mimeType")
            if not isinstance(mime_type, str):
                raise ProtocolError("mimeType not found in response")

            if mime_type == FOLDER_MIME_TYPE:
                stat = StorageFileStat(folder=True)
            else:
                rev = item.get("headRevisionId")
                stat = StorageFileStat(rev=rev if isinstance(rev, str) else None)

            logger.info(
                f"{self.name}: stat complete {full_path}, "
                f"{'folder' if stat.folder else stat.rev} ({timer.elapsed_ms}ms)"
            )
            return stat

    async def save(self, path: str, data: bytes, rev: Optional[str] = None) -> StorageSaveResult:
        with self.log_operation("Save", path) as timer:
            full_path = self.paths.to_backend_path(path)
            item = await self._find_item(full_path)

            if item is not None and item.get("mimeType") == FOLDER_MIME_TYPE:
                raise ProtocolError(f"Cannot save over a folder: {full_path}")

            # Drive has no conditional upload; compare revisions first
            if rev:
                current_rev = item.get("headRevisionId") if item else None
                if current_rev != rev:
                    raise RevisionConflictError(full_path, expected_rev=rev, actual_rev=current_rev)

            if item is None:
                parent_path, name = _split_path(full_path)
                parent_id = await self._find_folder_id(parent_path)
                created = await self.api.call(
                    "files.create",
                    url=f"{DRIVE_API}/files",
                    params={"fields": "id"},
                    data={"name": name, "parents": [parent_id]},
                    path=full_path,
                )
                file_id = created.data.get("id") if isinstance(created.data, dict) else None
                if not isinstance(file_id, str):
                    raise ProtocolError("files.create response has no id")
            else:
                file_id = item["id"]

            try:
                response = await self.api.call(
                    "files.update",
                    url=f"{UPLOAD_API}/files/{file_id}",
                    http_method="PATCH",
                    params={"uploadType": "media", "fields": FILE_FIELDS},
                    data=bytes(data),
                    path=full_path,
                )
            except StorageError:
                if item is None:
                    await self._discard_created(file_id, full_path)
                raise
            result = response.data if isinstance(response.data, dict) else {}
            saved_rev = result.get("headRevisionId")
            saved_rev = saved_rev if isinstance(saved_rev, str) else None

            logger.info(f"{self.name}: saved {full_path}, rev={saved_rev} ({timer.elapsed_ms}ms)")
            return StorageSaveResult(rev=saved_rev)

    async def remove(self, path: str) -> None:
        with self.log_operation("Remove", path) as timer:
            full_path = self.paths.to_backend_path(path)
            item = await self._find_item(full_path)
            if item is None:
                raise StorageFileNotFoundError(full_path)

            await self.api.call(
                "files.delete",
                url=f"{DRIVE_API}/files/{item['id']}",
                http_method="DELETE",
                statuses=(200, 204),
                path=full_path,
            )
            self._forget(full_path)
            logger.info(f"{self.name}: removed {full_path} ({timer.elapsed_ms}ms)")

    async def list(self, dir: Optional[str] = None) -> List[StorageListItem]:
        with self.log_operation("List", dir or "") as timer:
            full_path = self.paths.to_backend_path(dir or "")
            folder_id = await self._find_folder_id(full_path)

            result = []
            page_token = None
            while True:
                params = {
                    "q": f"'{_escape_query(folder_id)}' in parents and trashed = false",
                    "spaces": "drive",
                    "fields": f"nextPageToken, files({FILE_FIELDS})",
                    "pageSize": 1000,
                }
                if page_token:
                    params["pageToken"] = page_token

                response = await self.api.call(
                    "files.list",
                    url=f"{DRIVE_API}/files",
                    http_method="GET",
                    params=params,
                    path=full_path,
                )
                page = response.data if isinstance(response.data, dict) else {}
                if not isinstance(page.get("files"), list):
                    raise ProtocolError("Empty response")

                result.extend(self._parse_entries(full_path, page["files"]))

                page_token = page.get("nextPageToken")
                if not page_token:
                    break

            logger.info(f"{self.name}: listed {len(result)} entries ({timer.elapsed_ms}ms)")
            return result

    def _parse_entries(self, full_path: str, entries: List[Any]) -> List[StorageListItem]:
        result = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            if not isinstance(entry.get("name"), str):
                continue
            if not isinstance(entry.get("mimeType"), str):
                continue
            rev = entry.get("headRevisionId")
            if rev is not None and not isinstance(rev, str):
                continue

            result.append(StorageListItem(
                name=entry["name"],
                path=self.paths.to_logical_path(fix_slashes(full_path + "/" + entry["name"])),
                rev=rev,
                dir=entry["mimeType"] == FOLDER_MIME_TYPE,
            ))
        return result

    async def mkdir(self, path: str) -> None:
        with self.log_operation("Make dir", path) as timer:
            full_path = self.paths.to_backend_path(path)
            parent_path, name = _split_path(full_path)
            parent_id = await self._find_folder_id(parent_path)

            response = await self.api.call(
                "files.create",
                url=f"{DRIVE_API}/files",
                params={"fields": "id"},
                data={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
                path=full_path,
            )
            folder_id = response.data.get("id") if isinstance(response.data, dict) else None
            if isinstance(folder_id, str):
                self._folder_cache[full_path] = folder_id
            logger.info(f"{self.name}: made dir {full_path} ({timer.elapsed_ms}ms)")

    async def logout(self) -> None:
        self._folder_cache.clear()
        await self.oauth.revoke(REVOKE_URL, bearer=False)
