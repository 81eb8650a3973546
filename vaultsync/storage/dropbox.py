"""
Dropbox storage backend.

https://www.dropbox.com/developers/documentation/http/documentation
"""

import json
import logging
from typing import Any, Dict, List, Optional

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
from .paths import sanitize_folder
from .transport import HttpStatusError
from ..config.constants import DropboxApps
from ..config.locale import Locale
from ..config.validation import ConfigValidator
from ..exceptions import (
    ConfigurationError,
    ProtocolError,
    RevisionConflictError,
    StorageError,
    create_error_context,
)

logger = logging.getLogger(__name__)

REVOKE_URL = "https://api.dropboxapi.com/2/auth/token/revoke"


def _error_tag(body: Any, *keys: str) -> Optional[str]:
    """Follow keys through a Dropbox error union, returning the final .tag."""
    node = body.get("error") if isinstance(body, dict) else None
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    if isinstance(node, dict):
        tag = node.get(".tag")
        return tag if isinstance(tag, str) else None
    return None


class DropboxStorage(StorageBackend):
    """Dropbox backend using the v2 HTTP API."""

    name = "dropbox"
    icon = "dropbox"
    uipos = 20
    backup = True

    @property
    def enabled(self) -> bool:
        return bool(self.settings.get("dropbox"))

    @property
    def location_name(self) -> str:
        return Locale.get("dropbox")

    @property
    def needs_open_config(self) -> bool:
        return not self._is_valid_key() or not self._get_secret()

    def get_root_folder(self) -> Optional[str]:
        return self.settings.get("dropbox_folder")

    def _get_key(self) -> str:
        return self.settings.get("dropbox_app_key") or DropboxApps.AppFolder.id

    def _get_secret(self) -> Optional[str]:
        key = self._get_key()
        if key == DropboxApps.AppFolder.id:
            return DropboxApps.AppFolder.secret
        if key == DropboxApps.FullDropbox.id:
            return DropboxApps.FullDropbox.secret
        return self.settings.get("dropbox_secret")

    def _is_valid_key(self) -> bool:
        key = self._get_key()
        is_built_in = DropboxApps.is_built_in(key)
        return bool(key) and " " not in key and (not is_built_in or self._can_use_built_in_keys())

    def _can_use_built_in_keys(self) -> bool:
        return not self.settings.get("self_hosted")

    def get_oauth_config(self) -> OAuthConfig:
        url_params = {} if self.settings.get("short_lived_storage_token") else {
            "token_access_type": "offline"
        }
        return OAuthConfig(
            scope="files.content.read files.content.write files.metadata.read files.metadata.write",
            url="https://www.dropbox.com/oauth2/authorize",
            token_url="https://api.dropboxapi.com/oauth2/token",
            client_id=self._get_key(),
            client_secret=self._get_secret(),
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
            url_builder=lambda method, host: f"https://{host or 'api'}.dropboxapi.com/2/{method}",
            arg_header="Dropbox-API-Arg",
            classify_error=self._classify_error,
        )

    def _classify_error(self, method: str, error: HttpStatusError, path: str) -> Optional[StorageError]:
        # files/upload in update mode answers path/conflict when the rev is stale;
        # UploadError.path is a struct, so its reason sits beside the .tag
        summary = error.data.get("error_summary") if isinstance(error.data, dict) else None
        if (
            (_error_tag(error.data) == "path" and _error_tag(error.data, "reason") == "conflict")
            or _error_tag(error.data, "path", "reason") == "conflict"
            or (isinstance(summary, str) and summary.startswith("path/conflict"))
        ):
            logger.info(f"Revision conflict in {method}: {path}")
            return RevisionConflictError(path)
        return None

    # ==================== Configuration ====================

    def _key_field(self, value: Optional[str] = None) -> StorageConfigField:
        return StorageConfigField(
            id="key",
            title=Locale.get("dropboxAppKey"),
            desc=Locale.get("dropboxAppKeyDesc"),
            type=ConfigFieldType.TEXT,
            required=True,
            pattern="\\w+",
            value=value,
        )

    def _secret_field(self, value: Optional[str] = None) -> StorageConfigField:
        return StorageConfigField(
            id="secret",
            title=Locale.get("dropboxAppSecret"),
            desc=Locale.get("dropboxAppSecretDesc"),
            type=ConfigFieldType.PASSWORD,
            required=True,
            pattern="\\w+",
            value=value,
        )

    def get_open_config(self) -> StorageOpenConfig:
        folder_field = StorageConfigField(
            id="folder",
            title=Locale.get("dropboxFolder"),
            desc=Locale.get("dropboxFolderDesc"),
            type=ConfigFieldType.TEXT,
            placeholder=Locale.get("dropboxFolderPlaceholder"),
        )
        return StorageOpenConfig(
            desc=Locale.get("dropboxSetupDesc"),
            fields=[self._key_field(), self._secret_field(), folder_field],
        )

    def get_settings_config(self) -> StorageSettingsConfig:
        fields = []
        app_key = self._get_key()
        link_field = StorageConfigField(
            id="link",
            title=Locale.get("dropboxLink"),
            type=ConfigFieldType.SELECT,
            value="custom",
            options={
                "app": Locale.get("dropboxLinkApp"),
                "full": Locale.get("dropboxLinkFull"),
                "custom": Locale.get("dropboxLinkCustom"),
            },
        )
        key_field = self._key_field(app_key)
        secret_field = self._secret_field(self.settings.get("dropbox_secret") or "")
        folder_field = StorageConfigField(
            id="folder",
            title=Locale.get("dropboxFolder"),
            desc=Locale.get("dropboxFolderSettingsDesc"),
            type=ConfigFieldType.TEXT,
            value=self.settings.get("dropbox_folder") or "",
        )

        if self._can_use_built_in_keys():
            fields.append(link_field)
            if app_key == DropboxApps.AppFolder.id:
                link_field.value = "app"
            elif app_key == DropboxApps.FullDropbox.id:
                link_field.value = "full"
                fields.append(folder_field)
            else:
                fields.extend([key_field, secret_field, folder_field])
        else:
            fields.extend([key_field, secret_field, folder_field])

        return StorageSettingsConfig(fields=fields)

    def apply_config(self, config: Dict[str, Optional[str]]) -> None:
        key = config.get("key")
        if DropboxApps.is_built_in(key):
            raise ConfigurationError(
                "Bad key: built-in app keys cannot be used as a custom app",
                context=create_error_context(operation="apply_config", backend=self.name),
            )

        errors = ConfigValidator.validate_fields(self.get_open_config().fields, config)
        if errors:
            raise ConfigurationError(
                "; ".join(errors),
                context=create_error_context(operation="apply_config", backend=self.name),
            )

        folder = config.get("folder")
        self.settings.batch_set({
            "dropbox_app_key": key,
            "dropbox_secret": config.get("secret"),
            "dropbox_folder": sanitize_folder(folder) or None,
        })
        logger.info(f"{self.name}: configuration applied")

    async def apply_setting(self, key: str, value: str) -> None:
        if key == "link":
            if value == "app":
                self.settings.set("dropbox_app_key", DropboxApps.AppFolder.id)
            elif value == "full":
                self.settings.set("dropbox_app_key", DropboxApps.FullDropbox.id)
            elif value == "custom":
                self.settings.set("dropbox_app_key", f"({Locale.get('dropboxAppKeyHint')})")
            else:
                return
            await self.logout_quietly()
        elif key == "key":
            self.settings.set("dropbox_app_key", value)
            await self.logout_quietly()
        elif key == "secret":
            self.settings.set("dropbox_secret", value)
            await self.logout_quietly()
        elif key == "folder":
            self.settings.set("dropbox_folder", sanitize_folder(value) or None)

    # ==================== Operations ====================

    @staticmethod
    def _api_path(path: str) -> str:
        """Dropbox spells the root folder as an empty string."""
        return "" if path == "/" else path

    async def load(self, path: str) -> StorageFileData:
        with self.log_operation("Load", path) as timer:
            full_path = self._api_path(self.paths.to_backend_path(path))
            response = await self.api.call(
                "files/download",
                host="content",
                api_arg={"path": full_path},
                response_type="bytes",
                path=full_path,
            )

            if not isinstance(response.data, bytes):
                raise ProtocolError("Download response is not binary")

            stat_str = response.headers.get("dropbox-api-result")
            if not stat_str:
                raise ProtocolError("No dropbox-api-result header")

            try:
                stat = json.loads(stat_str)
            except ValueError:
                raise ProtocolError("Malformed dropbox-api-result header")
            rev = stat.get("rev") if isinstance(stat, dict) else None
            rev = rev if isinstance(rev, str) else None

            logger.info(f"{self.name}: loaded {full_path}, rev={rev} ({timer.elapsed_ms}ms)")
            return StorageFileData(data=response.data, rev=rev)

    async def stat(self, path: str) -> StorageFileStat:
        with self.log_operation("Stat", path) as timer:
            full_path = self._api_path(self.paths.to_backend_path(path))
            response = await self.api.call(
                "files/get_metadata",
                data={"path": full_path},
                path=full_path,
            )

            rec = response.data if isinstance(response.data, dict) else {}
            tag = rec.get(".tag")
            if not isinstance(tag, str):
                raise ProtocolError(".tag not found in response")

            if tag == "file":
                rev = rec.get("rev")
                stat = StorageFileStat(rev=rev if isinstance(rev, str) else None)
            elif tag == "folder":
                stat = StorageFileStat(folder=True)
            else:
                raise ProtocolError(f"Bad .tag: {tag}")

            logger.info(
                f"{self.name}: stat complete {full_path}, "
                f"{'folder' if stat.folder else stat.rev} ({timer.elapsed_ms}ms)"
            )
            return stat

    async def save(self, path: str, data: bytes, rev: Optional[str] = None) -> StorageSaveResult:
        with self.log_operation("Save", path) as timer:
            full_path = self._api_path(self.paths.to_backend_path(path))
            arg = {
                "path": full_path,
                "mode": {".tag": "update", "update": rev} if rev else {".tag": "overwrite"},
            }
            try:
                response = await self.api.call(
                    "files/upload",
                    host="content",
                    api_arg=arg,
                    data=bytes(data),
                    path=full_path,
                )
            except RevisionConflictError as e:
                raise RevisionConflictError(full_path, expected_rev=rev, context=e.context) from e

            stat = response.data if isinstance(response.data, dict) else {}
            saved_rev = stat.get("rev")
            saved_rev = saved_rev if isinstance(saved_rev, str) else None

            logger.info(f"{self.name}: saved {full_path}, rev={saved_rev} ({timer.elapsed_ms}ms)")
            return StorageSaveResult(rev=saved_rev)

    async def remove(self, path: str) -> None:
        with self.log_operation("Remove", path) as timer:
            full_path = self._api_path(self.paths.to_backend_path(path))
            await self.api.call(
                "files/delete_v2",
                data={"path": full_path},
                path=full_path,
            )
            logger.info(f"{self.name}: removed {full_path} ({timer.elapsed_ms}ms)")

    async def list(self, dir: Optional[str] = None) -> List[StorageListItem]:
        with self.log_operation("List", dir or "") as timer:
            full_path = self._api_path(self.paths.to_backend_path(dir or ""))
            response = await self.api.call(
                "files/list_folder",
                data={"path": full_path, "recursive": False},
                path=full_path,
            )
            page = response.data if isinstance(response.data, dict) else {}
            if not isinstance(page.get("entries"), list):
                raise ProtocolError("Empty response")

            result = self._parse_entries(page["entries"])
            while page.get("has_more") and isinstance(page.get("cursor"), str):
                response = await self.api.call(
                    "files/list_folder/continue",
                    data={"cursor": page["cursor"]},
                    path=full_path,
                )
                page = response.data if isinstance(response.data, dict) else {}
                if not isinstance(page.get("entries"), list):
                    raise ProtocolError("Empty response")
                result.extend(self._parse_entries(page["entries"]))

            logger.info(f"{self.name}: listed {len(result)} entries ({timer.elapsed_ms}ms)")
            return result

    def _parse_entries(self, entries: List[Any]) -> List[StorageListItem]:
        result = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            if not isinstance(entry.get("name"), str):
                continue
            if not isinstance(entry.get("path_display"), str):
                continue
            if entry.get("rev") is not None and not isinstance(entry["rev"], str):
                continue

            result.append(StorageListItem(
                name=entry["name"],
                path=self.paths.to_logical_path(entry["path_display"]),
                rev=entry.get("rev"),
                dir=entry.get(".tag") != "file",
            ))
        return result

    async def mkdir(self, path: str) -> None:
        with self.log_operation("Make dir", path) as timer:
            full_path = self._api_path(self.paths.to_backend_path(path))
            await self.api.call(
                "files/create_folder_v2",
                data={"path": full_path},
                path=full_path,
            )
            logger.info(f"{self.name}: made dir {full_path} ({timer.elapsed_ms}ms)")

    async def logout(self) -> None:
        await self.oauth.revoke(REVOKE_URL, bearer=True)
