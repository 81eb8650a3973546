"""
Storage backend API routes.
"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Header, HTTPException, Query, Request, Response
from pydantic import BaseModel, Field

from . import get_backend, get_backends
from ...storage import StorageBackend, StorageOpenConfig, StorageSettingsConfig

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/storage", tags=["storage"])

REV_HEADER = "X-Storage-Rev"


# Request/Response Models

class BackendResponse(BaseModel):
    name: str
    location_name: str
    icon: str
    enabled: bool
    needs_open_config: bool
    backup: bool


class ApplyConfigRequest(BaseModel):
    values: Dict[str, Optional[str]] = Field(default_factory=dict)


class SettingValueRequest(BaseModel):
    value: str


class StatResponse(BaseModel):
    rev: Optional[str] = None
    folder: bool = False


class ListItemResponse(BaseModel):
    name: str
    path: str
    rev: Optional[str] = None
    dir: bool = False


class SaveResponse(BaseModel):
    rev: Optional[str] = None


class SuccessResponse(BaseModel):
    success: bool = True


def _require_backend(name: str) -> StorageBackend:
    backend = get_backend(name)
    if backend is None:
        raise HTTPException(404, f"Unknown storage backend: {name}")
    return backend


@router.get("", response_model=List[BackendResponse])
async def list_backends():
    """List the configured storage backends."""
    return [
        BackendResponse(
            name=backend.name,
            location_name=backend.location_name,
            icon=backend.icon,
            enabled=backend.enabled,
            needs_open_config=backend.needs_open_config,
            backup=backend.backup,
        )
        for backend in get_backends().values()
    ]


@router.get("/{name}/open-config", response_model=StorageOpenConfig)
async def get_open_config(name: str):
    """Fields required before first use."""
    return _require_backend(name).get_open_config()


@router.get("/{name}/settings-config", response_model=StorageSettingsConfig)
async def get_settings_config(name: str):
    """Fields for the backend's settings page, with current values."""
    return _require_backend(name).get_settings_config()


@router.post("/{name}/config", response_model=SuccessResponse)
async def apply_config(name: str, request: ApplyConfigRequest):
    """
    Store open-config values.

    Args:
        name: Backend name
        request: Field values keyed by field id
    """
    _require_backend(name).apply_config(request.values)
    return SuccessResponse()


@router.put("/{name}/settings/{key}", response_model=SuccessResponse)
async def apply_setting(name: str, key: str, request: SettingValueRequest):
    """Change one backend setting."""
    await _require_backend(name).apply_setting(key, request.value)
    return SuccessResponse()


@router.get("/{name}/stat", response_model=StatResponse)
async def stat_file(name: str, path: str = Query(...)):
    """Get metadata for a path."""
    stat = await _require_backend(name).stat(path)
    return StatResponse(**stat.to_dict())


@router.get("/{name}/list", response_model=List[ListItemResponse])
async def list_dir(name: str, dir: Optional[str] = Query(None)):
    """List a directory, non-recursively."""
    items = await _require_backend(name).list(dir)
    return [ListItemResponse(**item.to_dict()) for item in items]


@router.get("/{name}/file")
async def load_file(name: str, path: str = Query(...)):
    """
    Download a file.

    The revision is returned in the X-Storage-Rev header.
    """
    result = await _require_backend(name).load(path)
    headers = {REV_HEADER: result.rev} if result.rev else {}
    return Response(content=result.data, media_type="application/octet-stream", headers=headers)


@router.put("/{name}/file", response_model=SaveResponse)
async def save_file(
    name: str,
    request: Request,
    path: str = Query(...),
    if_match: Optional[str] = Header(None),
):
    """
    Upload a file from the raw request body.

    When If-Match is sent the save only succeeds if the remote revision
    still equals it.
    """
    backend = _require_backend(name)
    data = await request.body()
    rev = if_match.strip('"') if if_match else None
    result = await backend.save(path, data, rev)
    return SaveResponse(rev=result.rev)


@router.delete("/{name}/file", response_model=SuccessResponse)
async def remove_file(name: str, path: str = Query(...)):
    """Delete a file."""
    await _require_backend(name).remove(path)
    return SuccessResponse()


@router.post("/{name}/folder", response_model=SuccessResponse)
async def make_folder(name: str, path: str = Query(...)):
    """Create a folder."""
    await _require_backend(name).mkdir(path)
    return SuccessResponse()


@router.post("/{name}/logout", response_model=SuccessResponse)
async def logout(name: str):
    """Revoke and forget the backend's tokens."""
    await _require_backend(name).logout()
    logger.info(f"Logged out of {name}")
    return SuccessResponse()
