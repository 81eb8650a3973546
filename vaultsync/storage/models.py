"""
Value types passed across the storage backend boundary.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class StorageFileStat:
    """Point-in-time metadata for a path."""
    rev: Optional[str] = None
    folder: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.rev is not None:
            data["rev"] = self.rev
        if self.folder:
            data["folder"] = True
        return data


@dataclass(frozen=True)
class StorageFileData:
    """File content as loaded from a backend."""
    data: bytes
    rev: Optional[str] = None


@dataclass
class StorageSaveResult:
    """Revision produced by a successful save."""
    rev: Optional[str] = None


@dataclass
class StorageListItem:
    """One entry of a directory listing."""
    name: str
    path: str
    rev: Optional[str] = None
    dir: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "rev": self.rev,
            "dir": self.dir,
        }
