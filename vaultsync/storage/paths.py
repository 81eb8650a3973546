"""
Mapping between logical paths and a backend's absolute path space.
"""

import re
from typing import Callable, Optional

_DUPLICATE_SLASHES = re.compile(r"/{2,}")


def fix_slashes(path: str) -> str:
    """Collapse runs of slashes into one."""
    return _DUPLICATE_SLASHES.sub("/", path)


def normalize_path(path: str) -> str:
    """
    Canonical slash form: leading slash, no duplicate slashes, and no
    trailing slash except for the root itself.
    """
    path = fix_slashes("/" + (path or ""))
    if len(path) > 1:
        path = path.rstrip("/")
    return path


def sanitize_folder(folder: Optional[str]) -> str:
    """Clean up a user-entered root folder value."""
    if not folder:
        return ""
    folder = folder.replace("\\", "/").strip()
    if folder.startswith("/"):
        folder = folder[1:]
    return folder


class PathResolver:
    """
    Rebases logical paths under an optional root folder.

    The root folder is read through a callable so that changes made through
    the settings take effect on the next call. It is expected to be
    sanitized already (see sanitize_folder).
    """

    def __init__(self, root_folder: Callable[[], Optional[str]]):
        self._root_folder = root_folder

    @property
    def root_folder(self) -> str:
        return self._root_folder() or ""

    def to_backend_path(self, path: str) -> str:
        root = self.root_folder
        if root:
            return normalize_path("/" + root + "/" + (path or ""))
        return normalize_path(path)

    def to_logical_path(self, path: str) -> str:
        root = self.root_folder.rstrip("/")
        if not root:
            return normalize_path(path)

        for prefix in (root, "/" + root):
            rest = self._strip_prefix(path, prefix)
            if rest is not None:
                return normalize_path(rest)

        return normalize_path(path)

    @staticmethod
    def _strip_prefix(path: str, prefix: str) -> Optional[str]:
        """Remove prefix when it matches a whole leading path segment."""
        if path.startswith(prefix):
            matched = True
        else:
            # backends may normalize case of returned paths
            matched = path.lower().startswith(prefix.lower())
        if not matched:
            return None
        rest = path[len(prefix):]
        if rest and not rest.startswith("/"):
            return None
        return rest
