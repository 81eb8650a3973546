"""
HTTP API route modules.
"""

from typing import Dict, Optional

# Service references (set by app.py)
_backends: Dict = {}
_authorization_prompt = None


def set_services(backends=None, authorization_prompt=None):
    """Set service references for route handlers."""
    global _backends, _authorization_prompt
    _backends = backends or {}
    _authorization_prompt = authorization_prompt


def get_backends() -> Dict:
    """Get storage backends keyed by name."""
    return _backends


def get_backend(name: str) -> Optional[object]:
    """Get a storage backend by name."""
    return _backends.get(name)


def get_authorization_prompt():
    """Get the prompt awaiting OAuth callbacks."""
    return _authorization_prompt


# Import routers
from .storage import router as storage_router
from .oauth import router as oauth_router

__all__ = [
    "storage_router",
    "oauth_router",
    "set_services",
    "get_backends",
    "get_backend",
    "get_authorization_prompt",
]
