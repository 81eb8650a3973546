"""
HTTP API for vaultsync.
"""

from .app import create_app, error_status_code

__all__ = ["create_app", "error_status_code"]
