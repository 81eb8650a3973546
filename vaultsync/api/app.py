"""
FastAPI application for the storage API.
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .routes import oauth_router, set_services, storage_router
from ..exceptions import (
    AuthenticationError,
    ConfigurationError,
    NetworkError,
    RevisionConflictError,
    StorageFileNotFoundError,
    VaultSyncException,
)
from ..storage import AuthorizationPrompt, StorageBackend
from ..storage.transport import HttpTransport

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    StorageFileNotFoundError: 404,
    RevisionConflictError: 409,
    AuthenticationError: 401,
    ConfigurationError: 400,
    NetworkError: 503,
}


def error_status_code(exc: VaultSyncException) -> int:
    """HTTP status for an error; API and protocol failures are 502."""
    for error_class, status in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_class):
            return status
    return 502


def create_app(
    backends: Dict[str, StorageBackend],
    authorization_prompt: Optional[AuthorizationPrompt] = None,
    transport: Optional[HttpTransport] = None
) -> FastAPI:
    """
    Create the API application.

    Args:
        backends: Storage backends keyed by name
        authorization_prompt: Prompt completed by the OAuth callback route
        transport: HTTP transport to close on shutdown

    Returns:
        Configured FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Storage API starting with backends: {', '.join(backends)}")
        yield
        if transport is not None:
            await transport.close()
        logger.info("Storage API shutting down")

    set_services(backends=backends, authorization_prompt=authorization_prompt)

    app = FastAPI(
        title="VaultSync Storage API",
        description="Remote storage for password database files",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.include_router(storage_router)
    app.include_router(oauth_router)

    @app.exception_handler(VaultSyncException)
    async def storage_error_handler(request: Request, exc: VaultSyncException):
        """Translate storage errors to HTTP responses."""
        status_code = error_status_code(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(
            status_code=status_code,
            content=exc.to_dict(),
        )

    return app
