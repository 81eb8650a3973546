"""
OAuth redirect route.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException

from . import get_authorization_prompt

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/oauth", tags=["oauth"])


@router.get("/callback")
async def oauth_callback(
    state: str,
    code: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
):
    """
    Handle the provider's OAuth redirect.

    Args:
        state: State token for CSRF protection
        code: Authorization code
        error: Provider error code, when the user denied access
        error_description: Provider error text

    Returns:
        Which backend the redirect completed
    """
    prompt = get_authorization_prompt()
    if prompt is None:
        raise HTTPException(503, "Authorization is not available")

    backend = prompt.complete(state, code=code, error=error, error_description=error_description)
    if backend is None:
        raise HTTPException(400, "Invalid or expired state token")

    if error:
        logger.warning(f"OAuth for {backend} returned error: {error}")
        return {
            "success": False,
            "backend": backend,
            "message": error_description or error,
        }

    return {
        "success": True,
        "backend": backend,
        "message": "Connected successfully. You can close this window.",
    }
