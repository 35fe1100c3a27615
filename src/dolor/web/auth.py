"""API key check for the chat routes.

The key is fixed when the app is built. Clients send it as the ``X-API-Key``
header or the ``?api_key=`` query parameter. An empty key leaves the routes open.
"""

from __future__ import annotations

import logging
import secrets
from typing import Awaitable, Callable, Optional

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)


def _extract_api_key(request: Request) -> Optional[str]:
    return request.headers.get("x-api-key") or request.query_params.get("api_key") or None


def make_api_key_dependency(api_key: Optional[str]) -> Callable[[Request], Awaitable[None]]:
    """Build the FastAPI dependency guarding routes with *api_key*."""
    expected = api_key or ""
    if not expected:
        logger.warning("Web API key is not configured; chat routes accept every request. "
                       "Set dolor.web.api_key in config.yaml to require one.")

    async def verify_api_key(request: Request) -> None:
        if not expected:
            return
        provided = _extract_api_key(request)
        if not provided or not secrets.compare_digest(provided, expected):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or missing API key",
            )

    return verify_api_key
