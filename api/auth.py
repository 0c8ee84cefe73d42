"""
API Authentication for Delivery Pulse.

Single shared token (PULSE_API_TOKEN). When unset, authentication is
disabled with a warning (development mode). The calling user is identified
by the X-User-Id header set by the upstream gateway.

Token extraction order:
1. Authorization: Bearer <token> header
2. X-API-Token header

Usage:
    from api.auth import require_auth, current_user_id

    @router.post("/due", dependencies=[Depends(require_auth)])
    async def due(user_id: str | None = Depends(current_user_id)): ...
"""

import logging
import os
import secrets

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _get_token_from_env() -> str | None:
    return os.environ.get("PULSE_API_TOKEN") or None


def _get_token_from_request(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]
    return request.headers.get("X-API-Token") or None


async def require_auth(
    request: Request, credentials: HTTPAuthorizationCredentials | None = Depends(security)
) -> str:
    """
    Dependency that requires a valid token when PULSE_API_TOKEN is set.

    Raises HTTPException 401 on a missing or wrong token.
    """
    expected_token = _get_token_from_env()
    if not expected_token:
        logger.warning("PULSE_API_TOKEN not set - authentication disabled")
        return "auth_disabled"

    provided_token = _get_token_from_request(request)
    if not provided_token:
        logger.warning("Auth failed: no token provided for %s", request.url.path)
        raise HTTPException(
            status_code=401,
            detail="Authentication required. Provide Bearer token in Authorization header.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not secrets.compare_digest(provided_token, expected_token):
        logger.warning("Auth failed: invalid token for %s", request.url.path)
        raise HTTPException(
            status_code=401,
            detail="Invalid authentication token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return provided_token


async def current_user_id(request: Request) -> str | None:
    """Calling user from the X-User-Id header, if any."""
    user_id = (request.headers.get("X-User-Id") or "").strip()
    return user_id or None
