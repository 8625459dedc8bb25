"""
Authentication Dependencies

Bearer token checks for admin endpoints and shared-secret checks for cron
endpoints. Admin tokens map to actor ids via ADMIN_API_TOKENS; the cron secret
is separate from admin tokens.
"""
import hmac
import logging
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from capacity_service.config import Settings, get_settings
from capacity_service.errors import AuthenticationError

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


async def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings)
) -> dict:
    """
    Resolve the admin principal for a request.

    Returns:
        User context dictionary with the actor id

    Raises:
        AuthenticationError: Header missing or token unknown
    """
    if credentials is None:
        raise AuthenticationError(
            "Authorization header missing",
            details="Please provide a valid bearer token",
        )

    actor_id = settings.admin_tokens.get(credentials.credentials)
    if actor_id is None:
        logger.warning("Rejected admin request with invalid token")
        raise AuthenticationError("Invalid or expired token")

    return {
        "user_id": actor_id,
        "role": "admin"
    }


async def require_cron_secret(
    request: Request,
    settings: Settings = Depends(get_settings)
) -> None:
    """
    Check the Authorization header against `Bearer $CRON_SECRET`.

    An unset secret rejects every request. Values are compared as UTF-8 bytes
    since headers may carry any latin-1 character.
    """
    header = request.headers.get("Authorization", "").encode("utf-8")
    expected = f"Bearer {settings.cron_secret}".encode("utf-8")
    if not settings.cron_secret or not hmac.compare_digest(header, expected):
        logger.warning(f"Rejected cron request for {request.url.path}")
        raise AuthenticationError("Unauthorized")
