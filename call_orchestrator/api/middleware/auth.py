"""
Authentication Middleware
Optional shared API key for the user-facing routes
"""

import hmac
from typing import Optional
from fastapi import Request

from call_orchestrator.core.config import settings
from call_orchestrator.core.exceptions import AuthenticationError
from call_orchestrator.core.logging import get_logger

logger = get_logger(__name__)


async def get_api_key(request: Request) -> Optional[str]:
    """Extract API key from request"""
    api_key = request.headers.get("X-API-Key")
    if api_key:
        return api_key

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]

    return None


async def require_api_key(request: Request) -> None:
    """
    Dependency enforcing SERVICE_API_KEY when one is configured

    Raises:
        AuthenticationError: the key is missing or wrong
    """
    expected = settings.service_api_key
    if not expected:
        return

    api_key = await get_api_key(request)
    if not api_key:
        raise AuthenticationError("API key is required")

    if not hmac.compare_digest(api_key.encode(), expected.encode()):
        logger.warning(f"Rejected API key on {request.url.path}")
        raise AuthenticationError()
