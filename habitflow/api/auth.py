"""API authentication using API keys, acting user from X-User-Id"""
import os
import logging
from typing import Optional
from fastapi import Header, HTTPException, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from habitflow.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_api_keys() -> list[str]:
    """Load API keys from environment variable"""
    api_keys_str = os.getenv("API_KEYS", "")
    if not api_keys_str:
        logger.warning("No API_KEYS configured in environment")
        return []
    return [key.strip() for key in api_keys_str.split(",") if key.strip()]


async def verify_api_key(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> str:
    """
    Verify API key from Authorization header

    Args:
        credentials: HTTP authorization credentials

    Returns:
        The verified API key

    Raises:
        HTTPException: If no API keys are configured
        AuthenticationError: If the key is missing or invalid
    """
    valid_keys = get_api_keys()

    if not valid_keys:
        logger.error("No API keys configured - rejecting all requests")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="API authentication not configured"
        )

    if credentials is None:
        raise AuthenticationError("Missing bearer token")

    api_key = credentials.credentials
    if api_key not in valid_keys:
        raise AuthenticationError(f"Invalid API key attempt: {api_key[:10]}...")

    logger.debug(f"API key validated: {api_key[:10]}...")
    return api_key


async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None)
) -> str:
    """Acting user, taken from the X-User-Id header"""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise AuthenticationError("Missing X-User-Id header")
    return user_id
