"""
API authentication for the progress endpoints

Backend callers (the mini-app server, admin tooling) present one of the
comma-separated keys in API_KEYS as a bearer token. Keys are re-read on
every request so rotating them needs no restart.
"""
import hashlib
import logging
import os
import secrets
from typing import Optional

from fastapi import HTTPException, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_api_keys() -> list[str]:
    """Load API keys from environment variable"""
    api_keys_str = os.getenv("API_KEYS", "")
    if not api_keys_str:
        logger.warning("No API_KEYS configured in environment")
        return []
    return [key.strip() for key in api_keys_str.split(",") if key.strip()]


def key_fingerprint(api_key: str) -> str:
    """Short stable id for a key, safe to log"""
    return hashlib.sha256(api_key.encode()).hexdigest()[:12]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def verify_api_key(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> str:
    """
    Check the bearer key against API_KEYS

    Returns:
        Fingerprint of the accepted key (the raw key never leaves this module)

    Raises:
        HTTPException: 503 if no keys are configured, 401 if the key is
            missing or unknown
    """
    valid_keys = get_api_keys()
    if not valid_keys:
        logger.error("No API keys configured, progress API is closed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="API authentication not configured"
        )

    if credentials is None:
        raise _unauthorized("Missing API key")

    presented = credentials.credentials.encode()
    if not any(secrets.compare_digest(presented, key.encode()) for key in valid_keys):
        logger.warning(f"Rejected unknown API key {key_fingerprint(credentials.credentials)}")
        raise _unauthorized("Invalid API key")

    return key_fingerprint(credentials.credentials)
