"""API key authentication and rate limiting for the ledger API."""

import os
import secrets
import logging
from typing import Optional

from fastapi import HTTPException, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

DEFAULT_PORTAL_RATE_LIMIT = "10/minute"

security = HTTPBearer(auto_error=False)

# Rate limiter, keyed by client address
limiter = Limiter(key_func=get_remote_address)


def portal_rate_limit() -> str:
    """Limit applied to self-service payment reports, from LEDGER_PORTAL_RATE_LIMIT."""
    return os.getenv("LEDGER_PORTAL_RATE_LIMIT") or DEFAULT_PORTAL_RATE_LIMIT


async def verify_api_key(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> str:
    """Verify the bearer API key against the API_KEY environment variable.

    Args:
        credentials: HTTP Bearer credentials from the request, if any.

    Returns:
        The verified API key.

    Raises:
        HTTPException: 500 if API_KEY is not configured, 401 if the key is
            missing or wrong.
    """
    expected_key = os.getenv("API_KEY")
    if not expected_key:
        logger.error("API_KEY environment variable is not configured")
        raise HTTPException(status_code=500, detail="Server configuration error")
    if credentials is None:
        raise HTTPException(
            status_code=401,
            detail="Missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not secrets.compare_digest(credentials.credentials, expected_key):
        logger.warning("Rejected request with an invalid API key")
        raise HTTPException(status_code=401, detail="Invalid API key")
    return credentials.credentials
