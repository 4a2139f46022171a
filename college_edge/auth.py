"""
X-API-Key authentication for the College Edge API.

Keys are read once at import from API_KEY_USER1..API_KEY_USER5 and mapped to
the labels user1..user5.  ADMIN_USERS (comma separated, default ``user1``)
names the labels allowed to trigger jobs and rebuilds.
"""

import os
from typing import Dict

from dotenv import load_dotenv
from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

load_dotenv()

MAX_API_USERS = 5
DEV_API_KEY = "dev-key-insecure"
DEV_USER = "dev_user"

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)

ADMIN_USERS = frozenset(
    [u.strip() for u in os.getenv("ADMIN_USERS", "user1").split(",") if u.strip()] + [DEV_USER]
)


def load_api_keys() -> Dict[str, str]:
    """``{key: user label}`` for every configured user.

    Outside ``ENVIRONMENT=development`` a deployment without keys refuses
    to start.
    """
    keys = {
        os.getenv(f"API_KEY_USER{i}"): f"user{i}"
        for i in range(1, MAX_API_USERS + 1)
        if os.getenv(f"API_KEY_USER{i}")
    }
    if keys:
        return keys
    if os.getenv("ENVIRONMENT") == "development":
        return {DEV_API_KEY: DEV_USER}
    raise ValueError("No API keys configured! Set API_KEY_USER1 in environment")


VALID_API_KEYS = load_api_keys()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "ApiKey"},
    )


async def verify_api_key(api_key: str = Security(API_KEY_HEADER)) -> str:
    if not api_key:
        raise _unauthorized("API key required. Include 'X-API-Key' header.")
    user = VALID_API_KEYS.get(api_key)
    if user is None:
        raise _unauthorized("Invalid API key")
    return user


async def verify_admin_api_key(user: str = Security(verify_api_key)) -> str:
    """Job triggers, rating rebuilds and alias confirmation."""
    if user not in ADMIN_USERS:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user
