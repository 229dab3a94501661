"""
memeboard.api.deps — FastAPI dependency injection
==================================================

Identity is delegated to an external provider that issues HS256 bearer
tokens; the token's ``sub`` claim is the profile id.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from memeboard.config import MemeboardConfig, load_config
from memeboard.database.engine import create_db_engine
from memeboard.engine.cache import ConfigCache
from memeboard.services.change_feed import ChangeFeed
from memeboard.services.storage_service import BlobStore

_WEAK_SECRETS = frozenset({
    "memeboard-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "It must match the signing secret of the identity provider."
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


# ---------------------------------------------------------------------------
# Process-wide singletons
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> MemeboardConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_cache() -> ConfigCache:
    return ConfigCache(get_engine())


@lru_cache(maxsize=1)
def get_store() -> BlobStore:
    cfg = get_config()
    return BlobStore(Path(cfg.storage_dir), cfg.public_base_url)


@lru_cache(maxsize=1)
def get_feed() -> ChangeFeed:
    return ChangeFeed()


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------
def _decode_bearer(authorization: str | None) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not payload.get("sub"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no subject")
    return payload


def get_current_user_id(
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Validate the bearer token and return the caller's profile id."""
    return str(_decode_bearer(authorization)["sub"])


def get_optional_user_id(
    authorization: Annotated[str | None, Header()] = None,
) -> str | None:
    """Like :func:`get_current_user_id` but anonymous reads are allowed."""
    if not authorization:
        return None
    return str(_decode_bearer(authorization)["sub"])


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return admin user payload. Raises 401/403."""
    payload = _decode_bearer(authorization)
    if not payload.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return payload


CurrentUser = Annotated[str, Depends(get_current_user_id)]
OptionalUser = Annotated[str | None, Depends(get_optional_user_id)]
