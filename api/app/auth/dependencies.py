"""Authentication dependencies for FastAPI endpoints."""

import hmac
from datetime import datetime, timezone

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.api_key import API_KEY_PREFIX, hash_api_key
from app.database import get_db
from app.models.user import APIKey, User
from app.timeutils import as_utc

# Minimum interval between last_used_at updates to reduce write amplification
LAST_USED_UPDATE_INTERVAL_SECONDS = 300  # 5 minutes


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": {"code": "UNAUTHORIZED", "message": message}},
    )


async def get_current_user(
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    db: AsyncSession = Depends(get_db),
) -> tuple[User, APIKey]:
    """
    Validate API key and return the authenticated user and API key.

    Raises:
        HTTPException: 401 if API key is missing, invalid, expired or revoked
    """
    if not x_api_key:
        raise _unauthorized("API key required")

    if not x_api_key.startswith(API_KEY_PREFIX):
        raise _unauthorized("Invalid API key format")

    key_hash = hash_api_key(x_api_key)

    result = await db.execute(
        select(APIKey)
        .options(selectinload(APIKey.user).selectinload(User.roles))
        .where(APIKey.key_hash == key_hash)
        .where(APIKey.revoked_at.is_(None))
    )
    api_key = result.scalar_one_or_none()

    if not api_key:
        # Keep response time independent of whether the key exists
        hmac.compare_digest(key_hash, "0" * 64)
        raise _unauthorized("Invalid or revoked API key")

    now = datetime.now(timezone.utc)
    if api_key.expires_at is not None and as_utc(api_key.expires_at) < now:
        raise _unauthorized("API key has expired")

    # Sampled update; committed with the request's session
    if api_key.last_used_at is None or (
        now - as_utc(api_key.last_used_at)
    ).total_seconds() > LAST_USED_UPDATE_INTERVAL_SECONDS:
        api_key.last_used_at = now
        api_key.user.last_seen_at = now

    return api_key.user, api_key


async def require_admin(
    auth: tuple[User, APIKey] = Depends(get_current_user),
) -> tuple[User, APIKey]:
    """
    Require the authenticated user to have admin role.

    Raises:
        HTTPException: 403 if user doesn't have admin role
    """
    user, api_key = auth
    user_roles = {role.role for role in user.roles}

    if "admin" not in user_roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": {
                    "code": "FORBIDDEN",
                    "message": "Admin access required",
                }
            },
        )

    return user, api_key
