"""
Auth boundary.

Identity is owned by an external provider; this module only verifies the
bearer JWT it issued and extracts the opaque user id from the `sub` claim.
Outside production an X-User-Id header is accepted for local tooling and tests.
"""
from fastapi import Header, Request
from typing import Optional
import jwt
import logging

from humanizer.core.config import settings
from humanizer.core.errors import AuthError

logger = logging.getLogger("humanizer")


def verify_jwt(token: str) -> str:
    """
    Verify a bearer JWT and extract user_id.

    Args:
        token: JWT from Authorization header (Bearer {token})

    Returns:
        user_id: the token's 'sub' claim

    Raises:
        AuthError: missing secret, invalid signature, expired token or no subject
    """
    if not settings.JWT_SECRET:
        raise AuthError("Bearer tokens are not accepted: JWT_SECRET is not configured")

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise AuthError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Token has no subject")
    return str(user_id)


def _header_fallback_allowed() -> bool:
    return settings.ALLOW_USER_ID_HEADER and (settings.ENV or "").lower() != "production"


def _ensure_account(user_id: str) -> None:
    # First sight of an account creates it with the default subscription
    from humanizer.features.users.service import get_or_create_user
    get_or_create_user(user_id)


def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Local/test user ID (disabled in production)"),
) -> str:
    """
    Resolve the calling account.

    Priority:
    1. Bearer JWT from Authorization header
    2. X-User-Id header (non-production only)
    3. AuthError (401)
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        user_id = verify_jwt(auth_header[7:])
        _ensure_account(user_id)
        return user_id

    if x_user_id and x_user_id.strip() and _header_fallback_allowed():
        user_id = x_user_id.strip()
        _ensure_account(user_id)
        return user_id

    raise AuthError("Missing Authorization (Bearer JWT) or X-User-Id header")
