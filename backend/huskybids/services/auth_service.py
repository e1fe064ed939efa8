import logging
from typing import Optional

import jwt
from fastapi import Depends, Request
from jwt.exceptions import InvalidTokenError as JWTError

from huskybids.config import settings
from huskybids.errors import AuthenticationError, PermissionDeniedError

logger = logging.getLogger("huskybids.auth")

SESSION_COOKIE = "__session"


def decode_jwt(token: str) -> dict:
    """Decode a JWT, trying the current secret first, then the old one.

    Rotation: set JWT_SECRET to the new value and JWT_SECRET_OLD to the
    previous one; remove JWT_SECRET_OLD once tokens signed with it expired.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        if settings.JWT_SECRET_OLD:
            return jwt.decode(token, settings.JWT_SECRET_OLD, algorithms=[settings.JWT_ALGORITHM])
        raise


def _extract_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token:
        return token.strip()
    return request.cookies.get(SESSION_COOKIE)


async def get_current_user_id(request: Request) -> str:
    """FastAPI dependency: the verified identity-provider user id (JWT "sub")."""
    token = _extract_token(request)
    if not token:
        raise AuthenticationError("Not authenticated")

    try:
        payload = decode_jwt(token)
    except JWTError:
        raise AuthenticationError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token")
    return str(user_id)


async def require_admin(user_id: str = Depends(get_current_user_id)) -> str:
    """FastAPI dependency: requires a user listed in ADMIN_USER_IDS."""
    if user_id not in settings.admin_user_ids:
        logger.warning("Admin action denied for user %s", user_id)
        raise PermissionDeniedError("Admin access required.")
    return user_id
