"""Password hashing, bearer tokens and request authentication."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Callable

import jwt
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from mentra.config import load_app_config
from mentra.core.access import can_access_student
from mentra.db import users_repository
from mentra.db.users_repository import UserRecord
from mentra.utils.timeutil import utc_now

logger = structlog.get_logger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

bearer_scheme = HTTPBearer(auto_error=False)


class InvalidTokenError(Exception):
    """Raised when a bearer token cannot be decoded or is expired."""

    pass


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(user: UserRecord, expires_delta: timedelta | None = None) -> str:
    """Signed token carrying the user ID and role."""
    auth = load_app_config().auth
    payload = {
        "sub": user.id,
        "role": user.role,
        "exp": utc_now() + (expires_delta or timedelta(minutes=auth.access_token_expire_minutes)),
    }
    return jwt.encode(payload, auth.secret_key, algorithm=auth.algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and verify a token.

    Raises:
        InvalidTokenError: If the signature is wrong, the token expired or lacks a subject
    """
    auth = load_app_config().auth
    try:
        payload = jwt.decode(token, auth.secret_key, algorithms=[auth.algorithm])
    except jwt.PyJWTError as e:
        raise InvalidTokenError(str(e)) from e
    if "sub" not in payload:
        raise InvalidTokenError("Token has no subject")
    return payload


def authenticate_token(token: str | None) -> UserRecord | None:
    """User for a token, or None if the token is missing, invalid or the user is inactive."""
    if not token:
        return None
    try:
        payload = decode_access_token(token)
    except InvalidTokenError as e:
        logger.debug("auth.invalid_token", error=str(e))
        return None
    user = users_repository.get_user_by_id(payload["sub"])
    if user is None or user.status != "active":
        return None
    return user


def authenticate_user(email: str, password: str) -> UserRecord | None:
    """User for valid credentials, recording the login."""
    user = users_repository.get_user_by_email(email)
    if user is None or not verify_password(password, user.password_hash):
        return None
    if user.status != "active":
        return None
    users_repository.record_login(user.id)
    return user


# =============================================================================
# DEPENDENCIES
# =============================================================================


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> UserRecord:
    """Authenticated user from the Authorization header."""
    user = authenticate_token(credentials.credentials if credentials else None)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_role(*roles: str) -> Callable:
    """Dependency restricting a route to the given roles (admins always pass)."""

    async def dependency(user: UserRecord = Depends(get_current_user)) -> UserRecord:
        if user.role not in roles and user.role != "admin":
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(roles)}",
            )
        return user

    return dependency


def resolve_student_id(user: UserRecord, student_id: str | None) -> str:
    """Student a request is about: the given one if accessible, else the caller.

    Raises:
        HTTPException: 400 when a non-student omits student_id, 403 on no access
    """
    if student_id is None:
        if user.role != "student":
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="student_id is required")
        return user.id
    if not can_access_student(user, student_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return student_id
