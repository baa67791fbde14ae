"""Authentication endpoints."""

import sqlite3

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from mentra.db import users_repository
from mentra.db.users_repository import UserRecord
from mentra.web.auth import authenticate_user, create_access_token, get_current_user, hash_password
from mentra.web.schemas import LoginRequest, RegisterRequest, TokenResponse, UserResponse

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _token_response(user: UserRecord) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user),
        user=UserResponse.model_validate(user),
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest) -> TokenResponse:
    """Create an account and return a token for it."""
    try:
        user = users_repository.create_user(
            email=request.email,
            password_hash=hash_password(request.password),
            role=request.role,
            first_name=request.first_name,
            last_name=request.last_name,
            grade_level=request.grade_level,
        )
    except sqlite3.IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest) -> TokenResponse:
    """Exchange credentials for a bearer token."""
    user = authenticate_user(request.email, request.password)
    if user is None:
        logger.info("auth.login_failed", email=request.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    return _token_response(user)


@router.get("/me", response_model=UserResponse)
async def me(user: UserRecord = Depends(get_current_user)) -> UserResponse:
    """The authenticated user."""
    return UserResponse.model_validate(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(user: UserRecord = Depends(get_current_user)) -> TokenResponse:
    """Issue a fresh token for a still-valid one."""
    return _token_response(user)
