"""Authentication endpoints: register, login, token refresh, password reset."""

import uuid
import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from passlib.hash import bcrypt
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth.jwt import (
    Identity,
    create_access_token,
    create_refresh_token,
    get_current_identity,
    verify_identity_token,
    verify_verification_token,
)
from errors import NotFound, ShareError, Unauthorized
from models import User, get_db
from sharing.access_list import normalize_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

MIN_PASSWORD_LENGTH = 6


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    verification_token: str
    display_name: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    verification_token: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    refresh_token: str


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    display_name: Optional[str] = None


def _tokens_for(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user.id, user.email),
        refresh_token=create_refresh_token(user.id, user.email),
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Create an account for an email that has just passed OTP verification."""
    email = normalize_email(body.email)
    verify_verification_token(body.verification_token, email)

    existing = await db.execute(select(User).where(User.email == email))
    if existing.scalar_one_or_none():
        raise ShareError(status.HTTP_409_CONFLICT, "Email already registered", error_code="CONFLICT")

    user = User(email=email, hashed_password=bcrypt.hash(body.password), display_name=body.display_name)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info(f"Registered user {user.id}")

    return _tokens_for(user)


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Login with email and password."""
    result = await db.execute(select(User).where(User.email == normalize_email(body.email)))
    user = result.scalar_one_or_none()

    if not user or not bcrypt.verify(body.password, user.hashed_password):
        raise Unauthorized("Invalid credentials")

    return _tokens_for(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest):
    """Exchange a refresh token for new access + refresh tokens."""
    identity = verify_identity_token(body.refresh_token, expected_type="refresh")
    return TokenResponse(
        access_token=create_access_token(identity.uid, identity.email),
        refresh_token=create_refresh_token(identity.uid, identity.email),
    )


@router.post("/reset-password")
async def reset_password(body: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    """Set a new password once the email has passed password-reset OTP verification."""
    email = normalize_email(body.email)
    verify_verification_token(body.verification_token, email)

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound("Account not found")

    user.hashed_password = bcrypt.hash(body.password)
    await db.commit()
    logger.info(f"Password reset for user {user.id}")
    return {"success": True, "message": "Password updated successfully"}


@router.get("/me", response_model=UserResponse)
async def get_me(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Get current user info."""
    result = await db.execute(select(User).where(User.id == identity.uid))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound("User not found")
    return UserResponse(id=user.id, email=user.email, display_name=user.display_name)
