"""OTP endpoints: issue a code by email, verify a submitted code."""

import asyncio
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auth import otp
from auth.jwt import create_verification_token
from errors import BadRequest, NotFound, UpstreamFailure
from models import User, get_db
from notify.mailer import EmailDeliveryError
from sharing.access_list import normalize_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/otp", tags=["otp"])

# Strong references to in-flight reset emails until they finish
pending_sends: set[asyncio.Task] = set()


class IssueRequest(BaseModel):
    email: EmailStr
    type: otp.OTPPurpose = otp.OTPPurpose.SIGNUP


class VerifyRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=1, max_length=16)


class VerifyResponse(BaseModel):
    success: bool = True
    verification_token: str


async def account_exists(db: AsyncSession, email: str) -> bool:
    """Whether an account is registered for ``email``.

    A failed lookup counts as "exists": a reset code may then go to an
    unregistered address, which is preferred over blocking real users.
    """
    try:
        result = await db.execute(select(User.id).where(User.email == email))
    except SQLAlchemyError as exc:
        logger.warning(f"Account lookup failed for password reset, assuming account exists: {exc}")
        return True
    return result.scalar_one_or_none() is not None


async def _background_send_reset(email: str, code: str) -> None:
    """Background: email a password-reset code. Failures are only logged."""
    try:
        await otp.send_otp(email, code, otp.OTPPurpose.PASSWORD_RESET)
    except EmailDeliveryError as exc:
        logger.error(f"Password reset email not delivered: {exc}")


def _dispatch(coro) -> asyncio.Task:
    task = asyncio.create_task(coro)
    pending_sends.add(task)
    task.add_done_callback(pending_sends.discard)
    return task


async def _issue_password_reset(email: str, db: AsyncSession) -> None:
    """Store a code for every address, but send only to registered ones.

    Delivery happens off the request path for both outcomes, so status, body
    and latency do not depend on whether the account exists.
    """
    exists = await account_exists(db, email)
    try:
        code = await otp.store_otp(email)
    except otp.OTPStoreError:
        raise UpstreamFailure("Failed to send OTP")

    if exists:
        _dispatch(_background_send_reset(email, code))
    else:
        logger.info("Password reset requested for unknown account; email suppressed")


@router.post("")
async def issue(body: IssueRequest, db: AsyncSession = Depends(get_db)):
    """Issue a code. Responds identically whether or not a reset target exists."""
    email = normalize_email(body.email)

    if body.type is otp.OTPPurpose.PASSWORD_RESET:
        await _issue_password_reset(email, db)
        return {"success": True}

    try:
        await otp.issue_otp(email, body.type)
    except (otp.OTPStoreError, EmailDeliveryError):
        raise UpstreamFailure("Failed to send OTP")

    return {"success": True}


@router.put("", response_model=VerifyResponse)
async def verify(body: VerifyRequest):
    """Verify a submitted code and return a short-lived verification token."""
    email = normalize_email(body.email)
    try:
        await otp.verify_otp(email, body.otp.strip())
    except otp.NoCodeOrExpiredError as exc:
        raise NotFound(str(exc))
    except otp.InvalidCodeError as exc:
        raise BadRequest(str(exc))
    except otp.OTPStoreError:
        raise UpstreamFailure("Failed to verify OTP")

    return VerifyResponse(verification_token=create_verification_token(email))
