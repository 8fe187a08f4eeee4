"""Redis-backed one-time passcodes for email verification.

Codes are 6-digit numbers stored under ``otp:<email>`` with a 5-minute TTL.
Redis expiry is the only expiry mechanism. Issuing again for the same email
overwrites the previous code, so the latest code wins. A code is deleted on
successful verification (single use) and kept on a mismatch so the user can
retry within the TTL.
"""

import enum
import logging
import secrets

import redis.asyncio as redis
from redis.exceptions import RedisError

from config import settings
from notify.mailer import send_email
from notify.templates import otp_email

logger = logging.getLogger(__name__)

OTP_TTL_SECONDS = 300  # 5 minutes
OTP_PREFIX = "otp:"

_redis_pool: redis.Redis | None = None


class OTPPurpose(str, enum.Enum):
    SIGNUP = "signup"
    PASSWORD_RESET = "password-reset"


class OTPError(Exception):
    """Base class for OTP failures."""


class NoCodeOrExpiredError(OTPError):
    def __init__(self):
        super().__init__("No OTP found for this email or OTP has expired")


class InvalidCodeError(OTPError):
    def __init__(self):
        super().__init__("Invalid OTP")


class OTPStoreError(OTPError):
    """The code could not be written to, or confirmed in, the store."""


def _get_redis() -> redis.Redis:
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.redis_timeout,
            socket_connect_timeout=settings.redis_timeout,
        )
    return _redis_pool


def otp_key(email: str) -> str:
    return f"{OTP_PREFIX}{email}"


def generate_code() -> str:
    """Uniformly random code in [100000, 999999]."""
    return str(100000 + secrets.randbelow(900000))


async def store_otp(email: str) -> str:
    """Write a fresh code for ``email``, overwriting any previous one.

    Raises:
        OTPStoreError: If the code could not be stored or read back.
    """
    r = _get_redis()
    code = generate_code()
    key = otp_key(email)

    try:
        await r.set(key, code, ex=OTP_TTL_SECONDS)
        stored = await r.get(key)
    except RedisError as exc:
        logger.error(f"OTP store write failed for {email}: {exc}")
        raise OTPStoreError("Failed to store OTP") from exc

    if stored != code:
        logger.error(f"OTP write for {email} could not be confirmed")
        raise OTPStoreError("Failed to confirm stored OTP")
    return code


async def send_otp(email: str, code: str, purpose: OTPPurpose) -> None:
    """Email ``code`` with the wording for ``purpose``.

    Raises:
        EmailDeliveryError: If the email could not be sent after retries.
    """
    subject, html = otp_email(code, purpose.value)
    await send_email(to=email, subject=subject, html=html)
    logger.info(f"Sent {purpose.value} OTP to {email}")


async def issue_otp(email: str, purpose: OTPPurpose, send: bool = True) -> None:
    """Store a fresh code for ``email`` and email it.

    Args:
        email: Normalized recipient address.
        purpose: Selects the email wording.
        send: When False the code is stored but no email goes out.

    Raises:
        OTPStoreError: If the code could not be stored or read back.
        EmailDeliveryError: If the email could not be sent after retries.
    """
    code = await store_otp(email)
    if not send:
        logger.info(f"Issued {purpose.value} OTP for {email} without sending")
        return
    await send_otp(email, code, purpose)


async def verify_otp(email: str, code: str) -> None:
    """Check ``code`` against the stored one and consume it on success.

    Raises:
        NoCodeOrExpiredError: Nothing stored (never issued, used, or expired).
        InvalidCodeError: A code is stored but differs; it stays valid.
        OTPStoreError: The store could not be reached.
    """
    r = _get_redis()
    key = otp_key(email)
    try:
        stored = await r.get(key)
        if stored is None:
            raise NoCodeOrExpiredError()
        if not code.isascii() or not secrets.compare_digest(stored, code):
            logger.info(f"OTP mismatch for {email}")
            raise InvalidCodeError()
        # Only the submission whose DEL removed the key succeeds
        if await r.delete(key) != 1:
            logger.info(f"OTP for {email} was consumed concurrently")
            raise NoCodeOrExpiredError()
    except RedisError as exc:
        logger.error(f"OTP store read failed for {email}: {exc}")
        raise OTPStoreError("Failed to verify OTP") from exc

    logger.info(f"OTP verified for {email}")
