"""
SMTP email delivery.

One SMTP connection is kept per process and reused across requests; it is
re-opened when the server drops it. send_email() retries failed deliveries
with exponential backoff (1s, 2s, ...) and raises EmailDeliveryError once
the retries are exhausted.
"""

import asyncio
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import aiosmtplib

from config import settings

logger = logging.getLogger(__name__)

EMAIL_RETRIES = 2
BACKOFF_BASE_SECONDS = 1.0


class EmailDeliveryError(Exception):
    """Raised when an email could not be sent after all retries."""

    def __init__(self, to: str, attempts: int):
        self.to = to
        self.attempts = attempts
        super().__init__(f"Email to {to} failed after {attempts} attempts")


class Mailer:
    """Holds a persistent SMTP connection."""

    def __init__(
        self,
        hostname: str,
        port: int,
        username: str = "",
        password: str = "",
        sender: str = "",
        timeout: float = 30.0,
    ):
        self.hostname = hostname
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.timeout = timeout
        self._smtp: aiosmtplib.SMTP | None = None
        self._lock = asyncio.Lock()

    async def _connection(self) -> aiosmtplib.SMTP:
        """Return the open connection, connecting first if needed. Called while holding _lock."""
        if self._smtp is None or not self._smtp.is_connected:
            smtp = aiosmtplib.SMTP(
                hostname=self.hostname,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                use_tls=self.port == 465,
                timeout=self.timeout,
            )
            await smtp.connect()
            logger.info(f"SMTP connection opened to {self.hostname}:{self.port}")
            self._smtp = smtp
        return self._smtp

    def build_message(self, to: str, subject: str, html_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(html_body, "html"))
        return msg

    async def deliver(self, to: str, subject: str, html_body: str) -> None:
        message = self.build_message(to, subject, html_body)
        async with self._lock:
            smtp = await self._connection()
            try:
                await smtp.send_message(message)
            except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError):
                # Force a fresh connection on the next attempt
                self._smtp = None
                smtp.close()
                raise

    async def close(self) -> None:
        async with self._lock:
            if self._smtp is not None and self._smtp.is_connected:
                try:
                    await self._smtp.quit()
                except aiosmtplib.SMTPException as exc:
                    logger.warning(f"SMTP quit failed: {exc}")
            self._smtp = None


_mailer: Mailer | None = None


def _get_mailer() -> Mailer:
    global _mailer
    if _mailer is None:
        password = settings.smtp_password if settings.smtp_username else ""
        _mailer = Mailer(
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=password,
            sender=settings.email_from,
            timeout=settings.smtp_timeout,
        )
    return _mailer


async def send_email(to: str, subject: str, html: str, retries: int = EMAIL_RETRIES) -> None:
    """Send an HTML email, retrying up to ``retries`` extra times.

    Raises:
        EmailDeliveryError: If every attempt failed.
    """
    mailer = _get_mailer()
    for attempt in range(retries + 1):
        try:
            await mailer.deliver(to, subject, html)
            logger.info(f"Email sent to {to} (attempt {attempt + 1})")
            return
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
            logger.error(f"Email send attempt {attempt + 1} to {to} failed: {exc}")
            if attempt == retries:
                raise EmailDeliveryError(to, attempt + 1) from exc
            await asyncio.sleep(BACKOFF_BASE_SECONDS * (2 ** attempt))


async def close_mailer() -> None:
    if _mailer is not None:
        await _mailer.close()
