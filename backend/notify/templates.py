"""Email subjects and HTML bodies."""

import html

BRAND = "PDF Culture"

_OTP_COPY = {
    "signup": (
        f"Verify Your {BRAND} Email",
        "To verify your email address, enter this verification code:",
    ),
    "password-reset": (
        f"Reset Your {BRAND} Password",
        "To reset your password, enter this verification code:",
    ),
}


def otp_email(code: str, purpose: str) -> tuple[str, str]:
    """Return (subject, html) for an OTP email."""
    subject, message = _OTP_COPY[purpose]
    body = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2 style="color: #4F46E5;">{BRAND}</h2>
          <p>{message}</p>
          <h1 style="color: #4F46E5; font-size: 32px; letter-spacing: 5px; text-align: center; padding: 20px; background-color: #F3F4F6; border-radius: 8px;">{html.escape(code)}</h1>
          <p>This code will expire in 5 minutes.</p>
          <p>If you didn't request this code, please ignore this email.</p>
        </div>
    """
    return subject, body


def share_notification_email(
    shared_by_email: str, pdf_name: str, pdf_url: str, allow_save: bool
) -> tuple[str, str]:
    """Return (subject, html) telling a recipient a PDF was shared with them."""
    subject = f"{shared_by_email} shared a PDF with you: {pdf_name}"
    save_line = "Download and save PDF ✓" if allow_save else "Download and save PDF ✗"
    body = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2 style="color: #4F46E5;">PDF Sharing</h2>
          <p>{html.escape(shared_by_email)} has shared a PDF document with you:</p>
          <h3 style="color: #1F2937;">{html.escape(pdf_name)}</h3>
          <div style="margin: 20px 0; padding: 20px; background-color: #F3F4F6; border-radius: 8px;">
            <p style="margin: 0;">Access permissions:</p>
            <ul style="margin: 10px 0;">
              <li>View PDF ✓</li>
              <li>{save_line}</li>
            </ul>
          </div>
          <a href="{html.escape(pdf_url, quote=True)}" style="display: inline-block; padding: 12px 24px; background-color: #4F46E5; color: white; text-decoration: none; border-radius: 6px; margin-top: 20px;">
            View PDF
          </a>
          <p style="margin-top: 20px; color: #6B7280; font-size: 14px;">
            This is an automated message. Please do not reply to this email.
          </p>
        </div>
    """
    return subject, body
