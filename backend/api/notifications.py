"""Share notification emails."""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from auth.jwt import Identity, get_current_identity
from config import settings
from errors import Forbidden, NotFound, RateLimited, UpstreamFailure
from models import get_db
from notify.mailer import EmailDeliveryError, send_email
from notify.templates import share_notification_email
from sharing import rate_limit
from sharing.access import AccessTier, Caller, evaluate_access
from sharing.access_list import normalize_email
from sharing.documents import load_document

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["notifications"])


class ShareNotificationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recipient_email: EmailStr = Field(..., alias="recipientEmail")
    pdf_id: str = Field(..., min_length=1, alias="pdfId")


def shared_link(pdf_id: str) -> str:
    return f"{settings.public_base_url}/shared/{pdf_id}"


@router.post("/share-notification")
async def share_notification(
    body: ShareNotificationRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Email a recipient that the caller shared one of their PDFs with them.

    Name, link and save permission come from the stored document, so the
    endpoint can only announce real shares made by the caller.
    """
    if not await rate_limit.notify_limiter.allow(str(identity.uid)):
        raise RateLimited("Too many share notifications", retry_after=settings.rate_limit_window_seconds)

    document = await load_document(db, body.pdf_id)
    owner = evaluate_access(document, Caller.from_identity(identity))
    if owner.tier is AccessTier.NOT_FOUND:
        raise NotFound("PDF not found")
    if not owner.is_owner:
        raise Forbidden("Only the owner can send share notifications")

    recipient = normalize_email(body.recipient_email)
    decision = evaluate_access(document, Caller(authenticated=True, email=recipient))
    if not decision.can_view:
        raise Forbidden("Recipient does not have access to this PDF")

    subject, html = share_notification_email(
        shared_by_email=identity.email,
        pdf_name=document.name,
        pdf_url=shared_link(document.id),
        allow_save=decision.can_save,
    )
    try:
        await send_email(to=recipient, subject=subject, html=html)
    except EmailDeliveryError:
        raise UpstreamFailure("Failed to send share notification")
    logger.info("Share notification for %s sent by %s", document.id, identity.uid)
    return {"success": True}
