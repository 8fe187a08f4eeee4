"""Secure PDF retrieval: the byte-streaming proxy and download-link issuance."""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from auth.jwt import Identity, ensure_recent, verify_identity_token
from config import settings
from errors import BadRequest, Expired, Forbidden, NotFound, RateLimited, Unauthorized, UpstreamFailure
from models import get_db
from sharing import rate_limit
from sharing.access import AccessTier, Caller, evaluate_access
from sharing.documents import load_document
from sharing.proxy import (
    UpstreamFetchError,
    build_proxy_url,
    fetch_pdf,
    is_link_fresh,
    match_referer,
    no_cache_headers,
    now_ms,
    safe_filename,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["proxy"])


class SecureDownloadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pdf_id: str | None = Field(None, alias="pdfId")
    auth_token: str | None = Field(None, alias="authToken")


def _check_referer(request: Request) -> str | None:
    """Return the validated origin; in production an unknown referer is rejected."""
    origin = match_referer(request.headers.get("referer"), settings.allowed_origins)
    if origin is None and settings.is_production:
        logger.warning("Rejected request with invalid referer: %s", request.headers.get("referer"))
        raise Forbidden("Invalid referer")
    return origin


def _authenticate(token: str) -> Identity:
    identity = verify_identity_token(token)
    ensure_recent(identity, settings.token_max_age_seconds)
    return identity


@router.get("/pdf-proxy")
async def pdf_proxy(
    request: Request,
    url: str | None = Query(None),
    token: str | None = Query(None),
    pdf_id: str | None = Query(None, alias="pdfId"),
    t: str | None = Query(None),
    download: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """Stream a PDF the caller may view, with caching disabled."""
    if not pdf_id:
        raise BadRequest("PDF id is required")
    if not token:
        raise Unauthorized("Authentication token is required")
    if not t:
        raise BadRequest("Timestamp is required")
    try:
        timestamp = int(t)
    except ValueError:
        raise BadRequest("Invalid timestamp")

    origin = _check_referer(request)
    identity = _authenticate(token)

    if not is_link_fresh(
        timestamp,
        settings.proxy_link_max_age_seconds,
        skew_seconds=settings.proxy_clock_skew_seconds,
    ):
        raise Expired("PDF link has expired")

    if not await rate_limit.view_limiter.allow(str(identity.uid)):
        raise RateLimited("Too many requests", retry_after=settings.rate_limit_window_seconds)

    document = await load_document(db, pdf_id)
    decision = evaluate_access(document, Caller.from_identity(identity))
    if decision.tier is AccessTier.NOT_FOUND:
        raise NotFound("PDF not found")
    if not decision.can_view:
        logger.info("Proxy access denied: user=%s pdf=%s", identity.uid, pdf_id)
        raise Forbidden()
    if download and not decision.can_save:
        raise Forbidden("Download not authorized")
    if url and url != document.url:
        logger.warning("Proxy URL mismatch for pdf=%s user=%s", pdf_id, identity.uid)
        raise Forbidden("URL does not match document")

    try:
        content = await fetch_pdf(document.url, token)
    except UpstreamFetchError as exc:
        detail = "Failed to fetch PDF"
        if exc.status_code:
            detail = f"{detail} (upstream status {exc.status_code})"
        raise UpstreamFailure(detail)

    logger.info("PDF proxied: pdf=%s size=%d user=%s", pdf_id, len(content), identity.uid)
    headers = no_cache_headers(
        pdf_id,
        t,
        origin,
        download_name=safe_filename(document.name) if download else None,
    )
    return Response(content=content, media_type="application/pdf", headers=headers)


@router.post("/secure-download")
async def secure_download(
    body: SecureDownloadRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Issue a time-boxed proxy URL for a caller allowed to save the PDF."""
    if not body.pdf_id or not body.auth_token:
        raise BadRequest("Missing required parameters")

    _check_referer(request)
    identity = verify_identity_token(body.auth_token)

    if not await rate_limit.download_limiter.allow(str(identity.uid)):
        raise RateLimited("Download rate limit exceeded", retry_after=settings.rate_limit_window_seconds)

    document = await load_document(db, body.pdf_id)
    decision = evaluate_access(document, Caller.from_identity(identity))
    if decision.tier is AccessTier.NOT_FOUND:
        raise NotFound("PDF not found")
    if not decision.can_save:
        raise Forbidden("Download not authorized")

    logger.info(
        "Secure download issued: user=%s pdf=%s owner=%s",
        identity.uid,
        document.id,
        decision.is_owner,
    )
    return {
        "success": True,
        "downloadUrl": build_proxy_url(document.url, body.auth_token, document.id, download=True),
        "fileName": safe_filename(document.name),
        "downloadToken": f"{document.id}-{identity.uid}-{now_ms()}",
    }
