"""
Secure retrieval helpers: referer checks, link freshness, upstream fetch,
and the no-cache response headers.

Every proxied response carries a unique X-PDF-Response-ID/ETag built from the
document id, the link timestamp and the request time, so a cached body can
never be mistaken for the current one.
"""

import logging
import time
from email.utils import formatdate
from urllib.parse import urlencode, urlsplit

import httpx

from config import settings

logger = logging.getLogger(__name__)


class UpstreamFetchError(Exception):
    """Blob store fetch failed. Only the status code is kept."""

    def __init__(self, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(f"Upstream fetch failed (status {status_code})")


def now_ms() -> int:
    return int(time.time() * 1000)


def match_referer(referer: str | None, allowed_origins: list[str]) -> str | None:
    """Return the allowed origin ``referer`` belongs to, or None."""
    if not referer:
        return None
    parts = urlsplit(referer)
    if not parts.scheme or not parts.netloc:
        return None
    origin = f"{parts.scheme}://{parts.netloc}"
    for allowed in allowed_origins:
        if origin == allowed.rstrip("/"):
            return origin
    return None


def is_link_fresh(
    timestamp_ms: int,
    max_age_seconds: int,
    now: int | None = None,
    skew_seconds: int = 0,
) -> bool:
    """True if a link stamped at ``timestamp_ms`` is neither too old nor from the future.

    Timestamps up to ``skew_seconds`` ahead of ``now`` are tolerated for clock drift.
    """
    now = now_ms() if now is None else now
    age = now - timestamp_ms
    return -skew_seconds * 1000 <= age <= max_age_seconds * 1000


async def fetch_pdf(url: str, bearer_token: str, timeout: float | None = None) -> bytes:
    """GET the blob with the caller's bearer credential forwarded.

    Raises:
        UpstreamFetchError: On a non-2xx status or any transport error.
    """
    timeout = settings.http_timeout if timeout is None else timeout
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(url, headers={"Authorization": f"Bearer {bearer_token}"})
    except httpx.HTTPError as exc:
        logger.error(f"PDF fetch transport error: {type(exc).__name__}")
        raise UpstreamFetchError() from exc

    if response.status_code >= 400:
        logger.error(f"PDF fetch failed: {response.status_code}")
        raise UpstreamFetchError(response.status_code)
    return response.content


def response_id(pdf_id: str, timestamp: str | int, request_ms: int | None = None) -> str:
    request_ms = now_ms() if request_ms is None else request_ms
    return f"{pdf_id}-{timestamp}-{request_ms}"


def no_cache_headers(
    pdf_id: str,
    timestamp: str | int,
    origin: str | None,
    download_name: str | None = None,
) -> dict[str, str]:
    rid = response_id(pdf_id, timestamp)
    if download_name:
        disposition = f'attachment; filename="{download_name}"'
    else:
        disposition = "inline"
    headers = {
        "Content-Disposition": disposition,
        "Cache-Control": "no-cache, no-store, must-revalidate, private, max-age=0",
        "Pragma": "no-cache",
        "Expires": "0",
        "Vary": "Authorization, Accept, Accept-Encoding",
        "X-PDF-Response-ID": rid,
        "Last-Modified": formatdate(usegmt=True),
        "ETag": f'"{rid}"',
    }
    if origin:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Vary"] += ", Origin"
    return headers


def build_proxy_url(pdf_url: str, token: str, pdf_id: str, download: bool = False) -> str:
    params = {"url": pdf_url, "token": token, "pdfId": pdf_id, "t": str(now_ms())}
    if download:
        params["download"] = "true"
    return f"{settings.public_base_url}/api/pdf-proxy?{urlencode(params)}"


def safe_filename(name: str) -> str:
    cleaned = "".join(ch for ch in name if ch.isascii() and ch.isprintable() and ch not in '"\\/')
    cleaned = cleaned.strip() or "document.pdf"
    if not cleaned.lower().endswith(".pdf"):
        cleaned += ".pdf"
    return cleaned
