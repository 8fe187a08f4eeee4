"""HTTP error taxonomy shared by all routers.

Every externally visible failure is one of these. Domain modules raise their
own exceptions; routers translate them here so internal detail stays in the
logs.
"""

from typing import Any

from fastapi import HTTPException, status


class ShareError(HTTPException):
    """Base class for mapped API errors."""

    default_detail = "Request failed"

    def __init__(
        self,
        status_code: int,
        detail: str | None = None,
        error_code: str | None = None,
        headers: dict[str, Any] | None = None,
    ):
        super().__init__(status_code=status_code, detail=detail or self.default_detail, headers=headers)
        self.error_code = error_code or f"HTTP_{status_code}"


class BadRequest(ShareError):
    default_detail = "Missing or malformed input"

    def __init__(self, detail: str | None = None):
        super().__init__(status.HTTP_400_BAD_REQUEST, detail, error_code="BAD_REQUEST")


class Unauthorized(ShareError):
    default_detail = "Invalid authentication token"

    def __init__(self, detail: str | None = None):
        super().__init__(
            status.HTTP_401_UNAUTHORIZED,
            detail,
            error_code="UNAUTHORIZED",
            headers={"WWW-Authenticate": "Bearer"},
        )


class Forbidden(ShareError):
    default_detail = "You do not have access to this PDF"

    def __init__(self, detail: str | None = None):
        super().__init__(status.HTTP_403_FORBIDDEN, detail, error_code="FORBIDDEN")


class NotFound(ShareError):
    default_detail = "Not found"

    def __init__(self, detail: str | None = None):
        super().__init__(status.HTTP_404_NOT_FOUND, detail, error_code="NOT_FOUND")


class Expired(ShareError):
    default_detail = "Link or token has expired"

    def __init__(self, detail: str | None = None):
        super().__init__(status.HTTP_410_GONE, detail, error_code="EXPIRED")


class RateLimited(ShareError):
    default_detail = "Rate limit exceeded"

    def __init__(self, detail: str | None = None, retry_after: int | None = None):
        headers = {"Retry-After": str(retry_after)} if retry_after else None
        super().__init__(status.HTTP_429_TOO_MANY_REQUESTS, detail, error_code="RATE_LIMITED", headers=headers)


class UpstreamFailure(ShareError):
    default_detail = "Upstream service failure"

    def __init__(self, detail: str | None = None):
        super().__init__(status.HTTP_500_INTERNAL_SERVER_ERROR, detail, error_code="UPSTREAM_FAILURE")
