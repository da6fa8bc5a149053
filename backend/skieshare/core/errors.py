from fastapi import Request, status
from fastapi.responses import JSONResponse


class SkieShareError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    default_reason = "error"

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.message = message
        self.reason = reason or self.default_reason


class ValidationError(SkieShareError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_reason = "invalid"


class NotAuthorized(SkieShareError):
    status_code = status.HTTP_403_FORBIDDEN
    default_reason = "forbidden"


class NotFound(SkieShareError):
    status_code = status.HTTP_404_NOT_FOUND
    default_reason = "not_found"


class PolicyViolation(SkieShareError):
    """Rejected by a product or team rule; ``reason`` tells the client which one."""

    status_code = status.HTTP_409_CONFLICT
    default_reason = "policy_violation"


class QuotaExceeded(PolicyViolation):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    default_reason = "quota_exceeded"


class ShareCodeExhausted(PolicyViolation):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_reason = "share_code_exhausted"


async def skieshare_error_handler(request: Request, exc: SkieShareError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "reason": exc.reason},
    )
