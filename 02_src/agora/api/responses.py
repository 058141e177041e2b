"""Error translation and rate-limit headers for the HTTP binding."""

import math
import time

from fastapi import Request
from fastapi.responses import JSONResponse

from ..errors import CommonsError, RateLimited
from ..logging_config import get_logger
from ..models import RateLimitResult
from ..rate_limit import RateLimiter

logger = get_logger(__name__)


def rate_limit_headers(limiter: RateLimiter, result: RateLimitResult) -> dict[str, str]:
    """X-RateLimit-* headers, plus Retry-After on denial."""
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(limiter.reset_at(result)),
    }
    if not result.granted and result.retry_after is not None:
        headers["Retry-After"] = str(result.retry_after)
    return headers


async def commons_error_handler(request: Request, exc: CommonsError) -> JSONResponse:
    """Translate a CommonsError into its JSON body and status code."""
    headers: dict[str, str] = {}
    if isinstance(exc, RateLimited):
        headers = {
            "X-RateLimit-Limit": str(exc.limit),
            "X-RateLimit-Remaining": str(exc.remaining),
            "X-RateLimit-Reset": str(math.floor(time.time() + exc.reset_after)),
            "Retry-After": str(exc.retry_after),
        }
    if exc.status >= 500:
        logger.error(
            "Request failed",
            extra={"context": {"path": request.url.path, "error": exc.code}},
        )
    return JSONResponse(status_code=exc.status, content=exc.to_dict(), headers=headers)
