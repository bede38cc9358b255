"""Request throttling for the operations endpoint (slowapi)."""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from glintup.core.logging import get_logger

logger = get_logger(__name__)

OPERATIONS_LIMIT = "30/minute"

limiter = Limiter(key_func=get_remote_address)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Answer throttled callers with a JSON 429 and log the offending route."""
    logger.bind(path=request.url.path, limit=str(exc.detail)).warning("rate_limit_exceeded")
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded: {exc.detail}"},
    )
