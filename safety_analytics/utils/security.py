import logging
import os

from dotenv import load_dotenv
from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

load_dotenv()

logger = logging.getLogger(__name__)

# --- Rate Limiting Setup ---
# Limits SOS submissions per client IP.
DEFAULT_RATE_LIMIT = "100 per 15 minutes"

limiter = Limiter(key_func=get_remote_address)


def sos_rate_limit() -> str:
    """
    Returns the limit applied to SOS submissions.

    slowapi evaluates callable limits on every request, so a RATE_LIMIT coming
    from .env or changed in the environment applies without a re-import.
    """
    return os.getenv("RATE_LIMIT", DEFAULT_RATE_LIMIT)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """
    Handles the exception when a rate limit is exceeded.

    Returns a JSON response with a 429 status code in the same shape as
    every other error the service returns.
    """
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)} on {request.url.path}")
    return JSONResponse(
        status_code=429,
        content={"error": "rate_limited", "message": f"Rate limit exceeded: {exc.detail}"},
    )
