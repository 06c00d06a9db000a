import logging
import time

from fastapi import Request

logger = logging.getLogger("safety_analytics.access")


async def access_log_middleware(request: Request, call_next):
    """
    Logs one line per HTTP request with its status and duration.

    Client and server errors are logged as warnings.
    """
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000

    client = request.client.host if request.client else "-"
    line = f"{client} {request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f}ms"
    if response.status_code >= 400:
        logger.warning(line)
    else:
        logger.info(line)
    return response
