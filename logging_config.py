import logging
import time

from fastapi import Request

from config import get_settings

access_logger = logging.getLogger("donation_match.access")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """Set up root logging once, using LOG_LEVEL from the environment."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)


async def log_requests(request: Request, call_next):
    """Access log line per request: method, path, status and duration."""
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    access_logger.info(
        "%s %s %s %.1fms",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response
