import logging

from fastapi import HTTPException

from app.core.errors import BatchValidationError

logger = logging.getLogger(__name__)


def as_http_500(e: Exception) -> HTTPException:
    """Log exception and return a generic 500 HTTPException (no internal details leaked).
    Why available: Centralized error handling so API never leaks stack traces or internal state to clients."""
    logger.error("unhandled_api_error", exc_info=e)
    return HTTPException(status_code=500, detail="Internal server error")


def as_http_400(e: BatchValidationError) -> HTTPException:
    """Turn a rejected batch into a 400 carrying the message and one detail line per offending file.
    Why available: Clients fix and resubmit the whole batch, so they need every problem at once."""
    return HTTPException(status_code=400, detail={"error": e.message, "details": e.details})
