"""
Exception handlers mapping pg-porter errors onto JSON responses.
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pg_porter.errors import ChecksumMismatch, PgPorterError, StallDetected

logger = logging.getLogger(__name__)


async def porter_error_handler(request: Request, exc: PgPorterError):
    """Known errors: status from the exception class, ``{"error": message}``."""
    content = {"error": str(exc)}
    if isinstance(exc, ChecksumMismatch):
        content["expected"] = exc.expected
        content["received"] = exc.received
    elif isinstance(exc, StallDetected):
        content["session_id"] = exc.session_id
        content["state"] = "stalled_error"
    return JSONResponse(status_code=exc.status_code, content=content)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed query parameters are a 400, like any other validation error."""
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "query")
    return JSONResponse(
        status_code=400,
        content={"error": f"Invalid parameter {location}: {first.get('msg', 'invalid')}"},
    )


async def internal_error_handler(request: Request, exc: Exception):
    """Handle 500 errors"""
    logger.exception("Unhandled error on %s", request.url.path)
    error = "process_chunk failed" if request.url.path.startswith("/import") else "export failed"
    return JSONResponse(status_code=500, content={"error": error, "detail": str(exc)})
