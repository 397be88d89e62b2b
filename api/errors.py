"""
Structured HTTP errors and their envelope responses.
"""

import logging

from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse

from orchestrate.presenter import envelope


logger = logging.getLogger(__name__)


class HttpError(Exception):
    """Error carrying the status code the client should see."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


async def http_error_handler(request: Request, exc: HttpError) -> JSONResponse:
    logger.info("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(envelope(None, exc.message, error=True), status_code=exc.status_code)


async def starlette_http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        envelope(None, str(exc.detail), error=True),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(envelope(None, "Internal server error", error=True), status_code=500)
