"""Error types shared by the route handlers and the JSON shape they render to.

Every failure a handler can produce is an ``ApiError`` subclass. The exception
handler registered in ``main.create_app`` turns it into
``{"message": ..., "error": ...}`` with the matching status code.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 500

    def __init__(self, message: str, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error = error

    def to_body(self) -> dict:
        body = {"message": self.message}
        if self.error is not None:
            body["error"] = self.error
        return body


class BadRequest(ApiError):
    status_code = 400


class Unauthenticated(ApiError):
    status_code = 401


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


class Conflict(ApiError):
    status_code = 409


class StoreError(ApiError):
    status_code = 500


class UpstreamError(ApiError):
    status_code = 500


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


def describe_validation_errors(errors) -> str:
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = BadRequest("Invalid request body", error=describe_validation_errors(exc.errors()))
    return await api_error_handler(request, error)


@contextmanager
def store_errors(message: str) -> Iterator[None]:
    """Re-raise any driver failure inside the block as a ``StoreError``.

    The driver's message is echoed to the caller untouched.
    """
    try:
        yield
    except PyMongoError as e:
        logger.exception("%s: %s", message, e)
        raise StoreError(message, error=str(e)) from e
