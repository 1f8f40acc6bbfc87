"""
api/errors.py -- Route every failure through the classifier and the emitter.

register_error_handlers() installs one handler, handle_failure(), for every
exception family the app can raise. FastAPI picks the most specific
registered class by MRO, but they all converge on the same path:

    exception -> classify() -> log -> emit_error(mode)

Route handlers therefore never build error responses: they raise
(AppError subclasses, throw_error(), or whatever a library raises) and this
module decides status, code and disclosure.

Logging policy:
  5xx  -- logged at ERROR with the traceback of the original exception.
  4xx  -- logged at WARNING, one line, no traceback.
  Request bodies and Authorization headers are never logged.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from jose import JWTError
from pydantic import ValidationError
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.responses import emit_error
from core.classifier import classify
from core.config import DeploymentMode
from core.errors import AppError, IdentifierCastError

logger = logging.getLogger("todovault.errors")

_HANDLED = (
    AppError,
    IdentifierCastError,
    RequestValidationError,
    ValidationError,
    StarletteHTTPException,
    SQLAlchemyError,
    JWTError,
    Exception,
)


def _route_miss(request: Request, exc: BaseException) -> BaseException:
    """Give unmatched routes a message that names the path."""
    if isinstance(exc, StarletteHTTPException) and exc.status_code == 404 and exc.detail == "Not Found":
        return AppError(f"Can't find {request.url.path} on this server!", 404)
    return exc


def handle_failure(request: Request, exc: Exception) -> JSONResponse:
    """Classify exc, log it, and serialize it for the app's deployment mode.

    Synchronous on purpose: slowapi's middleware calls the handler registered
    for RateLimitExceeded without awaiting it.
    """
    exc = _route_miss(request, exc)
    error = classify(exc)
    mode: DeploymentMode = request.app.state.mode

    if error.status_code >= 500:
        logger.error(
            "SERVER ERROR %d %s %s code=%s",
            error.status_code,
            request.method,
            request.url.path,
            error.error_code,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
    else:
        logger.warning(
            "CLIENT ERROR %d %s %s code=%s message=%s",
            error.status_code,
            request.method,
            request.url.path,
            error.error_code,
            error.public_message,
        )

    response = emit_error(error, mode)
    if isinstance(exc, RateLimitExceeded):
        # slowapi has no public retry-after on the exception; the window is in the limit string.
        response.headers["Retry-After"] = str(_retry_after_seconds(exc))
    return response


def _retry_after_seconds(exc: RateLimitExceeded) -> int:
    limit = getattr(exc, "limit", None)
    item = getattr(limit, "limit", None)
    if item is not None and hasattr(item, "get_expiry"):
        return int(item.get_expiry())
    return 60


def register_error_handlers(app: FastAPI) -> None:
    """Install handle_failure for every exception family TodoVault classifies."""
    for exc_class in _HANDLED:
        app.add_exception_handler(exc_class, handle_failure)
    # slowapi's middleware looks the handler up by the exact exception type.
    app.add_exception_handler(RateLimitExceeded, handle_failure)
