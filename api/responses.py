"""
api/responses.py -- Uniform serialization of success and error outcomes.

Every response body the API produces goes through one of two functions:

  emit_success()  {"status": "success", ["results": n,] ..., "data": {...}}
  emit_error()    {"status": "fail"|"error", "message": ..., "code": ..., ["debug": {...}]}

What emit_error() discloses depends on the deployment mode:

  development                   message, code, and a debug block with the
                                cause's type, text and traceback.
  production, operational       message and code.
  production, non-operational   a generic message and "InternalError". The
                                cause is never serialized; api/errors.py has
                                already logged it.
"""

from __future__ import annotations

import traceback
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from api.models import ErrorDebug, ErrorResponse
from core.classifier import GENERIC_MESSAGE
from core.config import DeploymentMode
from core.errors import CanonicalError


def emit_success(
    data: Optional[dict[str, Any]] = None,
    status_code: int = 200,
    *,
    results: Optional[int] = None,
    **extra: Any,
) -> JSONResponse:
    """Wrap data in the success envelope.

    results is set by listing endpoints. extra puts additional top-level keys
    next to data -- login and signup use it for "token".
    """
    body: dict[str, Any] = {"status": "success"}
    if results is not None:
        body["results"] = results
    body.update(extra)
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def _debug_block(error: CanonicalError) -> ErrorDebug:
    cause = error.cause
    if cause is None:
        return ErrorDebug(type="", detail="", is_operational=error.is_operational)
    stack = traceback.format_exception(type(cause), cause, cause.__traceback__)
    return ErrorDebug(
        type=type(cause).__name__,
        detail=str(cause),
        is_operational=error.is_operational,
        stack=[line.rstrip("\n") for line in stack],
    )


def emit_error(error: CanonicalError, mode: DeploymentMode) -> JSONResponse:
    """Serialize a CanonicalError for mode."""
    if mode is DeploymentMode.development:
        payload = ErrorResponse(
            status=error.status,
            message=error.public_message,
            code=error.error_code,
            debug=_debug_block(error),
        )
    elif error.is_operational:
        payload = ErrorResponse(status=error.status, message=error.public_message, code=error.error_code)
    else:
        payload = ErrorResponse(status="error", message=GENERIC_MESSAGE, code="InternalError")

    status_code = error.status_code if (error.is_operational or mode is DeploymentMode.development) else 500
    return JSONResponse(status_code=status_code, content=payload.model_dump(exclude_none=True))
