"""
core/classifier.py -- Map any raised exception to exactly one CanonicalError.

classify() is total: it never raises and every input produces one
CanonicalError. Rules run in a fixed order and the first match wins:

  1. explicit application errors (AppError, Starlette HTTPException)
  2. storage cast errors          -> InvalidIdentifier  (400)
  3. storage uniqueness conflicts -> DuplicateValue     (400)
  4. schema validation failures   -> ValidationFailed   (400)
  5. invalid credentials          -> InvalidCredential  (401)
  6. expired credentials          -> CredentialExpired  (401)
  7. anything else                -> InternalError      (500, non-operational)

Rules 5 and 6 are disjoint: jose's ExpiredSignatureError subclasses JWTError,
so rule 5 excludes it explicitly instead of relying on ordering.

Storage timeouts and connection failures (sqlalchemy OperationalError) match
nothing and fall through to rule 7.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from typing import Any, Optional

from fastapi.exceptions import RequestValidationError
from jose.exceptions import ExpiredSignatureError, JWTError
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.errors import (
    AppError,
    CanonicalError,
    ConflictFailure,
    CredentialExpired,
    FailureKind,
    IdentifierCastError,
    InvalidCredential,
    code_for_status,
    kind_for_status,
)

GENERIC_MESSAGE = "Something went wrong!"
RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."

# "UNIQUE constraint failed: users.email" (SQLite) /
# 'duplicate key value violates unique constraint "users_email_key"' (PostgreSQL)
_UNIQUE_SQLITE = re.compile(r"UNIQUE constraint failed: (?P<cols>[\w., ]+)")
_UNIQUE_MARKERS = ("UNIQUE constraint failed", "duplicate key value", "Duplicate entry")

_Rule = Callable[[BaseException], Optional[CanonicalError]]


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _explicit(exc: BaseException) -> Optional[CanonicalError]:
    if isinstance(exc, AppError):
        return CanonicalError(
            status_code=exc.status_code,
            public_message=exc.message,
            error_code=exc.error_code,
            is_operational=True,
            kind=exc.kind,
            cause=exc,
        )
    if isinstance(exc, StarletteHTTPException):
        # Routing misses (404/405) and slowapi's RateLimitExceeded (429) arrive here.
        # The 429 detail is the raw limit string, so it gets a fixed message.
        if exc.status_code == 429:
            message = RATE_LIMIT_MESSAGE
        elif isinstance(exc.detail, str):
            message = exc.detail
        else:
            message = code_for_status(exc.status_code)
        return CanonicalError(
            status_code=exc.status_code,
            public_message=message,
            error_code=code_for_status(exc.status_code),
            is_operational=exc.status_code < 500,
            kind=kind_for_status(exc.status_code),
            cause=exc,
        )
    return None


def _cast(exc: BaseException) -> Optional[CanonicalError]:
    if not isinstance(exc, IdentifierCastError):
        return None
    return CanonicalError(
        status_code=400,
        public_message=f"Invalid {exc.path}: {exc.value}",
        error_code="InvalidIdentifier",
        is_operational=True,
        kind=FailureKind.validation,
        cause=exc,
    )


def _is_unique_violation(exc: IntegrityError) -> bool:
    text = str(exc.orig)
    return any(marker in text for marker in _UNIQUE_MARKERS)


def _duplicate(exc: BaseException) -> Optional[CanonicalError]:
    if not isinstance(exc, IntegrityError) or not _is_unique_violation(exc):
        return None
    message = ConflictFailure.default_message
    match = _UNIQUE_SQLITE.search(str(exc.orig))
    if match:
        # "users.email" -> "email"; composite constraints list several columns.
        cols = [c.strip().rsplit(".", 1)[-1] for c in match.group("cols").split(",")]
        message = f"Duplicate field value: {', '.join(cols)}. Please use another value!"
    return CanonicalError(
        status_code=400,
        public_message=message,
        error_code="DuplicateValue",
        is_operational=True,
        kind=FailureKind.conflict,
        cause=exc,
    )


def _format_validation_errors(errors: Sequence[dict[str, Any]]) -> str:
    parts = []
    for err in errors:
        # Drop the "body"/"query" prefix FastAPI puts in front of field paths.
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        msg = err.get("msg", "invalid value")
        parts.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    return "Invalid input data. " + ". ".join(parts)


def _validation(exc: BaseException) -> Optional[CanonicalError]:
    if isinstance(exc, (RequestValidationError, ValidationError)):
        message = _format_validation_errors(exc.errors())
    elif isinstance(exc, IntegrityError):
        # NOT NULL / CHECK / FOREIGN KEY -- the row violated the schema.
        message = "Invalid input data. The record does not satisfy the schema."
    else:
        return None
    return CanonicalError(
        status_code=400,
        public_message=message,
        error_code="ValidationFailed",
        is_operational=True,
        kind=FailureKind.validation,
        cause=exc,
    )


def _credential_invalid(exc: BaseException) -> Optional[CanonicalError]:
    if not isinstance(exc, JWTError) or isinstance(exc, ExpiredSignatureError):
        return None
    return CanonicalError(
        status_code=401,
        public_message=InvalidCredential.default_message,
        error_code=InvalidCredential.error_code,
        is_operational=True,
        kind=FailureKind.authentication,
        cause=exc,
    )


def _credential_expired(exc: BaseException) -> Optional[CanonicalError]:
    if not isinstance(exc, ExpiredSignatureError):
        return None
    return CanonicalError(
        status_code=401,
        public_message=CredentialExpired.default_message,
        error_code=CredentialExpired.error_code,
        is_operational=True,
        kind=FailureKind.authentication,
        cause=exc,
    )


_RULES: tuple[_Rule, ...] = (
    _explicit,
    _cast,
    _duplicate,
    _validation,
    _credential_invalid,
    _credential_expired,
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def classify(exc: BaseException) -> CanonicalError:
    """Return the CanonicalError for exc. Never raises."""
    for rule in _RULES:
        result = rule(exc)
        if result is not None:
            return result
    return CanonicalError(
        status_code=500,
        public_message=GENERIC_MESSAGE,
        error_code="InternalError",
        is_operational=False,
        kind=FailureKind.internal,
        cause=exc,
    )
