"""
core/errors.py -- Failure taxonomy shared by every layer of TodoVault.

Two families of exceptions live here:

  AppError and its subclasses -- explicit application failures. They already
      know their HTTP status, their stable machine-readable code, and which
      FailureKind they belong to. Route handlers and the auth gate raise these
      (directly or through throw_error()).

  IdentifierCastError -- raised by the stores when a client-supplied
      identifier does not have the storage layer's identifier shape. It is a
      raw storage failure, not yet classified.

CanonicalError is the single normalized record core/classifier.py produces
from any exception. It is the only thing api/responses.py serializes.

Layer rule: no imports from api/, auth/, or todos/. Third-party imports are
not needed here either -- the classifier owns the mapping from library
exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from http import HTTPStatus
from typing import NoReturn, Optional


class FailureKind(str, Enum):
    """Closed set of failure categories the API distinguishes."""

    authentication = "authentication"
    authorization = "authorization"
    validation = "validation"
    not_found = "not_found"
    conflict = "conflict"
    internal = "internal"


# ---------------------------------------------------------------------------
# Canonical representation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CanonicalError:
    """Normalized failure record.

    public_message is always safe to show a client. cause is kept for
    server-side logging and development-mode diagnostics only; it is excluded
    from equality and repr so it never leaks through incidental formatting.
    """

    status_code: int
    public_message: str
    error_code: str
    is_operational: bool
    kind: FailureKind
    cause: Optional[BaseException] = field(default=None, repr=False, compare=False)

    @property
    def status(self) -> str:
        """Envelope status: "fail" for client errors, "error" for server errors."""
        return "fail" if 400 <= self.status_code < 500 else "error"


# ---------------------------------------------------------------------------
# Explicit application errors
# ---------------------------------------------------------------------------


def kind_for_status(status_code: int) -> FailureKind:
    if status_code == 401:
        return FailureKind.authentication
    if status_code == 403:
        return FailureKind.authorization
    if status_code == 404:
        return FailureKind.not_found
    if status_code == 409:
        return FailureKind.conflict
    if 400 <= status_code < 500:
        return FailureKind.validation
    return FailureKind.internal


def code_for_status(status_code: int) -> str:
    """HTTP reason phrase in CamelCase: 404 -> "NotFound", 429 -> "TooManyRequests"."""
    try:
        phrase = HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"
    return "".join(word.capitalize() for word in phrase.replace("-", " ").split())


class AppError(Exception):
    """A failure the application raised on purpose.

    Every AppError is operational: the message was written for the client.
    Subclasses pin status_code / error_code / kind as class attributes so the
    common failures can be raised with no arguments.
    """

    status_code: int = 500
    error_code: Optional[str] = None
    kind: Optional[FailureKind] = None
    default_message: str = "Something went wrong!"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        kind: Optional[FailureKind] = None,
    ) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        if status_code is not None:
            self.status_code = status_code
        self.error_code = error_code or self.error_code or code_for_status(self.status_code)
        self.kind = kind or self.kind or kind_for_status(self.status_code)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, status_code={self.status_code}, error_code={self.error_code!r})"


def throw_error(message: str, status_code: int, error_code: Optional[str] = None) -> NoReturn:
    """Raise a classified application error from anywhere in a handler.

    error_code defaults to the CamelCase reason phrase for status_code.
    """
    raise AppError(message, status_code, error_code)


# -- Authentication (always 401) ---------------------------------------------


class AuthenticationFailure(AppError):
    status_code = 401
    kind = FailureKind.authentication
    error_code = "Unauthorized"


class MissingCredential(AuthenticationFailure):
    error_code = "MissingCredential"
    default_message = "You are not logged in. Please log in to get access."


class InvalidCredential(AuthenticationFailure):
    error_code = "InvalidCredential"
    default_message = "Invalid token. Please log in again!"


class CredentialExpired(AuthenticationFailure):
    error_code = "CredentialExpired"
    default_message = "Your token has expired! Please log in again."


class PrincipalNotFound(AuthenticationFailure):
    error_code = "PrincipalNotFound"
    default_message = "The user belonging to this token no longer exists."


# -- Validation ---------------------------------------------------------------


class ValidationFailure(AppError):
    status_code = 400
    kind = FailureKind.validation
    error_code = "ValidationFailed"
    default_message = "Invalid input data."


class InvalidQuery(ValidationFailure):
    error_code = "InvalidQuery"
    default_message = "Invalid query parameters."


# -- Not found ----------------------------------------------------------------


class NotFoundFailure(AppError):
    status_code = 404
    kind = FailureKind.not_found
    error_code = "NotFound"
    default_message = "Resource not found."


class PageOutOfRange(NotFoundFailure):
    error_code = "PageOutOfRange"
    default_message = "This page does not exist."


# -- Authorization --------------------------------------------------------------


class AuthorizationFailure(NotFoundFailure):
    """The resource exists but is not the caller's.

    Surfaced exactly like a missing resource (404 NotFound) so that
    non-owners cannot confirm an id exists.
    """

    kind = FailureKind.authorization
    default_message = "No todo found with that ID."


# -- Conflict -----------------------------------------------------------------


class ConflictFailure(AppError):
    status_code = 400
    kind = FailureKind.conflict
    error_code = "DuplicateValue"
    default_message = "Duplicate field value. Please use another value!"


# ---------------------------------------------------------------------------
# Raw storage failures
# ---------------------------------------------------------------------------


class IdentifierCastError(ValueError):
    """A value could not be cast to the storage layer's identifier type."""

    def __init__(self, path: str, value: object) -> None:
        self.path = path
        self.value = value
        super().__init__(f"Cast to identifier failed for value {value!r} at path {path!r}")
