"""Unit tests for core/classifier.py and the AppError taxonomy in core/errors.py.

Every row of the classification table gets at least one case, plus the
precedence and totality guarantees.
"""

import sqlite3

import pytest
from fastapi.exceptions import RequestValidationError
from jose.exceptions import ExpiredSignatureError, JWTError
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import TodoCreate
from core.classifier import GENERIC_MESSAGE, classify
from core.errors import (
    AppError,
    AuthorizationFailure,
    FailureKind,
    IdentifierCastError,
    InvalidQuery,
    MissingCredential,
    NotFoundFailure,
    PageOutOfRange,
    throw_error,
)


def _integrity(message: str) -> IntegrityError:
    return IntegrityError("INSERT INTO users ...", {}, sqlite3.IntegrityError(message))


class TestExplicitErrors:
    def test_app_error_passes_through(self) -> None:
        error = classify(InvalidQuery("Unknown filter field 'x'."))
        assert (error.status_code, error.error_code, error.public_message) == (
            400,
            "InvalidQuery",
            "Unknown filter field 'x'.",
        )
        assert error.is_operational
        assert error.kind is FailureKind.validation

    def test_throw_error_derives_code_and_kind_from_status(self) -> None:
        with pytest.raises(AppError) as info:
            throw_error("Already archived.", 409)
        error = classify(info.value)
        assert error.error_code == "Conflict"
        assert error.kind is FailureKind.conflict
        assert error.status == "fail"

    def test_throw_error_keeps_explicit_code(self) -> None:
        with pytest.raises(AppError) as info:
            throw_error("No such list.", 404, "ListNotFound")
        assert classify(info.value).error_code == "ListNotFound"

    def test_authentication_failures_are_401(self) -> None:
        error = classify(MissingCredential())
        assert error.status_code == 401
        assert error.kind is FailureKind.authentication

    def test_ownership_failure_looks_like_not_found(self) -> None:
        failure = AuthorizationFailure()
        assert isinstance(failure, NotFoundFailure)
        error = classify(failure)
        assert (error.status_code, error.error_code) == (404, "NotFound")
        assert error.kind is FailureKind.authorization

    def test_page_out_of_range(self) -> None:
        error = classify(PageOutOfRange())
        assert (error.status_code, error.error_code) == (404, "PageOutOfRange")

    def test_starlette_http_exception(self) -> None:
        error = classify(StarletteHTTPException(429, "Rate limit exceeded: 5 per 15 minute"))
        assert error.status_code == 429
        assert error.error_code == "TooManyRequests"
        assert error.public_message == "Too many requests from this IP, please try again later."
        assert error.is_operational

    def test_non_rate_limit_detail_is_kept(self) -> None:
        error = classify(StarletteHTTPException(405, "Method Not Allowed"))
        assert error.public_message == "Method Not Allowed"


class TestStorageErrors:
    def test_cast_error(self) -> None:
        error = classify(IdentifierCastError("id", "not-a-uuid"))
        assert (error.status_code, error.error_code) == (400, "InvalidIdentifier")
        assert error.public_message == "Invalid id: not-a-uuid"

    def test_unique_violation_names_the_field(self) -> None:
        error = classify(_integrity("UNIQUE constraint failed: users.email"))
        assert (error.status_code, error.error_code) == (400, "DuplicateValue")
        assert error.public_message == "Duplicate field value: email. Please use another value!"
        assert error.kind is FailureKind.conflict

    def test_postgres_unique_violation(self) -> None:
        error = classify(_integrity('duplicate key value violates unique constraint "users_email_key"'))
        assert error.error_code == "DuplicateValue"

    def test_other_integrity_errors_are_validation(self) -> None:
        error = classify(_integrity("NOT NULL constraint failed: todos.title"))
        assert (error.status_code, error.error_code) == (400, "ValidationFailed")

    def test_operational_error_is_internal(self) -> None:
        exc = OperationalError("SELECT 1", {}, sqlite3.OperationalError("database is locked"))
        error = classify(exc)
        assert (error.status_code, error.error_code) == (500, "InternalError")
        assert not error.is_operational


class TestValidationErrors:
    def test_pydantic_validation_error(self) -> None:
        with pytest.raises(ValidationError) as info:
            TodoCreate.model_validate({})
        error = classify(info.value)
        assert (error.status_code, error.error_code) == (400, "ValidationFailed")
        assert "title" in error.public_message

    def test_request_validation_error_drops_location_prefix(self) -> None:
        exc = RequestValidationError([{"loc": ("body", "password"), "msg": "too short", "type": "string_too_short"}])
        error = classify(exc)
        assert error.public_message == "Invalid input data. password: too short"


class TestCredentialErrors:
    def test_invalid_token(self) -> None:
        error = classify(JWTError("Signature verification failed."))
        assert (error.status_code, error.error_code) == (401, "InvalidCredential")

    def test_expired_token_is_not_classified_as_invalid(self) -> None:
        error = classify(ExpiredSignatureError("Signature has expired."))
        assert (error.status_code, error.error_code) == (401, "CredentialExpired")


class TestFallback:
    @pytest.mark.parametrize("exc", [RuntimeError("db password is hunter2"), KeyError("x"), Exception()])
    def test_unknown_exceptions_are_internal(self, exc: Exception) -> None:
        error = classify(exc)
        assert error.status_code == 500
        assert error.error_code == "InternalError"
        assert error.public_message == GENERIC_MESSAGE
        assert error.status == "error"
        assert error.cause is exc

    def test_cause_is_not_part_of_repr(self) -> None:
        assert "hunter2" not in repr(classify(RuntimeError("hunter2")))
