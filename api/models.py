"""
API request and response models for TodoVault REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
todos/models.py, which own the internal domain representation. Route handlers
map between the two.

Request models never carry owner_id / id / created_at: the owner always comes
from the authenticated Principal. Unknown body keys are ignored (pydantic's
default), so a client-supplied "owner_id" simply has no effect.
"""

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from auth.models import User
from core.query import INT64_MAX, INT64_MIN
from todos.models import TodoItem

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", no whitespace, a dot in the domain. Deliverability
# is the mail server's problem, not a regex's.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

MIN_PASSWORD_LENGTH = 8

# bcrypt refuses more than 72 bytes of input; the check is on UTF-8 bytes, not characters.
MAX_PASSWORD_BYTES = 72


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
    return value


# ---------------------------------------------------------------------------
# Users -- request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/users/signup."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=72)
    # Accept the camelCase key older clients send.
    password_confirm: str = Field(
        max_length=72,
        validation_alias=AliasChoices("password_confirm", "passwordConfirm"),
    )

    @field_validator("password", "password_confirm")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)

    @model_validator(mode="after")
    def passwords_match(self) -> "SignupRequest":
        if self.password != self.password_confirm:
            raise ValueError("Passwords must match")
        return self


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/users/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=72)


# ---------------------------------------------------------------------------
# Users -- response models
# ---------------------------------------------------------------------------


class UserOut(BaseModel):
    """Public view of a user. There is no password field to forget to strip."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    photo: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            photo=user.photo,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


# ---------------------------------------------------------------------------
# Todos -- request models
# ---------------------------------------------------------------------------


class TodoCreate(BaseModel):
    """Request body for POST /api/v1/todos."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=5000)
    completed: bool = False
    priority: int = Field(default=0, ge=INT64_MIN, le=INT64_MAX)


class TodoUpdate(BaseModel):
    """Request body for PATCH /api/v1/todos/{id}. Every field is optional.

    Explicit nulls are rejected for the non-nullable fields; description may
    be cleared with null.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=5000)
    completed: Optional[bool] = None
    priority: Optional[int] = Field(default=None, ge=INT64_MIN, le=INT64_MAX)

    @field_validator("title", "completed", "priority", mode="before")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("may not be null")
        return value

    def changes(self) -> dict[str, Any]:
        """Only the fields the client actually sent."""
        return self.model_dump(exclude_unset=True)


# ---------------------------------------------------------------------------
# Todos -- response models
# ---------------------------------------------------------------------------


class TodoOut(BaseModel):
    """Full public view of one todo. revision is internal and never included."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: Optional[str] = None
    completed: bool
    priority: int
    created_at: str
    owner_id: str

    @classmethod
    def from_item(cls, item: TodoItem) -> "TodoOut":
        """Factory Method -- the mapping lives with the output model, not in the routes."""
        return cls(
            id=item.id,
            title=item.title,
            description=item.description,
            completed=item.completed,
            priority=item.priority,
            created_at=item.created_at,
            owner_id=item.owner_id,
        )


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class ErrorDebug(BaseModel):
    """Development-mode diagnostics. Never serialized in production."""

    model_config = ConfigDict(frozen=True)

    type: str
    detail: str
    is_operational: bool
    stack: list[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    status: str  # "fail" | "error"
    message: str
    code: str
    debug: Optional[ErrorDebug] = None


class HealthData(BaseModel):
    """Payload of GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    version: str
    components: dict[str, str]
