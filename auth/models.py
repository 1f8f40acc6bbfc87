"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in todos/models.py -- dataclasses own domain shape; stores and routes do the
work.

Layer rule: no imports from api/, core/, or todos/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """A registered account.

    hashed_password is None on every User the store returns unless the caller
    asked for it explicitly (UserStore.get_by_email(..., include_password=True)).
    Only the login path needs it.

    id is None before the record is written to the database.
    """

    name: str
    email: str
    id: str | None = None
    hashed_password: str | None = None
    photo: str = ""
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class VerifiedCredential:
    """What the Verifier extracted from a token whose signature and expiry checked out."""

    subject: str
    expiry: datetime


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of one request.

    Built by AuthorizationGate after a fresh user lookup and passed to route
    handlers as an explicit parameter. tenant_key scopes every todo query.
    """

    user_id: str
    tenant_key: str
