"""
auth/gate.py -- Turn an Authorization header into a Principal, or refuse.

Per request the gate walks

    UNAUTHENTICATED -> TOKEN_EXTRACTED -> VERIFIED -> RESOLVED -> AUTHORIZED

and moves to REJECTED from any state on the first failure. A rejection raises
an AuthenticationFailure subclass; nothing downstream of the gate runs.

The gate holds no per-request state. Its collaborators -- the signing secret
and a PrincipalResolver -- are injected at construction so tests can swap the
resolver for a fake without touching a database.

Layer rule: no imports from api/ or todos/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol

from auth.models import Principal, User, VerifiedCredential
from auth.tokens import verify
from core.errors import AuthenticationFailure, MissingCredential, PrincipalNotFound

logger = logging.getLogger("todovault.auth")

_BEARER = "bearer"


class GateState(str, Enum):
    unauthenticated = "unauthenticated"
    token_extracted = "token_extracted"
    verified = "verified"
    resolved = "resolved"
    authorized = "authorized"
    rejected = "rejected"


class UserLookup(Protocol):
    def get_by_id(self, user_id: str) -> Optional[User]: ...


def extract_bearer(header: Optional[str]) -> str:
    """Return the token from "Bearer <token>".

    A missing header, a different scheme, or an empty token all raise
    MissingCredential. The scheme comparison is case-insensitive.
    """
    if not header:
        raise MissingCredential()
    scheme, _, token = header.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != _BEARER or not token or " " in token:
        raise MissingCredential()
    return token


class PrincipalResolver:
    """Maps a verified token subject to a live user. One lookup per call."""

    def __init__(self, users: UserLookup) -> None:
        self._users = users

    def resolve(self, subject_id: str) -> Principal:
        user = self._users.get_by_id(subject_id)
        if user is None or user.id is None:
            # 401 rather than 404: do not reveal whether the id ever existed.
            raise PrincipalNotFound()
        return Principal(user_id=user.id, tenant_key=user.id)


class AuthorizationGate:
    """Composes the credential verifier and the principal resolver.

    Usage:
        gate = AuthorizationGate(settings.secret_key, PrincipalResolver(user_store))
        principal = gate.authorize(request.headers.get("Authorization"))
    """

    def __init__(
        self,
        secret: str,
        resolver: PrincipalResolver,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._secret = secret
        self._resolver = resolver
        self._clock = clock

    def __repr__(self) -> str:
        # Never let the secret show up in a log line or traceback.
        return f"AuthorizationGate(resolver={self._resolver!r})"

    def authorize(self, authorization_header: Optional[str]) -> Principal:
        """Return the request's Principal or raise an AuthenticationFailure."""
        state = GateState.unauthenticated
        try:
            token = extract_bearer(authorization_header)
            state = GateState.token_extracted

            credential: VerifiedCredential = verify(
                token, self._secret, now=self._clock() if self._clock else None
            )
            state = GateState.verified

            principal = self._resolver.resolve(credential.subject)
            state = GateState.resolved
        except AuthenticationFailure as exc:
            logger.info("auth rejected in state=%s code=%s", state.value, exc.error_code)
            raise

        state = GateState.authorized
        logger.debug("auth %s user_id=%s", state.value, principal.user_id)
        return principal
