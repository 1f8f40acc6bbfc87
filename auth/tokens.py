"""
auth/tokens.py -- JWT signing/verification and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry only the user id (sub), issue time
       (iat) and expiry (exp). verify() raises a classified failure rather than
       returning None so the gate can tell "log in again" (CredentialExpired)
       from "token tampered" (InvalidCredential).

       Expiry is checked here against an explicit `now` instead of inside
       jose, so verify() is deterministic for a given (token, secret, now).

  Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
       enables timing equalization in authenticate_user() so response time
       does not reveal whether an email is registered [C1].

  Secrets: the signing secret is passed in by the caller (AuthorizationGate,
       the user routes) from Settings. This module never reads configuration
       and never logs a token or secret.

Layer rule: no imports from api/ or todos/. Import from core/ is allowed.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import VerifiedCredential
from core.errors import CredentialExpired, InvalidCredential

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt raises ValueError for input longer than 72 bytes. SignupRequest
    rejects such passwords by UTF-8 byte length before they get here.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Corrupt or non-bcrypt hash in the DB -- treat as a mismatch.
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("todovault_timing_dummy")


# ---------------------------------------------------------------------------
# JWT sign / verify
# ---------------------------------------------------------------------------


def sign(subject: str, secret: str, ttl_seconds: int, now: datetime | None = None) -> str:
    """Encode a signed JWT asserting `subject` for `ttl_seconds`."""
    issued = now or datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "iat": issued,
        "exp": issued + timedelta(seconds=ttl_seconds),
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def verify(token: str, secret: str, now: datetime | None = None) -> VerifiedCredential:
    """Check signature and expiry; return the subject and expiry.

    Raises:
        InvalidCredential  -- malformed, unsigned, wrongly signed, or missing
                              the sub/exp claims.
        CredentialExpired  -- signature fine but exp is not in the future.
    """
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[_ALGORITHM],
            options={"verify_exp": False, "verify_iat": False},
        )
    except JWTError as exc:
        raise InvalidCredential() from exc

    subject = claims.get("sub")
    exp = claims.get("exp")
    if not isinstance(subject, str) or not subject:
        raise InvalidCredential()
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise InvalidCredential()

    expiry = datetime.fromtimestamp(exp, tz=timezone.utc)
    current = now or datetime.now(timezone.utc)
    if expiry <= current:
        raise CredentialExpired()
    return VerifiedCredential(subject=subject, expiry=expiry)


# ---------------------------------------------------------------------------
# User authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User (without its hash) on success, None on any failure.
    """
    user = store.get_by_email(email, include_password=True)
    if user is None or not user.hashed_password:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    user.hashed_password = None
    return user
