"""
api/routes/v1/users.py -- Account endpoints.

Routes:
  POST /api/v1/users/signup  -- create account; returns a token
  POST /api/v1/users/login   -- password login; returns a token
  POST /api/v1/users/logout  -- stateless; clears the legacy "jwt" cookie
  GET  /api/v1/users/me      -- current user (requires auth)

Security:
  [H2] signup and login each get the stricter AUTH_RATE_LIMIT budget.
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on responses that carry a token.
  Unknown email and wrong password raise the same InvalidCredential with the
  same message, so the response does not reveal which accounts exist.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import LoginRequest, SignupRequest, UserOut
from api.responses import emit_success
from auth.dependencies import get_principal
from auth.models import Principal, User
from auth.store import UserStore
from auth.tokens import authenticate_user, hash_password, sign
from core.config import Settings
from core.errors import InvalidCredential, PrincipalNotFound

# Auth policy:
# - POST /api/v1/users/signup:  public, rate limited
# - POST /api/v1/users/login:   public, rate limited
# - POST /api/v1/users/logout:  public -- tokens are stateless, nothing to revoke
# - GET  /api/v1/users/me:      requires auth (get_principal)
router = APIRouter()

_BAD_LOGIN = "Invalid email or password."

# Per client IP and per route; applied to signup and login.
AUTH_RATE_LIMIT = "5/15minutes"


def _token_response(request: Request, user: User, status_code: int) -> JSONResponse:
    settings: Settings = request.app.state.settings
    token = sign(user.id, settings.secret_key, settings.token_expire_seconds)
    resp = emit_success({"user": UserOut.from_user(user)}, status_code, token=token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/users/signup", status_code=201)
@limiter.limit(AUTH_RATE_LIMIT)  # [H2] below the route decorator so FastAPI registers the limited wrapper
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Create an account and return a token for it.

    A taken email surfaces as 400 DuplicateValue via the classifier
    (IntegrityError from the UNIQUE constraint).
    """
    user_store: UserStore = request.app.state.user_store
    user_id = user_store.create_user(
        User(name=body.name, email=body.email),
        hash_password(body.password),
    )
    user = user_store.get_by_id(user_id)
    if user is None:
        raise RuntimeError("user vanished between insert and read")
    return _token_response(request, user, 201)


@router.post("/users/login")
@limiter.limit(AUTH_RATE_LIMIT)  # [H2]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a token."""
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        raise InvalidCredential(_BAD_LOGIN)
    return _token_response(request, user, 200)


@router.post("/users/logout")
def logout() -> JSONResponse:
    """Tokens are stateless; clients discard theirs. Clears the legacy cookie."""
    resp = emit_success()
    resp.delete_cookie("jwt")
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/users/me")
def me(request: Request, principal: Principal = Depends(get_principal)) -> JSONResponse:
    """Return the current user's profile."""
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(principal.user_id)
    if user is None:
        # Deleted between the gate's lookup and this one.
        raise PrincipalNotFound()
    return emit_success({"user": UserOut.from_user(user)})
