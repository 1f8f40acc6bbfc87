"""
auth/dependencies.py -- FastAPI Depends() helper for authentication.

get_principal() is the only way a route handler obtains the caller's
identity. It delegates to the AuthorizationGate that create_app() stores on
app.state, so the gate (and its secret and store) are configured once and
injected rather than looked up from globals.

The dependency raises before the handler body runs. FastAPI resolves
dependencies first, so a handler that declares
    principal: Principal = Depends(get_principal)
can never observe an unauthenticated request.

Layer rule: no imports from todos/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.gate import AuthorizationGate
from auth.models import Principal


def get_principal(request: Request) -> Principal:
    """Require a valid Bearer token and a live user. Raises 401-class failures otherwise.

    Use as a FastAPI dependency:
        @router.get("/todos")
        def route(principal: Principal = Depends(get_principal)): ...
    """
    gate: AuthorizationGate = request.app.state.gate
    return gate.authorize(request.headers.get("Authorization"))
