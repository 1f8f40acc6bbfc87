"""
api/main.py -- FastAPI application factory for TodoVault.

Run with:      uvicorn asgi:app --reload

create_app(settings) builds a fully wired app. Everything a request needs --
settings, the deployment mode, both stores, and the AuthorizationGate -- is
attached to app.state once, at startup, from the Settings passed in. No
component reads configuration on its own.

Middleware stack (outermost to innermost; the last one added wraps the rest):
  1. log_requests       -- one access-log line per request, 429s and 500s included
  2. CORSMiddleware     -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware  -- enforces the default rate limit on undecorated routes

Lifespan opens the stores the app owns (stores passed in by a caller, e.g.
tests, are left for the caller to close).
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.errors import register_error_handlers
from api.limiter import limiter
from api.models import HealthData
from api.responses import emit_success
from api.routes.v1.todos import router as todos_router
from api.routes.v1.users import router as users_router
from auth.gate import AuthorizationGate, PrincipalResolver
from auth.store import UserStore
from core.config import Settings, get_settings
from todos.store import TodoStore

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("todovault.api")


def create_app(
    settings: Optional[Settings] = None,
    *,
    user_store: Optional[UserStore] = None,
    todo_store: Optional[TodoStore] = None,
) -> FastAPI:
    """Build the TodoVault ASGI app.

    Args:
        settings:   Settings to run with. Defaults to get_settings().
        user_store: Pre-built store (tests). Opened from settings.database_url if None.
        todo_store: Pre-built store (tests). Opened from settings.database_url if None.
    """
    settings = settings or get_settings()

    # ---------------------------------------------------------------------------
    # Lifespan -- startup / shutdown
    # ---------------------------------------------------------------------------

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("TodoVault API starting up (mode=%s)", settings.mode.value)
        owned: list = []
        users = user_store
        if users is None:
            users = UserStore(settings.database_url)
            owned.append(users)
        todos = todo_store
        if todos is None:
            todos = TodoStore(settings.database_url)
            owned.append(todos)

        app.state.user_store = users
        app.state.todo_store = todos
        app.state.gate = AuthorizationGate(settings.secret_key, PrincipalResolver(users))
        logger.info("Stores and authorization gate initialized")

        yield

        for store in owned:
            store.close()
        logger.info("TodoVault API shutdown complete")

    # ---------------------------------------------------------------------------
    # App instantiation
    # ---------------------------------------------------------------------------

    app = FastAPI(
        title="TodoVault API",
        description="Per-user todo lists behind bearer-token authentication.",
        version=VERSION,
        lifespan=lifespan,
        debug=False,  # tracebacks are the emitter's business, not Starlette's
    )
    app.state.settings = settings
    app.state.mode = settings.mode

    # ---------------------------------------------------------------------------
    # Middleware stack
    # ---------------------------------------------------------------------------

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )

    # SlowAPI looks for app.state.limiter by convention.
    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter

    # ---------------------------------------------------------------------------
    # Request logging middleware
    #
    # Pattern: Interceptor. Every request passes through this coroutine before
    # reaching any route handler; latency is reported on every response.
    # ---------------------------------------------------------------------------

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        # Unhandled exceptions escape call_next and become a 500 further out.
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            ms = (time.perf_counter() - start) * 1000
            logger.info(
                "%s %s %d %.1fms %s",
                request.method,
                request.url.path,
                status_code,
                ms,
                request.client.host if request.client else "unknown",
            )

    # ---------------------------------------------------------------------------
    # Error handling and routers
    # ---------------------------------------------------------------------------

    register_error_handlers(app)

    app.include_router(users_router, prefix="/api/v1", tags=["Users"])
    app.include_router(todos_router, prefix="/api/v1", tags=["Todos"])

    # ---------------------------------------------------------------------------
    # Health endpoint
    #
    # Defined here (not in a router) so it is always reachable. Exempt from
    # rate limiting -- load balancers must not be throttled.
    # ---------------------------------------------------------------------------

    @app.get("/api/v1/health", tags=["Health"])
    @limiter.exempt
    def health(request: Request) -> JSONResponse:
        """Return API liveness, version, and database reachability."""
        try:
            request.app.state.user_store.ping()
            request.app.state.todo_store.ping()
            database = "ok"
        except SQLAlchemyError:
            logger.exception("Health check: database unreachable")
            database = "error"
        data = HealthData(version=VERSION, components={"app": "ok", "database": database})
        return emit_success(data.model_dump())

    return app
