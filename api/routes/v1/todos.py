"""
api/routes/v1/todos.py -- Todo CRUD routes, all scoped to the caller.

Routes (in registration order):
  GET    /todos        -- list with filter/sort/fields/page/limit
  POST   /todos        -- create
  GET    /todos/{id}   -- detail
  PATCH  /todos/{id}   -- partial update
  DELETE /todos/{id}   -- delete (204)

Every handler takes the Principal as an explicit parameter from
get_principal(). owner_id is always principal.tenant_key -- it is never read
from the request.

Ownership policy: an item that exists but belongs to another user is reported
exactly like a missing one (404 NotFound via AuthorizationFailure), so a
caller cannot probe for other users' ids. This is deliberate and is not to be
"fixed" to 403.

Listing: GET /todos counts matches only when the client asked for a page;
asking for a page past the end is a 404 PageOutOfRange, while a listing with
no page parameter simply returns an empty list.
"""

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.models import TodoCreate, TodoOut, TodoUpdate
from api.responses import emit_success
from auth.dependencies import get_principal
from auth.models import Principal
from core.config import Settings
from core.errors import AuthorizationFailure
from core.query import build_query, ensure_page_in_range
from todos.models import TODO_QUERY_SCHEMA, TodoItem
from todos.store import TodoStore

router = APIRouter()


# ---------------------------------------------------------------------------
# GET /todos -- list the caller's todos
# ---------------------------------------------------------------------------


@router.get("/todos")
def list_todos(request: Request, principal: Principal = Depends(get_principal)) -> JSONResponse:
    """List the caller's todos.

    Query parameters: sort, page, limit, fields, plus field / field[gte|gt|lte|lt]
    filters on any public todo field. Anything else is a 400 InvalidQuery.
    """
    store: TodoStore = request.app.state.todo_store
    settings: Settings = request.app.state.settings

    spec = build_query(
        request.query_params,
        principal.tenant_key,
        TODO_QUERY_SCHEMA,
        default_limit=settings.default_page_limit,
        max_limit=settings.max_page_limit,
    )
    if spec.page_requested:
        ensure_page_in_range(spec, store.count(spec))

    todos = store.find(spec)
    return emit_success({"todos": todos}, results=len(todos))


# ---------------------------------------------------------------------------
# POST /todos -- create
# ---------------------------------------------------------------------------


@router.post("/todos", status_code=201)
def create_todo(
    request: Request,
    body: TodoCreate,
    principal: Principal = Depends(get_principal),
) -> JSONResponse:
    """Create a todo owned by the caller. A missing or blank title is a 400."""
    store: TodoStore = request.app.state.todo_store
    item_id = store.create(
        TodoItem(
            title=body.title,
            description=body.description,
            completed=body.completed,
            priority=body.priority,
            owner_id=principal.tenant_key,
        )
    )
    created = store.get(item_id, principal.tenant_key)
    if created is None:
        raise RuntimeError("todo vanished between insert and read")
    return emit_success({"todo": TodoOut.from_item(created)}, 201)


# ---------------------------------------------------------------------------
# /todos/{item_id}
# ---------------------------------------------------------------------------


@router.get("/todos/{item_id}")
def get_todo(request: Request, item_id: str, principal: Principal = Depends(get_principal)) -> JSONResponse:
    store: TodoStore = request.app.state.todo_store
    item = store.get(item_id, principal.tenant_key)
    if item is None:
        raise AuthorizationFailure()
    return emit_success({"todo": TodoOut.from_item(item)})


@router.patch("/todos/{item_id}")
def update_todo(
    request: Request,
    item_id: str,
    body: TodoUpdate,
    principal: Principal = Depends(get_principal),
) -> JSONResponse:
    """Apply the fields the client sent. An empty body returns the item unchanged."""
    store: TodoStore = request.app.state.todo_store
    changes = body.changes()
    if changes:
        item = store.update(item_id, principal.tenant_key, **changes)
    else:
        item = store.get(item_id, principal.tenant_key)
    if item is None:
        raise AuthorizationFailure()
    return emit_success({"todo": TodoOut.from_item(item)})


@router.delete("/todos/{item_id}", status_code=204)
def delete_todo(request: Request, item_id: str, principal: Principal = Depends(get_principal)) -> Response:
    """Delete an owned todo. Deleting it again is the same 404 as never having owned it."""
    store: TodoStore = request.app.state.todo_store
    if not store.delete(item_id, principal.tenant_key):
        raise AuthorizationFailure()
    return Response(status_code=204)
