"""
todos/models.py -- Domain dataclass and query schema for todo items.

TodoItem is a pure data container. TODO_QUERY_SCHEMA tells the query builder
in core/query.py which fields a client may filter, sort and project on, and
which field carries the owner key.

revision is internal bookkeeping (bumped by every update) and is deliberately
absent from TODO_QUERY_SCHEMA: clients can neither filter on it nor ask for it.
"""

from dataclasses import dataclass
from typing import Optional

from core.query import FieldType, QuerySchema, SortKey


@dataclass
class TodoItem:
    """A single todo owned by one user.

    id and created_at are assigned by the store on insert.
    """

    title: str
    owner_id: str
    description: Optional[str] = None
    completed: bool = False
    priority: int = 0
    id: Optional[str] = None
    created_at: str = ""  # ISO 8601 UTC, microsecond precision
    revision: int = 0


TODO_QUERY_SCHEMA = QuerySchema(
    fields={
        "id": FieldType.string,
        "title": FieldType.string,
        "description": FieldType.string,
        "completed": FieldType.boolean,
        "priority": FieldType.integer,
        "created_at": FieldType.timestamp,
        "owner_id": FieldType.string,
    },
    tenant_field="owner_id",
    identity_field="id",
    default_sort=(SortKey("created_at", descending=True),),
)

# Fields a client may set on create/update. owner_id always comes from the Principal.
MUTABLE_FIELDS = frozenset({"title", "description", "completed", "priority"})
