"""
todos/store.py -- SQLAlchemy-backed persistence layer for todo items.

Uses SQLAlchemy Core (not ORM) so the TodoItem dataclass stays the
authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Pattern: Repository + Data Mapper. TodoStore is the repository;
_row_to_item is the mapper. Route handlers never touch SQL directly.

Tenant scoping: every single-item method takes owner_id and puts it in the
WHERE clause next to the id, so an item owned by someone else is
indistinguishable from a missing one. find() and count() refuse a QuerySpec
that carries no tenant predicate.

Security: all queries use bound parameters. Column names used in WHERE /
ORDER BY / SELECT come from the QuerySpec, whose field names were checked
against TODO_QUERY_SCHEMA by core/query.py, and are looked up on the Table
object -- never interpolated into SQL text.

Usage:
    store = TodoStore("sqlite:///todovault.db")
    item_id = store.create(TodoItem(title="Write docs", owner_id=user_id))
    rows = store.find(build_query(params, user_id, TODO_QUERY_SCHEMA))
    store.close()
"""

import operator
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine

from core.errors import IdentifierCastError
from core.query import Operator, QuerySpec, normalize_timestamp
from todos.models import MUTABLE_FIELDS, TodoItem

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_todos = Table(
    "todos",
    metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex
    Column("title", Text, nullable=False),
    Column("description", Text),
    Column("completed", Boolean, nullable=False, server_default="0"),
    Column("priority", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("owner_id", String(32), nullable=False),
    Column("revision", Integer, nullable=False, server_default="0"),
    # Listing is always "this owner's items, newest first".
    Index("ix_todos_owner_created", "owner_id", "created_at"),
)

_COMPARATORS = {
    Operator.eq: operator.eq,
    Operator.gt: operator.gt,
    Operator.gte: operator.ge,
    Operator.lt: operator.lt,
    Operator.lte: operator.le,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return normalize_timestamp(datetime.now(timezone.utc))


def _parse_id(item_id: str) -> str:
    """Normalize a client-supplied id to the stored uuid hex form.

    Raises IdentifierCastError for anything that is not a UUID; the error
    classifier reports it as 400 InvalidIdentifier.
    """
    try:
        return uuid.UUID(hex=str(item_id)).hex
    except ValueError:
        raise IdentifierCastError("id", item_id) from None


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _where(spec: QuerySpec) -> list:
    if spec.tenant_key is None:
        raise ValueError("refusing to run a todo query without a tenant predicate")
    return [_COMPARATORS[p.operator](_todos.c[p.field], p.value) for p in spec.predicates]


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TodoStore:
    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync handlers in a threadpool; the same pooled
            # connection may be used from several threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Single items
    # ------------------------------------------------------------------

    def create(self, item: TodoItem) -> str:
        """Insert a new item and return its id.

        Raises sqlalchemy.exc.IntegrityError when a NOT NULL column is missing.
        """
        item_id = uuid.uuid4().hex
        with self.engine.connect() as conn:
            conn.execute(
                _todos.insert().values(
                    id=item_id,
                    title=item.title,
                    description=item.description,
                    completed=item.completed,
                    priority=item.priority,
                    created_at=item.created_at or _now_iso(),
                    owner_id=item.owner_id,
                    revision=0,
                )
            )
            conn.commit()
        return item_id

    def get(self, item_id: str, owner_id: str) -> Optional[TodoItem]:
        """Fetch one item if it exists AND belongs to owner_id."""
        key = _parse_id(item_id)
        with self.engine.connect() as conn:
            row = conn.execute(
                _todos.select().where((_todos.c.id == key) & (_todos.c.owner_id == owner_id))
            ).fetchone()
        return _row_to_item(row) if row is not None else None

    def update(self, item_id: str, owner_id: str, **fields: Any) -> Optional[TodoItem]:
        """Apply a partial update to an owned item and return the new state.

        Only MUTABLE_FIELDS are written; anything else (owner_id, id,
        created_at, revision) raises ValueError -- the route layer's request
        model already excludes them, so reaching this is a programming error.

        Returns None if the item does not exist or belongs to someone else.
        """
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Immutable or unknown todo fields: {sorted(unknown)!r}")
        key = _parse_id(item_id)
        with self.engine.connect() as conn:
            result = conn.execute(
                _todos.update()
                .where((_todos.c.id == key) & (_todos.c.owner_id == owner_id))
                .values(revision=_todos.c.revision + 1, **fields)
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get(key, owner_id)

    def delete(self, item_id: str, owner_id: str) -> bool:
        """Delete an owned item. Returns False if nothing matched (missing or not owned)."""
        key = _parse_id(item_id)
        with self.engine.connect() as conn:
            result = conn.execute(
                _todos.delete().where((_todos.c.id == key) & (_todos.c.owner_id == owner_id))
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def find(self, spec: QuerySpec) -> list[dict[str, Any]]:
        """Return projected rows matching spec, sorted and paginated."""
        columns = [_todos.c[name] for name in spec.projection]
        order = [_todos.c[k.field].desc() if k.descending else _todos.c[k.field].asc() for k in spec.sort]
        stmt = select(*columns).where(*_where(spec)).order_by(*order).offset(spec.offset).limit(spec.limit)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [dict(row._mapping) for row in rows]

    def count(self, spec: QuerySpec) -> int:
        """Count rows matching spec's predicates, ignoring sort, projection and pagination."""
        stmt = select(func.count()).select_from(_todos).where(*_where(spec))
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_item(row) -> TodoItem:
    return TodoItem(
        id=row.id,
        title=row.title,
        description=row.description,
        completed=bool(row.completed),
        priority=row.priority,
        created_at=row.created_at,
        owner_id=row.owner_id,
        revision=row.revision,
    )
