"""
core/query.py -- Build tenant-scoped QuerySpec objects from raw query params.

build_query() turns an untrusted mapping of query-string parameters into a
QuerySpec value object. The stores translate a QuerySpec into SQL; nothing in
this module knows about SQL.

Safety properties:
  - Operators come from a closed enum (Operator). A filter key may carry only
    gte|gt|lte|lt; anything else -- "ne", "$where", "regex" -- is rejected
    with InvalidQuery rather than forwarded.
  - Field names come from a QuerySchema allow-list. Unknown filter, sort, or
    projection fields are rejected.
  - Values are coerced to the field's declared type here, so the store only
    ever binds typed parameters.
  - The tenant predicate is appended last and every client predicate on the
    tenant field is discarded first: a client cannot widen or redirect the
    scope of its own query.

Accepted filter syntaxes (all equivalent for the same field/op):
  ?priority=3                 equality
  ?priority[gte]=3            range
  ?priority={"gte": 3}        JSON-shaped range (object of allowed operators)

Layer rule: core/ is the kernel. No imports from api/, auth/, or todos/.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from core.errors import InvalidQuery, PageOutOfRange

RESERVED_PARAMS = frozenset({"sort", "page", "limit", "fields"})

DEFAULT_LIMIT = 100
MAX_LIMIT = 1000

# Signed 64-bit, the widest INTEGER the stores can bind.
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

# field or field[op]; the bracket content is validated separately so a bad
# operator yields a precise message instead of "malformed key".
_KEY_RE = re.compile(r"^(?P<field>[A-Za-z_][A-Za-z0-9_]*)(?:\[(?P<op>[^\[\]]*)\])?$")


class Operator(str, Enum):
    eq = "eq"
    gt = "gt"
    gte = "gte"
    lt = "lt"
    lte = "lte"


# Only these may appear in client input. eq is implied by a bare key.
RANGE_OPERATORS: dict[str, Operator] = {
    "gt": Operator.gt,
    "gte": Operator.gte,
    "lt": Operator.lt,
    "lte": Operator.lte,
}


class FieldType(str, Enum):
    string = "string"
    integer = "integer"
    boolean = "boolean"
    timestamp = "timestamp"


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Predicate:
    field: str
    operator: Operator
    value: Any


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class QuerySchema:
    """Describes which fields of a collection a client may touch.

    fields         -- public field name -> type. Filterable, sortable, projectable.
    tenant_field   -- column holding the owner key; always force-scoped.
    identity_field -- always included in projections.
    default_sort   -- used when the client sends no sort.
    """

    fields: Mapping[str, FieldType]
    tenant_field: str
    identity_field: str = "id"
    default_sort: tuple[SortKey, ...] = (SortKey("created_at", descending=True),)


@dataclass(frozen=True)
class QuerySpec:
    predicates: tuple[Predicate, ...]
    sort: tuple[SortKey, ...]
    projection: tuple[str, ...]
    page: int = 1
    limit: int = DEFAULT_LIMIT
    page_requested: bool = False
    tenant_field: str = field(default="", repr=False)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def tenant_key(self) -> Any:
        for predicate in self.predicates:
            if predicate.field == self.tenant_field and predicate.operator is Operator.eq:
                return predicate.value
        return None


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


def normalize_timestamp(value: datetime) -> str:
    """Render a datetime the way the stores persist timestamps.

    Fixed-width UTC ISO 8601 with microseconds, so lexical order in the
    database equals chronological order. Naive datetimes are taken as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


def _coerce(name: str, ftype: FieldType, raw: Any) -> Any:
    if isinstance(raw, (dict, list)):
        raise InvalidQuery(f"Invalid value for '{name}'.")
    if ftype is FieldType.string:
        return str(raw)
    if ftype is FieldType.integer:
        if isinstance(raw, bool):
            raise InvalidQuery(f"Invalid {name}: {raw}")
        # JSON-shaped filters can carry floats; 3.7 is not a bound on an integer field.
        if isinstance(raw, float) and not raw.is_integer():
            raise InvalidQuery(f"Invalid {name}: {raw}")
        try:
            value = int(raw)
        except (TypeError, ValueError, OverflowError):
            raise InvalidQuery(f"Invalid {name}: {raw}") from None
        if not INT64_MIN <= value <= INT64_MAX:
            raise InvalidQuery(f"Invalid {name}: out of range")
        return value
    if ftype is FieldType.boolean:
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise InvalidQuery(f"Invalid {name}: {raw}")
    # timestamp
    try:
        return normalize_timestamp(datetime.fromisoformat(str(raw)))
    except ValueError:
        raise InvalidQuery(f"Invalid {name}: {raw}") from None


# ---------------------------------------------------------------------------
# Builder steps
# ---------------------------------------------------------------------------


def _parse_operator(name: str, token: str) -> Operator:
    op = RANGE_OPERATORS.get(token)
    if op is None:
        raise InvalidQuery(f"Unsupported operator '{token}' on '{name}'. Allowed: gte, gt, lte, lt.")
    return op


def _split_json_value(name: str, raw: str) -> Optional[dict[str, Any]]:
    """Return the operator object for a JSON-shaped value, or None for a plain value."""
    if not raw.lstrip().startswith("{"):
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        raise InvalidQuery(f"Malformed filter value for '{name}'.") from None
    if not isinstance(parsed, dict) or not parsed:
        raise InvalidQuery(f"Malformed filter value for '{name}'.")
    return parsed


def _filter_predicates(params: Mapping[str, Any], schema: QuerySchema) -> list[Predicate]:
    predicates: list[Predicate] = []
    for key, raw in params.items():
        if key in RESERVED_PARAMS:
            continue
        match = _KEY_RE.match(key)
        if match is None:
            raise InvalidQuery(f"Malformed filter key '{key}'.")
        name, token = match.group("field"), match.group("op")
        ftype = schema.fields.get(name)
        if ftype is None:
            raise InvalidQuery(f"Unknown filter field '{name}'.")

        if token is not None:
            pairs = [(_parse_operator(name, token), raw)]
        else:
            as_json = _split_json_value(name, raw) if isinstance(raw, str) else None
            if as_json is None:
                pairs = [(Operator.eq, raw)]
            else:
                pairs = [(_parse_operator(name, str(k)), v) for k, v in as_json.items()]

        for op, value in pairs:
            if op is not Operator.eq and ftype is FieldType.boolean:
                raise InvalidQuery(f"Range operators are not supported on '{name}'.")
            predicates.append(Predicate(name, op, _coerce(name, ftype, value)))
    return predicates


def _sort_keys(raw: Optional[str], schema: QuerySchema) -> tuple[SortKey, ...]:
    if not raw or not raw.strip():
        return schema.default_sort
    keys = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        descending = part.startswith("-")
        name = part[1:] if descending else part
        if name not in schema.fields:
            raise InvalidQuery(f"Cannot sort by '{name}'.")
        keys.append(SortKey(name, descending))
    return tuple(keys) or schema.default_sort


def _projection(raw: Optional[str], schema: QuerySchema) -> tuple[str, ...]:
    public = tuple(schema.fields)
    if not raw or not raw.strip():
        return public
    parts = [p.strip() for p in raw.split(",") if p.strip()]
    excluded = [p[1:] for p in parts if p.startswith("-")]
    included = [p for p in parts if not p.startswith("-")]
    if excluded and included:
        raise InvalidQuery("Cannot mix included and excluded fields in 'fields'.")
    for name in excluded or included:
        if name not in schema.fields:
            raise InvalidQuery(f"Unknown field '{name}' in 'fields'.")
    if excluded:
        drop = set(excluded) - {schema.identity_field}
        return tuple(f for f in public if f not in drop)
    ordered = [schema.identity_field] + [f for f in included if f != schema.identity_field]
    return tuple(dict.fromkeys(ordered))


def _positive_int(raw: Any, default: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value >= 1 else default


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def build_query(
    raw_params: Mapping[str, Any],
    tenant_key: Any,
    schema: QuerySchema,
    *,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> QuerySpec:
    """Translate client query parameters into a tenant-scoped QuerySpec.

    Raises InvalidQuery for any parameter that cannot be turned into an
    allow-listed, typed predicate. Missing or invalid page/limit values fall
    back to defaults instead of failing.
    """
    if tenant_key is None:
        raise ValueError("tenant_key is required")

    predicates = [p for p in _filter_predicates(raw_params, schema) if p.field != schema.tenant_field]
    predicates.append(Predicate(schema.tenant_field, Operator.eq, tenant_key))

    page_raw = raw_params.get("page")
    limit = min(_positive_int(raw_params.get("limit"), default_limit), max_limit)

    return QuerySpec(
        predicates=tuple(predicates),
        sort=_sort_keys(raw_params.get("sort"), schema),
        projection=_projection(raw_params.get("fields"), schema),
        page=_positive_int(page_raw, 1),
        limit=limit,
        page_requested=bool(page_raw),
        tenant_field=schema.tenant_field,
    )


def ensure_page_in_range(spec: QuerySpec, total: int) -> None:
    """Fail with PageOutOfRange when an explicitly requested page starts past the end.

    total is the match count for spec's predicates without pagination. When
    no page was requested this is a no-op: an empty listing is a valid result.
    """
    if spec.page_requested and spec.offset >= total:
        raise PageOutOfRange()
