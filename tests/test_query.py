"""Unit tests for core/query.py -- the tenant-scoped query builder.

Covers:
- tenant predicate always present, client overrides on owner_id discarded
- operator allow-list (gte/gt/lte/lt), bracket and JSON syntaxes
- type coercion and InvalidQuery on bad values / unknown fields
- sort, projection and pagination defaults and bounds
- ensure_page_in_range() boundary
"""

import pytest

from core.errors import InvalidQuery, PageOutOfRange
from core.query import Operator, Predicate, SortKey, build_query, ensure_page_in_range
from todos.models import TODO_QUERY_SCHEMA

OWNER = "a" * 32


def _build(params: dict, **kwargs):
    return build_query(params, OWNER, TODO_QUERY_SCHEMA, **kwargs)


class TestTenantScope:
    def test_tenant_predicate_always_added(self) -> None:
        spec = _build({})
        assert spec.predicates == (Predicate("owner_id", Operator.eq, OWNER),)
        assert spec.tenant_key == OWNER

    @pytest.mark.parametrize(
        "params",
        [
            {"owner_id": "b" * 32},
            {"owner_id[gte]": ""},
            {"owner_id": '{"gt": ""}'},
        ],
    )
    def test_client_owner_filters_are_discarded(self, params: dict) -> None:
        spec = _build(params)
        owner_predicates = [p for p in spec.predicates if p.field == "owner_id"]
        assert owner_predicates == [Predicate("owner_id", Operator.eq, OWNER)]

    def test_missing_tenant_key_is_a_programming_error(self) -> None:
        with pytest.raises(ValueError):
            build_query({}, None, TODO_QUERY_SCHEMA)


class TestFilters:
    def test_equality_is_coerced(self) -> None:
        spec = _build({"priority": "3", "completed": "true"})
        assert Predicate("priority", Operator.eq, 3) in spec.predicates
        assert Predicate("completed", Operator.eq, True) in spec.predicates

    def test_bracket_range_operators(self) -> None:
        spec = _build({"priority[gte]": "2", "priority[lt]": "5"})
        assert Predicate("priority", Operator.gte, 2) in spec.predicates
        assert Predicate("priority", Operator.lt, 5) in spec.predicates

    def test_json_shaped_range(self) -> None:
        spec = _build({"priority": '{"gt": 1, "lte": 4}'})
        assert Predicate("priority", Operator.gt, 1) in spec.predicates
        assert Predicate("priority", Operator.lte, 4) in spec.predicates

    def test_timestamp_is_normalized_to_stored_form(self) -> None:
        spec = _build({"created_at[gte]": "2024-01-01T00:00:00"})
        assert Predicate("created_at", Operator.gte, "2024-01-01T00:00:00.000000+00:00") in spec.predicates

    @pytest.mark.parametrize(
        "params",
        [
            {"priority[ne]": "1"},
            {"priority[$gt]": "1"},
            {"priority[regex]": "1"},
            {"title[where]": "x"},
            {"priority": '{"$gt": 1}'},
            {"priority": '{"in": [1, 2]}'},
            {"title": '{"$where": "sleep(1000)"}'},
        ],
    )
    def test_operators_outside_allow_list_are_rejected(self, params: dict) -> None:
        with pytest.raises(InvalidQuery):
            _build(params)

    @pytest.mark.parametrize(
        "params",
        [
            {"revision": "1"},
            {"hashed_password": "x"},
            {"priority]": "1"},
            {"priority[gte][lt]": "1"},
            {"priority": "high"},
            {"completed": "maybe"},
            {"completed[gt]": "true"},
            {"created_at": "yesterday"},
            {"priority": "{not json"},
        ],
    )
    def test_bad_keys_and_values_are_rejected(self, params: dict) -> None:
        with pytest.raises(InvalidQuery):
            _build(params)

    @pytest.mark.parametrize(
        "params",
        [
            {"priority": "9" * 30},
            {"priority[lt]": str(-(2**63) - 1)},
            {"priority[gte]": str(2**63)},
            {"priority": '{"gte": 1e400}'},
        ],
    )
    def test_integers_outside_64_bits_are_rejected(self, params: dict) -> None:
        with pytest.raises(InvalidQuery):
            _build(params)

    def test_64_bit_bounds_are_accepted(self) -> None:
        spec = _build({"priority[gte]": str(-(2**63)), "priority[lte]": str(2**63 - 1)})
        assert Predicate("priority", Operator.gte, -(2**63)) in spec.predicates
        assert Predicate("priority", Operator.lte, 2**63 - 1) in spec.predicates

    def test_fractional_json_bound_is_rejected(self) -> None:
        with pytest.raises(InvalidQuery):
            _build({"priority": '{"gte": 3.7}'})

    def test_whole_json_float_is_accepted(self) -> None:
        spec = _build({"priority": '{"gte": 3.0}'})
        assert Predicate("priority", Operator.gte, 3) in spec.predicates


class TestSortAndProjection:
    def test_default_sort_is_newest_first(self) -> None:
        assert _build({}).sort == (SortKey("created_at", descending=True),)

    def test_sort_fields_and_direction(self) -> None:
        spec = _build({"sort": "-priority,title"})
        assert spec.sort == (SortKey("priority", True), SortKey("title", False))

    def test_unknown_sort_field(self) -> None:
        with pytest.raises(InvalidQuery):
            _build({"sort": "revision"})

    def test_default_projection_excludes_bookkeeping(self) -> None:
        projection = _build({}).projection
        assert "revision" not in projection
        assert set(projection) == set(TODO_QUERY_SCHEMA.fields)

    def test_include_list_always_keeps_id(self) -> None:
        assert _build({"fields": "title,priority"}).projection == ("id", "title", "priority")

    def test_exclude_list(self) -> None:
        projection = _build({"fields": "-description,-id"}).projection
        assert "description" not in projection
        assert "id" in projection

    def test_mixed_projection_is_rejected(self) -> None:
        with pytest.raises(InvalidQuery):
            _build({"fields": "title,-description"})


class TestPagination:
    def test_defaults(self) -> None:
        spec = _build({})
        assert (spec.page, spec.limit, spec.offset, spec.page_requested) == (1, 100, 0, False)

    def test_offset(self) -> None:
        spec = _build({"page": "3", "limit": "10"})
        assert spec.offset == 20
        assert spec.page_requested

    @pytest.mark.parametrize("page,limit", [("0", "-5"), ("abc", "x"), ("-1", "0")])
    def test_invalid_values_fall_back_to_defaults(self, page: str, limit: str) -> None:
        spec = _build({"page": page, "limit": limit}, default_limit=25)
        assert spec.page == 1
        assert spec.limit == 25

    def test_limit_is_clamped(self) -> None:
        assert _build({"limit": "5000"}, max_limit=1000).limit == 1000

    def test_last_full_page_is_in_range(self) -> None:
        ensure_page_in_range(_build({"page": "1", "limit": "10"}), total=10)

    def test_page_past_the_end(self) -> None:
        with pytest.raises(PageOutOfRange) as info:
            ensure_page_in_range(_build({"page": "2", "limit": "10"}), total=10)
        assert info.value.status_code == 404

    def test_unrequested_page_never_fails(self) -> None:
        ensure_page_in_range(_build({}), total=0)
