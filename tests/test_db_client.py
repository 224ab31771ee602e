"""Tests for the Supabase client wrapper."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from postgrest.exceptions import APIError

from promptana.db.client import DuplicateRecordError, SupabaseClient, escape_like

BUILDER_METHODS = ("select", "insert", "update", "delete", "eq", "is_", "in_", "ilike", "text_search", "order", "limit", "range")


def fluent_query(result=None) -> MagicMock:
    """A query builder mock whose chainable methods return itself."""
    query = MagicMock()
    for name in BUILDER_METHODS:
        getattr(query, name).return_value = query
    query.execute.return_value = result or SimpleNamespace(data=[], count=0)
    return query


@pytest.fixture
def query():
    return fluent_query()


@pytest.fixture
def db(query) -> SupabaseClient:
    client = MagicMock()
    client.table.return_value = query
    return SupabaseClient(client)


class TestFilters:
    def test_equality_and_null(self, db, query):
        db.select("prompts", filters={"user_id": "u", "catalog_id": None})
        query.eq.assert_called_once_with("user_id", "u")
        query.is_.assert_called_once_with("catalog_id", "null")

    def test_in_ilike_and_text_search(self, db, query):
        db.select(
            "prompts",
            in_filters={"id": ["a", "b"]},
            ilike={"title": "%draft%"},
            text_search=("search_vector", "refund email"),
        )
        query.in_.assert_called_once_with("id", ["a", "b"])
        query.ilike.assert_called_once_with("title", "%draft%")
        query.text_search.assert_called_once_with(
            "search_vector", "refund email", options={"type": "websearch", "config": "english"}
        )

    def test_order_and_limit(self, db, query):
        db.select("tags", order_by="name", ascending=False, limit=5)
        query.order.assert_called_once_with("name", desc=True)
        query.limit.assert_called_once_with(5)


class TestSelectPage:
    def test_range_and_count(self, db, query):
        query.execute.return_value = SimpleNamespace(data=[{"id": "x"}], count=41)
        rows, total = db.select_page("prompts", page=3, page_size=20)
        query.select.assert_called_once_with("*", count="exact")
        query.range.assert_called_once_with(40, 59)
        assert rows == [{"id": "x"}]
        assert total == 41

    def test_missing_count_is_zero(self, db, query):
        query.execute.return_value = SimpleNamespace(data=[], count=None)
        assert db.select_page("prompts", page=1, page_size=10) == ([], 0)


class TestWrites:
    def test_insert_many_skips_empty(self, db, query):
        assert db.insert_many("prompt_tags", []) == []
        query.insert.assert_not_called()

    def test_select_one(self, db, query):
        query.execute.return_value = SimpleNamespace(data=[{"id": "p1"}])
        assert db.select_one("prompts", {"id": "p1"}) == {"id": "p1"}
        query.limit.assert_called_once_with(1)

    def test_unique_violation_is_mapped(self, db, query):
        query.execute.side_effect = APIError({"code": "23505", "message": "duplicate key value"})
        with pytest.raises(DuplicateRecordError):
            db.insert("tags", {"name": "x"})

    def test_other_errors_propagate(self, db, query):
        query.execute.side_effect = APIError({"code": "42501", "message": "permission denied"})
        with pytest.raises(APIError):
            db.delete("tags", {"id": "t1"})


class TestEscapeLike:
    def test_wildcards_escaped(self):
        assert escape_like("100%_done") == "100\\%\\_done"

    def test_backslash_escaped_first(self):
        assert escape_like("a\\b") == "a\\\\b"

    def test_star_narrowed_to_single_character(self):
        assert escape_like("a*c") == "a_c"
