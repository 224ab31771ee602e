"""Supabase client initialization and helper methods."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import structlog
from postgrest.exceptions import APIError
from supabase import Client, create_client

from promptana.config import get_settings
from promptana.errors import ApiError

logger = structlog.get_logger()

UNIQUE_VIOLATION = "23505"


class DuplicateRecordError(Exception):
    """Raised when an insert or update hits a unique constraint."""


class SupabaseClient:
    """Wrapper around the Supabase client with convenience methods.

    Filters are plain equality maps; ``in_filters`` maps a column to the
    allowed values and ``ilike`` maps a column to a case-insensitive pattern.
    A ``None`` equality value is translated to ``IS NULL``.
    """

    def __init__(self, client: Client) -> None:
        self._client = client

    @property
    def client(self) -> Client:
        """Access the raw Supabase client."""
        return self._client

    def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a record and return the created row."""
        result = self._execute(self._client.table(table).insert(data))
        return result.data[0]

    def insert_many(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Insert several records in one request."""
        if not rows:
            return []
        result = self._execute(self._client.table(table).insert(rows))
        return result.data

    def upsert(self, table: str, data: dict[str, Any], on_conflict: str) -> dict[str, Any]:
        """Insert or update a record keyed by ``on_conflict``."""
        result = self._execute(self._client.table(table).upsert(data, on_conflict=on_conflict))
        return result.data[0]

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
        in_filters: dict[str, list[Any]] | None = None,
        ilike: dict[str, str] | None = None,
        text_search: tuple[str, str] | None = None,
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        """Select records with optional filters, ordering, and limit."""
        query = self._filtered(
            self._client.table(table).select(columns), filters, in_filters, ilike, text_search
        )

        if order_by:
            query = query.order(order_by, desc=not ascending)

        if limit:
            query = query.limit(limit)

        return self._execute(query).data

    def select_page(
        self,
        table: str,
        page: int,
        page_size: int,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        in_filters: dict[str, list[Any]] | None = None,
        ilike: dict[str, str] | None = None,
        text_search: tuple[str, str] | None = None,
        columns: str = "*",
    ) -> tuple[list[dict[str, Any]], int]:
        """Select one page of records and the exact total matching count."""
        query = self._filtered(
            self._client.table(table).select(columns, count="exact"),
            filters,
            in_filters,
            ilike,
            text_search,
        )

        if order_by:
            query = query.order(order_by, desc=not ascending)

        offset = (page - 1) * page_size
        result = self._execute(query.range(offset, offset + page_size - 1))
        return result.data, result.count or 0

    def select_one(self, table: str, filters: dict[str, Any]) -> dict[str, Any] | None:
        """Return the first record matching ``filters`` or None."""
        rows = self.select(table, filters=filters, limit=1)
        return rows[0] if rows else None

    def update(
        self,
        table: str,
        filters: dict[str, Any],
        data: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Update every record matching ``filters`` and return the updated rows."""
        query = self._filtered(self._client.table(table).update(data), filters)
        return self._execute(query).data

    def delete(self, table: str, filters: dict[str, Any]) -> None:
        """Delete every record matching ``filters``."""
        self._execute(self._filtered(self._client.table(table).delete(), filters))

    @staticmethod
    def _filtered(
        query: Any,
        filters: dict[str, Any] | None = None,
        in_filters: dict[str, list[Any]] | None = None,
        ilike: dict[str, str] | None = None,
        text_search: tuple[str, str] | None = None,
    ) -> Any:
        for key, value in (filters or {}).items():
            query = query.is_(key, "null") if value is None else query.eq(key, value)
        for key, values in (in_filters or {}).items():
            query = query.in_(key, values)
        for key, pattern in (ilike or {}).items():
            query = query.ilike(key, pattern)
        if text_search:
            column, text = text_search
            query = query.text_search(column, text, options={"type": "websearch", "config": "english"})
        return query

    @staticmethod
    def _execute(query: Any) -> Any:
        try:
            return query.execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateRecordError(e.message) from e
            logger.error("supabase.query_failed", code=e.code, error=e.message)
            raise


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so ``value`` matches literally.

    PostgREST rewrites ``*`` to ``%`` before the pattern reaches Postgres and
    offers no escape for it, so ``*`` is narrowed to the single-character
    wildcard ``_``.
    """
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped.replace("*", "_")


@lru_cache
def get_supabase_client() -> SupabaseClient:
    """Get cached Supabase client instance."""
    settings = get_settings()
    if not settings.supabase_configured:
        logger.error("supabase.not_configured")
        raise ApiError.internal("Supabase environment variables are not configured.")
    client = create_client(settings.supabase_url, settings.supabase_key)
    logger.info("supabase.connected", url=settings.supabase_url)
    return SupabaseClient(client)
