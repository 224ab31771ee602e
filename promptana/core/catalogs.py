"""Catalogs are named, per-user folders a prompt can optionally belong to."""

from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import structlog

from promptana.db.client import DuplicateRecordError, SupabaseClient, escape_like, get_supabase_client
from promptana.db.models import Table
from promptana.errors import ApiError

logger = structlog.get_logger()

CATALOG_EXISTS = "A catalog with this name already exists."
CATALOG_NOT_FOUND = "Catalog not found."


class CatalogService:
    """CRUD for catalogs, scoped to the owning user."""

    def __init__(self, db: SupabaseClient) -> None:
        self.db = db

    def list_catalogs(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
        search: str | None = None,
    ) -> dict[str, Any]:
        """List catalogs newest first, optionally filtered by a name substring."""
        ilike = {"name": f"%{escape_like(search)}%"} if search else None
        rows, total = self.db.select_page(
            Table.CATALOGS,
            page=page,
            page_size=page_size,
            filters={"user_id": user_id},
            ilike=ilike,
            order_by="created_at",
            ascending=False,
        )
        return {"items": rows, "page": page, "page_size": page_size, "total": total}

    def get_catalog(self, user_id: str, catalog_id: str) -> dict[str, Any] | None:
        return self.db.select_one(Table.CATALOGS, {"id": catalog_id, "user_id": user_id})

    def create_catalog(
        self,
        user_id: str,
        name: str,
        description: str | None = None,
    ) -> dict[str, Any]:
        """Create a catalog. Names are unique per user, ignoring case."""
        self._ensure_unique_name(user_id, name)
        try:
            row = self.db.insert(
                Table.CATALOGS,
                {"user_id": user_id, "name": name, "description": description},
            )
        except DuplicateRecordError as e:
            raise ApiError.conflict(CATALOG_EXISTS) from e
        logger.info("catalogs.created", catalog_id=row["id"], user_id=user_id)
        return row

    def update_catalog(self, user_id: str, catalog_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """Apply a partial update; the name is re-checked only when it changes."""
        existing = self.get_catalog(user_id, catalog_id)
        if not existing:
            raise ApiError.not_found(CATALOG_NOT_FOUND)

        new_name = changes.get("name")
        if new_name is not None and new_name.lower() != existing["name"].lower():
            self._ensure_unique_name(user_id, new_name, exclude_id=catalog_id)

        data = {**changes, "updated_at": datetime.now(timezone.utc).isoformat()}
        try:
            rows = self.db.update(Table.CATALOGS, {"id": catalog_id, "user_id": user_id}, data)
        except DuplicateRecordError as e:
            raise ApiError.conflict(CATALOG_EXISTS) from e
        if not rows:
            raise ApiError.not_found(CATALOG_NOT_FOUND)
        logger.info("catalogs.updated", catalog_id=catalog_id, fields=sorted(changes))
        return rows[0]

    def delete_catalog(self, user_id: str, catalog_id: str) -> None:
        """Delete a catalog after unassigning it from the owner's prompts."""
        if not self.get_catalog(user_id, catalog_id):
            raise ApiError.not_found(CATALOG_NOT_FOUND)

        self.db.update(
            Table.PROMPTS,
            {"catalog_id": catalog_id, "user_id": user_id},
            {"catalog_id": None},
        )
        self.db.delete(Table.CATALOGS, {"id": catalog_id, "user_id": user_id})
        logger.info("catalogs.deleted", catalog_id=catalog_id, user_id=user_id)

    def _ensure_unique_name(self, user_id: str, name: str, exclude_id: str | None = None) -> None:
        rows = self.db.select(Table.CATALOGS, filters={"user_id": user_id}, columns="id,name")
        wanted = name.lower()
        if any(row["id"] != exclude_id and row["name"].lower() == wanted for row in rows):
            raise ApiError.conflict(CATALOG_EXISTS)


@lru_cache
def get_catalog_service() -> CatalogService:
    """Get cached catalog service instance."""
    return CatalogService(get_supabase_client())
