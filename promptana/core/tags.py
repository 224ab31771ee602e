"""Tags and the prompt/tag association."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import structlog

from promptana.core.ownership import require_prompt
from promptana.db.client import DuplicateRecordError, SupabaseClient, escape_like, get_supabase_client
from promptana.db.models import Table
from promptana.errors import ApiError

logger = structlog.get_logger()

TAG_EXISTS = "A tag with this name already exists."
TAG_NOT_FOUND = "Tag not found."
TAGS_NOT_OWNED = "One or more tags do not exist or are not owned by the user."


class TagService:
    """CRUD for tags plus helpers for the prompt_tags association."""

    def __init__(self, db: SupabaseClient) -> None:
        self.db = db

    def list_tags(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 50,
        search: str | None = None,
    ) -> dict[str, Any]:
        ilike = {"name": f"%{escape_like(search)}%"} if search else None
        rows, total = self.db.select_page(
            Table.TAGS,
            page=page,
            page_size=page_size,
            filters={"user_id": user_id},
            ilike=ilike,
            order_by="created_at",
            ascending=False,
        )
        return {"items": rows, "page": page, "page_size": page_size, "total": total}

    def create_tag(self, user_id: str, name: str) -> dict[str, Any]:
        self._ensure_unique_name(user_id, name)
        try:
            row = self.db.insert(Table.TAGS, {"user_id": user_id, "name": name})
        except DuplicateRecordError as e:
            raise ApiError.conflict(TAG_EXISTS) from e
        logger.info("tags.created", tag_id=row["id"], user_id=user_id)
        return row

    def rename_tag(self, user_id: str, tag_id: str, name: str) -> dict[str, Any]:
        existing = self.db.select_one(Table.TAGS, {"id": tag_id, "user_id": user_id})
        if not existing:
            raise ApiError.not_found(TAG_NOT_FOUND)
        if name.lower() != existing["name"].lower():
            self._ensure_unique_name(user_id, name, exclude_id=tag_id)
        try:
            rows = self.db.update(Table.TAGS, {"id": tag_id, "user_id": user_id}, {"name": name})
        except DuplicateRecordError as e:
            raise ApiError.conflict(TAG_EXISTS) from e
        if not rows:
            raise ApiError.not_found(TAG_NOT_FOUND)
        logger.info("tags.renamed", tag_id=tag_id)
        return rows[0]

    def delete_tag(self, user_id: str, tag_id: str) -> None:
        """Delete a tag; its prompt associations cascade with it."""
        if not self.db.select_one(Table.TAGS, {"id": tag_id, "user_id": user_id}):
            raise ApiError.not_found(TAG_NOT_FOUND)
        self.db.delete(Table.TAGS, {"id": tag_id, "user_id": user_id})
        logger.info("tags.deleted", tag_id=tag_id, user_id=user_id)

    def owns_all(self, user_id: str, tag_ids: list[str]) -> bool:
        """True when every id names a tag owned by ``user_id``."""
        unique_ids = list(dict.fromkeys(tag_ids))
        if not unique_ids:
            return True
        rows = self.db.select(
            Table.TAGS,
            filters={"user_id": user_id},
            in_filters={"id": unique_ids},
            columns="id",
        )
        return len({row["id"] for row in rows}) == len(unique_ids)

    def assign(self, user_id: str, prompt_id: str, tag_ids: list[str]) -> None:
        self.db.insert_many(
            Table.PROMPT_TAGS,
            [{"prompt_id": prompt_id, "tag_id": tag_id, "user_id": user_id} for tag_id in dict.fromkeys(tag_ids)],
        )

    def replace_prompt_tags(self, user_id: str, prompt_id: str, tag_ids: list[str]) -> dict[str, Any]:
        """Replace the full tag set of a prompt owned by ``user_id``."""
        require_prompt(self.db, user_id, prompt_id)
        unique_ids = list(dict.fromkeys(tag_ids))
        if not self.owns_all(user_id, unique_ids):
            raise ApiError.bad_request("Tag IDs are invalid.", {"tagIds": [TAGS_NOT_OWNED]})

        self.db.delete(Table.PROMPT_TAGS, {"prompt_id": prompt_id, "user_id": user_id})
        self.assign(user_id, prompt_id, unique_ids)
        logger.info("tags.replaced", prompt_id=prompt_id, count=len(unique_ids))
        return {"prompt_id": prompt_id, "tag_ids": unique_ids}

    def prompt_ids_with_any(self, user_id: str, tag_ids: list[str]) -> list[str]:
        """Ids of the user's prompts carrying at least one of ``tag_ids``."""
        rows = self.db.select(
            Table.PROMPT_TAGS,
            filters={"user_id": user_id},
            in_filters={"tag_id": tag_ids},
            columns="prompt_id",
        )
        return list(dict.fromkeys(row["prompt_id"] for row in rows))

    def tags_by_prompt(self, user_id: str, prompt_ids: list[str]) -> dict[str, list[dict[str, str]]]:
        """Map each prompt id to its tag summaries ``{id, name}``, sorted by name."""
        result: dict[str, list[dict[str, str]]] = {pid: [] for pid in prompt_ids}
        if not prompt_ids:
            return result
        links = self.db.select(
            Table.PROMPT_TAGS,
            filters={"user_id": user_id},
            in_filters={"prompt_id": prompt_ids},
        )
        tag_ids = list(dict.fromkeys(link["tag_id"] for link in links))
        if not tag_ids:
            return result
        tags = {
            row["id"]: row["name"]
            for row in self.db.select(
                Table.TAGS,
                filters={"user_id": user_id},
                in_filters={"id": tag_ids},
            )
        }
        for link in links:
            if link["tag_id"] in tags:
                result[link["prompt_id"]].append({"id": link["tag_id"], "name": tags[link["tag_id"]]})
        for summaries in result.values():
            summaries.sort(key=lambda t: t["name"].lower())
        return result

    def _ensure_unique_name(self, user_id: str, name: str, exclude_id: str | None = None) -> None:
        rows = self.db.select(Table.TAGS, filters={"user_id": user_id}, columns="id,name")
        wanted = name.lower()
        if any(row["id"] != exclude_id and row["name"].lower() == wanted for row in rows):
            raise ApiError.conflict(TAG_EXISTS)


@lru_cache
def get_tag_service() -> TagService:
    """Get cached tag service instance."""
    return TagService(get_supabase_client())
