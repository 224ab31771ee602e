"""Prompt registry."""

from __future__ import annotations

from datetime import datetime, timezone
from difflib import SequenceMatcher
from functools import lru_cache
from typing import Any

import structlog

from promptana.core.events import RunEventLogger, get_event_logger
from promptana.core.ownership import require_prompt
from promptana.core.tags import TAGS_NOT_OWNED, TagService, get_tag_service
from promptana.core.versions import VersionControl, get_vcs, version_stub
from promptana.db.client import SupabaseClient, get_supabase_client
from promptana.db.models import RunEventType, Table
from promptana.errors import ApiError

logger = structlog.get_logger()

# column, ascending
SORT_ORDER = {
    "updatedAtDesc": ("updated_at", False),
    "createdAtDesc": ("created_at", False),
    "titleAsc": ("title", True),
    "lastRunDesc": ("updated_at", False),
    "relevance": ("updated_at", False),
}

DUPLICATE_THRESHOLD = 0.9
DUPLICATE_SCAN_LIMIT = 200


def _empty_page(page: int, page_size: int) -> dict[str, Any]:
    return {"items": [], "page": page, "page_size": page_size, "total": 0}


def content_similarity(a: str, b: str) -> float:
    """Similarity ratio in [0, 1] between two prompt texts."""
    matcher = SequenceMatcher(None, a, b, autojunk=False)
    # Cheap upper bounds first; ratio() is quadratic on long texts.
    for upper_bound in (matcher.real_quick_ratio, matcher.quick_ratio):
        bound = upper_bound()
        if bound < DUPLICATE_THRESHOLD:
            return bound
    return matcher.ratio()


class PromptService:
    """Manages prompts and their tag/catalog metadata for a single owner per call."""

    def __init__(
        self,
        db: SupabaseClient,
        tags: TagService,
        vcs: VersionControl,
        events: RunEventLogger,
    ) -> None:
        self.db = db
        self.tags = tags
        self.vcs = vcs
        self.events = events

    def list_prompts(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
        search: str | None = None,
        tag_ids: list[str] | None = None,
        catalog_id: str | None = None,
        sort: str = "updatedAtDesc",
    ) -> dict[str, Any]:
        """Paginated prompt list with tag summaries and last-run summaries."""
        in_filters: dict[str, list[Any]] = {}
        if tag_ids:
            matching = self.tags.prompt_ids_with_any(user_id, tag_ids)
            if not matching:
                return _empty_page(page, page_size)
            in_filters["id"] = matching

        filters: dict[str, Any] = {"user_id": user_id}
        if catalog_id:
            filters["catalog_id"] = catalog_id

        order_by, ascending = SORT_ORDER[sort]
        rows, total = self.db.select_page(
            Table.PROMPTS,
            page=page,
            page_size=page_size,
            filters=filters,
            in_filters=in_filters or None,
            text_search=("search_vector", search) if search and search.strip() else None,
            order_by=order_by,
            ascending=ascending,
        )

        prompt_ids = [row["id"] for row in rows]
        tags = self.tags.tags_by_prompt(user_id, prompt_ids)
        last_runs = self._last_runs(user_id, [row["last_run_id"] for row in rows if row.get("last_run_id")])
        items = [self._list_item(row, tags.get(row["id"], []), last_runs) for row in rows]

        if sort == "lastRunDesc":
            items.sort(key=lambda item: item["last_run"]["created_at"] if item["last_run"] else "", reverse=True)

        return {"items": items, "page": page, "page_size": page_size, "total": total}

    def create_prompt(
        self,
        user_id: str,
        title: str,
        content: str,
        summary: str | None = None,
        catalog_id: str | None = None,
        tag_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        """Create a prompt with its initial version, catalog and tags.

        Catalog and tags are validated before anything is written. If a later
        step fails the prompt row is removed again so no half-created prompt
        stays visible.
        """
        tag_ids = list(dict.fromkeys(tag_ids or []))
        self._check_catalog(user_id, catalog_id)
        self._check_tags(user_id, tag_ids)
        duplicate_warning = self.find_similar(user_id, title, content)

        prompt = self.db.insert(
            Table.PROMPTS,
            {"user_id": user_id, "title": title, "catalog_id": catalog_id},
        )
        try:
            version, prompt = self.vcs.commit(user_id, prompt["id"], title, content, summary)
            self.tags.assign(user_id, prompt["id"], tag_ids)
        except Exception:
            logger.error("prompts.create_rolled_back", prompt_id=prompt["id"])
            self.db.delete(Table.PROMPTS, {"id": prompt["id"], "user_id": user_id})
            raise

        tag_summaries = self.tags.tags_by_prompt(user_id, [prompt["id"]])[prompt["id"]]
        logger.info("prompts.created", prompt_id=prompt["id"], user_id=user_id, tags=len(tag_ids))

        result: dict[str, Any] = {
            "prompt": self._list_item(prompt, tag_summaries, {}),
            "version": {
                "id": version["id"],
                "title": version["title"],
                "content": version["content"],
                "summary": version.get("summary"),
                "created_at": version["created_at"],
            },
        }
        if duplicate_warning:
            result["duplicate_warning"] = duplicate_warning
        return result

    def get_detail(
        self,
        user_id: str,
        prompt_id: str,
        include_versions: bool = False,
        include_runs: bool = False,
    ) -> dict[str, Any]:
        """Full prompt view: current version, tags, last run and optional history."""
        prompt = require_prompt(self.db, user_id, prompt_id)

        current_version = None
        if prompt.get("current_version_id"):
            row = self.db.select_one(
                Table.PROMPT_VERSIONS,
                {"id": prompt["current_version_id"], "user_id": user_id},
            )
            if row:
                current_version = {
                    "id": row["id"],
                    "title": row["title"],
                    "content": row["content"],
                    "summary": row.get("summary"),
                    "created_at": row["created_at"],
                }

        last_runs = self._last_runs(user_id, [prompt["last_run_id"]] if prompt.get("last_run_id") else [])
        detail: dict[str, Any] = {
            "id": prompt["id"],
            "title": prompt["title"],
            "catalog_id": prompt.get("catalog_id"),
            "tags": self.tags.tags_by_prompt(user_id, [prompt_id])[prompt_id],
            "current_version": current_version,
            "last_run": last_runs.get(prompt.get("last_run_id")),
            "created_at": prompt["created_at"],
            "updated_at": prompt["updated_at"],
        }

        if include_versions:
            versions = self.db.select(
                Table.PROMPT_VERSIONS,
                filters={"prompt_id": prompt_id, "user_id": user_id},
                order_by="created_at",
                ascending=False,
            )
            detail["versions"] = [version_stub(row) for row in versions]

        if include_runs:
            runs = self.db.select(
                Table.RUNS,
                filters={"prompt_id": prompt_id, "user_id": user_id},
                order_by="created_at",
                ascending=False,
                columns="id,status,created_at",
            )
            detail["runs"] = [
                {"id": run["id"], "status": run["status"], "created_at": run["created_at"]} for run in runs
            ]

        return detail

    def update_metadata(self, user_id: str, prompt_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """Update title, catalog and/or tag set. ``changes`` holds only provided keys."""
        require_prompt(self.db, user_id, prompt_id)

        if changes.get("catalog_id") is not None:
            self._check_catalog(user_id, changes["catalog_id"])
        tag_ids = changes.get("tag_ids")
        if tag_ids is not None:
            self._check_tags(user_id, tag_ids)

        data: dict[str, Any] = {
            key: changes[key] for key in ("title", "catalog_id") if key in changes
        }
        data["updated_at"] = datetime.now(timezone.utc).isoformat()
        self.db.update(Table.PROMPTS, {"id": prompt_id, "user_id": user_id}, data)

        if tag_ids is not None:
            self.tags.replace_prompt_tags(user_id, prompt_id, tag_ids)

        logger.info("prompts.updated", prompt_id=prompt_id, fields=sorted(changes))
        return self.get_detail(user_id, prompt_id)

    def delete_prompt(self, user_id: str, prompt_id: str) -> None:
        """Delete a prompt with its versions, runs and tag links."""
        require_prompt(self.db, user_id, prompt_id)
        self.events.log(user_id, RunEventType.DELETE, None, prompt_id=prompt_id)
        self.db.delete(Table.PROMPTS, {"id": prompt_id, "user_id": user_id})
        logger.info("prompts.deleted", prompt_id=prompt_id, user_id=user_id)

    def find_similar(self, user_id: str, title: str, content: str) -> dict[str, Any] | None:
        """Flag existing prompts whose title matches or whose content is nearly identical."""
        prompts = self.db.select(
            Table.PROMPTS,
            filters={"user_id": user_id},
            order_by="updated_at",
            ascending=False,
            limit=DUPLICATE_SCAN_LIMIT,
            columns="id,title,current_version_id",
        )
        if not prompts:
            return None

        version_ids = [p["current_version_id"] for p in prompts if p.get("current_version_id")]
        contents = {
            row["id"]: row["content"]
            for row in (
                self.db.select(
                    Table.PROMPT_VERSIONS,
                    filters={"user_id": user_id},
                    in_filters={"id": version_ids},
                    columns="id,content",
                )
                if version_ids
                else []
            )
        }

        matches: list[tuple[str, float]] = []
        for prompt in prompts:
            if prompt["title"].strip().lower() == title.strip().lower():
                matches.append((prompt["id"], 1.0))
                continue
            existing = contents.get(prompt.get("current_version_id"))
            if existing is None:
                continue
            score = content_similarity(content, existing)
            if score >= DUPLICATE_THRESHOLD:
                matches.append((prompt["id"], score))

        if not matches:
            return None
        matches.sort(key=lambda m: m[1], reverse=True)
        logger.info("prompts.duplicate_suspected", user_id=user_id, matches=len(matches))
        return {
            "similar_prompt_ids": [prompt_id for prompt_id, _ in matches],
            "confidence": round(matches[0][1], 2),
        }

    def _check_catalog(self, user_id: str, catalog_id: str | None) -> None:
        if catalog_id is None:
            return
        if not self.db.select_one(Table.CATALOGS, {"id": catalog_id, "user_id": user_id}):
            raise ApiError.bad_request(
                "Catalog ID is invalid.",
                {"catalogId": ["Catalog does not exist or is not owned by the user."]},
            )

    def _check_tags(self, user_id: str, tag_ids: list[str]) -> None:
        if not self.tags.owns_all(user_id, tag_ids):
            raise ApiError.bad_request("Tag IDs are invalid.", {"tagIds": [TAGS_NOT_OWNED]})

    def _last_runs(self, user_id: str, run_ids: list[str]) -> dict[str, dict[str, Any]]:
        if not run_ids:
            return {}
        rows = self.db.select(
            Table.RUNS,
            filters={"user_id": user_id},
            in_filters={"id": list(dict.fromkeys(run_ids))},
            columns="id,status,created_at,model,latency_ms",
        )
        return {
            row["id"]: {
                "id": row["id"],
                "status": row["status"],
                "created_at": row["created_at"],
                "model": row["model"],
                "latency_ms": row.get("latency_ms"),
            }
            for row in rows
        }

    @staticmethod
    def _list_item(
        row: dict[str, Any],
        tags: list[dict[str, str]],
        last_runs: dict[str, dict[str, Any]],
    ) -> dict[str, Any]:
        return {
            "id": row["id"],
            "title": row["title"],
            "catalog_id": row.get("catalog_id"),
            "tags": tags,
            "current_version_id": row.get("current_version_id"),
            "last_run": last_runs.get(row.get("last_run_id")),
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }


@lru_cache
def get_prompt_service() -> PromptService:
    """Get cached prompt service instance."""
    return PromptService(get_supabase_client(), get_tag_service(), get_vcs(), get_event_logger())
