"""Version control for prompt content: append-only history with a movable current pointer.

A prompt's ``current_version_id`` defines its content. Every edit, accepted
improvement or restore inserts a new immutable version row and repoints the
prompt at it; no version row is ever updated or deleted.
"""

from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import structlog

from promptana.core.events import RunEventLogger, get_event_logger
from promptana.core.ownership import require_prompt
from promptana.db.client import SupabaseClient, get_supabase_client
from promptana.db.models import RunEventType, Table, VersionSource
from promptana.errors import ApiError

logger = structlog.get_logger()

VERSION_NOT_FOUND = "Prompt version not found."


def version_stub(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row["id"],
        "title": row["title"],
        "summary": row.get("summary"),
        "created_at": row["created_at"],
    }


class VersionControl:
    """Commit, history and restore for prompt versions."""

    def __init__(self, db: SupabaseClient, events: RunEventLogger) -> None:
        self.db = db
        self.events = events

    def commit(
        self,
        user_id: str,
        prompt_id: str,
        title: str,
        content: str,
        summary: str | None = None,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Insert a version and make it the prompt's current version.

        Callers verify ownership first. Returns the new version row and the
        repointed prompt row.
        """
        version = self.db.insert(
            Table.PROMPT_VERSIONS,
            {
                "prompt_id": prompt_id,
                "user_id": user_id,
                "title": title,
                "content": content,
                "summary": summary,
                "created_by": user_id,
            },
        )
        prompts = self.db.update(
            Table.PROMPTS,
            {"id": prompt_id, "user_id": user_id},
            {
                "current_version_id": version["id"],
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
        )
        if not prompts:
            logger.error("vcs.repoint_failed", prompt_id=prompt_id, version_id=version["id"])
            raise ApiError.internal("Failed to finalize prompt version creation.")

        logger.info("vcs.commit", prompt_id=prompt_id, version_id=version["id"], user_id=user_id)
        return version, prompts[0]

    def history(
        self,
        user_id: str,
        prompt_id: str,
        page: int = 1,
        page_size: int = 20,
    ) -> dict[str, Any]:
        """Version stubs for a prompt, newest first."""
        require_prompt(self.db, user_id, prompt_id)
        rows, total = self.db.select_page(
            Table.PROMPT_VERSIONS,
            page=page,
            page_size=page_size,
            filters={"prompt_id": prompt_id, "user_id": user_id},
            order_by="created_at",
            ascending=False,
        )
        return {
            "items": [version_stub(row) for row in rows],
            "page": page,
            "page_size": page_size,
            "total": total,
        }

    def get_version(self, user_id: str, prompt_id: str, version_id: str) -> dict[str, Any]:
        """A single version of a prompt owned by the caller."""
        require_prompt(self.db, user_id, prompt_id)
        version = self.db.select_one(
            Table.PROMPT_VERSIONS,
            {"id": version_id, "prompt_id": prompt_id, "user_id": user_id},
        )
        if not version:
            raise ApiError.not_found(VERSION_NOT_FOUND)
        return version

    def create_version(
        self,
        user_id: str,
        prompt_id: str,
        title: str,
        content: str,
        source: VersionSource,
        summary: str | None = None,
        base_version_id: str | None = None,
    ) -> dict[str, Any]:
        """Record a manual edit or an accepted improve suggestion as the new current version."""
        require_prompt(self.db, user_id, prompt_id)

        if base_version_id is not None:
            base = self.db.select_one(
                Table.PROMPT_VERSIONS,
                {"id": base_version_id, "prompt_id": prompt_id, "user_id": user_id},
            )
            if not base:
                raise ApiError.bad_request(
                    "Base version ID is invalid.",
                    {"baseVersionId": ["Version does not exist for this prompt."]},
                )

        version, prompt = self.commit(user_id, prompt_id, title, content, summary)

        if source == VersionSource.IMPROVE:
            self.events.log(
                user_id,
                RunEventType.IMPROVE_SAVED,
                {"baseVersionId": base_version_id, "newVersionId": version["id"]},
                prompt_id=prompt_id,
            )

        return self._write_result(version, prompt)

    def restore(
        self,
        user_id: str,
        prompt_id: str,
        version_id: str,
        summary: str | None = None,
    ) -> dict[str, Any]:
        """Restore by copying an old version's title and content into a new version."""
        target = self.get_version(user_id, prompt_id, version_id)

        version, prompt = self.commit(
            user_id,
            prompt_id,
            title=target["title"],
            content=target["content"],
            summary=summary if summary is not None else f"Restored from version {version_id}.",
        )
        self.events.log(
            user_id,
            RunEventType.RESTORE,
            {"restoredFromVersionId": version_id, "newVersionId": version["id"]},
            prompt_id=prompt_id,
        )
        logger.info("vcs.restore", prompt_id=prompt_id, restored_from=version_id, version_id=version["id"])
        return self._write_result(version, prompt)

    @staticmethod
    def _write_result(version: dict[str, Any], prompt: dict[str, Any]) -> dict[str, Any]:
        return {
            "version": version,
            "prompt": {
                "id": prompt["id"],
                "current_version_id": prompt["current_version_id"],
                "updated_at": prompt["updated_at"],
            },
        }


@lru_cache
def get_vcs() -> VersionControl:
    """Get cached VCS instance."""
    return VersionControl(get_supabase_client(), get_event_logger())
