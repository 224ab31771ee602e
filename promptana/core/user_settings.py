"""Per-user preferences, created lazily with defaults."""

from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import structlog

from promptana.db.client import SupabaseClient, get_supabase_client
from promptana.db.models import DEFAULT_RETENTION_POLICY, RetentionPolicy, Table

logger = structlog.get_logger()


class UserSettingsService:
    def __init__(self, db: SupabaseClient) -> None:
        self.db = db

    def get(self, user_id: str) -> dict[str, Any]:
        """Return the user's settings row, creating the default one on first access."""
        row = self.db.select_one(Table.USER_SETTINGS, {"user_id": user_id})
        if row:
            return row
        row = self.db.upsert(
            Table.USER_SETTINGS,
            {"user_id": user_id, "retention_policy": DEFAULT_RETENTION_POLICY.value},
            on_conflict="user_id",
        )
        logger.info("user_settings.created", user_id=user_id)
        return row

    def update(self, user_id: str, retention_policy: RetentionPolicy) -> dict[str, Any]:
        row = self.db.upsert(
            Table.USER_SETTINGS,
            {
                "user_id": user_id,
                "retention_policy": retention_policy.value,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
            on_conflict="user_id",
        )
        logger.info("user_settings.updated", user_id=user_id, retention_policy=retention_policy.value)
        return row


@lru_cache
def get_user_settings_service() -> UserSettingsService:
    """Get cached user settings service instance."""
    return UserSettingsService(get_supabase_client())
