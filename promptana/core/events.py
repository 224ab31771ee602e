"""Run event log: append-only analytics trail of runs, improvements, restores and deletes."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import structlog

from promptana.db.client import SupabaseClient, get_supabase_client
from promptana.db.models import RunEventType, Table

logger = structlog.get_logger()


class RunEventLogger:
    """Writes run_events rows. Events are never updated or deleted."""

    def __init__(self, db: SupabaseClient) -> None:
        self.db = db

    def log(
        self,
        user_id: str,
        event_type: RunEventType,
        payload: dict[str, Any] | None,
        prompt_id: str | None = None,
    ) -> dict[str, Any]:
        """Append one event row."""
        row = self.db.insert(
            Table.RUN_EVENTS,
            {
                "user_id": user_id,
                "prompt_id": prompt_id,
                "event_type": event_type.value,
                "payload": payload,
            },
        )
        logger.info("run_events.logged", event_type=event_type.value, prompt_id=prompt_id)
        return row


@lru_cache
def get_event_logger() -> RunEventLogger:
    """Get cached run event logger instance."""
    return RunEventLogger(get_supabase_client())
