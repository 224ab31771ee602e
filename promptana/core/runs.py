"""Run execution and the immutable run history."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import structlog

from promptana.config import get_settings
from promptana.core.events import RunEventLogger, get_event_logger
from promptana.core.openrouter import OpenRouterClient, get_openrouter
from promptana.core.ownership import require_prompt
from promptana.core.quota import RunGuard, get_run_guard
from promptana.db.client import SupabaseClient, get_supabase_client
from promptana.db.models import RunEventType, Table
from promptana.errors import ApiError, ErrorCode

logger = structlog.get_logger()

RUN_NOT_FOUND = "Run not found."


def run_list_item(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row["id"],
        "status": row["status"],
        "model": row["model"],
        "latency_ms": row.get("latency_ms"),
        "created_at": row["created_at"],
    }


class RunService:
    """Executes prompts against a model and records every attempt."""

    def __init__(
        self,
        db: SupabaseClient,
        model_client: OpenRouterClient,
        events: RunEventLogger,
        guard: RunGuard,
        timeout: float = 30.0,
    ) -> None:
        self.db = db
        self.model_client = model_client
        self.events = events
        self.guard = guard
        self.timeout = timeout

    def list_runs(
        self,
        user_id: str,
        prompt_id: str,
        page: int = 1,
        page_size: int = 20,
        status: str | None = None,
    ) -> dict[str, Any]:
        """Runs of one prompt, newest first."""
        require_prompt(self.db, user_id, prompt_id)
        filters: dict[str, Any] = {"prompt_id": prompt_id, "user_id": user_id}
        if status:
            filters["status"] = status
        rows, total = self.db.select_page(
            Table.RUNS,
            page=page,
            page_size=page_size,
            filters=filters,
            order_by="created_at",
            ascending=False,
            columns="id,status,model,latency_ms,created_at",
        )
        return {
            "items": [run_list_item(row) for row in rows],
            "page": page,
            "page_size": page_size,
            "total": total,
        }

    def get_run(self, user_id: str, run_id: str) -> dict[str, Any]:
        run = self.db.select_one(Table.RUNS, {"id": run_id, "user_id": user_id})
        if not run:
            raise ApiError.not_found(RUN_NOT_FOUND)
        return run

    async def execute(
        self,
        user_id: str,
        prompt_id: str,
        model: str,
        variables: dict[str, Any],
        override_prompt: str | None = None,
        options: dict[str, Any] | None = None,
        client_ip: str | None = None,
    ) -> dict[str, Any]:
        """Run a prompt and persist the attempt, whatever its outcome.

        A failed model call is still stored and logged; the caller then gets a
        500 OPENROUTER_ERROR while the run stays retrievable by id.
        """
        prompt = require_prompt(self.db, user_id, prompt_id)
        self.guard.enforce(user_id, client_ip)

        prompt_text = self._effective_text(user_id, prompt, override_prompt)
        result = await self.model_client.run_prompt(
            model, prompt_text, variables, options, timeout=self.timeout
        )

        run_input: dict[str, Any] = {"variables": variables}
        if override_prompt is not None:
            run_input["overridePrompt"] = override_prompt

        run = self.db.insert(
            Table.RUNS,
            {
                "prompt_id": prompt_id,
                "user_id": user_id,
                "model": model,
                "status": result.status.value,
                "input": run_input,
                "output": result.output,
                "model_metadata": result.model_metadata,
                "token_usage": result.token_usage,
                "latency_ms": result.latency_ms,
                "error_message": result.error_message,
            },
        )
        self.db.update(
            Table.PROMPTS,
            {"id": prompt_id, "user_id": user_id},
            {"last_run_id": run["id"], "updated_at": run["created_at"]},
        )
        self.events.log(
            user_id,
            RunEventType.RUN,
            {
                "runId": run["id"],
                "model": model,
                "status": result.status.value,
                "latencyMs": result.latency_ms,
                "tokenUsage": result.token_usage,
                "errorMessage": result.error_message,
            },
            prompt_id=prompt_id,
        )
        logger.info(
            "runs.executed",
            run_id=run["id"],
            prompt_id=prompt_id,
            status=result.status.value,
            latency_ms=result.latency_ms,
        )

        if not result.succeeded:
            raise ApiError(
                500,
                ErrorCode.OPENROUTER_ERROR,
                result.error_message or "OpenRouter request failed.",
                {"runId": run["id"], "status": result.status.value},
            )
        return run

    def _effective_text(self, user_id: str, prompt: dict[str, Any], override_prompt: str | None) -> str:
        if override_prompt and override_prompt.strip():
            return override_prompt
        version = None
        if prompt.get("current_version_id"):
            version = self.db.select_one(
                Table.PROMPT_VERSIONS,
                {"id": prompt["current_version_id"], "user_id": user_id},
            )
        if not version:
            raise ApiError.bad_request(
                "Prompt cannot be executed.",
                {"promptId": ["Prompt has no current version to execute."]},
            )
        return version["content"]


@lru_cache
def get_run_service() -> RunService:
    """Get cached run service instance."""
    settings = get_settings()
    return RunService(
        get_supabase_client(),
        get_openrouter(),
        get_event_logger(),
        get_run_guard(),
        timeout=settings.run_timeout_seconds,
    )
