"""Improve workflow: ask a model for revised prompt text without persisting anything."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Union

import structlog

from promptana.config import get_settings
from promptana.core.events import RunEventLogger, get_event_logger
from promptana.core.openrouter import OpenRouterClient, get_openrouter
from promptana.core.ownership import require_prompt
from promptana.db.client import SupabaseClient, get_supabase_client
from promptana.db.models import RunEventType
from promptana.errors import ApiError, ErrorCode

logger = structlog.get_logger()

DEFAULT_TEMPERATURE = 0.9
DEFAULT_MAX_TOKENS = 4096

IMPROVE_SYSTEM_PROMPT = """You are an expert prompt engineer. Your task is to improve the given prompt to make it more effective, clear, and likely to produce better results from an AI assistant.

Analyze the prompt and provide improved versions. For each suggestion:
1. Make the prompt clearer and more specific
2. Add structure where helpful (e.g., sections, bullet points)
3. Include relevant context or constraints
4. Improve the tone and language for better AI understanding
5. Consider edge cases and clarify expected output format

Return your response as a JSON object with the following structure:
{
  "suggestions": [
    {
      "title": "Short descriptive title for this version",
      "content": "The improved prompt text",
      "summary": "Brief explanation of what was improved"
    }
  ]
}

Return exactly the number of suggestions requested. Each suggestion should be meaningfully different from the others."""


@dataclass
class ParsedSuggestions:
    items: list[dict[str, Any]]


@dataclass
class RawTextFallback:
    text: str


SuggestionParse = Union[ParsedSuggestions, RawTextFallback]


def build_user_message(
    current_prompt: str,
    num_suggestions: int,
    goals: str | None = None,
    constraints: str | None = None,
) -> str:
    plural = "suggestion" if num_suggestions == 1 else "suggestions"
    parts = [
        f"Please improve the following prompt and provide {num_suggestions} {plural}.",
        f"## Current Prompt:\n{current_prompt}",
    ]
    if goals and goals.strip():
        parts.append(f"## Goals:\n{goals.strip()}")
    if constraints and constraints.strip():
        parts.append(f"## Constraints:\n{constraints.strip()}")
    return "\n\n".join(parts)


def parse_suggestions(text: str) -> SuggestionParse:
    """Parse model output into suggestion dicts, or fall back to the raw text.

    The model output is untrusted; any shape other than
    ``{"suggestions": [ {...}, ... ]}`` yields the fallback.
    """
    try:
        json_match = re.search(r"\{.*\}", text, re.DOTALL)
        data = json.loads(json_match.group() if json_match else text)
    except (json.JSONDecodeError, ValueError):
        return RawTextFallback(text)

    suggestions = data.get("suggestions") if isinstance(data, dict) else None
    if not isinstance(suggestions, list):
        return RawTextFallback(text)
    return ParsedSuggestions([item if isinstance(item, dict) else {} for item in suggestions])


def to_suggestion_dtos(
    parsed: SuggestionParse,
    model: str,
    token_usage: dict[str, Any] | None,
) -> list[dict[str, Any]]:
    if isinstance(parsed, RawTextFallback):
        return [
            {
                "id": "suggestion-1",
                "title": "Improved Version",
                "content": parsed.text,
                "summary": "AI-generated improvement",
                "model": model,
                "token_usage": token_usage,
            }
        ]
    return [
        {
            "id": f"suggestion-{index}",
            "title": str(item.get("title") or f"Improved Version {index}"),
            "content": str(item.get("content") or ""),
            "summary": item.get("summary") if isinstance(item.get("summary"), str) else None,
            "model": model,
            "token_usage": token_usage,
        }
        for index, item in enumerate(parsed.items, start=1)
    ]


class PromptImprover:
    """Generates candidate rewrites of a prompt. Accepting one is a separate version commit."""

    def __init__(
        self,
        db: SupabaseClient,
        model_client: OpenRouterClient,
        events: RunEventLogger,
        timeout: float = 60.0,
    ) -> None:
        self.db = db
        self.model_client = model_client
        self.events = events
        self.timeout = timeout

    async def improve(
        self,
        user_id: str,
        prompt_id: str,
        model: str,
        current_prompt: str,
        num_suggestions: int = 3,
        goals: str | None = None,
        constraints: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        require_prompt(self.db, user_id, prompt_id)
        options = options or {}

        result = await self.model_client.complete(
            model,
            [
                {"role": "system", "content": IMPROVE_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": build_user_message(current_prompt, num_suggestions, goals, constraints),
                },
            ],
            timeout=self.timeout,
            temperature=options.get("temperature", DEFAULT_TEMPERATURE),
            max_tokens=options.get("maxTokens", DEFAULT_MAX_TOKENS),
            response_format={"type": "json_object"},
        )

        if not result.succeeded or not result.text:
            logger.warning(
                "improve.model_failed",
                prompt_id=prompt_id,
                status=result.status.value,
                error=result.error_message,
            )
            raise ApiError(
                500,
                ErrorCode.OPENROUTER_ERROR,
                result.error_message or "Model returned an empty response.",
            )

        parsed = parse_suggestions(result.text)
        if isinstance(parsed, RawTextFallback):
            logger.info("improve.parse_fallback", prompt_id=prompt_id)
        suggestions = to_suggestion_dtos(parsed, model, result.token_usage)

        try:
            self.events.log(
                user_id,
                RunEventType.IMPROVE,
                {
                    "model": model,
                    "suggestionsCount": len(suggestions),
                    "latencyMs": result.latency_ms,
                    "tokenUsage": result.token_usage,
                },
                prompt_id=prompt_id,
            )
        except Exception as e:
            # Analytics only; the suggestions are still returned.
            logger.warning("improve.event_log_failed", prompt_id=prompt_id, error=str(e))

        logger.info("improve.completed", prompt_id=prompt_id, suggestions=len(suggestions))
        return {"suggestions": suggestions, "latency_ms": result.latency_ms}


@lru_cache
def get_improver() -> PromptImprover:
    """Get cached improver instance."""
    return PromptImprover(
        get_supabase_client(),
        get_openrouter(),
        get_event_logger(),
        timeout=get_settings().improve_timeout_seconds,
    )
