"""OpenRouter model adapter: one bounded chat-completion call per request."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import httpx
import structlog

from promptana.config import get_settings
from promptana.db.models import RunStatus
from promptana.errors import ApiError

logger = structlog.get_logger()

PROVIDER = "openrouter"


@dataclass
class ModelCallResult:
    """Outcome of one model call. Failures are values, not exceptions."""

    status: RunStatus
    latency_ms: int
    output: dict[str, Any] | None = None
    model_metadata: dict[str, Any] | None = None
    token_usage: dict[str, Any] | None = None
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCESS

    @property
    def text(self) -> str:
        return (self.output or {}).get("text") or ""


def _elapsed_ms(started: float) -> int:
    return max(0, round((time.perf_counter() - started) * 1000))


def _token_usage(body: dict[str, Any]) -> dict[str, Any] | None:
    usage = body.get("usage")
    if not isinstance(usage, dict):
        return None
    token_usage = {
        "inputTokens": usage.get("prompt_tokens") or 0,
        "outputTokens": usage.get("completion_tokens") or 0,
    }
    if usage.get("total_tokens") is not None:
        token_usage["totalTokens"] = usage["total_tokens"]
    return token_usage


def _first_message(body: dict[str, Any]) -> Any:
    """Raw ``content`` of the first choice, None when there is none."""
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        return None
    return message.get("content")


def _provider_error(body: Any) -> str | None:
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("message")
    return None


class OpenRouterClient:
    """Async client for the OpenRouter chat-completions endpoint. No retries."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self._transport = transport

    async def complete(
        self,
        model: str,
        messages: list[dict[str, str]],
        timeout: float,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **extra_body: Any,
    ) -> ModelCallResult:
        """POST one chat completion and classify the outcome."""
        if not self.api_key:
            raise ApiError.internal("OpenRouter environment variables are not configured.")

        body: dict[str, Any] = {"model": model, "messages": messages, **extra_body}
        if temperature is not None:
            body["temperature"] = temperature
        if max_tokens is not None:
            body["max_tokens"] = max_tokens

        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await asyncio.wait_for(
                    client.post(
                        self.base_url,
                        json=body,
                        headers={"Authorization": f"Bearer {self.api_key}"},
                    ),
                    timeout=timeout,
                )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            latency_ms = _elapsed_ms(started)
            logger.warning("openrouter.timeout", model=model, latency_ms=latency_ms)
            return ModelCallResult(
                status=RunStatus.TIMEOUT,
                latency_ms=latency_ms,
                error_message="OpenRouter request timed out.",
            )
        except httpx.HTTPError as e:
            latency_ms = _elapsed_ms(started)
            logger.warning("openrouter.transport_error", model=model, error=str(e))
            return ModelCallResult(
                status=RunStatus.ERROR,
                latency_ms=latency_ms,
                error_message="Failed to call OpenRouter.",
            )

        latency_ms = _elapsed_ms(started)
        try:
            payload = response.json()
        except ValueError:
            payload = None
        metadata = {"provider": PROVIDER, "raw": payload}

        if not response.is_success:
            status = RunStatus.TIMEOUT if response.status_code == 504 else RunStatus.ERROR
            message = _provider_error(payload) or (
                f"OpenRouter request failed with status {response.status_code}."
            )
            logger.warning(
                "openrouter.request_failed",
                model=model,
                status_code=response.status_code,
                latency_ms=latency_ms,
            )
            return ModelCallResult(
                status=status,
                latency_ms=latency_ms,
                model_metadata=metadata,
                error_message=message,
            )

        content = _first_message(payload) if isinstance(payload, dict) else None
        if not isinstance(payload, dict) or (content is not None and not isinstance(content, str)):
            logger.warning("openrouter.malformed_response", model=model)
            return ModelCallResult(
                status=RunStatus.ERROR,
                latency_ms=latency_ms,
                model_metadata=metadata,
                error_message="OpenRouter returned a malformed response.",
            )

        text = content or ""
        logger.info("openrouter.completed", model=model, latency_ms=latency_ms)
        return ModelCallResult(
            status=RunStatus.SUCCESS,
            latency_ms=latency_ms,
            output={"text": text} if text else {},
            model_metadata=metadata,
            token_usage=_token_usage(payload),
        )

    async def run_prompt(
        self,
        model: str,
        prompt_text: str,
        variables: dict[str, Any],
        options: dict[str, Any] | None = None,
        timeout: float = 30.0,
    ) -> ModelCallResult:
        """Execute prompt text as a single user message.

        Variables and options travel under ``extras`` untouched; the text is
        sent as already rendered.
        """
        options = options or {}
        return await self.complete(
            model,
            [{"role": "user", "content": prompt_text}],
            timeout=timeout,
            temperature=options.get("temperature"),
            max_tokens=options.get("maxTokens"),
            extras={"variables": variables, "options": options},
        )


@lru_cache
def get_openrouter() -> OpenRouterClient:
    """Get cached OpenRouter client."""
    settings = get_settings()
    return OpenRouterClient(settings.openrouter_api_key, settings.openrouter_api_base_url)
