"""Tests for the improve workflow."""

from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest

from promptana.core.improve import (
    IMPROVE_SYSTEM_PROMPT,
    ParsedSuggestions,
    RawTextFallback,
    build_user_message,
    parse_suggestions,
    to_suggestion_dtos,
)
from promptana.db.models import Table
from promptana.errors import ApiError
from tests.conftest import MISSING_ID, USER_ID

MODEL = "openai/gpt-3.5-turbo"


def suggestions_json(*items: dict) -> str:
    return json.dumps({"suggestions": list(items)})


class TestParsing:
    def test_parses_suggestions(self):
        parsed = parse_suggestions(suggestions_json({"title": "A", "content": "x", "summary": "s"}))
        assert parsed == ParsedSuggestions([{"title": "A", "content": "x", "summary": "s"}])

    def test_extracts_json_from_prose(self):
        text = "Sure! Here you go:\n" + suggestions_json({"content": "x"}) + "\nEnjoy."
        assert isinstance(parse_suggestions(text), ParsedSuggestions)

    def test_invalid_json_falls_back(self):
        assert parse_suggestions("just some text") == RawTextFallback("just some text")

    def test_wrong_shape_falls_back(self):
        assert isinstance(parse_suggestions('{"ideas": []}'), RawTextFallback)
        assert isinstance(parse_suggestions('{"suggestions": "nope"}'), RawTextFallback)

    def test_dtos_fill_defaults(self):
        dtos = to_suggestion_dtos(ParsedSuggestions([{"content": "x"}, {}]), MODEL, None)
        assert [d["id"] for d in dtos] == ["suggestion-1", "suggestion-2"]
        assert dtos[0]["title"] == "Improved Version 1"
        assert dtos[0]["summary"] is None
        assert dtos[1]["content"] == ""

    def test_fallback_dto(self):
        usage = {"inputTokens": 1, "outputTokens": 2}
        [dto] = to_suggestion_dtos(RawTextFallback("raw"), MODEL, usage)
        assert dto == {
            "id": "suggestion-1",
            "title": "Improved Version",
            "content": "raw",
            "summary": "AI-generated improvement",
            "model": MODEL,
            "token_usage": usage,
        }

    def test_user_message_sections(self):
        message = build_user_message("Do X", 1, goals=" clarity ", constraints="  ")
        assert message.startswith("Please improve the following prompt and provide 1 suggestion.")
        assert "## Current Prompt:\nDo X" in message
        assert "## Goals:\nclarity" in message
        assert "Constraints" not in message


class TestPromptImprover:
    @pytest.mark.asyncio
    async def test_improve_calls_model_with_json_mode(self, services, mock_db, model_server, make_prompt):
        prompt_id = make_prompt()["prompt"]["id"]
        model_server.reply(suggestions_json({"title": "Sharper", "content": "Better", "summary": "Tighter"}))

        result = await services["improver"].improve(USER_ID, prompt_id, MODEL, "Old prompt", num_suggestions=1)

        sent = model_server.requests[-1]
        assert sent["response_format"] == {"type": "json_object"}
        assert sent["temperature"] == 0.9
        assert sent["max_tokens"] == 4096
        assert sent["messages"][0] == {"role": "system", "content": IMPROVE_SYSTEM_PROMPT}
        assert result["suggestions"][0]["title"] == "Sharper"
        assert mock_db.rows(Table.RUN_EVENTS)[-1]["payload"]["suggestionsCount"] == 1
        assert len(mock_db.rows(Table.PROMPT_VERSIONS)) == 1

    @pytest.mark.asyncio
    async def test_options_override_defaults(self, services, model_server, make_prompt):
        prompt_id = make_prompt()["prompt"]["id"]
        await services["improver"].improve(
            USER_ID, prompt_id, MODEL, "Old", options={"temperature": 0.1, "maxTokens": 100}
        )
        sent = model_server.requests[-1]
        assert sent["temperature"] == 0.1
        assert sent["max_tokens"] == 100

    @pytest.mark.asyncio
    async def test_empty_text_is_error(self, services, model_server, make_prompt):
        prompt_id = make_prompt()["prompt"]["id"]
        model_server.reply("")
        with pytest.raises(ApiError) as exc:
            await services["improver"].improve(USER_ID, prompt_id, MODEL, "Old")
        assert exc.value.status == 500
        assert exc.value.code.value == "OPENROUTER_ERROR"

    @pytest.mark.asyncio
    async def test_event_log_failure_is_ignored(self, services, model_server, make_prompt):
        prompt_id = make_prompt()["prompt"]["id"]
        model_server.reply("plain text answer")
        with patch.object(services["improver"].events, "log", side_effect=RuntimeError("db down")):
            result = await services["improver"].improve(USER_ID, prompt_id, MODEL, "Old")
        assert result["suggestions"][0]["content"] == "plain text answer"

    @pytest.mark.asyncio
    async def test_missing_prompt(self, services, model_server):
        with pytest.raises(ApiError) as exc:
            await services["improver"].improve(USER_ID, MISSING_ID, MODEL, "Old")
        assert exc.value.status == 404
        assert model_server.requests == []


class TestImproveAPI:
    def test_improve(self, client, model_server, make_prompt):
        prompt_id = make_prompt()["prompt"]["id"]
        model_server.reply(
            suggestions_json({"title": "A", "content": "a"}, {"title": "B", "content": "b"}),
            {"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30},
        )
        resp = client.post(f"/api/v1/prompts/{prompt_id}/improve", json={
            "model": MODEL,
            "input": {"currentPrompt": "Old prompt", "numSuggestions": 2, "goals": "Be concise"},
        })
        assert resp.status_code == 200
        data = resp.json()
        assert [s["id"] for s in data["suggestions"]] == ["suggestion-1", "suggestion-2"]
        assert data["suggestions"][0]["tokenUsage"] == {"inputTokens": 10, "outputTokens": 20, "totalTokens": 30}
        assert data["latencyMs"] >= 0

    def test_improve_model_not_allowed(self, client, make_prompt):
        prompt_id = make_prompt()["prompt"]["id"]
        resp = client.post(f"/api/v1/prompts/{prompt_id}/improve", json={
            "model": "openrouter/auto",
            "input": {"currentPrompt": "Old"},
        })
        assert resp.status_code == 422
        assert resp.json()["error"]["details"]["fieldErrors"]["model"] == ["Model is not allowed."]

    def test_improve_num_suggestions_range(self, client, make_prompt):
        prompt_id = make_prompt()["prompt"]["id"]
        resp = client.post(f"/api/v1/prompts/{prompt_id}/improve", json={
            "model": MODEL,
            "input": {"currentPrompt": "Old", "numSuggestions": 6},
        })
        assert resp.status_code == 422
        assert "input.numSuggestions" in resp.json()["error"]["details"]["fieldErrors"]

    def test_improve_model_failure(self, client, model_server, make_prompt):
        prompt_id = make_prompt()["prompt"]["id"]
        model_server.fail(429, {"error": {"message": "Rate limited upstream"}})
        resp = client.post(f"/api/v1/prompts/{prompt_id}/improve", json={
            "model": MODEL,
            "input": {"currentPrompt": "Old"},
        })
        assert resp.status_code == 500
        assert resp.json()["error"] == {"code": "OPENROUTER_ERROR", "message": "Rate limited upstream"}

    def test_improve_content_parts_reply(self, client, model_server, make_prompt):
        prompt_id = make_prompt()["prompt"]["id"]
        model_server.responses.append(httpx.Response(200, json={
            "choices": [{"message": {"content": [{"type": "text", "text": "{}"}]}}],
        }))
        resp = client.post(f"/api/v1/prompts/{prompt_id}/improve", json={
            "model": MODEL,
            "input": {"currentPrompt": "Old"},
        })
        assert resp.status_code == 500
        assert resp.json()["error"] == {
            "code": "OPENROUTER_ERROR",
            "message": "OpenRouter returned a malformed response.",
        }
