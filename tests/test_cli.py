"""Tests for the promptana CLI."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from promptana.cli.main import _mask, cli
from promptana.config import Settings


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def settings():
    test_settings = Settings(
        supabase_url="https://project.supabase.co",
        supabase_key="service-role-key-123456",
        openrouter_api_key="sk-or",
        run_models=["openrouter/auto", "meta/llama"],
        improve_models=["openai/gpt-4o-mini"],
        port=9000,
        log_level="DEBUG",
    )
    with patch("promptana.cli.main.get_settings", return_value=test_settings):
        yield test_settings


class TestMask:
    def test_empty(self):
        assert _mask("") == ""

    def test_short(self):
        assert _mask("12345678") == "****"

    def test_long(self):
        assert _mask("abcdefghijkl") == "abcd...ijkl"


class TestConfigCommand:
    def test_table(self, runner, settings):
        result = runner.invoke(cli, ["config"])
        assert result.exit_code == 0
        assert "https://project.supabase.co" in result.output
        assert "serv...3456" in result.output
        assert "service-role-key-123456" not in result.output
        assert "sk-or" not in result.output

    def test_json(self, runner, settings):
        result = runner.invoke(cli, ["config", "--format", "json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["supabase_key"] == "serv...3456"
        assert data["openrouter_api_key"] == "****"
        assert data["port"] == 9000


class TestModelsCommand:
    def test_lists_allowed_models(self, runner, settings):
        result = runner.invoke(cli, ["models"])
        assert result.exit_code == 0
        assert result.output.splitlines() == [
            "Run models:",
            "  openrouter/auto",
            "  meta/llama",
            "Improve models:",
            "  openai/gpt-4o-mini",
        ]


class TestServeCommand:
    def test_defaults_from_settings(self, runner, settings):
        with patch("uvicorn.run") as run:
            result = runner.invoke(cli, ["serve"])
        assert result.exit_code == 0
        run.assert_called_once_with(
            "promptana.main:app", host="0.0.0.0", port=9000, reload=False, log_level="debug"
        )

    def test_explicit_options(self, runner, settings):
        with patch("uvicorn.run") as run:
            result = runner.invoke(cli, ["serve", "--host", "127.0.0.1", "--port", "8080", "--reload"])
        assert result.exit_code == 0
        assert run.call_args.kwargs["host"] == "127.0.0.1"
        assert run.call_args.kwargs["port"] == 8080
        assert run.call_args.kwargs["reload"] is True


class TestSettings:
    def test_swarm_secret_overrides_env(self):
        secrets = {"openrouter_api_key": "from-secret"}
        with patch("promptana.config._read_secret", side_effect=secrets.get):
            loaded = Settings(openrouter_api_key="from-env")
        assert loaded.openrouter_api_key == "from-secret"

    def test_supabase_configured(self):
        with patch("promptana.config._read_secret", return_value=None):
            assert not Settings(supabase_url="", supabase_key="").supabase_configured
            assert Settings(supabase_url="https://x.supabase.co", supabase_key="k").supabase_configured

    def test_cors_closed_by_default(self, monkeypatch):
        monkeypatch.delenv("CORS_ORIGINS", raising=False)
        with patch("promptana.config._read_secret", return_value=None):
            loaded = Settings()
        assert loaded.cors_origins == []
        assert not loaded.cors_allow_credentials

    def test_wildcard_origin_never_carries_credentials(self):
        with patch("promptana.config._read_secret", return_value=None):
            assert not Settings(cors_origins=["*"]).cors_allow_credentials
            assert Settings(cors_origins=["https://app.example.com"]).cors_allow_credentials
