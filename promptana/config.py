"""Application configuration read from environment variables and Docker Swarm secrets."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

DEFAULT_OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"


def _read_secret(name: str) -> str | None:
    """Read a Docker Swarm secret from /run/secrets/."""
    secret_path = Path(f"/run/secrets/{name}")
    if secret_path.exists():
        return secret_path.read_text().strip()
    return None


class Settings(BaseSettings):
    """Application settings with env var and secret support."""

    supabase_url: str = ""
    supabase_key: str = ""
    openrouter_api_key: str = ""
    openrouter_api_base_url: str = DEFAULT_OPENROUTER_URL
    run_models: list[str] = ["openrouter/auto"]
    improve_models: list[str] = ["openai/gpt-3.5-turbo"]
    run_timeout_seconds: float = 30.0
    improve_timeout_seconds: float = 60.0
    cors_origins: list[str] = []
    cookie_secure: bool = False
    port: int = 8400
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Override with Docker Swarm secrets if available
        if secret := _read_secret("supabase_url"):
            self.supabase_url = secret
        if secret := _read_secret("supabase_key"):
            self.supabase_key = secret
        if secret := _read_secret("openrouter_api_key"):
            self.openrouter_api_key = secret

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @property
    def cors_allow_credentials(self) -> bool:
        """Cookies cross origins only when every allowed origin is named explicitly."""
        return bool(self.cors_origins) and "*" not in self.cors_origins


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
