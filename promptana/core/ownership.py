"""Ownership lookups shared by every service that acts on a prompt.

Each call re-queries the database; a previously loaded row is never trusted
as proof that the caller still owns the prompt.
"""

from __future__ import annotations

from typing import Any

from promptana.db.client import SupabaseClient
from promptana.db.models import Table
from promptana.errors import ApiError

PROMPT_NOT_FOUND = "Prompt not found."


def require_prompt(db: SupabaseClient, user_id: str, prompt_id: str) -> dict[str, Any]:
    """Return the prompt row owned by ``user_id`` or raise 404."""
    prompt = db.select_one(Table.PROMPTS, {"id": prompt_id, "user_id": user_id})
    if not prompt:
        raise ApiError.not_found(PROMPT_NOT_FOUND)
    return prompt
