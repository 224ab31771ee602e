"""Improve endpoint: model-suggested rewrites of a prompt."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from promptana.api.deps import get_current_user
from promptana.api.models import ImproveRequest, ImproveResponse
from promptana.api.validation import PromptIdPath
from promptana.core.auth import AuthenticatedUser
from promptana.core.improve import PromptImprover, get_improver

router = APIRouter()


@router.post("/{prompt_id}/improve", response_model=ImproveResponse)
async def improve_prompt(
    prompt_id: PromptIdPath,
    data: ImproveRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    improver: PromptImprover = Depends(get_improver),
) -> ImproveResponse:
    """Ask the model for improved versions. Nothing is saved until a suggestion is committed."""
    result = await improver.improve(
        user.id,
        prompt_id,
        model=data.model,
        current_prompt=data.input.current_prompt,
        num_suggestions=data.input.num_suggestions,
        goals=data.input.goals,
        constraints=data.input.constraints,
        options=data.options.model_dump(by_alias=True, exclude_none=True) if data.options else None,
    )
    return ImproveResponse(**result)
