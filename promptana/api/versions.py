"""Version history endpoints: list, view, create, and restore."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Body, Depends

from promptana.api.deps import get_current_user
from promptana.api.models import (
    Page,
    VersionCreate,
    VersionResponse,
    VersionRestore,
    VersionStub,
    VersionWriteResponse,
)
from promptana.api.validation import PageQuery, PageSizeQuery, PromptIdPath, VersionIdPath
from promptana.core.auth import AuthenticatedUser
from promptana.core.versions import VersionControl, get_vcs

router = APIRouter()


@router.get("/{prompt_id}/versions", response_model=Page[VersionStub])
async def list_versions(
    prompt_id: PromptIdPath,
    page: PageQuery = 1,
    page_size: PageSizeQuery = 20,
    user: AuthenticatedUser = Depends(get_current_user),
    vcs: VersionControl = Depends(get_vcs),
) -> Page[VersionStub]:
    """Version history for a prompt, newest first."""
    return Page[VersionStub](**vcs.history(user.id, prompt_id, page, page_size))


@router.get("/{prompt_id}/versions/{version_id}", response_model=VersionResponse)
async def get_version(
    prompt_id: PromptIdPath,
    version_id: VersionIdPath,
    user: AuthenticatedUser = Depends(get_current_user),
    vcs: VersionControl = Depends(get_vcs),
) -> VersionResponse:
    return VersionResponse(**vcs.get_version(user.id, prompt_id, version_id))


@router.post("/{prompt_id}/versions", response_model=VersionWriteResponse, status_code=201)
async def create_version(
    prompt_id: PromptIdPath,
    data: VersionCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    vcs: VersionControl = Depends(get_vcs),
) -> VersionWriteResponse:
    """Save new content as the prompt's current version."""
    result = vcs.create_version(
        user.id,
        prompt_id,
        title=data.title,
        content=data.content,
        source=data.source,
        summary=data.summary,
        base_version_id=data.base_version_id,
    )
    return VersionWriteResponse(**result)


@router.post(
    "/{prompt_id}/versions/{version_id}/restore",
    response_model=VersionWriteResponse,
    status_code=201,
)
async def restore_version(
    prompt_id: PromptIdPath,
    version_id: VersionIdPath,
    data: Annotated[VersionRestore | None, Body()] = None,
    user: AuthenticatedUser = Depends(get_current_user),
    vcs: VersionControl = Depends(get_vcs),
) -> VersionWriteResponse:
    """Restore an earlier version by copying it into a new current version."""
    summary = data.summary if data else None
    return VersionWriteResponse(**vcs.restore(user.id, prompt_id, version_id, summary))
