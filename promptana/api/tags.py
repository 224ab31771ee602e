"""Tag endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from promptana.api.deps import get_current_user
from promptana.api.models import Page, TagCreate, TagResponse, TagUpdate
from promptana.api.validation import PageQuery, ResourceIdPath, TagPageSizeQuery
from promptana.core.auth import AuthenticatedUser
from promptana.core.tags import TagService, get_tag_service

router = APIRouter()


@router.get("", response_model=Page[TagResponse])
async def list_tags(
    page: PageQuery = 1,
    page_size: TagPageSizeQuery = 50,
    search: Annotated[str | None, Query(max_length=200)] = None,
    user: AuthenticatedUser = Depends(get_current_user),
    tags: TagService = Depends(get_tag_service),
) -> Page[TagResponse]:
    result = tags.list_tags(user.id, page, page_size, search.strip() if search else None)
    return Page[TagResponse](**result)


@router.post("", response_model=TagResponse, status_code=201)
async def create_tag(
    data: TagCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    tags: TagService = Depends(get_tag_service),
) -> TagResponse:
    return TagResponse(**tags.create_tag(user.id, data.name))


@router.patch("/{tag_id}", response_model=TagResponse)
async def rename_tag(
    tag_id: ResourceIdPath,
    data: TagUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    tags: TagService = Depends(get_tag_service),
) -> TagResponse:
    return TagResponse(**tags.rename_tag(user.id, tag_id, data.name))


@router.delete("/{tag_id}", status_code=204)
async def delete_tag(
    tag_id: ResourceIdPath,
    user: AuthenticatedUser = Depends(get_current_user),
    tags: TagService = Depends(get_tag_service),
) -> None:
    """Delete a tag and detach it from every prompt."""
    tags.delete_tag(user.id, tag_id)
