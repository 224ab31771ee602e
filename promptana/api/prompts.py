"""Prompt CRUD endpoints."""

from __future__ import annotations

from typing import Annotated, Literal

from fastapi import APIRouter, Body, Depends, Query

from promptana.api.deps import get_current_user
from promptana.api.models import (
    Page,
    PromptCreate,
    PromptCreateResponse,
    PromptDelete,
    PromptDetail,
    PromptListItem,
    PromptTagsReplace,
    PromptTagsResponse,
    PromptUpdate,
)
from promptana.api.validation import (
    CatalogIdQuery,
    PageQuery,
    PageSizeQuery,
    PromptIdPath,
    TagIdsQuery,
)
from promptana.core.auth import AuthenticatedUser
from promptana.core.prompts import PromptService, get_prompt_service
from promptana.core.tags import TagService, get_tag_service
from promptana.errors import ApiError

router = APIRouter()

PromptSort = Literal["updatedAtDesc", "createdAtDesc", "titleAsc", "lastRunDesc", "relevance"]


@router.get("", response_model=Page[PromptListItem])
async def list_prompts(
    page: PageQuery = 1,
    page_size: PageSizeQuery = 20,
    search: Annotated[str | None, Query(max_length=500)] = None,
    tag_ids: TagIdsQuery = None,
    catalog_id: CatalogIdQuery = None,
    sort: PromptSort = "updatedAtDesc",
    user: AuthenticatedUser = Depends(get_current_user),
    prompts: PromptService = Depends(get_prompt_service),
) -> Page[PromptListItem]:
    """List prompts with optional search, tag, and catalog filters."""
    result = prompts.list_prompts(
        user.id,
        page=page,
        page_size=page_size,
        search=search.strip() if search else None,
        tag_ids=tag_ids,
        catalog_id=catalog_id,
        sort=sort,
    )
    return Page[PromptListItem](**result)


@router.post(
    "",
    response_model=PromptCreateResponse,
    response_model_exclude_unset=True,
    status_code=201,
)
async def create_prompt(
    data: PromptCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    prompts: PromptService = Depends(get_prompt_service),
) -> PromptCreateResponse:
    """Create a new prompt with its initial version."""
    result = prompts.create_prompt(
        user.id,
        title=data.title,
        content=data.content,
        summary=data.summary,
        catalog_id=data.catalog_id,
        tag_ids=data.tag_ids,
    )
    return PromptCreateResponse(**result)


@router.get("/{prompt_id}", response_model=PromptDetail, response_model_exclude_unset=True)
async def get_prompt(
    prompt_id: PromptIdPath,
    include_versions: Annotated[bool, Query(alias="includeVersions")] = False,
    include_runs: Annotated[bool, Query(alias="includeRuns")] = False,
    user: AuthenticatedUser = Depends(get_current_user),
    prompts: PromptService = Depends(get_prompt_service),
) -> PromptDetail:
    detail = prompts.get_detail(user.id, prompt_id, include_versions, include_runs)
    return PromptDetail(**detail)


@router.patch("/{prompt_id}", response_model=PromptDetail, response_model_exclude_unset=True)
async def update_prompt(
    prompt_id: PromptIdPath,
    data: PromptUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    prompts: PromptService = Depends(get_prompt_service),
) -> PromptDetail:
    """Update a prompt's title, catalog, or tags."""
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise ApiError.bad_request(
            "Request body is invalid.",
            {"_": ["At least one of title, catalogId, or tagIds must be provided."]},
        )
    if "title" in changes and changes["title"] is None:
        raise ApiError.bad_request("Request body is invalid.", {"title": ["Must be a string."]})
    if "tag_ids" in changes and changes["tag_ids"] is None:
        raise ApiError.bad_request("Request body is invalid.", {"tagIds": ["Must be an array."]})
    detail = prompts.update_metadata(user.id, prompt_id, changes)
    return PromptDetail(**detail)


@router.delete("/{prompt_id}", status_code=204)
async def delete_prompt(
    prompt_id: PromptIdPath,
    data: Annotated[PromptDelete | None, Body()] = None,
    user: AuthenticatedUser = Depends(get_current_user),
    prompts: PromptService = Depends(get_prompt_service),
) -> None:
    """Delete a prompt with all of its versions and runs."""
    if data is not None and data.confirm is False:
        raise ApiError.bad_request("Request body is invalid.", {"confirm": ["Must be true when provided."]})
    prompts.delete_prompt(user.id, prompt_id)


@router.put("/{prompt_id}/tags", response_model=PromptTagsResponse)
async def replace_prompt_tags(
    prompt_id: PromptIdPath,
    data: PromptTagsReplace,
    user: AuthenticatedUser = Depends(get_current_user),
    tags: TagService = Depends(get_tag_service),
) -> PromptTagsResponse:
    """Replace the full set of tags on a prompt."""
    return PromptTagsResponse(**tags.replace_prompt_tags(user.id, prompt_id, data.tag_ids))
