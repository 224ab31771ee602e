"""Prompt search endpoint."""

from __future__ import annotations

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query

from promptana.api.deps import get_current_user
from promptana.api.models import Page, SearchResultItem
from promptana.api.validation import CatalogIdQuery, PageQuery, SearchPageSizeQuery, TagIdsQuery
from promptana.core.auth import AuthenticatedUser
from promptana.core.search import SearchService, get_search_service
from promptana.errors import ApiError

router = APIRouter()


@router.get("/prompts", response_model=Page[SearchResultItem])
async def search_prompts(
    q: Annotated[str, Query(min_length=1, max_length=500)],
    tag_ids: TagIdsQuery = None,
    catalog_id: CatalogIdQuery = None,
    page: PageQuery = 1,
    page_size: SearchPageSizeQuery = 20,
    sort: Literal["relevance", "updatedAtDesc"] = "relevance",
    user: AuthenticatedUser = Depends(get_current_user),
    search: SearchService = Depends(get_search_service),
) -> Page[SearchResultItem]:
    """Full-text search over titles and current content with highlighted snippets."""
    if not q.strip():
        raise ApiError.bad_request("Query parameters are invalid.", {"q": ["Must not be empty."]})
    result = search.search(
        user.id,
        q.strip(),
        page=page,
        page_size=page_size,
        tag_ids=tag_ids,
        catalog_id=catalog_id,
        sort=sort,
    )
    return Page[SearchResultItem](**result)
