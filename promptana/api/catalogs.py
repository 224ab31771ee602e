"""Catalog endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from promptana.api.deps import get_current_user
from promptana.api.models import CatalogCreate, CatalogResponse, CatalogUpdate, Page
from promptana.api.validation import PageQuery, PageSizeQuery, ResourceIdPath
from promptana.core.auth import AuthenticatedUser
from promptana.core.catalogs import CatalogService, get_catalog_service
from promptana.errors import ApiError

router = APIRouter()


@router.get("", response_model=Page[CatalogResponse])
async def list_catalogs(
    page: PageQuery = 1,
    page_size: PageSizeQuery = 20,
    search: Annotated[str | None, Query(max_length=200)] = None,
    user: AuthenticatedUser = Depends(get_current_user),
    catalogs: CatalogService = Depends(get_catalog_service),
) -> Page[CatalogResponse]:
    """List the caller's catalogs, newest first."""
    result = catalogs.list_catalogs(user.id, page, page_size, search.strip() if search else None)
    return Page[CatalogResponse](**result)


@router.post("", response_model=CatalogResponse, status_code=201)
async def create_catalog(
    data: CatalogCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    catalogs: CatalogService = Depends(get_catalog_service),
) -> CatalogResponse:
    catalog = catalogs.create_catalog(user.id, data.name, data.description)
    return CatalogResponse(**catalog)


@router.patch("/{catalog_id}", response_model=CatalogResponse)
async def update_catalog(
    catalog_id: ResourceIdPath,
    data: CatalogUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    catalogs: CatalogService = Depends(get_catalog_service),
) -> CatalogResponse:
    """Rename a catalog and/or change its description."""
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise ApiError.bad_request(
            "Request body is invalid.",
            {"_": ["At least one of 'name' or 'description' must be provided."]},
        )
    if "name" in changes and changes["name"] is None:
        raise ApiError.bad_request("Request body is invalid.", {"name": ["Must be a string."]})
    catalog = catalogs.update_catalog(user.id, catalog_id, changes)
    return CatalogResponse(**catalog)


@router.delete("/{catalog_id}", status_code=204)
async def delete_catalog(
    catalog_id: ResourceIdPath,
    user: AuthenticatedUser = Depends(get_current_user),
    catalogs: CatalogService = Depends(get_catalog_service),
) -> None:
    """Delete a catalog; its prompts stay, uncatalogued."""
    catalogs.delete_catalog(user.id, catalog_id)
