"""User settings and profile endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from promptana.api.deps import get_current_user
from promptana.api.models import (
    CurrentUserResponse,
    CurrentUserSettings,
    SettingsResponse,
    SettingsUpdate,
)
from promptana.core.auth import AuthenticatedUser
from promptana.core.user_settings import UserSettingsService, get_user_settings_service

router = APIRouter()


@router.get("/settings", response_model=SettingsResponse)
async def read_settings(
    user: AuthenticatedUser = Depends(get_current_user),
    settings: UserSettingsService = Depends(get_user_settings_service),
) -> SettingsResponse:
    return SettingsResponse(**settings.get(user.id))


@router.put("/settings", response_model=SettingsResponse)
async def update_settings(
    data: SettingsUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    settings: UserSettingsService = Depends(get_user_settings_service),
) -> SettingsResponse:
    """Change the run-history retention policy."""
    return SettingsResponse(**settings.update(user.id, data.retention_policy))


@router.get("/me", response_model=CurrentUserResponse)
async def get_me(
    user: AuthenticatedUser = Depends(get_current_user),
    settings: UserSettingsService = Depends(get_user_settings_service),
) -> CurrentUserResponse:
    """The signed-in user with their settings."""
    row = settings.get(user.id)
    return CurrentUserResponse(
        id=user.id,
        email=user.email,
        created_at=user.created_at,
        settings=CurrentUserSettings(retention_policy=row["retention_policy"]),
    )
