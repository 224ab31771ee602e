"""Session endpoints: login, signup, refresh, and signout.

Tokens are returned in the body and mirrored into httpOnly cookies so that
browser clients never need to store them.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Body, Depends, Request, Response

from promptana.api.deps import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, access_token
from promptana.api.models import (
    AuthUser,
    Credentials,
    RefreshRequest,
    RefreshResponse,
    SessionResponse,
    SignOutResponse,
)
from promptana.config import Settings, get_settings
from promptana.core.auth import AuthSession, SupabaseAuth, get_auth
from promptana.errors import ApiError

router = APIRouter()

REFRESH_COOKIE_MAX_AGE = 60 * 60 * 24 * 30


def _set_session_cookies(response: Response, session: AuthSession, settings: Settings) -> None:
    if session.access_token:
        response.set_cookie(
            ACCESS_TOKEN_COOKIE,
            session.access_token,
            httponly=True,
            secure=settings.cookie_secure,
            samesite="lax",
            path="/",
        )
    if session.refresh_token:
        response.set_cookie(
            REFRESH_TOKEN_COOKIE,
            session.refresh_token,
            max_age=REFRESH_COOKIE_MAX_AGE,
            httponly=True,
            secure=settings.cookie_secure,
            samesite="lax",
            path="/",
        )


def _session_response(session: AuthSession) -> SessionResponse:
    return SessionResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_at=session.expires_at,
        user=AuthUser(id=session.user.id, email=session.user.email or None),
    )


@router.post("/login", response_model=SessionResponse)
async def login(
    data: Credentials,
    response: Response,
    auth: SupabaseAuth = Depends(get_auth),
    settings: Settings = Depends(get_settings),
) -> SessionResponse:
    session = auth.sign_in(data.email, data.password)
    _set_session_cookies(response, session, settings)
    return _session_response(session)


@router.post("/signup", response_model=SessionResponse, status_code=201)
async def signup(
    data: Credentials,
    response: Response,
    auth: SupabaseAuth = Depends(get_auth),
    settings: Settings = Depends(get_settings),
) -> SessionResponse:
    """Register a user. Tokens are null while email confirmation is pending."""
    session = auth.sign_up(data.email, data.password)
    _set_session_cookies(response, session, settings)
    return _session_response(session)


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(
    request: Request,
    response: Response,
    data: Annotated[RefreshRequest | None, Body()] = None,
    auth: SupabaseAuth = Depends(get_auth),
    settings: Settings = Depends(get_settings),
) -> RefreshResponse:
    """Exchange a refresh token (body or cookie) for a new session."""
    token = (data.refresh_token if data else None) or request.cookies.get(REFRESH_TOKEN_COOKIE)
    if not token:
        raise ApiError.unauthorized("Refresh token is required.")
    session = auth.refresh(token)
    _set_session_cookies(response, session, settings)
    return RefreshResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_at=session.expires_at,
    )


@router.post("/signout", response_model=SignOutResponse)
async def signout(
    request: Request,
    response: Response,
    auth: SupabaseAuth = Depends(get_auth),
) -> SignOutResponse:
    token = access_token(request)
    if token:
        auth.sign_out(token)
    response.delete_cookie(ACCESS_TOKEN_COOKIE, path="/")
    response.delete_cookie(REFRESH_TOKEN_COOKIE, path="/")
    return SignOutResponse(success=True)
