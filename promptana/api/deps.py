"""Request-scoped dependencies shared by the route modules."""

from __future__ import annotations

import structlog
from fastapi import Depends, Request

from promptana.core.auth import AuthenticatedUser, SupabaseAuth, get_auth
from promptana.errors import ApiError

ACCESS_TOKEN_COOKIE = "sb-access-token"
REFRESH_TOKEN_COOKIE = "sb-refresh-token"


def access_token(request: Request) -> str | None:
    """Bearer token from the Authorization header, else the session cookie."""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return request.cookies.get(ACCESS_TOKEN_COOKIE) or None


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


async def get_current_user(
    request: Request,
    auth: SupabaseAuth = Depends(get_auth),
) -> AuthenticatedUser:
    """Resolve the caller or fail with 401."""
    token = access_token(request)
    if not token:
        raise ApiError.unauthorized()
    user = auth.get_user(token)
    structlog.contextvars.bind_contextvars(user_id=user.id)
    return user
