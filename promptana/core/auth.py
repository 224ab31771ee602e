"""Delegated authentication. Session tokens are issued and verified by Supabase Auth."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import structlog
from supabase import AuthError, Client, ClientOptions, create_client

from promptana.config import get_settings
from promptana.errors import ApiError

logger = structlog.get_logger()

SESSION_EXPIRED = "Session expired. Please sign in again."
_EXPIRED_MARKERS = ("jwt", "token", "expired", "invalid")


@dataclass
class AuthenticatedUser:
    """The caller resolved from a session token."""

    id: str
    email: str
    created_at: str


@dataclass
class AuthSession:
    access_token: str | None
    refresh_token: str | None
    expires_at: int | None
    user: AuthenticatedUser


def _to_user(user: Any) -> AuthenticatedUser:
    created_at = user.created_at
    return AuthenticatedUser(
        id=str(user.id),
        email=user.email or "",
        created_at=created_at.isoformat() if hasattr(created_at, "isoformat") else str(created_at),
    )


def _to_session(response: Any) -> AuthSession:
    session = response.session
    user = response.user or (session.user if session else None)
    if user is None:
        raise ApiError.internal("Supabase auth response is missing a user.")
    return AuthSession(
        access_token=session.access_token if session else None,
        refresh_token=session.refresh_token if session else None,
        expires_at=session.expires_at if session else None,
        user=_to_user(user),
    )


def _error_status(error: AuthError) -> int | None:
    return getattr(error, "status", None)


def is_session_error(error: AuthError) -> bool:
    """Whether a provider error means the token is missing, expired or invalid."""
    if _error_status(error) in (401, 403):
        return True
    message = (error.message or "").lower()
    return any(marker in message for marker in _EXPIRED_MARKERS)


class SupabaseAuth:
    """Session lifecycle and token verification against Supabase Auth.

    Uses its own Supabase client so that sign-in state never leaks into the
    client that issues table queries.
    """

    def __init__(self, client: Client) -> None:
        self._auth = client.auth

    def get_user(self, access_token: str) -> AuthenticatedUser:
        """Resolve an access token to its user or raise 401."""
        try:
            response = self._auth.get_user(access_token)
        except AuthError as e:
            if is_session_error(e):
                logger.info("auth.session_rejected", reason=e.message)
                raise ApiError.unauthorized(SESSION_EXPIRED) from e
            logger.error("auth.get_user_failed", error=e.message)
            raise ApiError.internal("Failed to verify session.") from e
        if response is None or response.user is None:
            raise ApiError.unauthorized(SESSION_EXPIRED)
        return _to_user(response.user)

    def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            response = self._auth.sign_in_with_password({"email": email, "password": password})
        except AuthError as e:
            if _error_status(e) in (400, 401) or "invalid" in (e.message or "").lower():
                logger.info("auth.login_rejected", email=email)
                raise ApiError.unauthorized("Invalid email or password.") from e
            logger.error("auth.login_failed", error=e.message)
            raise ApiError.internal("Failed to sign in.") from e
        logger.info("auth.login", user_id=str(response.user.id) if response.user else None)
        return _to_session(response)

    def sign_up(self, email: str, password: str) -> AuthSession:
        try:
            response = self._auth.sign_up({"email": email, "password": password})
        except AuthError as e:
            message = (e.message or "").lower()
            if "already registered" in message or "already exists" in message:
                raise ApiError.conflict("An account with this email already exists.") from e
            status = _error_status(e)
            if status is not None and 400 <= status < 500:
                raise ApiError.bad_request(e.message or "Sign up failed.") from e
            logger.error("auth.signup_failed", error=e.message)
            raise ApiError.internal("Failed to sign up.") from e
        session = _to_session(response)
        logger.info("auth.signup", user_id=session.user.id, confirmed=session.access_token is not None)
        return session

    def refresh(self, refresh_token: str) -> AuthSession:
        try:
            response = self._auth.refresh_session(refresh_token)
        except AuthError as e:
            logger.info("auth.refresh_rejected", reason=e.message)
            raise ApiError.unauthorized(SESSION_EXPIRED) from e
        session = _to_session(response)
        if not session.access_token or not session.refresh_token:
            raise ApiError.unauthorized(SESSION_EXPIRED)
        return session

    def sign_out(self, access_token: str) -> None:
        """Revoke the session server-side; cookie clearing is the caller's job."""
        try:
            self._auth.admin.sign_out(access_token)
        except AuthError as e:
            # The session may already be gone; signing out still succeeds for the caller.
            logger.warning("auth.signout_failed", error=e.message)


@lru_cache
def get_auth() -> SupabaseAuth:
    """Get cached auth gateway instance."""
    settings = get_settings()
    if not settings.supabase_configured:
        logger.error("supabase.not_configured")
        raise ApiError.internal("Supabase environment variables are not configured.")
    client = create_client(
        settings.supabase_url,
        settings.supabase_key,
        options=ClientOptions(auto_refresh_token=False, persist_session=False),
    )
    return SupabaseAuth(client)
