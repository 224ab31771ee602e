"""Test fixtures: in-memory Supabase client, fake auth gateway and a stubbed model endpoint."""

from __future__ import annotations

import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import uuid4

import httpx
import pytest
from fastapi.testclient import TestClient

from promptana.core.auth import SESSION_EXPIRED, AuthenticatedUser, AuthSession
from promptana.db.client import DuplicateRecordError, SupabaseClient
from promptana.db.models import Table
from promptana.errors import ApiError

USER_ID = "11111111-1111-4111-8111-111111111111"
OTHER_USER_ID = "22222222-2222-4222-8222-222222222222"
USER_TOKEN = "token-user"
OTHER_TOKEN = "token-other"
MISSING_ID = "99999999-9999-4999-8999-999999999999"

_TIMESTAMPED = {Table.CATALOGS, Table.PROMPTS, Table.USER_SETTINGS}
_UNIQUE_NAME = {Table.CATALOGS, Table.TAGS}
_ROW_DEFAULTS: dict[str, dict[str, Any]] = {
    Table.PROMPTS: {"catalog_id": None, "current_version_id": None, "last_run_id": None},
    Table.PROMPT_VERSIONS: {"summary": None},
    Table.CATALOGS: {"description": None},
}


def _like_regex(pattern: str) -> re.Pattern[str]:
    parts: list[str] = []
    escaped = False
    for char in pattern:
        if escaped:
            parts.append(re.escape(char))
            escaped = False
        elif char == "\\":
            escaped = True
        elif char in "%*":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


class MockSupabaseClient(SupabaseClient):
    """In-memory mock of the Supabase client for testing.

    Supports the filter vocabulary of the real wrapper and emulates the
    database-side behaviour the services rely on: unique names per user,
    cascading deletes and the prompt text-search vector.
    """

    def __init__(self):
        self._tables: dict[str, list[dict[str, Any]]] = {
            Table.CATALOGS: [],
            Table.TAGS: [],
            Table.PROMPTS: [],
            Table.PROMPT_VERSIONS: [],
            Table.PROMPT_TAGS: [],
            Table.RUNS: [],
            Table.RUN_EVENTS: [],
            Table.USER_SETTINGS: [],
        }
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _now(self) -> str:
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    def rows(self, table: str) -> list[dict[str, Any]]:
        """Direct access to stored rows for assertions."""
        return self._tables[table]

    def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        self._check_unique(table, data)
        now = self._now()
        record: dict[str, Any] = {**_ROW_DEFAULTS.get(table, {})}
        if table != Table.PROMPT_TAGS:
            record["id"] = str(uuid4())
            record["created_at"] = now
        if table in _TIMESTAMPED:
            record["updated_at"] = now
        record.update(data)
        self._tables[table].append(record)
        return dict(record)

    def insert_many(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [self.insert(table, row) for row in rows]

    def upsert(self, table: str, data: dict[str, Any], on_conflict: str) -> dict[str, Any]:
        for row in self._tables[table]:
            if row.get(on_conflict) == data[on_conflict]:
                row.update(data)
                return dict(row)
        record = {"created_at": self._now(), **data}
        record.setdefault("updated_at", record["created_at"])
        self._tables[table].append(record)
        return dict(record)

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
        in_filters: dict[str, list[Any]] | None = None,
        ilike: dict[str, str] | None = None,
        text_search: tuple[str, str] | None = None,
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        rows = self._match(table, filters, in_filters, ilike, text_search)
        if order_by:
            rows = sorted(rows, key=lambda r: r.get(order_by) or "", reverse=not ascending)
        if limit:
            rows = rows[:limit]
        return [dict(r) for r in rows]

    def select_page(
        self,
        table: str,
        page: int,
        page_size: int,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        in_filters: dict[str, list[Any]] | None = None,
        ilike: dict[str, str] | None = None,
        text_search: tuple[str, str] | None = None,
        columns: str = "*",
    ) -> tuple[list[dict[str, Any]], int]:
        rows = self.select(
            table,
            filters=filters,
            order_by=order_by,
            ascending=ascending,
            in_filters=in_filters,
            ilike=ilike,
            text_search=text_search,
        )
        offset = (page - 1) * page_size
        return rows[offset:offset + page_size], len(rows)

    def update(self, table: str, filters: dict[str, Any], data: dict[str, Any]) -> list[dict[str, Any]]:
        matched = self._match(table, filters)
        for row in matched:
            self._check_unique(table, {**row, **data}, exclude=row)
        for row in matched:
            row.update(data)
        return [dict(r) for r in matched]

    def delete(self, table: str, filters: dict[str, Any]) -> None:
        doomed = self._match(table, filters)
        self._tables[table] = [r for r in self._tables[table] if r not in doomed]
        ids = [r.get("id") for r in doomed]
        if table == Table.PROMPTS:
            for child in (Table.PROMPT_VERSIONS, Table.RUNS, Table.PROMPT_TAGS):
                self._tables[child] = [r for r in self._tables[child] if r.get("prompt_id") not in ids]
        elif table == Table.TAGS:
            self._tables[Table.PROMPT_TAGS] = [
                r for r in self._tables[Table.PROMPT_TAGS] if r.get("tag_id") not in ids
            ]

    def _match(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        in_filters: dict[str, list[Any]] | None = None,
        ilike: dict[str, str] | None = None,
        text_search: tuple[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        rows = list(self._tables[table])
        for key, value in (filters or {}).items():
            rows = [r for r in rows if r.get(key) == value]
        for key, values in (in_filters or {}).items():
            rows = [r for r in rows if r.get(key) in values]
        for key, pattern in (ilike or {}).items():
            regex = _like_regex(pattern)
            rows = [r for r in rows if regex.fullmatch(r.get(key) or "")]
        if text_search:
            terms = text_search[1].lower().split()
            rows = [r for r in rows if all(t in self._search_text(r) for t in terms)]
        return rows

    def _search_text(self, prompt: dict[str, Any]) -> str:
        content = next(
            (v["content"] for v in self._tables[Table.PROMPT_VERSIONS] if v["id"] == prompt.get("current_version_id")),
            "",
        )
        return f"{prompt.get('title', '')} {content}".lower()

    def _check_unique(self, table: str, data: dict[str, Any], exclude: dict[str, Any] | None = None) -> None:
        if table not in _UNIQUE_NAME or "name" not in data:
            return
        for row in self._tables[table]:
            if row is exclude:
                continue
            if row["user_id"] == data.get("user_id") and row["name"].lower() == data["name"].lower():
                raise DuplicateRecordError(f"duplicate key value violates unique constraint on {table}")

    def reset(self):
        for table in self._tables:
            self._tables[table] = []


class FakeAuth:
    """Stands in for SupabaseAuth: fixed users keyed by access token."""

    def __init__(self):
        self.users = {
            USER_TOKEN: AuthenticatedUser(USER_ID, "user@example.com", "2026-01-01T00:00:00+00:00"),
            OTHER_TOKEN: AuthenticatedUser(OTHER_USER_ID, "other@example.com", "2026-01-02T00:00:00+00:00"),
        }
        self.passwords = {"user@example.com": "secret-pass"}
        self.signed_out: list[str] = []

    def get_user(self, access_token: str) -> AuthenticatedUser:
        if access_token not in self.users:
            raise ApiError.unauthorized(SESSION_EXPIRED)
        return self.users[access_token]

    def sign_in(self, email: str, password: str) -> AuthSession:
        if self.passwords.get(email) != password:
            raise ApiError.unauthorized("Invalid email or password.")
        return AuthSession(USER_TOKEN, "refresh-user", 1_900_000_000, self.users[USER_TOKEN])

    def sign_up(self, email: str, password: str) -> AuthSession:
        if email in self.passwords:
            raise ApiError.conflict("An account with this email already exists.")
        self.passwords[email] = password
        user = AuthenticatedUser(str(uuid4()), email, "2026-02-01T00:00:00+00:00")
        return AuthSession(None, None, None, user)

    def refresh(self, refresh_token: str) -> AuthSession:
        if refresh_token != "refresh-user":
            raise ApiError.unauthorized(SESSION_EXPIRED)
        return AuthSession("token-user-2", "refresh-user-2", 1_900_003_600, self.users[USER_TOKEN])

    def sign_out(self, access_token: str) -> None:
        self.signed_out.append(access_token)


def completion_body(text: str, usage: dict[str, int] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {
        "id": "gen-1",
        "choices": [{"message": {"role": "assistant", "content": text}}],
    }
    if usage is not None:
        body["usage"] = usage
    return body


class FakeModelServer:
    """Serves queued responses to an OpenRouter client through httpx.MockTransport."""

    def __init__(self):
        self.responses: list[httpx.Response | Exception | Callable[[httpx.Request], httpx.Response]] = []
        self.requests: list[dict[str, Any]] = []

    def reply(self, text: str, usage: dict[str, int] | None = None) -> None:
        self.responses.append(httpx.Response(200, json=completion_body(text, usage)))

    def fail(self, status: int, body: Any = None) -> None:
        self.responses.append(httpx.Response(status, json=body) if body is not None else httpx.Response(status))

    def raise_error(self, error: Exception) -> None:
        self.responses.append(error)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        response = self.responses.pop(0) if self.responses else httpx.Response(
            200, json=completion_body("ok", {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2})
        )
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def mock_db() -> MockSupabaseClient:
    """Fresh mock database for each test."""
    return MockSupabaseClient()


@pytest.fixture
def model_server() -> FakeModelServer:
    return FakeModelServer()


@pytest.fixture
def openrouter(model_server):
    from promptana.core.openrouter import OpenRouterClient

    return OpenRouterClient("test-key", "https://openrouter.test/api/v1/chat/completions", transport=model_server.transport)


@pytest.fixture
def fake_auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture
def services(mock_db, openrouter) -> dict[str, Any]:
    """Every service wired to the same in-memory database."""
    from promptana.core.catalogs import CatalogService
    from promptana.core.events import RunEventLogger
    from promptana.core.improve import PromptImprover
    from promptana.core.prompts import PromptService
    from promptana.core.quota import RunGuard
    from promptana.core.runs import RunService
    from promptana.core.search import SearchService
    from promptana.core.tags import TagService
    from promptana.core.user_settings import UserSettingsService
    from promptana.core.versions import VersionControl

    events = RunEventLogger(mock_db)
    tags = TagService(mock_db)
    vcs = VersionControl(mock_db, events)
    return {
        "events": events,
        "tags": tags,
        "vcs": vcs,
        "catalogs": CatalogService(mock_db),
        "prompts": PromptService(mock_db, tags, vcs, events),
        "runs": RunService(mock_db, openrouter, events, RunGuard()),
        "improver": PromptImprover(mock_db, openrouter, events),
        "search": SearchService(mock_db, tags),
        "user_settings": UserSettingsService(mock_db),
    }


@pytest.fixture
def app(services, fake_auth):
    """FastAPI test app with mocked dependencies."""
    from promptana.core.auth import get_auth
    from promptana.core.catalogs import get_catalog_service
    from promptana.core.improve import get_improver
    from promptana.core.prompts import get_prompt_service
    from promptana.core.runs import get_run_service
    from promptana.core.search import get_search_service
    from promptana.core.tags import get_tag_service
    from promptana.core.user_settings import get_user_settings_service
    from promptana.core.versions import get_vcs
    from promptana.main import app as _app

    _app.dependency_overrides[get_auth] = lambda: fake_auth
    _app.dependency_overrides[get_tag_service] = lambda: services["tags"]
    _app.dependency_overrides[get_catalog_service] = lambda: services["catalogs"]
    _app.dependency_overrides[get_prompt_service] = lambda: services["prompts"]
    _app.dependency_overrides[get_vcs] = lambda: services["vcs"]
    _app.dependency_overrides[get_run_service] = lambda: services["runs"]
    _app.dependency_overrides[get_improver] = lambda: services["improver"]
    _app.dependency_overrides[get_search_service] = lambda: services["search"]
    _app.dependency_overrides[get_user_settings_service] = lambda: services["user_settings"]

    yield _app

    _app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    """HTTP test client authenticated as the primary user."""
    return TestClient(app, headers={"Authorization": f"Bearer {USER_TOKEN}"})


@pytest.fixture
def other_client(app) -> TestClient:
    """HTTP test client authenticated as a second user."""
    return TestClient(app, headers={"Authorization": f"Bearer {OTHER_TOKEN}"})


@pytest.fixture
def anon_client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def make_prompt(services) -> Callable[..., dict[str, Any]]:
    """Create a prompt through the service layer and return the create result."""

    def _make(
        title: str = "Code reviewer",
        content: str = "You are a careful code reviewer.",
        user_id: str = USER_ID,
        **kwargs: Any,
    ) -> dict[str, Any]:
        return services["prompts"].create_prompt(user_id, title=title, content=content, **kwargs)

    return _make
