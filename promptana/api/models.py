"""Pydantic request/response models for the API."""

from __future__ import annotations

import re
from typing import Annotated, Any, Generic, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StrictBool, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

from promptana.config import get_settings
from promptana.db.models import RetentionPolicy, RunStatus, VersionSource

UUID_PATTERN = (
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}$"
)

TITLE_MAX_LENGTH = 255
CONTENT_MAX_LENGTH = 100_000
SUMMARY_MAX_LENGTH = 1_000
NAME_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 2_000
MODEL_MAX_LENGTH = 255
MAX_TAG_IDS = 50
MAX_VARIABLE_KEYS = 100
IMPROVE_TEXT_MAX_LENGTH = 2_000

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("Must not be empty.")
    return value


def _email_like(value: str) -> str:
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Must be a valid email address.")
    return value


def _unique_ids(values: list[str]) -> list[str]:
    if len(set(values)) != len(values):
        raise ValueError("Must not contain duplicate tag IDs.")
    return values


UuidStr = Annotated[str, StringConstraints(pattern=UUID_PATTERN)]
Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=TITLE_MAX_LENGTH)]
Content = Annotated[str, Field(max_length=CONTENT_MAX_LENGTH), AfterValidator(_not_blank)]
Summary = Annotated[str, StringConstraints(max_length=SUMMARY_MAX_LENGTH)]
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=NAME_MAX_LENGTH)]
Description = Annotated[str, StringConstraints(max_length=DESCRIPTION_MAX_LENGTH)]
TagIds = Annotated[list[UuidStr], Field(max_length=MAX_TAG_IDS), AfterValidator(_unique_ids)]
ModelName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=MODEL_MAX_LENGTH)]


class ApiModel(BaseModel):
    """Response model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())


class CommandModel(BaseModel):
    """Request body: camelCase keys only, unknown keys rejected."""

    model_config = ConfigDict(alias_generator=to_camel, extra="forbid")


T = TypeVar("T")


class Page(ApiModel, Generic[T]):
    items: list[T]
    page: int
    page_size: int
    total: int


# --- Catalogs & tags ---


class CatalogCreate(CommandModel):
    name: Name
    description: Description | None = None


class CatalogUpdate(CommandModel):
    name: Name | None = None
    description: Description | None = None


class CatalogResponse(ApiModel):
    id: str
    name: str
    description: str | None
    created_at: str
    updated_at: str


class TagCreate(CommandModel):
    name: Name


class TagUpdate(CommandModel):
    name: Name


class TagResponse(ApiModel):
    id: str
    name: str
    created_at: str


class TagSummary(ApiModel):
    id: str
    name: str


class PromptTagsReplace(CommandModel):
    tag_ids: TagIds


class PromptTagsResponse(ApiModel):
    prompt_id: str
    tag_ids: list[str]


# --- Prompts ---


class PromptCreate(CommandModel):
    """Create a new prompt together with its initial version."""

    title: Title
    content: Content
    summary: Summary | None = None
    catalog_id: UuidStr | None = None
    tag_ids: TagIds | None = None


class PromptUpdate(CommandModel):
    """Update a prompt's metadata. Content changes go through versions."""

    title: Title | None = None
    catalog_id: UuidStr | None = None
    tag_ids: TagIds | None = None


class PromptDelete(CommandModel):
    confirm: StrictBool | None = None


class LastRunSummary(ApiModel):
    id: str
    status: RunStatus
    created_at: str
    model: str
    latency_ms: int | None


class PromptListItem(ApiModel):
    id: str
    title: str
    catalog_id: str | None
    tags: list[TagSummary]
    current_version_id: str | None
    last_run: LastRunSummary | None
    created_at: str
    updated_at: str


class CurrentVersion(ApiModel):
    id: str
    title: str
    content: str
    summary: str | None
    created_at: str


class VersionStub(ApiModel):
    id: str
    title: str
    summary: str | None
    created_at: str


class RunStub(ApiModel):
    id: str
    status: RunStatus
    created_at: str


class PromptDetail(ApiModel):
    id: str
    title: str
    catalog_id: str | None
    tags: list[TagSummary]
    current_version: CurrentVersion | None
    last_run: LastRunSummary | None
    created_at: str
    updated_at: str
    versions: list[VersionStub] | None = None
    runs: list[RunStub] | None = None


class DuplicateWarning(ApiModel):
    similar_prompt_ids: list[str]
    confidence: float


class PromptCreateResponse(ApiModel):
    prompt: PromptListItem
    version: CurrentVersion
    duplicate_warning: DuplicateWarning | None = None


# --- Versions ---


class VersionCreate(CommandModel):
    """Create a new version (manual edit or accepted improve suggestion)."""

    title: Title
    content: Content
    summary: Summary | None = None
    source: VersionSource
    base_version_id: UuidStr | None = None


class VersionRestore(CommandModel):
    summary: Summary | None = None


class VersionResponse(ApiModel):
    id: str
    prompt_id: str
    title: str
    content: str
    summary: str | None
    created_by: str
    created_at: str


class VersionedPrompt(ApiModel):
    id: str
    current_version_id: str | None
    updated_at: str


class VersionWriteResponse(ApiModel):
    version: VersionResponse
    prompt: VersionedPrompt


# --- Runs ---


class RunOptions(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, extra="ignore")

    temperature: Annotated[float, Field(ge=0, le=2)] | None = None
    max_tokens: Annotated[int, Field(ge=1, le=32_000)] | None = None


class RunInput(CommandModel):
    variables: dict[str, Any]
    override_prompt: Annotated[
        str, StringConstraints(strip_whitespace=True, min_length=1, max_length=CONTENT_MAX_LENGTH)
    ] | None = None

    @field_validator("variables")
    @classmethod
    def _limit_variables(cls, value: dict[str, Any]) -> dict[str, Any]:
        if len(value) > MAX_VARIABLE_KEYS:
            raise ValueError(f"Must not contain more than {MAX_VARIABLE_KEYS} variables.")
        return value


class RunCreate(CommandModel):
    model: ModelName
    input: RunInput
    options: RunOptions | None = None

    @field_validator("model")
    @classmethod
    def _allowed_model(cls, value: str) -> str:
        if value not in get_settings().run_models:
            raise ValueError("Model is not allowed.")
        return value


class TokenUsage(ApiModel):
    input_tokens: int
    output_tokens: int
    total_tokens: int | None = None


class RunResponse(ApiModel):
    id: str
    prompt_id: str
    user_id: str
    model: str
    status: RunStatus
    input: dict[str, Any]
    output: dict[str, Any] | None
    model_metadata: dict[str, Any] | None
    token_usage: dict[str, Any] | None
    latency_ms: int | None
    error_message: str | None
    created_at: str


class RunCreateResponse(ApiModel):
    run: RunResponse


class RunListItem(ApiModel):
    id: str
    status: RunStatus
    model: str
    latency_ms: int | None
    created_at: str


# --- Improve ---


class ImproveInput(CommandModel):
    current_prompt: Content
    goals: Annotated[str, StringConstraints(max_length=IMPROVE_TEXT_MAX_LENGTH)] | None = None
    constraints: Annotated[str, StringConstraints(max_length=IMPROVE_TEXT_MAX_LENGTH)] | None = None
    num_suggestions: Annotated[int, Field(ge=1, le=5)] = 3


class ImproveRequest(CommandModel):
    model: ModelName
    input: ImproveInput
    options: RunOptions | None = None

    @field_validator("model")
    @classmethod
    def _allowed_model(cls, value: str) -> str:
        if value not in get_settings().improve_models:
            raise ValueError("Model is not allowed.")
        return value


class ImproveSuggestion(ApiModel):
    id: str
    title: str
    content: str
    summary: str | None = None
    model: str
    token_usage: TokenUsage | None = None


class ImproveResponse(ApiModel):
    suggestions: list[ImproveSuggestion]
    latency_ms: int | None


# --- Search ---


class CatalogRef(ApiModel):
    id: str
    name: str


class SearchResultItem(ApiModel):
    id: str
    title: str
    snippet: str
    score: float
    catalog: CatalogRef | None
    tags: list[TagSummary]
    updated_at: str


# --- Settings & profile ---


class SettingsUpdate(CommandModel):
    retention_policy: RetentionPolicy


class SettingsResponse(ApiModel):
    user_id: str
    retention_policy: RetentionPolicy
    created_at: str
    updated_at: str


class CurrentUserSettings(ApiModel):
    retention_policy: RetentionPolicy


class CurrentUserResponse(ApiModel):
    id: str
    email: str
    created_at: str
    settings: CurrentUserSettings


# --- Auth ---


class Credentials(CommandModel):
    email: Annotated[str, StringConstraints(strip_whitespace=True), AfterValidator(_email_like)]
    password: Annotated[str, StringConstraints(min_length=6, max_length=72)]


class RefreshRequest(CommandModel):
    refresh_token: str | None = None


class AuthUser(ApiModel):
    id: str
    email: str | None


class SessionResponse(ApiModel):
    access_token: str | None
    refresh_token: str | None
    expires_at: int | None
    user: AuthUser


class RefreshResponse(ApiModel):
    access_token: str
    refresh_token: str
    expires_at: int | None


class SignOutResponse(ApiModel):
    success: bool
