"""Database enums and table names.

These mirror the Supabase schema so services never spell raw strings.
"""

from __future__ import annotations

from enum import Enum


class Table:
    CATALOGS = "catalogs"
    TAGS = "tags"
    PROMPTS = "prompts"
    PROMPT_VERSIONS = "prompt_versions"
    PROMPT_TAGS = "prompt_tags"
    RUNS = "runs"
    RUN_EVENTS = "run_events"
    USER_SETTINGS = "user_settings"


class RunStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"


class RunEventType(str, Enum):
    RUN = "run"
    IMPROVE = "improve"
    IMPROVE_SAVED = "improve_saved"
    DELETE = "delete"
    RESTORE = "restore"


class RetentionPolicy(str, Enum):
    FOURTEEN_DAYS = "fourteen_days"
    THIRTY_DAYS = "thirty_days"
    ALWAYS = "always"


class VersionSource(str, Enum):
    MANUAL = "manual"
    IMPROVE = "improve"


DEFAULT_RETENTION_POLICY = RetentionPolicy.THIRTY_DAYS
