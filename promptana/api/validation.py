"""Translation of request validation failures into the API error envelope.

FastAPI reports every failing field of a request at once. Failures are
grouped by where they occurred:

- path parameters and query parameters always yield 400 BAD_REQUEST;
- body failures yield 422 VALIDATION_FAILED when any of them is semantic
  (length, range, enum, emptiness, duplicates), otherwise 400 BAD_REQUEST.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import Path, Query
from fastapi.exceptions import RequestValidationError
from pydantic import AfterValidator, BeforeValidator
from pydantic.alias_generators import to_camel

from promptana.api.models import MAX_TAG_IDS, UUID_PATTERN, UuidStr
from promptana.errors import ApiError, FieldErrors

STRUCTURAL_ERROR_TYPES = {
    "missing",
    "extra_forbidden",
    "string_type",
    "int_type",
    "int_parsing",
    "int_from_float",
    "float_type",
    "float_parsing",
    "bool_type",
    "bool_parsing",
    "dict_type",
    "model_type",
    "model_attributes_type",
    "list_type",
    "string_pattern_mismatch",
    "uuid_type",
    "uuid_parsing",
}

_TYPE_MESSAGES = {
    "missing": "Field is required.",
    "extra_forbidden": "Unknown field.",
    "string_type": "Must be a string.",
    "int_type": "Must be an integer.",
    "int_parsing": "Must be an integer.",
    "int_from_float": "Must be an integer.",
    "float_type": "Must be a number.",
    "float_parsing": "Must be a number.",
    "bool_type": "Must be a boolean.",
    "bool_parsing": "Must be a boolean.",
    "dict_type": "Must be an object.",
    "model_type": "Must be an object.",
    "model_attributes_type": "Must be an object.",
    "list_type": "Must be an array.",
    "string_pattern_mismatch": "Must be a valid UUID string.",
    "uuid_type": "Must be a valid UUID string.",
    "uuid_parsing": "Must be a valid UUID string.",
}


def _split_csv(value: Any) -> Any:
    if value is None:
        return None
    parts = value if isinstance(value, list) else [value]
    return [item.strip() for part in parts for item in str(part).split(",") if item.strip()]


def _dedupe(values: list[str] | None) -> list[str] | None:
    if not values:
        return None
    return list(dict.fromkeys(values))


PromptIdPath = Annotated[str, Path(pattern=UUID_PATTERN)]
VersionIdPath = Annotated[str, Path(pattern=UUID_PATTERN)]
ResourceIdPath = Annotated[str, Path(pattern=UUID_PATTERN)]

TagIdsQuery = Annotated[
    list[UuidStr] | None,
    BeforeValidator(_split_csv),
    AfterValidator(_dedupe),
    Query(alias="tagIds", max_length=MAX_TAG_IDS),
]
CatalogIdQuery = Annotated[str | None, Query(alias="catalogId", pattern=UUID_PATTERN)]


def between(low: int, high: int) -> AfterValidator:
    def check(value: int) -> int:
        if not low <= value <= high:
            raise ValueError(f"Must be between {low} and {high}.")
        return value

    return AfterValidator(check)


PageQuery = Annotated[int, Query(ge=1)]
PageSizeQuery = Annotated[int, between(1, 100), Query(alias="pageSize")]
TagPageSizeQuery = Annotated[int, between(1, 200), Query(alias="pageSize")]
SearchPageSizeQuery = Annotated[int, between(1, 50), Query(alias="pageSize")]


def error_message(error: dict[str, Any]) -> str:
    """Human-readable message for one pydantic error."""
    error_type = error["type"]
    ctx = error.get("ctx") or {}
    if error_type in _TYPE_MESSAGES:
        return _TYPE_MESSAGES[error_type]
    if error_type == "string_too_short":
        min_length = ctx.get("min_length", 1)
        if min_length <= 1:
            return "Must not be empty."
        return f"Must be at least {min_length} characters long."
    if error_type == "string_too_long":
        return f"Must be at most {ctx.get('max_length')} characters long."
    if error_type == "too_long":
        return f"Must not contain more than {ctx.get('max_length')} items."
    if error_type in ("greater_than_equal", "greater_than"):
        return f"Must be greater than or equal to {ctx.get('ge', ctx.get('gt'))}."
    if error_type in ("less_than_equal", "less_than"):
        return f"Must be less than or equal to {ctx.get('le', ctx.get('lt'))}."
    if error_type in ("literal_error", "enum"):
        expected = str(ctx.get("expected", "")).replace("'", "")
        return f"Must be one of {expected}."
    if error_type == "value_error":
        return str(ctx.get("error", error.get("msg", "Invalid value.")))
    return str(error.get("msg", "Invalid value."))


def _field_name(loc: tuple[Any, ...], camelize: bool) -> str:
    parts = [str(part) for part in loc if not isinstance(part, int)]
    if camelize:
        parts = [to_camel(part) for part in parts]
    return ".".join(parts)


def _add(bucket: FieldErrors, field: str, message: str) -> None:
    messages = bucket.setdefault(field, [])
    if message not in messages:
        messages.append(message)


def translate_validation_error(exc: RequestValidationError) -> ApiError:
    """Map a FastAPI validation failure onto a single ApiError."""
    path_errors: FieldErrors = {}
    query_errors: FieldErrors = {}
    structural: FieldErrors = {}
    semantic: FieldErrors = {}

    for error in exc.errors():
        loc = tuple(error.get("loc", ()))
        source, rest = (loc[0], loc[1:]) if loc else ("body", ())
        error_type = error["type"]

        if error_type == "json_invalid":
            return ApiError.bad_request("Request body must be valid JSON.")

        if source == "path":
            _add(path_errors, _field_name(rest, camelize=True), error_message(error))
        elif source == "query":
            _add(query_errors, _field_name(rest, camelize=False), error_message(error))
        elif not [part for part in rest if not isinstance(part, int)]:
            return ApiError.bad_request("Request body must be a JSON object.")
        elif error_type in STRUCTURAL_ERROR_TYPES:
            _add(structural, _field_name(rest, camelize=False), error_message(error))
        else:
            _add(semantic, _field_name(rest, camelize=False), error_message(error))

    if path_errors:
        return ApiError.bad_request("Path parameters are invalid.", path_errors)
    if query_errors:
        return ApiError.bad_request("Query parameters are invalid.", query_errors)
    if semantic:
        return ApiError.validation_failed({**semantic, **structural})
    return ApiError.bad_request("Request body is invalid.", structural)
