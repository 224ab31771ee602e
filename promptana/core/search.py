"""Full-text prompt search with highlighted snippets."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any

import structlog

from promptana.core.tags import TagService, get_tag_service
from promptana.db.client import SupabaseClient, get_supabase_client
from promptana.db.models import Table

logger = structlog.get_logger()

SNIPPET_MAX_LENGTH = 200
SNIPPET_LEAD = 50
MAX_QUERY_TERMS = 10
SCORE_STEP = 0.05


def query_terms(query: str) -> list[str]:
    """Lowercased terms longer than two characters, at most ten."""
    return [term for term in query.lower().split() if len(term) > 2][:MAX_QUERY_TERMS]


def generate_snippet(content: str, query: str, max_length: int = SNIPPET_MAX_LENGTH) -> str:
    """Excerpt of ``content`` around the first query term, matches wrapped in ``<b>``."""
    if not content:
        return ""

    terms = query_terms(query)
    lower_content = content.lower()
    start = 0
    for term in terms:
        index = lower_content.find(term)
        if index != -1:
            start = max(0, index - SNIPPET_LEAD)
            break

    snippet = content[start:start + max_length]

    if start > 0:
        first_space = snippet.find(" ")
        if 0 < first_space < 20:
            snippet = snippet[first_space + 1:]
        snippet = "..." + snippet

    if start + max_length < len(content):
        last_space = snippet.rfind(" ")
        if last_space > len(snippet) - 30:
            snippet = snippet[:last_space]
        snippet = snippet + "..."

    if terms:
        # Longest first so a term that contains another is wrapped whole.
        alternation = "|".join(re.escape(t) for t in sorted(set(terms), key=len, reverse=True))
        snippet = re.sub(f"({alternation})", r"<b>\1</b>", snippet, flags=re.IGNORECASE)
    return snippet


class SearchService:
    """Searches a user's prompts through the database's text-search index."""

    def __init__(self, db: SupabaseClient, tags: TagService) -> None:
        self.db = db
        self.tags = tags

    def search(
        self,
        user_id: str,
        q: str,
        page: int = 1,
        page_size: int = 20,
        tag_ids: list[str] | None = None,
        catalog_id: str | None = None,
        sort: str = "relevance",
    ) -> dict[str, Any]:
        """One page of matching prompts.

        Both sort modes order by ``updated_at`` descending; the score is an
        approximation derived from the position within the page.
        """
        in_filters: dict[str, list[Any]] = {}
        if tag_ids:
            matching = self.tags.prompt_ids_with_any(user_id, tag_ids)
            if not matching:
                return {"items": [], "page": page, "page_size": page_size, "total": 0}
            in_filters["id"] = matching

        filters: dict[str, Any] = {"user_id": user_id}
        if catalog_id:
            filters["catalog_id"] = catalog_id

        rows, total = self.db.select_page(
            Table.PROMPTS,
            page=page,
            page_size=page_size,
            filters=filters,
            in_filters=in_filters or None,
            text_search=("search_vector", q),
            order_by="updated_at",
            ascending=False,
        )
        logger.info("search.executed", user_id=user_id, sort=sort, total=total)
        if not rows:
            return {"items": [], "page": page, "page_size": page_size, "total": total}

        contents = self._version_contents(user_id, [r["current_version_id"] for r in rows if r.get("current_version_id")])
        catalogs = self._catalogs(user_id, [r["catalog_id"] for r in rows if r.get("catalog_id")])
        tags = self.tags.tags_by_prompt(user_id, [r["id"] for r in rows])

        items = [
            {
                "id": row["id"],
                "title": row["title"],
                "snippet": generate_snippet(contents.get(row.get("current_version_id"), ""), q),
                "score": round(max(0.0, 1 - index * SCORE_STEP), 2),
                "catalog": catalogs.get(row.get("catalog_id")),
                "tags": tags.get(row["id"], []),
                "updated_at": row["updated_at"],
            }
            for index, row in enumerate(rows)
        ]
        return {"items": items, "page": page, "page_size": page_size, "total": total}

    def _version_contents(self, user_id: str, version_ids: list[str]) -> dict[str, str]:
        if not version_ids:
            return {}
        rows = self.db.select(
            Table.PROMPT_VERSIONS,
            filters={"user_id": user_id},
            in_filters={"id": version_ids},
            columns="id,content",
        )
        return {row["id"]: row["content"] for row in rows}

    def _catalogs(self, user_id: str, catalog_ids: list[str]) -> dict[str, dict[str, str]]:
        if not catalog_ids:
            return {}
        rows = self.db.select(
            Table.CATALOGS,
            filters={"user_id": user_id},
            in_filters={"id": list(dict.fromkeys(catalog_ids))},
            columns="id,name",
        )
        return {row["id"]: {"id": row["id"], "name": row["name"]} for row in rows}


@lru_cache
def get_search_service() -> SearchService:
    """Get cached search service instance."""
    return SearchService(get_supabase_client(), get_tag_service())
