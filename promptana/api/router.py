"""Main API router: aggregates all endpoint modules."""

from fastapi import APIRouter

from promptana.api.auth import router as auth_router
from promptana.api.catalogs import router as catalogs_router
from promptana.api.improve import router as improve_router
from promptana.api.prompts import router as prompts_router
from promptana.api.runs import router as runs_router
from promptana.api.search import router as search_router
from promptana.api.settings import router as settings_router
from promptana.api.tags import router as tags_router
from promptana.api.versions import router as versions_router

api_router = APIRouter()

api_router.include_router(prompts_router, prefix="/prompts", tags=["prompts"])
api_router.include_router(versions_router, prefix="/prompts", tags=["versions"])
api_router.include_router(improve_router, prefix="/prompts", tags=["improve"])
api_router.include_router(runs_router, tags=["runs"])
api_router.include_router(tags_router, prefix="/tags", tags=["tags"])
api_router.include_router(catalogs_router, prefix="/catalogs", tags=["catalogs"])
api_router.include_router(search_router, prefix="/search", tags=["search"])
api_router.include_router(settings_router, tags=["settings"])
api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
