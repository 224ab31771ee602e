"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from promptana.api.router import api_router
from promptana.api.validation import translate_validation_error
from promptana.config import get_settings
from promptana.errors import ApiError
from promptana.utils.logging import RequestLoggingMiddleware, setup_logging

logger = structlog.get_logger()

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info(
        "promptana.starting",
        port=settings.port,
        supabase_configured=settings.supabase_configured,
        openrouter_configured=bool(settings.openrouter_api_key),
    )
    yield
    logger.info("promptana.shutdown")


app = FastAPI(
    title="Promptana",
    description="Prompt management: versioned prompts, tags, catalogs, search, runs and improvements",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=get_settings().cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status >= 500:
        logger.error("request.failed", code=exc.code.value, error=exc.message)
    return exc.to_response()


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = translate_validation_error(exc)
    logger.info("request.invalid", code=error.code.value, status=error.status)
    return error.to_response()


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request.unhandled_error", error=str(exc))
    return ApiError.internal().to_response()


app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Service info endpoint."""
    return {"service": "promptana", "version": VERSION}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "service": "promptana", "version": VERSION}
