"""Run endpoints: execute a prompt and browse its run history."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from promptana.api.deps import client_ip, get_current_user
from promptana.api.models import Page, RunCreate, RunCreateResponse, RunListItem, RunResponse
from promptana.api.validation import PageQuery, PageSizeQuery, PromptIdPath, ResourceIdPath
from promptana.core.auth import AuthenticatedUser
from promptana.core.runs import RunService, get_run_service
from promptana.db.models import RunStatus

router = APIRouter()


@router.post("/prompts/{prompt_id}/runs", response_model=RunCreateResponse, status_code=201)
async def create_run(
    prompt_id: PromptIdPath,
    data: RunCreate,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    runs: RunService = Depends(get_run_service),
) -> RunCreateResponse:
    """Execute a prompt against a model and record the run."""
    run = await runs.execute(
        user.id,
        prompt_id,
        model=data.model,
        variables=data.input.variables,
        override_prompt=data.input.override_prompt,
        options=data.options.model_dump(by_alias=True, exclude_none=True) if data.options else None,
        client_ip=client_ip(request),
    )
    return RunCreateResponse(run=RunResponse(**run))


@router.get("/prompts/{prompt_id}/runs", response_model=Page[RunListItem])
async def list_runs(
    prompt_id: PromptIdPath,
    page: PageQuery = 1,
    page_size: PageSizeQuery = 20,
    status: RunStatus | None = None,
    user: AuthenticatedUser = Depends(get_current_user),
    runs: RunService = Depends(get_run_service),
) -> Page[RunListItem]:
    result = runs.list_runs(user.id, prompt_id, page, page_size, status.value if status else None)
    return Page[RunListItem](**result)


@router.get("/runs/{run_id}", response_model=RunResponse)
async def get_run(
    run_id: ResourceIdPath,
    user: AuthenticatedUser = Depends(get_current_user),
    runs: RunService = Depends(get_run_service),
) -> RunResponse:
    return RunResponse(**runs.get_run(user.id, run_id))
