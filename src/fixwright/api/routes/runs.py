"""Analysis run trigger, status and result routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from fixwright.analysis.schemas import SourceFile
from fixwright.api.dependencies import get_orchestrator
from fixwright.api.schemas import APIResponse, RunCreate
from fixwright.resilience.errors import (
    RunAlreadyActiveError,
    RunNotFoundError,
)
from fixwright.services.orchestrator import AnalysisOrchestrator

router = APIRouter(prefix="/api", tags=["runs"])


@router.post("/projects/{project_id}/runs", status_code=202)
async def start_run(
    project_id: str,
    body: RunCreate,
    response: Response,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> APIResponse:
    """Start an analysis run; 409 if the project already has one."""
    files = [
        SourceFile(path=f.path, language=f.language, content=f.content)
        for f in body.files
    ]
    try:
        run_id = await orchestrator.start_run(project_id, files)
    except RunAlreadyActiveError as exc:
        response.status_code = 409
        return APIResponse(
            success=False,
            error=str(exc),
            metadata={"active_run_id": exc.run_id},
        )
    return APIResponse(
        success=True,
        data={"run_id": run_id, "project_id": project_id},
    )


@router.get("/runs/{run_id}/status")
async def run_status(
    run_id: str,
    response: Response,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> APIResponse:
    try:
        view = await orchestrator.get_status(run_id)
    except RunNotFoundError:
        response.status_code = 404
        return APIResponse(success=False, error="Run not found")
    return APIResponse(success=True, data=view.model_dump(mode="json"))


@router.get("/runs/{run_id}")
async def run_result(
    run_id: str,
    response: Response,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> APIResponse:
    """Findings, fixes, fixed files and metrics so far."""
    try:
        result = await orchestrator.get_result(run_id)
    except RunNotFoundError:
        response.status_code = 404
        return APIResponse(success=False, error="Run not found")
    return APIResponse(success=True, data=result.model_dump(mode="json"))


@router.post("/runs/{run_id}/cancel")
async def cancel_run(
    run_id: str,
    response: Response,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> APIResponse:
    try:
        cancelled = await orchestrator.cancel_run(run_id)
    except RunNotFoundError:
        response.status_code = 404
        return APIResponse(success=False, error="Run not found")
    if not cancelled:
        response.status_code = 409
        return APIResponse(
            success=False, error="Run already finished"
        )
    return APIResponse(success=True, data={"run_id": run_id})
