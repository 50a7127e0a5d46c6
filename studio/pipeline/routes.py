"""
FastAPI routes for the creation pipeline.

Pipeline Endpoints:
  POST /pipeline/run     Start a run for a prompt (supersedes the active run)
  GET  /pipeline/status  Latest progress snapshot
  POST /pipeline/cancel  Cancel the active run
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from .models import PipelineRunRequest, ProgressView
from .orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)

pipeline_router = APIRouter(prefix="/pipeline", tags=["pipeline"])

# Singleton orchestrator instance
_orchestrator = PipelineOrchestrator()


def get_orchestrator() -> PipelineOrchestrator:
    return _orchestrator


@pipeline_router.post("/run", response_model=ProgressView, status_code=202)
async def run_pipeline(
    request: PipelineRunRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """Start the creation pipeline in the background and return its first snapshot."""
    handle = orchestrator.start(request.prompt)
    if handle is None:
        raise HTTPException(status_code=400, detail="Prompt must not be empty")
    return orchestrator.progress()


@pipeline_router.get("/status", response_model=ProgressView)
async def get_pipeline_status(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Get the latest progress snapshot of the current run."""
    view = orchestrator.progress()
    if view is None:
        raise HTTPException(status_code=404, detail="No pipeline run yet")
    return view


@pipeline_router.post("/cancel", response_model=ProgressView)
async def cancel_pipeline(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Cancel the active run. The remote storyboard job is left to finish on its own."""
    if not orchestrator.cancel():
        raise HTTPException(status_code=409, detail="No pipeline run in progress")
    return orchestrator.progress()
