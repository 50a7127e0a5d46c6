"""
Storyboard Creation Pipeline

One prompt → script record → first episode → storyboard job → storyboards:
  CreateScript → AttachEpisode → TriggerStoryboardJob → PollStoryboardJob → FetchStoryboards
"""

from .orchestrator import PipelineOrchestrator, RunHandle
from .routes import pipeline_router
from .models import PipelineRun, ProgressView, RunOutcome, StageName, StageStatus
from .errors import ApiError, JobFailed, MissingEpisode, NetworkError, PipelineError, PollTimeout

__all__ = [
    "PipelineOrchestrator",
    "RunHandle",
    "pipeline_router",
    "PipelineRun",
    "ProgressView",
    "RunOutcome",
    "StageName",
    "StageStatus",
    "ApiError",
    "JobFailed",
    "MissingEpisode",
    "NetworkError",
    "PipelineError",
    "PollTimeout",
]
