"""
Error taxonomy for the creation pipeline.

Every error here is terminal for the run that raised it; the orchestrator
converts it into a failed stage and never retries.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline failures."""

    default_message = "Pipeline failed"

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class NetworkError(PipelineError):
    """The request could not complete (connection, timeout, protocol)."""

    default_message = "Network request failed"


class ApiError(PipelineError):
    """The backend reported a failure or returned an unusable response."""

    default_message = "Backend request failed"

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MissingEpisode(PipelineError):
    """The script lookup after attaching an episode returned no episodes."""

    default_message = "No episode found for the created script"


class PollTimeout(PipelineError):
    """The storyboard job did not resolve within the poll budget."""

    default_message = "Storyboard generation timed out"


class JobFailed(PipelineError):
    """The storyboard job resolved with a failure status."""

    default_message = "Storyboard generation failed"
