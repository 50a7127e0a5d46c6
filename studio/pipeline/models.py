"""
Pydantic models and enums for the storyboard creation pipeline.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ── Stages ───────────────────────────────────────────────────────────────────

class StageName(str, Enum):
    CREATE_SCRIPT = "CreateScript"
    ATTACH_EPISODE = "AttachEpisode"
    TRIGGER_STORYBOARD_JOB = "TriggerStoryboardJob"
    POLL_STORYBOARD_JOB = "PollStoryboardJob"
    FETCH_STORYBOARDS = "FetchStoryboards"


# Fixed execution order
STAGE_ORDER = list(StageName)


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunOutcome(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobStatus(str, Enum):
    QUEUED = "queued"
    COMPLETED = "completed"
    FAILED = "failed"


class InvalidTransition(ValueError):
    """Raised when a run or stage is moved out of its declared order."""


# ── Remote Job ───────────────────────────────────────────────────────────────

class RemoteJob(BaseModel):
    """Storyboard generation task as reported by /tasks/{id}."""
    job_id: str
    status: str = JobStatus.QUEUED.value
    error: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.status in (JobStatus.COMPLETED.value, JobStatus.FAILED.value)


# ── Run State ────────────────────────────────────────────────────────────────

class StageRecord(BaseModel):
    name: StageName
    status: StageStatus = StageStatus.PENDING
    detail: str = ""
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class RunResult(BaseModel):
    script_id: str
    episode_id: str
    storyboard_count: int = 0
    character_count: int = 0
    scene_count: int = 0
    prop_count: int = 0
    samples: list[str] = Field(default_factory=list)


class PipelineRun(BaseModel):
    """
    One execution of the creation pipeline for one prompt.

    Every stage record exists from creation on, in STAGE_ORDER. The
    transition methods below are the only way the orchestrator moves a run
    forward; each one checks the move against the current state and raises
    InvalidTransition otherwise.
    """
    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    prompt: str
    stages: list[StageRecord] = Field(
        default_factory=lambda: [StageRecord(name=name) for name in STAGE_ORDER]
    )
    outcome: RunOutcome = RunOutcome.PENDING
    result: Optional[RunResult] = None
    error_message: Optional[str] = None
    error_type: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)

    @property
    def is_terminal(self) -> bool:
        return self.outcome != RunOutcome.PENDING

    def stage(self, name: StageName) -> StageRecord:
        return self.stages[STAGE_ORDER.index(name)]

    @property
    def active_stage(self) -> Optional[StageRecord]:
        for record in self.stages:
            if record.status == StageStatus.RUNNING:
                return record
        return None

    def _require_pending(self):
        if self.is_terminal:
            raise InvalidTransition(f"Run {self.id} is already {self.outcome.value}")

    def begin_stage(self, name: StageName) -> StageRecord:
        self._require_pending()
        index = STAGE_ORDER.index(name)
        record = self.stages[index]
        if record.status != StageStatus.PENDING:
            raise InvalidTransition(f"{name.value} is {record.status.value}, expected pending")
        for earlier in self.stages[:index]:
            if earlier.status != StageStatus.COMPLETED:
                raise InvalidTransition(
                    f"Cannot start {name.value} before {earlier.name.value} completes"
                )
        record.status = StageStatus.RUNNING
        record.started_at = _now()
        return record

    def complete_stage(self, name: StageName, detail: str = "") -> StageRecord:
        self._require_pending()
        record = self.stage(name)
        if record.status != StageStatus.RUNNING:
            raise InvalidTransition(f"{name.value} is {record.status.value}, expected running")
        record.status = StageStatus.COMPLETED
        record.detail = detail
        record.finished_at = _now()
        return record

    def fail_stage(self, name: StageName, message: str, error_type: str = "") -> StageRecord:
        """Fail the running stage and, with it, the whole run."""
        self._require_pending()
        record = self.stage(name)
        if record.status != StageStatus.RUNNING:
            raise InvalidTransition(f"{name.value} is {record.status.value}, expected running")
        record.status = StageStatus.FAILED
        record.detail = message
        record.finished_at = _now()
        self.fail(message, error_type)
        return record

    def fail(self, message: str, error_type: str = ""):
        """Fail the run when no stage is running to take the blame."""
        self._require_pending()
        self.outcome = RunOutcome.FAILED
        self.error_message = message
        self.error_type = error_type or None

    def succeed(self, result: RunResult):
        self._require_pending()
        unfinished = [r.name.value for r in self.stages if r.status != StageStatus.COMPLETED]
        if unfinished:
            raise InvalidTransition(f"Cannot succeed with unfinished stages: {unfinished}")
        self.outcome = RunOutcome.SUCCEEDED
        self.result = result

    def abandon(self):
        """Mark the run cancelled. Stage records are left as they were."""
        self._require_pending()
        self.outcome = RunOutcome.CANCELLED


# ── Progress View ────────────────────────────────────────────────────────────

class ProgressStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: StageName
    label: str
    status: StageStatus
    detail: str = ""


class ProgressView(BaseModel):
    """Read-only display snapshot of a run."""
    model_config = ConfigDict(frozen=True)

    run_id: str
    outcome: RunOutcome
    steps: tuple[ProgressStep, ...]
    summary: tuple[str, ...] = ()
    error: Optional[str] = None


# ── API Request Models ───────────────────────────────────────────────────────

class PipelineRunRequest(BaseModel):
    prompt: str = Field(..., description="One-line idea for the short video")
