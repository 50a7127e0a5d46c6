"""
PipelineOrchestrator: turns one prompt into a storyboarded script.

Chains the five stages with status tracking, full asyncio support:
  Stage 1: CreateScript          POST /dramas
  Stage 2: AttachEpisode         PUT  /dramas/{id}/episodes
  Stage 3: TriggerStoryboardJob  GET  /dramas/{id} → POST /episodes/{id}/storyboards
  Stage 4: PollStoryboardJob     GET  /tasks/{id} until completed / failed
  Stage 5: FetchStoryboards      GET  /episodes/{id}/storyboards

Only one run is active at a time. Starting a new run cancels the previous
one silently; nothing is retried.
"""

import os
import asyncio
import logging
from typing import Callable, Optional

from .. import metrics
from .errors import JobFailed, MissingEpisode, PipelineError, PollTimeout
from .gateway import BackendGateway
from .models import (
    JobStatus,
    PipelineRun,
    ProgressView,
    RemoteJob,
    RunOutcome,
    RunResult,
    StageName,
)
from .progress import SAMPLE_SIZE, project

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

POLL_INTERVAL = float(os.getenv("STUDIO_POLL_INTERVAL", "0.8"))  # seconds
MAX_POLL_ATTEMPTS = int(os.getenv("STUDIO_MAX_POLL_ATTEMPTS", "30"))  # ≈ 24s
TITLE_MAX_LENGTH = int(os.getenv("STUDIO_TITLE_MAX_LENGTH", "20"))
DRAMA_STYLE = os.getenv("STUDIO_DRAMA_STYLE", "realistic")

ProgressListener = Callable[[ProgressView], None]


class RunHandle:
    """Caller-side handle for one started run."""

    def __init__(self, orchestrator: "PipelineOrchestrator", run: PipelineRun, task: asyncio.Task):
        self._orchestrator = orchestrator
        self._run = run
        self._task = task

    @property
    def run_id(self) -> str:
        return self._run.id

    @property
    def done(self) -> bool:
        return self._run.is_terminal

    def cancel(self) -> bool:
        """Cancel this run if it is still the active one."""
        if self._orchestrator._run is not self._run:
            return False
        return self._orchestrator.cancel()

    async def wait(self) -> PipelineRun:
        """Wait for the run's task to finish and return a copy of the run."""
        await asyncio.wait({self._task})
        return self._run.model_copy(deep=True)


class PipelineOrchestrator:
    """
    Drives one PipelineRun at a time from prompt to terminal outcome.

    Usage:
        orchestrator = PipelineOrchestrator()
        orchestrator.subscribe(print)
        handle = orchestrator.start("张三丰大战张无忌")
        run = await handle.wait()
    """

    def __init__(
        self,
        gateway: Optional[BackendGateway] = None,
        *,
        poll_interval: float = POLL_INTERVAL,
        max_poll_attempts: int = MAX_POLL_ATTEMPTS,
        title_max_length: int = TITLE_MAX_LENGTH,
        style: str = DRAMA_STYLE,
        sleep=asyncio.sleep,
    ):
        self.gateway = gateway or BackendGateway()
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.title_max_length = title_max_length
        self.style = style
        self._sleep = sleep

        self._run: Optional[PipelineRun] = None
        self._task: Optional[asyncio.Task] = None
        self._progress: Optional[ProgressView] = None
        self._listeners: list[ProgressListener] = []

    # ── Observation ──────────────────────────────────────────────────────

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a progress listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def current(self) -> Optional[PipelineRun]:
        """Copy of the latest run, or None before the first start()."""
        return self._run.model_copy(deep=True) if self._run else None

    def progress(self) -> Optional[ProgressView]:
        return self._progress

    @property
    def busy(self) -> bool:
        return self._run is not None and not self._run.is_terminal

    def _publish(self, run: PipelineRun):
        if run is not self._run:
            return
        view = project(run)
        self._progress = view
        for listener in list(self._listeners):
            if self._progress is not view:
                # A listener published a newer snapshot
                break
            try:
                listener(view)
            except Exception:
                logger.exception(f"[{run.id}] progress listener failed")

    # ── Control ──────────────────────────────────────────────────────────

    def start(self, prompt: str) -> Optional[RunHandle]:
        """
        Start a new run for `prompt`, superseding any run still in flight.

        Blank prompts are ignored and return None. Must be called from a
        running event loop; otherwise RuntimeError is raised and nothing
        changes.
        """
        prompt = (prompt or "").strip()
        if not prompt:
            logger.debug("Ignoring start() with blank prompt")
            return None

        loop = asyncio.get_running_loop()

        if self.busy:
            logger.info(f"[{self._run.id}] superseded by a new run")
            self._abandon()

        run = PipelineRun(prompt=prompt)
        run.begin_stage(StageName.CREATE_SCRIPT)
        # Tracked before publishing: a listener may cancel or supersede this run
        task = loop.create_task(self._execute(run))
        self._run, self._task = run, task
        metrics.inc_counter("runs.started")
        metrics.set_gauge("active_runs", 1)
        logger.info(f"[{run.id}] started: {prompt[:40]!r}")
        self._publish(run)

        return RunHandle(self, run, task)

    def cancel(self) -> bool:
        """Abandon the active run. The remote job, if any, is left orphaned."""
        if not self.busy:
            return False
        run = self._run
        logger.info(f"[{run.id}] cancelled")
        self._abandon()
        self._publish(run)
        return True

    def _abandon(self):
        run, task = self._run, self._task
        run.abandon()
        if task is not None and not task.done():
            task.cancel()
        metrics.inc_counter(f"runs.{RunOutcome.CANCELLED.value}")
        metrics.set_gauge("active_runs", 0)

    # ── Execution ────────────────────────────────────────────────────────

    def _advance(self, run: PipelineRun, finished: StageName, detail: str = "",
                 next_stage: Optional[StageName] = None):
        run.complete_stage(finished, detail)
        if next_stage is not None:
            run.begin_stage(next_stage)
        logger.info(f"[{run.id}] {finished.value} completed {detail}".rstrip())
        self._publish(run)

    async def _execute(self, run: PipelineRun) -> PipelineRun:
        try:
            drama_id = await self._create_script(run)
            self._advance(run, StageName.CREATE_SCRIPT, drama_id, StageName.ATTACH_EPISODE)

            await self._attach_episode(run, drama_id)
            self._advance(run, StageName.ATTACH_EPISODE, next_stage=StageName.TRIGGER_STORYBOARD_JOB)

            drama, episode_id, task_id = await self._trigger_storyboard_job(run, drama_id)
            self._advance(run, StageName.TRIGGER_STORYBOARD_JOB, task_id, StageName.POLL_STORYBOARD_JOB)

            attempts = await self._poll_storyboard_job(run, task_id)
            self._advance(
                run, StageName.POLL_STORYBOARD_JOB,
                f"completed after {attempts} poll(s)", StageName.FETCH_STORYBOARDS,
            )

            result = await self._fetch_storyboards(run, drama, drama_id, episode_id)
            run.complete_stage(StageName.FETCH_STORYBOARDS, f"{result.storyboard_count} storyboards")
            run.succeed(result)
            metrics.inc_counter(f"runs.{RunOutcome.SUCCEEDED.value}")
            metrics.set_gauge("active_runs", 0)
            logger.info(f"[{run.id}] succeeded: {result.storyboard_count} storyboards")
            self._publish(run)

        except asyncio.CancelledError:
            # Supersede and cancel() mark the run before cancelling the task.
            if not run.is_terminal:
                run.abandon()
                metrics.inc_counter(f"runs.{RunOutcome.CANCELLED.value}")
            logger.debug(f"[{run.id}] task stopped")
            raise

        except PipelineError as e:
            self._fail(run, e)

        except Exception as e:
            logger.error(f"[{run.id}] unexpected error: {e}", exc_info=True)
            self._fail(run, e)

        return run

    def _fail(self, run: PipelineRun, error: Exception):
        if run is not self._run or run.is_terminal:
            return
        message = str(error) or "Unknown error"
        error_type = type(error).__name__
        stage = run.active_stage
        if stage is None:
            source = "pipeline"
            run.fail(message, error_type)
        else:
            source = stage.name.value
            run.fail_stage(stage.name, message, error_type)
        logger.error(f"[{run.id}] {source} failed ({error_type}): {message}")
        metrics.record_error(source, error_type, message, run_id=run.id)
        metrics.inc_counter(f"runs.{RunOutcome.FAILED.value}")
        metrics.set_gauge("active_runs", 0)
        self._publish(run)

    # ── Stages ───────────────────────────────────────────────────────────

    async def _create_script(self, run: PipelineRun) -> str:
        drama = await self.gateway.create_drama(
            title=run.prompt[:self.title_max_length],
            description=run.prompt,
            style=self.style,
        )
        return str(drama["id"])

    async def _attach_episode(self, run: PipelineRun, drama_id: str):
        await self.gateway.save_episodes(drama_id, [{
            "episode_number": 1,
            "title": "Episode 1",
            "script_content": run.prompt,
            "status": "draft",
        }])

    async def _trigger_storyboard_job(self, run: PipelineRun, drama_id: str) -> tuple[dict, str, str]:
        # The episode save does not echo ids, so look the episode up again.
        drama = await self.gateway.get_drama(drama_id)
        episodes = drama.get("episodes") or []
        if not episodes:
            raise MissingEpisode(f"Script {drama_id} has no episodes after attaching one")

        episode = next(
            (ep for ep in episodes if ep.get("episode_number") == 1),
            episodes[0],
        )
        if not episode.get("id"):
            raise MissingEpisode(f"Episode of script {drama_id} has no id")
        episode_id = str(episode["id"])

        task_id = await self.gateway.generate_storyboards(episode_id)
        logger.info(f"[{run.id}] storyboard job submitted: task_id={task_id}")
        return drama, episode_id, task_id

    async def _poll_storyboard_job(self, run: PipelineRun, task_id: str) -> int:
        """Poll the job until it resolves. Returns the number of polls made."""
        for attempt in range(1, self.max_poll_attempts + 1):
            job: RemoteJob = await self.gateway.get_task(task_id)
            logger.debug(f"[{run.id}] poll #{attempt}: status={job.status}")

            if job.status == JobStatus.COMPLETED.value:
                return attempt
            if job.status == JobStatus.FAILED.value:
                raise JobFailed(job.error or "")

            if attempt < self.max_poll_attempts:
                await self._sleep(self.poll_interval)

        raise PollTimeout(
            f"Storyboard generation timed out after {self.max_poll_attempts} polls"
        )

    async def _fetch_storyboards(self, run: PipelineRun, drama: dict, drama_id: str,
                                 episode_id: str) -> RunResult:
        storyboards = await self.gateway.list_storyboards(episode_id)
        samples = [
            str(entry.get("action") or entry.get("title") or f"Shot {i}")
            if isinstance(entry, dict) else f"Shot {i}"
            for i, entry in enumerate(storyboards, start=1)
        ]
        return RunResult(
            script_id=drama_id,
            episode_id=episode_id,
            storyboard_count=len(storyboards),
            character_count=len(drama.get("characters") or []),
            scene_count=len(drama.get("scenes") or []),
            prop_count=len(drama.get("props") or []),
            samples=samples[:SAMPLE_SIZE],
        )
