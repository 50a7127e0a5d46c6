"""
Progress projection: PipelineRun → ProgressView.

Pure functions only. The orchestrator calls project() after every
transition and hands the resulting frozen view to listeners.
"""

from .models import (
    PipelineRun,
    ProgressStep,
    ProgressView,
    RunOutcome,
    RunResult,
    StageName,
)

SAMPLE_SIZE = 3

STAGE_LABELS = {
    StageName.CREATE_SCRIPT: "Creating script",
    StageName.ATTACH_EPISODE: "Attaching episode",
    StageName.TRIGGER_STORYBOARD_JOB: "Starting storyboard generation",
    StageName.POLL_STORYBOARD_JOB: "Generating storyboards",
    StageName.FETCH_STORYBOARDS: "Fetching storyboards",
}


def summarize(result: RunResult) -> tuple[str, ...]:
    lines = [
        f"{result.character_count} characters, {result.scene_count} scenes, "
        f"{result.storyboard_count} storyboards, {result.prop_count} props"
    ]
    lines.extend(
        f"{i}. {sample}" for i, sample in enumerate(result.samples[:SAMPLE_SIZE], start=1)
    )
    return tuple(lines)


def project(run: PipelineRun) -> ProgressView:
    steps = tuple(
        ProgressStep(
            stage=record.name,
            label=STAGE_LABELS[record.name],
            status=record.status,
            detail=record.detail,
        )
        for record in run.stages
    )

    summary: tuple[str, ...] = ()
    error = None
    if run.outcome == RunOutcome.SUCCEEDED and run.result is not None:
        summary = summarize(run.result)
    elif run.outcome == RunOutcome.FAILED:
        error = f"Creation failed: {run.error_message or 'Unknown error'}"
    elif run.outcome == RunOutcome.CANCELLED:
        error = "Cancelled"

    return ProgressView(
        run_id=run.id,
        outcome=run.outcome,
        steps=steps,
        summary=summary,
        error=error,
    )
