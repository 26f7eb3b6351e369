"""Analysis run state and the result view built from it."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from fixwright.analysis.aggregator import FindingSummary
from fixwright.analysis.diff import DiffLine, line_diff
from fixwright.analysis.schemas import (
    Finding,
    Fix,
    FixedFile,
    Recommendation,
    new_id,
)
from fixwright.constants import (
    TERMINAL_STATUSES,
    RunStatus,
    Stage,
    StageOutcome,
)

_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PENDING: frozenset({
        RunStatus.PROCESSING,
        RunStatus.CANCELLED,
        RunStatus.FAILED,
    }),
    RunStatus.PROCESSING: frozenset({
        RunStatus.COMPLETED,
        RunStatus.FAILED,
        RunStatus.CANCELLED,
    }),
}


class InvalidTransitionError(ValueError):
    def __init__(self, current: RunStatus, target: RunStatus) -> None:
        super().__init__(f"cannot move run from {current} to {target}")
        self.current = current
        self.target = target


def _now() -> datetime:
    return datetime.now(UTC)


class RunMetrics(FindingSummary):
    total_files: int = 0
    files_processed: int = 0
    analysis_duration_ms: float = 0.0


class StageRecord(BaseModel):
    """Outcome of one stage of a run."""

    stage: Stage
    outcome: StageOutcome
    duration_ms: float = 0.0
    files: int = 0
    failures: int = 0


class AnalysisRun(BaseModel):
    """One execution of the pipeline over one project's files.

    The run is the persisted unit: status and progress fields are
    checkpointed after every stage, together with the findings,
    fixes and fixed files accumulated so far.
    """

    id: str = Field(default_factory=new_id)
    project_id: str
    status: RunStatus = RunStatus.PENDING
    current_stage: Stage | None = None
    progress_percent: float = 0.0
    created_at: datetime = Field(default_factory=_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    stages: list[Stage] = Field(default_factory=lambda: list(Stage))
    stage_records: list[StageRecord] = Field(
        default_factory=lambda: list[StageRecord]()
    )
    metrics: RunMetrics = Field(default_factory=RunMetrics)
    errors: list[Finding] = Field(default_factory=lambda: list[Finding]())
    fixes: list[Fix] = Field(default_factory=lambda: list[Fix]())
    fixed_files: list[FixedFile] = Field(
        default_factory=lambda: list[FixedFile]()
    )
    recommendations: list[Recommendation] = Field(
        default_factory=lambda: list[Recommendation]()
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, target: RunStatus) -> None:
        """Move to ``target``; terminal states never move again."""
        if target not in _TRANSITIONS.get(self.status, frozenset()):
            raise InvalidTransitionError(self.status, target)
        self.status = target
        if target == RunStatus.PROCESSING:
            self.started_at = _now()
        elif target in TERMINAL_STATUSES:
            self.completed_at = _now()

    def advance_progress(self, percent: float) -> float:
        """Raise progress to ``percent``; never lowers it."""
        self.progress_percent = min(
            100.0, max(self.progress_percent, percent)
        )
        return self.progress_percent


class AnalysisResult(BaseModel):
    """Everything a caller gets back for a run."""

    run_id: str
    project_id: str
    status: RunStatus
    error: str | None = None
    metrics: RunMetrics
    errors: list[Finding]
    fixes: list[Fix]
    fixed_files: list[FixedFile]
    recommendations: list[Recommendation]
    stage_records: list[StageRecord]
    diffs: dict[str, list[DiffLine]] = Field(default_factory=dict)

    @classmethod
    def from_run(cls, run: AnalysisRun) -> AnalysisResult:
        return cls(
            run_id=run.id,
            project_id=run.project_id,
            status=run.status,
            error=run.error,
            metrics=run.metrics,
            errors=run.errors,
            fixes=run.fixes,
            fixed_files=run.fixed_files,
            recommendations=run.recommendations,
            stage_records=run.stage_records,
            diffs={
                f.file: line_diff(f.original_content, f.fixed_content)
                for f in run.fixed_files
            },
        )
