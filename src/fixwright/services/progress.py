"""Read-only status and ETA projection of a run."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import BaseModel

from fixwright.constants import RunStatus, Stage
from fixwright.services.run_state import AnalysisRun


class RunStatusView(BaseModel):
    """Point-in-time snapshot handed to callers polling a run."""

    run_id: str
    project_id: str
    status: RunStatus
    progress_percent: float
    current_stage: Stage | None = None
    estimated_time_remaining_ms: int | None = None
    errors_found: int = 0
    fixes_generated: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None


def estimate_remaining(elapsed: float, percent: float) -> float | None:
    """Linear projection: ``elapsed / pct * 100 - elapsed``.

    None when nothing has completed yet.
    """
    if percent <= 0:
        return None
    return max(0.0, elapsed / percent * 100 - elapsed)


class ProgressReporter:
    """Derives status fields from a run without ever mutating it."""

    def __init__(
        self,
        run: AnalysisRun,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._run = run
        self._clock = clock

    def status(self) -> RunStatus:
        return self._run.status

    def progress_percent(self) -> float:
        return self._run.progress_percent

    def current_stage(self) -> Stage | None:
        return self._run.current_stage

    def elapsed_seconds(self) -> float:
        started = self._run.started_at
        if started is None:
            return 0.0
        end = self._run.completed_at or self._clock()
        return max(0.0, (end - started).total_seconds())

    def estimated_time_remaining(self) -> float | None:
        """Seconds left, or None while unknown.

        Runs that ended without completing have no meaningful ETA.
        """
        if self._run.status == RunStatus.COMPLETED:
            return 0.0
        if self._run.status in (RunStatus.FAILED, RunStatus.CANCELLED):
            return None
        return estimate_remaining(
            self.elapsed_seconds(), self._run.progress_percent
        )

    def view(self) -> RunStatusView:
        eta = self.estimated_time_remaining()
        return RunStatusView(
            run_id=self._run.id,
            project_id=self._run.project_id,
            status=self._run.status,
            progress_percent=round(self._run.progress_percent, 2),
            current_stage=self._run.current_stage,
            estimated_time_remaining_ms=(
                round(eta * 1000) if eta is not None else None
            ),
            errors_found=len(self._run.errors),
            fixes_generated=len(self._run.fixes),
            started_at=self._run.started_at,
            completed_at=self._run.completed_at,
            error=self._run.error,
        )
