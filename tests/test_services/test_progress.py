"""Tests for the status view and ETA projection."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from fixwright.constants import RunStatus, Stage
from fixwright.services.progress import ProgressReporter, estimate_remaining
from fixwright.services.run_state import AnalysisRun

T0 = datetime(2025, 1, 1, tzinfo=UTC)


def _processing_run(percent: float) -> AnalysisRun:
    run = AnalysisRun(project_id="p")
    run.transition(RunStatus.PROCESSING)
    run.started_at = T0
    run.advance_progress(percent)
    return run


class TestEstimateRemaining:
    def test_linear_projection(self) -> None:
        assert estimate_remaining(30.0, 25.0) == pytest.approx(90.0)

    def test_unknown_before_progress(self) -> None:
        assert estimate_remaining(10.0, 0.0) is None


class TestProgressReporter:
    def test_eta_while_processing(self) -> None:
        run = _processing_run(50.0)
        reporter = ProgressReporter(
            run, clock=lambda: T0 + timedelta(seconds=20)
        )
        assert reporter.elapsed_seconds() == 20.0
        assert reporter.estimated_time_remaining() == pytest.approx(20.0)

    def test_pending_has_no_eta(self) -> None:
        reporter = ProgressReporter(AnalysisRun(project_id="p"))
        assert reporter.elapsed_seconds() == 0.0
        assert reporter.estimated_time_remaining() is None

    def test_completed_eta_is_zero(self) -> None:
        run = _processing_run(100.0)
        run.transition(RunStatus.COMPLETED)
        assert ProgressReporter(run).estimated_time_remaining() == 0.0

    def test_failed_has_no_eta(self) -> None:
        run = _processing_run(50.0)
        run.transition(RunStatus.FAILED)
        assert ProgressReporter(run).estimated_time_remaining() is None

    def test_view(self) -> None:
        run = _processing_run(37.5)
        run.current_stage = Stage.SECURITY_SCAN
        view = ProgressReporter(
            run, clock=lambda: T0 + timedelta(seconds=15)
        ).view()

        assert view.run_id == run.id
        assert view.status == RunStatus.PROCESSING
        assert view.progress_percent == 37.5
        assert view.current_stage == Stage.SECURITY_SCAN
        assert view.estimated_time_remaining_ms == 25_000
        assert view.errors_found == 0

    def test_reporter_does_not_mutate_run(self) -> None:
        run = _processing_run(10.0)
        before = run.model_dump()
        ProgressReporter(run).view()
        assert run.model_dump() == before
