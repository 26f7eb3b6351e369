"""Pipeline orchestration: drives analysis runs through their stages.

Stages run strictly in order; inside a per-file stage, files fan out
``llm_max_concurrency`` at a time. A file that fails in a stage turns
into a ``stage_error`` finding and never stops the run. Only structural
failures (persistence, invariant violations, the overall deadline)
move a run to ``failed``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter, OrderedDict
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeAlias

from fixwright.analysis.aggregator import FindingAggregator
from fixwright.analysis.llm.client import AIAnalysisClient
from fixwright.analysis.pipeline import FanOut, StageResult
from fixwright.analysis.schemas import (
    Finding,
    FixedFile,
    ProjectSummary,
    SourceFile,
    StageFindings,
)
from fixwright.config import Settings
from fixwright.constants import (
    ANALYSIS_STAGES,
    ERROR_TRUNCATION_CHARS,
    FINISHED_RUN_MEMORY,
    MAX_PROMPT_FINDINGS,
    SEVERITY_RANK,
    STAGE_LABELS,
    STAGE_ORDER,
    FindingCategory,
    RunStatus,
    Severity,
    Stage,
    StageOutcome,
    StageProgress,
)
from fixwright.logger import RunLogger
from fixwright.repositories.protocols import RunRepository
from fixwright.resilience.errors import (
    RunAlreadyActiveError,
    RunNotFoundError,
)
from fixwright.services.events import ProgressCallback, StageEvent
from fixwright.services.progress import ProgressReporter, RunStatusView
from fixwright.services.run_state import (
    AnalysisResult,
    AnalysisRun,
    RunMetrics,
    StageRecord,
)

logger = logging.getLogger(__name__)

FileCallback: TypeAlias = Callable[[SourceFile, list[Finding]], None]


def stage_error_finding(file: str, stage: Stage, reason: str) -> Finding:
    return Finding(
        file=file,
        category=FindingCategory.STAGE_ERROR,
        severity=Severity.HIGH,
        message=f"Failed in {stage}: {reason}",
        stage=stage,
    )


def _validate_stages(
    stages: Sequence[Stage | str] | None,
) -> tuple[Stage, ...]:
    if stages is None:
        return STAGE_ORDER
    ordered = tuple(Stage(s) for s in stages)
    positions = [STAGE_ORDER.index(s) for s in ordered]
    if not ordered or positions != sorted(set(positions)):
        raise ValueError(
            "stages must be a non-empty, duplicate-free subsequence of "
            + " -> ".join(STAGE_ORDER)
        )
    return ordered


def _dedupe_files(files: Sequence[SourceFile]) -> list[SourceFile]:
    unique: dict[str, SourceFile] = {}
    for f in files:
        if f.path in unique:
            logger.warning("event=duplicate_file_dropped file=%s", f.path)
            continue
        unique[f.path] = f
    return list(unique.values())


def _findings_from(
    file: SourceFile, stage: Stage, result: StageResult[StageFindings]
) -> list[Finding]:
    if not result.ok or result.output is None:
        return [
            stage_error_finding(
                file.path, stage, result.error or "unknown error"
            )
        ]
    output = result.output
    if output.error is not None:
        return [
            *output.findings,
            stage_error_finding(file.path, stage, output.error),
        ]
    return output.findings


@dataclass
class _RunState:
    run: AnalysisRun
    files: list[SourceFile]
    aggregator: FindingAggregator = field(
        default_factory=FindingAggregator
    )
    processed: set[str] = field(default_factory=lambda: set[str]())
    cancel_requested: bool = False
    done: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task[AnalysisResult] | None = None
    started: float = field(default_factory=time.monotonic)

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started) * 1000


class AnalysisOrchestrator:
    """Owns every in-process run and the single-run-per-project guard.

    The AI client (with its cache and rate limiter) is shared by all
    runs; each run gets its own aggregator.
    """

    def __init__(
        self,
        client: AIAnalysisClient,
        repository: RunRepository,
        settings: Settings,
        *,
        stages: Sequence[Stage | str] | None = None,
        run_logger: RunLogger | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._client = client
        self._repository = repository
        self._settings = settings
        self._stages = _validate_stages(stages)
        self._run_logger = run_logger
        self._on_progress = on_progress
        self._runs: dict[str, _RunState] = {}
        self._project_runs: dict[str, str] = {}
        self._finished: OrderedDict[str, AnalysisRun] = OrderedDict()
        self._tasks: set[asyncio.Task[AnalysisResult]] = set()
        self._admission = asyncio.Lock()

    @property
    def stages(self) -> tuple[Stage, ...]:
        return self._stages

    # -- Trigger interface --

    async def start_run(
        self, project_id: str, files: Sequence[SourceFile]
    ) -> str:
        """Admit, persist and schedule a new run; returns its id.

        Raises ``RunAlreadyActiveError`` when the project already has a
        pending or processing run; that run is left untouched.
        """
        async with self._admission:
            active_id = self._project_runs.get(project_id)
            if active_id is None:
                existing = await self._repository.find_active(project_id)
                active_id = existing.id if existing is not None else None
            if active_id is not None:
                logger.info(
                    "event=run_rejected project_id=%s active_run=%s",
                    project_id,
                    active_id,
                )
                raise RunAlreadyActiveError(project_id, active_id)

            unique = _dedupe_files(files)
            run = AnalysisRun(
                project_id=project_id,
                stages=list(self._stages),
                metrics=RunMetrics(total_files=len(unique)),
            )
            await self._repository.save_run(run)
            state = self._register(run, unique)

        task = asyncio.create_task(
            self.execute(run, unique), name=f"analysis-run-{run.id}"
        )
        state.task = task
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        logger.info(
            "event=run_started run_id=%s project_id=%s files=%d",
            run.id,
            project_id,
            len(unique),
        )
        return run.id

    async def cancel_run(self, run_id: str) -> bool:
        """Request cooperative cancellation.

        Files already in flight finish; no new file starts. Returns
        False when the run has already reached a terminal state.
        """
        state = self._runs.get(run_id)
        if state is not None:
            if state.run.is_terminal:
                return False
            state.cancel_requested = True
            logger.info("event=cancel_requested run_id=%s", run_id)
            return True

        run = await self._load(run_id)
        if run.is_terminal:
            return False
        # Active in storage but not owned by this process
        run.transition(RunStatus.CANCELLED)
        await self._repository.save_run(run)
        return True

    async def get_status(self, run_id: str) -> RunStatusView:
        state = self._runs.get(run_id)
        run = state.run if state is not None else await self._load(run_id)
        return ProgressReporter(run).view()

    async def get_result(self, run_id: str) -> AnalysisResult:
        state = self._runs.get(run_id)
        run = state.run if state is not None else await self._load(run_id)
        return AnalysisResult.from_run(run)

    async def wait(self, run_id: str) -> AnalysisResult:
        """Block until the run leaves the orchestrator, then return it."""
        state = self._runs.get(run_id)
        if state is not None:
            await state.done.wait()
            return AnalysisResult.from_run(state.run)
        return await self.get_result(run_id)

    async def recover_interrupted(self) -> int:
        """Fail runs a previous process left pending or processing."""
        recovered = await self._repository.recover_interrupted(
            "interrupted by process restart"
        )
        if recovered:
            logger.warning("event=run_recovery recovered=%d", recovered)
        return recovered

    async def shutdown(self) -> None:
        """Cancel every running task and wait for them to settle."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        # Tasks cancelled before their first step never ran _drive
        for state in list(self._runs.values()):
            if not state.run.is_terminal:
                state.run.transition(RunStatus.CANCELLED)
                await self._save_best_effort(state.run)
            self._release(state)

    # -- State machine --

    async def execute(
        self, run: AnalysisRun, files: Sequence[SourceFile]
    ) -> AnalysisResult:
        """Drive ``run`` to a terminal state. Awaitable directly."""
        state = self._runs.get(run.id) or self._register(
            run, _dedupe_files(files)
        )
        try:
            await self._drive(state)
        finally:
            self._release(state)
        return AnalysisResult.from_run(state.run)

    async def _drive(self, state: _RunState) -> None:
        run = state.run
        if run.is_terminal:
            return
        if state.cancel_requested:
            run.transition(RunStatus.CANCELLED)
            await self._save_best_effort(run)
            return

        try:
            run.transition(RunStatus.PROCESSING)
            await self._repository.save_run(run)
            if self._run_logger:
                self._run_logger.log_run_start(
                    run.id, run.project_id, len(state.files)
                )
            async with asyncio.timeout(
                self._settings.analysis_timeout_seconds
            ):
                finished = await self._run_stages(state)

            target = (
                RunStatus.COMPLETED if finished else RunStatus.CANCELLED
            )
            if finished:
                run.advance_progress(100.0)
            self._refresh(state)
            final = run.model_copy(deep=True)
            final.transition(target)
            await self._repository.save_run(final)
            run.transition(target)
            run.completed_at = final.completed_at
        except asyncio.CancelledError:
            if not run.is_terminal:
                run.error = "run task cancelled"
                run.transition(RunStatus.CANCELLED)
            self._refresh(state)
            await self._save_best_effort(run)
            raise
        except Exception as exc:
            if isinstance(exc, TimeoutError):
                reason = (
                    "analysis exceeded "
                    f"{self._settings.analysis_timeout_seconds:g}s"
                )
            else:
                reason = str(exc) or type(exc).__name__
            logger.error(
                "event=run_failed run_id=%s stage=%s error=%s",
                run.id,
                run.current_stage,
                reason,
                exc_info=True,
            )
            if self._run_logger:
                self._run_logger.log_error(run.id, "orchestrator", reason)
            run.error = reason[:ERROR_TRUNCATION_CHARS]
            if not run.is_terminal:
                run.transition(RunStatus.FAILED)
            self._refresh(state)
            await self._save_best_effort(run)
        finally:
            self._finish_log(state)

    async def _run_stages(self, state: _RunState) -> bool:
        """Run every configured stage; False if cancelled part way."""
        run = state.run
        total = len(self._stages)
        for index, stage in enumerate(self._stages):
            if state.cancel_requested:
                return False
            run.current_stage = stage
            self._emit(
                StageEvent(
                    run_id=run.id,
                    name=stage,
                    status=StageProgress.RUNNING,
                    message=STAGE_LABELS[stage],
                )
            )
            t0 = time.monotonic()

            def _file_done(done: int, count: int, i: int = index) -> None:
                pct = run.advance_progress((i + done / count) / total * 100)
                self._emit(
                    StageEvent(
                        run_id=run.id,
                        name=run.current_stage or "",
                        status=StageProgress.RUNNING,
                        completed=done,
                        total=count,
                        percent=pct,
                    )
                )

            if stage == Stage.INITIALIZING:
                record = self._initialize(state)
            elif stage == Stage.FINALIZING:
                record = await self._finalize(state)
            elif stage == Stage.FIX_GENERATION:
                record = await self._generate_fixes(state, _file_done)
            else:
                record = await self._analyze(state, stage, _file_done)

            record.duration_ms = (time.monotonic() - t0) * 1000
            run.stage_records.append(record)
            if state.cancel_requested:
                return False

            run.advance_progress((index + 1) / total * 100)
            self._refresh(state)
            await self._repository.save_run(run)
            if self._run_logger:
                self._run_logger.log_stage(
                    run.id,
                    stage,
                    record.duration_ms,
                    record.files,
                    record.failures,
                )
            self._emit(
                StageEvent(
                    run_id=run.id,
                    name=stage,
                    status=(
                        StageProgress.ERROR
                        if record.failures
                        else StageProgress.DONE
                    ),
                    duration_ms=record.duration_ms,
                    message=(
                        f"{record.failures} of {record.files} files failed"
                        if record.failures
                        else ""
                    ),
                    percent=run.progress_percent,
                )
            )
        return True

    # -- Stages --

    def _initialize(self, state: _RunState) -> StageRecord:
        languages = Counter(f.language for f in state.files)
        logger.info(
            "event=run_initialized run_id=%s files=%d languages=%s",
            state.run.id,
            len(state.files),
            ",".join(f"{lang}:{n}" for lang, n in languages.most_common()),
        )
        state.run.metrics.total_files = len(state.files)
        return StageRecord(
            stage=Stage.INITIALIZING,
            outcome=StageOutcome.COMPLETED,
            files=len(state.files),
        )

    async def run_stage(
        self,
        stage: Stage | str,
        files: Sequence[SourceFile],
        *,
        on_file: FileCallback | None = None,
        should_stop: Callable[[], bool] | None = None,
    ) -> list[Finding]:
        """Run one analysis stage over ``files``.

        Returns findings in input-file order. A file whose analysis
        failed or degraded contributes a ``stage_error`` finding.
        """
        per_file = await self._fan_out(
            Stage(stage), list(files), on_file, should_stop
        )
        return [f for group in per_file for f in group]

    async def _fan_out(
        self,
        stage: Stage,
        files: list[SourceFile],
        on_file: FileCallback | None,
        should_stop: Callable[[], bool] | None,
    ) -> list[list[Finding]]:
        if stage not in ANALYSIS_STAGES:
            raise ValueError(f"{stage} is not an analysis stage")
        per_file: list[list[Finding]] = [[] for _ in files]

        def _collect(idx: int, result: StageResult[StageFindings]) -> None:
            findings = _findings_from(files[idx], stage, result)
            per_file[idx] = findings
            if on_file is not None:
                on_file(files[idx], findings)

        fan_out: FanOut[SourceFile, StageFindings] = FanOut(
            name=stage,
            execute=lambda f: self._client.analyze(f, stage),
            max_concurrency=self._settings.llm_max_concurrency,
            label=lambda f: f.path,
            should_stop=should_stop,
            on_result=_collect,
        )
        await fan_out.run(files)
        return per_file

    async def _analyze(
        self,
        state: _RunState,
        stage: Stage,
        file_done: Callable[[int, int], None],
    ) -> StageRecord:
        done = 0
        count = len(state.files)

        def _on_file(file: SourceFile, _findings: list[Finding]) -> None:
            nonlocal done
            done += 1
            state.processed.add(file.path)
            file_done(done, count)

        per_file = await self._fan_out(
            stage,
            state.files,
            _on_file,
            lambda: state.cancel_requested,
        )
        failures = 0
        for file, findings in zip(state.files, per_file, strict=True):
            if any(
                f.category == FindingCategory.STAGE_ERROR for f in findings
            ):
                failures += 1
            state.aggregator.record_errors(file.path, findings)
        return StageRecord(
            stage=stage,
            outcome=StageOutcome.COMPLETED,
            files=done,
            failures=failures,
        )

    async def _generate_fixes(
        self,
        state: _RunState,
        file_done: Callable[[int, int], None],
    ) -> StageRecord:
        """Fix only files with at least one real finding."""
        targets: list[tuple[SourceFile, list[Finding]]] = []
        for file in state.files:
            errors = [
                e
                for e in state.aggregator.errors_for(file.path)
                if e.category != FindingCategory.STAGE_ERROR
            ]
            if errors:
                targets.append((file, errors))
        skipped = len(state.files) - len(targets)
        if skipped:
            logger.debug(
                "event=fix_skipped run_id=%s files=%d",
                state.run.id,
                skipped,
            )

        done = 0

        def _on_result(
            _idx: int, _result: StageResult[StageFindings]
        ) -> None:
            nonlocal done
            done += 1
            file_done(done, len(targets))

        fan_out: FanOut[tuple[SourceFile, list[Finding]], StageFindings] = (
            FanOut(
                name=Stage.FIX_GENERATION,
                execute=lambda t: self._client.analyze(
                    t[0], Stage.FIX_GENERATION, errors=t[1]
                ),
                max_concurrency=self._settings.llm_max_concurrency,
                label=lambda t: t[0].path,
                should_stop=lambda: state.cancel_requested,
                on_result=_on_result,
            )
        )
        results = await fan_out.run(targets)

        failures = 0
        for (file, _errors), result in zip(targets, results, strict=True):
            if result.status == StageOutcome.SKIPPED:
                continue
            output = result.output
            if not result.ok or output is None or output.degraded:
                failures += 1
                state.aggregator.record_errors(
                    file.path,
                    _findings_from(file, Stage.FIX_GENERATION, result),
                )
                continue
            state.aggregator.record_fixes(file.path, output.fixes)
            fixed = output.fixed_content
            if fixed is not None and fixed != file.content:
                state.aggregator.record_fixed_file(
                    FixedFile(
                        file=file.path,
                        original_content=file.content,
                        fixed_content=fixed,
                        change_count=output.change_count,
                        applied_fix_ids=output.applied_fix_ids,
                    )
                )
        return StageRecord(
            stage=Stage.FIX_GENERATION,
            outcome=StageOutcome.COMPLETED,
            files=done,
            failures=failures,
        )

    async def _finalize(self, state: _RunState) -> StageRecord:
        run = state.run
        orphans = state.aggregator.orphaned_fixes()
        if orphans:
            logger.warning(
                "event=orphaned_fixes run_id=%s count=%d error_ids=%s",
                run.id,
                len(orphans),
                ",".join(f.error_id or "-" for f in orphans[:10]),
            )

        snapshot = state.aggregator.snapshot()
        real = [
            e
            for e in snapshot.errors
            if e.category != FindingCategory.STAGE_ERROR
        ]
        languages = Counter(f.language for f in state.files)
        summary = ProjectSummary(
            language=(
                languages.most_common(1)[0][0] if languages else "unknown"
            ),
            file_count=len(state.files),
            error_count=len(snapshot.errors),
            fix_count=len(snapshot.fixes),
            top_findings=sorted(
                real, key=lambda e: SEVERITY_RANK[e.severity]
            )[:MAX_PROMPT_FINDINGS],
        )
        run.recommendations = await self._client.recommend(summary)
        return StageRecord(
            stage=Stage.FINALIZING,
            outcome=StageOutcome.COMPLETED,
            files=len(state.files),
        )

    # -- Helpers --

    def _register(
        self, run: AnalysisRun, files: list[SourceFile]
    ) -> _RunState:
        state = _RunState(run=run, files=files)
        self._runs[run.id] = state
        self._project_runs[run.project_id] = run.id
        return state

    def _release(self, state: _RunState) -> None:
        run = state.run
        self._runs.pop(run.id, None)
        if self._project_runs.get(run.project_id) == run.id:
            del self._project_runs[run.project_id]
        self._finished[run.id] = run
        while len(self._finished) > FINISHED_RUN_MEMORY:
            self._finished.popitem(last=False)
        state.done.set()

    def _refresh(self, state: _RunState) -> None:
        """Copy aggregator state and derived metrics onto the run."""
        run = state.run
        snapshot = state.aggregator.snapshot()
        run.errors = snapshot.errors
        run.fixes = snapshot.fixes
        run.fixed_files = snapshot.fixed_files
        run.metrics = RunMetrics(
            **state.aggregator.summary().model_dump(),
            total_files=len(state.files),
            files_processed=min(len(state.processed), len(state.files)),
            analysis_duration_ms=state.elapsed_ms(),
        )

    async def _load(self, run_id: str) -> AnalysisRun:
        run = self._finished.get(run_id)
        if run is None:
            run = await self._repository.load_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    async def _save_best_effort(self, run: AnalysisRun) -> None:
        try:
            await self._repository.save_run(run)
        except Exception:
            logger.error(
                "event=run_save_failed run_id=%s status=%s",
                run.id,
                run.status,
                exc_info=True,
            )

    def _emit(self, event: StageEvent) -> None:
        if self._on_progress:
            self._on_progress(event)

    def _finish_log(self, state: _RunState) -> None:
        run = state.run
        logger.info(
            "event=run_finished run_id=%s status=%s errors=%d quality=%d",
            run.id,
            run.status,
            run.metrics.error_count,
            run.metrics.quality_score,
        )
        if self._run_logger:
            self._run_logger.log_run_end(
                run.id,
                run.status,
                state.elapsed_ms(),
                run.metrics.error_count,
                run.metrics.quality_score,
            )

    def _on_task_done(self, task: asyncio.Task[AnalysisResult]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "event=run_task_crashed task=%s error=%s",
                task.get_name(),
                exc,
            )
