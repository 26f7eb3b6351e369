"""CLI entry point: ``fixwright review`` and ``fixwright serve``."""

from __future__ import annotations

# Phase 1: Singleton logging, before any transitive litellm imports
from fixwright.logging_config import setup_logging

setup_logging()

import argparse  # noqa: E402
import asyncio  # noqa: E402
import sys  # noqa: E402
from pathlib import Path  # noqa: E402

from fixwright import __version__  # noqa: E402
from fixwright.config import Settings  # noqa: E402
from fixwright.constants import (  # noqa: E402
    STAGE_ORDER,
    RunStatus,
    Stage,
    StageProgress,
)
from fixwright.logging_config import (  # noqa: E402
    cleanup_third_party_handlers,
)
from fixwright.resilience.errors import RunAlreadyActiveError  # noqa: E402
from fixwright.services.events import (  # noqa: E402
    ProgressCallback,
    StageEvent,
)
from fixwright.services.run_state import AnalysisResult  # noqa: E402

# Phase 2: Clear litellm's duplicate handlers after all imports
cleanup_third_party_handlers()


def main() -> None:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args()

    if args.version:
        print(f"fixwright {__version__}")
        return

    if args.command == "review":
        _run_review(args)
    elif args.command == "serve":
        _run_serve(args)
    else:
        parser.print_help()


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="fixwright",
        description="AI-assisted code review and fix pipeline.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )

    sub = parser.add_subparsers(dest="command")

    review = sub.add_parser(
        "review",
        help="Review a local directory",
    )
    review.add_argument(
        "path",
        type=str,
        help="Directory to review",
    )
    review.add_argument(
        "--output",
        "-o",
        default=None,
        help="Write the full result as JSON to this file",
    )
    review.add_argument(
        "--stages",
        "-s",
        type=str,
        default=None,
        help=(
            "Comma-separated stage names, in pipeline order "
            "(default: all)"
        ),
    )
    review.add_argument(
        "--concurrency",
        "-c",
        type=int,
        default=None,
        help="Files analyzed in parallel per stage",
    )
    review.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )

    serve = sub.add_parser(
        "serve",
        help="Start the HTTP API",
    )
    serve.add_argument(
        "--host",
        default="127.0.0.1",
        help="Bind address (default: 127.0.0.1)",
    )
    serve.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port (default: 8000)",
    )

    return parser


def _parse_stages(raw: str | None) -> list[Stage] | None:
    if not raw:
        return None
    stages: list[Stage] = []
    for name in (s.strip() for s in raw.split(",")):
        if name not in STAGE_ORDER:
            print(
                f"Error: unknown stage '{name}'. "
                f"Valid: {', '.join(STAGE_ORDER)}",
                file=sys.stderr,
            )
            sys.exit(1)
        stages.append(Stage(name))
    return stages


def _run_review(args: argparse.Namespace) -> None:
    """Execute the review command."""
    root = Path(args.path).resolve()
    if not root.is_dir():
        print(f"Error: {root} is not a directory", file=sys.stderr)
        sys.exit(1)

    stages = _parse_stages(args.stages)
    settings = Settings()
    if args.concurrency is not None:
        if args.concurrency < 1:
            print("Error: --concurrency must be >= 1", file=sys.stderr)
            sys.exit(1)
        settings = settings.model_copy(
            update={"llm_max_concurrency": args.concurrency}
        )

    def on_progress(event: StageEvent) -> None:
        if not args.verbose:
            return
        if event.status == StageProgress.RUNNING and event.total is None:
            print(f"  {event.label}...")
        elif event.status != StageProgress.RUNNING:
            suffix = f" ({event.message})" if event.message else ""
            print(
                f"  [{event.status}] {event.name} "
                f"({event.duration_ms:.0f}ms){suffix}"
            )

    print(f"Reviewing: {root}")
    try:
        result = asyncio.run(
            _review(root, settings, stages, on_progress)
        )
    except RunAlreadyActiveError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(
            result.model_dump_json(indent=2), encoding="utf-8"
        )

    _print_summary(result)
    if args.output:
        print(f"Output: {args.output}")
    if result.status != RunStatus.COMPLETED:
        sys.exit(1)


async def _review(
    root: Path,
    settings: Settings,
    stages: list[Stage] | None,
    on_progress: ProgressCallback,
) -> AnalysisResult:
    """Load files, run one analysis to completion, dispose the engine."""
    from sqlalchemy.ext.asyncio import async_sessionmaker

    from fixwright.analysis.llm.client import AIAnalysisClient
    from fixwright.config import create_app_engine
    from fixwright.ingestion.loader import load_source_files
    from fixwright.logger import RunLogger
    from fixwright.models.base import Base
    from fixwright.repositories.run_repo import SqlRunRepository
    from fixwright.services.orchestrator import AnalysisOrchestrator

    files = load_source_files(root, settings)
    print(f"Files: {len(files)}")

    settings.data_dir.mkdir(parents=True, exist_ok=True)
    engine = create_app_engine(settings.database_url)
    run_logger = RunLogger(settings.log_dir, settings.log_level)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        orchestrator = AnalysisOrchestrator(
            AIAnalysisClient.from_settings(settings),
            SqlRunRepository(
                async_sessionmaker(engine, expire_on_commit=False)
            ),
            settings,
            stages=stages,
            run_logger=run_logger,
            on_progress=on_progress,
        )
        run_id = await orchestrator.start_run(f"local:{root}", files)
        return await orchestrator.wait(run_id)
    finally:
        run_logger.close()
        await engine.dispose()


def _print_summary(result: AnalysisResult) -> None:
    m = result.metrics
    print(
        f"\nRun {result.run_id}: {result.status} "
        f"({m.analysis_duration_ms:.0f}ms)"
    )
    if result.error:
        print(f"  Error: {result.error}")
    print(
        f"  Files: {m.files_processed}/{m.total_files}  "
        f"Findings: {m.error_count}  Fixes: {m.fixes_generated}  "
        f"Fixed files: {m.fixed_file_count}"
    )
    print(f"  Quality score: {m.quality_score}/100")
    if m.by_severity:
        counts = ", ".join(
            f"{sev}={n}" for sev, n in sorted(m.by_severity.items())
        )
        print(f"  By severity: {counts}")
    for rec in result.recommendations:
        print(f"  - [{rec.priority}] {rec.message}")


def _run_serve(args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run("fixwright.main:app", host=args.host, port=args.port)


if __name__ == "__main__":
    main()
