"""Structured JSON audit log for analysis runs."""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from fixwright.constants import ERROR_TRUNCATION_CHARS
from fixwright.logging_config import attach_run_log, detach_run_log

__all__ = ["RunLogger"]


class RunLogger:
    """One JSON line per run lifecycle event, correlated by run_id."""

    def __init__(self, log_dir: Path, level: str = "INFO") -> None:
        self._logger = attach_run_log(log_dir, level)

    def close(self) -> None:
        detach_run_log()

    def _emit(self, level: int, record: dict[str, Any]) -> None:
        record["timestamp"] = datetime.now(UTC).isoformat()
        self._logger.log(level, json.dumps(record, default=str))

    def log_run_start(
        self, run_id: str, project_id: str, total_files: int
    ) -> None:
        self._emit(
            logging.INFO,
            {
                "type": "run_start",
                "run_id": run_id,
                "project_id": project_id,
                "total_files": total_files,
            },
        )

    def log_stage(
        self,
        run_id: str,
        stage_name: str,
        duration_ms: float,
        files: int,
        failures: int,
    ) -> None:
        self._emit(
            logging.INFO,
            {
                "type": "stage",
                "run_id": run_id,
                "stage": stage_name,
                "duration_ms": duration_ms,
                "files": files,
                "failures": failures,
            },
        )

    def log_error(
        self,
        run_id: str,
        component: str,
        error: str,
    ) -> None:
        self._emit(
            logging.ERROR,
            {
                "type": "error",
                "run_id": run_id,
                "component": component,
                "error": error[:ERROR_TRUNCATION_CHARS],
            },
        )

    def log_run_end(
        self,
        run_id: str,
        status: str,
        duration_ms: float,
        error_count: int,
        quality_score: int,
    ) -> None:
        self._emit(
            logging.INFO,
            {
                "type": "run_end",
                "run_id": run_id,
                "status": status,
                "duration_ms": duration_ms,
                "error_count": error_count,
                "quality_score": quality_score,
            },
        )
