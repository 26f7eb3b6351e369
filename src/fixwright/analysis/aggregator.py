"""Per-run accumulation of findings, fixes and fixed files."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Iterable

from pydantic import BaseModel, Field

from fixwright.analysis.schemas import Finding, Fix, FixedFile
from fixwright.constants import (
    QUALITY_PENALTY_CRITICAL,
    QUALITY_PENALTY_HIGH,
    QUALITY_SCORE_MAX,
    Severity,
)

logger = logging.getLogger(__name__)


def quality_score(critical: int, high: int) -> int:
    return max(
        0,
        QUALITY_SCORE_MAX
        - QUALITY_PENALTY_CRITICAL * critical
        - QUALITY_PENALTY_HIGH * high,
    )


class FindingSummary(BaseModel):
    """Derived counts over everything recorded so far."""

    error_count: int = 0
    fixes_generated: int = 0
    fixed_file_count: int = 0
    critical_count: int = 0
    high_count: int = 0
    quality_score: int = QUALITY_SCORE_MAX
    orphaned_fix_count: int = 0
    by_severity: dict[str, int] = Field(default_factory=dict)
    by_category: dict[str, int] = Field(default_factory=dict)


class AggregateSnapshot(BaseModel):
    errors: list[Finding] = Field(default_factory=lambda: list[Finding]())
    fixes: list[Fix] = Field(default_factory=lambda: list[Fix]())
    fixed_files: list[FixedFile] = Field(
        default_factory=lambda: list[FixedFile]()
    )


class FindingAggregator:
    """Additive store for one run's results.

    Findings are de-duplicated on ``(file, line, category, message)``;
    the first occurrence wins. Fixes keep a weak reference to their
    finding by id, and a fix whose finding was never recorded is kept
    but reported by ``orphaned_fixes``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._errors: list[Finding] = []
        self._seen: set[tuple[str, int, str, str]] = set()
        self._fixes: list[Fix] = []
        self._fixed_files: dict[str, FixedFile] = {}

    def record_errors(
        self, file: str, findings: Iterable[Finding]
    ) -> int:
        """Record findings for ``file``; returns how many were new."""
        added = 0
        with self._lock:
            for finding in findings:
                if finding.file != file:
                    finding = finding.model_copy(update={"file": file})
                key = finding.dedup_key
                if key in self._seen:
                    continue
                self._seen.add(key)
                self._errors.append(finding)
                added += 1
        return added

    def record_fixes(self, file: str, fixes: Iterable[Fix]) -> None:
        with self._lock:
            for fix in fixes:
                if fix.file != file:
                    fix = fix.model_copy(update={"file": file})
                self._fixes.append(fix)

    def record_fixed_file(self, fixed: FixedFile) -> None:
        with self._lock:
            self._fixed_files[fixed.file] = fixed

    def errors_for(self, file: str) -> list[Finding]:
        with self._lock:
            return [e for e in self._errors if e.file == file]

    def orphaned_fixes(self) -> list[Fix]:
        with self._lock:
            return self._orphans_locked()

    def _orphans_locked(self) -> list[Fix]:
        known = {e.id for e in self._errors}
        return [f for f in self._fixes if f.error_id not in known]

    def summary(self) -> FindingSummary:
        with self._lock:
            severities = Counter(str(e.severity) for e in self._errors)
            categories = Counter(str(e.category) for e in self._errors)
            critical = severities.get(Severity.CRITICAL, 0)
            high = severities.get(Severity.HIGH, 0)
            return FindingSummary(
                error_count=len(self._errors),
                fixes_generated=len(self._fixes),
                fixed_file_count=len(self._fixed_files),
                critical_count=critical,
                high_count=high,
                quality_score=quality_score(critical, high),
                orphaned_fix_count=len(self._orphans_locked()),
                by_severity=dict(severities),
                by_category=dict(categories),
            )

    def snapshot(self) -> AggregateSnapshot:
        with self._lock:
            return AggregateSnapshot(
                errors=list(self._errors),
                fixes=list(self._fixes),
                fixed_files=list(self._fixed_files.values()),
            )
