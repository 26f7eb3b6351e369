"""Shared constants: single source of truth for cross-module values.

All magic strings and numbers that appear in 2+ files belong here.
StrEnum members are str-compatible, so downstream code (JSON, SQL,
HTTP payloads) works unchanged.
"""

from __future__ import annotations

from enum import StrEnum

# ── String Enums ─────────────────────────────────────────


class RunStatus(StrEnum):
    """Analysis run lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({
    RunStatus.COMPLETED,
    RunStatus.FAILED,
    RunStatus.CANCELLED,
})

ACTIVE_STATUSES = frozenset({
    RunStatus.PENDING,
    RunStatus.PROCESSING,
})


class Stage(StrEnum):
    """Pipeline stages, declared in execution order."""

    INITIALIZING = "initializing"
    SYNTAX_ANALYSIS = "syntax_analysis"
    TYPE_CHECKING = "type_checking"
    SECURITY_SCAN = "security_scan"
    PERFORMANCE_ANALYSIS = "performance_analysis"
    CODE_QUALITY = "code_quality"
    FIX_GENERATION = "fix_generation"
    FINALIZING = "finalizing"


STAGE_ORDER: tuple[Stage, ...] = tuple(Stage)

# Stages that fan out over files and call the AI backend
FILE_STAGES = frozenset({
    Stage.SYNTAX_ANALYSIS,
    Stage.TYPE_CHECKING,
    Stage.SECURITY_SCAN,
    Stage.PERFORMANCE_ANALYSIS,
    Stage.CODE_QUALITY,
    Stage.FIX_GENERATION,
})

# Per-file stages that report findings (everything but fix generation)
ANALYSIS_STAGES = FILE_STAGES - {Stage.FIX_GENERATION}


class FindingCategory(StrEnum):
    """Category of a recorded finding."""

    SYNTAX = "syntax"
    TYPE = "type"
    LOGIC = "logic"
    SECURITY = "security"
    PERFORMANCE = "performance"
    STYLE = "style"
    STAGE_ERROR = "stage_error"


class Severity(StrEnum):
    """Finding severity, most severe first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


SEVERITY_RANK: dict[Severity, int] = {s: i for i, s in enumerate(Severity)}


# Default category stamped on findings produced by each analysis stage
STAGE_CATEGORY: dict[Stage, FindingCategory] = {
    Stage.SYNTAX_ANALYSIS: FindingCategory.SYNTAX,
    Stage.TYPE_CHECKING: FindingCategory.TYPE,
    Stage.SECURITY_SCAN: FindingCategory.SECURITY,
    Stage.PERFORMANCE_ANALYSIS: FindingCategory.PERFORMANCE,
    Stage.CODE_QUALITY: FindingCategory.STYLE,
}

# Key under which each stage's backend response lists its findings
STAGE_RESPONSE_KEY: dict[Stage, str] = {
    Stage.SYNTAX_ANALYSIS: "errors",
    Stage.TYPE_CHECKING: "errors",
    Stage.SECURITY_SCAN: "vulnerabilities",
    Stage.PERFORMANCE_ANALYSIS: "issues",
    Stage.CODE_QUALITY: "issues",
}

# Backend category for the project-wide recommendation call
RECOMMENDATIONS_CATEGORY = "recommendations"


class StageProgress(StrEnum):
    """Progress status for pipeline stage events."""

    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class StageOutcome(StrEnum):
    """Outcome of an individual unit of pipeline work."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class FixComplexity(StrEnum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class RecommendationPriority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DiffOp(StrEnum):
    ADDED = "added"
    REMOVED = "removed"


# ── Quality Score ────────────────────────────────────────

QUALITY_SCORE_MAX = 100
QUALITY_PENALTY_CRITICAL = 10
QUALITY_PENALTY_HIGH = 5

# ── Circuit Breaker Configuration ────────────────────────

CB_LLM_FAILURE_THRESHOLD = 5
CB_LLM_RECOVERY_TIMEOUT = 30

# ── Retry Strategy ───────────────────────────────────────

RETRY_MAX_ATTEMPTS = 3
RETRY_INITIAL_WAIT = 2
RETRY_MAX_WAIT = 30

# ── LLM Output ───────────────────────────────────────────

LLM_MAX_OUTPUT_TOKENS = 8192
LLM_TEMPERATURE = 0.1

# Findings quoted in the fix and recommendation prompts
MAX_PROMPT_FINDINGS = 10

# ── Backend Quota (fixed window) ─────────────────────────

DEFAULT_RATE_LIMIT_REQUESTS = 1000
DEFAULT_RATE_LIMIT_WINDOW_SECONDS = 60.0

# ── Fingerprint Cache ────────────────────────────────────

DEFAULT_CACHE_TTL_SECONDS = 3600.0
DEFAULT_CACHE_MAX_ENTRIES = 2048

# ── Misc ─────────────────────────────────────────────────

BINARY_DETECTION_BUFFER = 8192
ERROR_TRUNCATION_CHARS = 200

# ── ID Generation ───────────────────────────────────────

ID_HEX_LENGTH = 12

# Finished runs kept in memory for status reads after the task exits
FINISHED_RUN_MEMORY = 256

# ── Stage Labels (user-facing) ─────────────────────────

STAGE_LABELS: dict[str, str] = {
    Stage.INITIALIZING: "Preparing files",
    Stage.SYNTAX_ANALYSIS: "Checking syntax",
    Stage.TYPE_CHECKING: "Checking types",
    Stage.SECURITY_SCAN: "Scanning for vulnerabilities",
    Stage.PERFORMANCE_ANALYSIS: "Analyzing performance",
    Stage.CODE_QUALITY: "Reviewing code quality",
    Stage.FIX_GENERATION: "Generating fixes",
    Stage.FINALIZING: "Summarizing results",
}

# ── Ingestion ───────────────────────────────────────────

# Hidden directories are always skipped; these are the visible ones
DEFAULT_SKIP_DIRECTORIES = (
    "node_modules",
    "vendor",
    "__pycache__",
    "build",
    "dist",
    "target",
)
