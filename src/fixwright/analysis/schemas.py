"""Pydantic models for source files, findings, fixes and stage results."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fixwright.constants import (
    ID_HEX_LENGTH,
    FindingCategory,
    FixComplexity,
    RecommendationPriority,
    Severity,
    Stage,
)


def new_id() -> str:
    return uuid.uuid4().hex[:ID_HEX_LENGTH]


class SourceFile(BaseModel):
    """One file of a submitted project. Immutable once submitted."""

    model_config = ConfigDict(frozen=True)

    path: str
    language: str = "unknown"
    content: str = ""
    size_bytes: int = 0

    @model_validator(mode="before")
    @classmethod
    def _default_size(cls, data: object) -> object:
        if isinstance(data, dict) and not data.get("size_bytes"):
            content = data.get("content") or ""
            if isinstance(content, str):
                data = {
                    **data,
                    "size_bytes": len(content.encode("utf-8")),
                }
        return data


class Finding(BaseModel):
    """A single reported error. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    file: str
    category: FindingCategory
    severity: Severity = Severity.MEDIUM
    message: str
    line: int = 1
    suggestion: str = ""
    stage: Stage | None = None
    cwe: str | None = None

    @property
    def dedup_key(self) -> tuple[str, int, str, str]:
        return (self.file, self.line, self.category, self.message)


class Fix(BaseModel):
    """A proposed remediation. ``error_id`` is a weak reference."""

    id: str = Field(default_factory=new_id)
    error_id: str = ""
    file: str
    description: str = ""
    line: int | None = None
    complexity: FixComplexity = FixComplexity.SIMPLE
    risk: Severity = Severity.LOW
    applied: bool = False


class FixedFile(BaseModel):
    """Original and fixed content side by side for one file."""

    file: str
    original_content: str
    fixed_content: str
    change_count: int = 0
    applied_fix_ids: list[str] = Field(
        default_factory=lambda: list[str]()
    )


class Recommendation(BaseModel):
    """Project-wide recommendation produced while finalizing."""

    id: str = Field(default_factory=new_id)
    category: str = "maintainability"
    priority: RecommendationPriority = RecommendationPriority.MEDIUM
    message: str
    suggestion: str = ""


class StageFindings(BaseModel):
    """Typed result of one AI client call for one file and stage.

    Analysis stages fill ``findings``; fix generation fills ``fixes``,
    ``fixed_content``, ``change_count`` and ``applied_fix_ids``. A set
    ``error`` marks a degraded result: the payload is the stage's
    typed default and the reason is kept for the caller.
    """

    stage: Stage
    file: str
    findings: list[Finding] = Field(
        default_factory=lambda: list[Finding]()
    )
    fixes: list[Fix] = Field(default_factory=lambda: list[Fix]())
    fixed_content: str | None = None
    change_count: int = 0
    applied_fix_ids: list[str] = Field(
        default_factory=lambda: list[str]()
    )
    error: str | None = None
    from_cache: bool = False

    @property
    def degraded(self) -> bool:
        return self.error is not None


class ProjectSummary(BaseModel):
    """Input to the recommendation capability call."""

    language: str = "unknown"
    file_count: int = 0
    error_count: int = 0
    fix_count: int = 0
    top_findings: list[Finding] = Field(
        default_factory=lambda: list[Finding]()
    )
