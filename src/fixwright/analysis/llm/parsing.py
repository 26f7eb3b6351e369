"""Structural validation of raw backend responses.

Every parser raises ``ResponseFormatError`` on a structural failure;
the client turns that into the stage's typed default. Individual
malformed entries inside an otherwise valid response are skipped.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, cast

from fixwright.analysis.schemas import (
    Finding,
    Fix,
    Recommendation,
    SourceFile,
    StageFindings,
)
from fixwright.constants import (
    STAGE_CATEGORY,
    STAGE_RESPONSE_KEY,
    FindingCategory,
    FixComplexity,
    RecommendationPriority,
    Severity,
    Stage,
)
from fixwright.resilience.errors import ResponseFormatError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")

# Categories a backend may assign itself; stage_error is ours alone
_BACKEND_CATEGORIES = frozenset(FindingCategory) - {
    FindingCategory.STAGE_ERROR
}


def extract_json(raw: str, *, array: bool = False) -> Any:
    """Pull the first JSON document out of free-form model output.

    Tries, in order: the raw text, the body of a fenced code block,
    then the widest ``{...}`` (or ``[...]``) span.
    """
    text = raw.strip()
    candidates = [text]
    fence = _FENCE_RE.search(text)
    if fence:
        candidates.append(fence.group(1).strip())
    span = (_ARRAY_RE if array else _OBJECT_RE).search(text)
    if span:
        candidates.append(span.group(0))

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
        except RecursionError as exc:
            raise ResponseFormatError("JSON nested too deeply") from exc
    raise ResponseFormatError(
        f"no JSON {'array' if array else 'object'} in response "
        f"({len(raw)} chars)"
    )


def _as_object(raw: str) -> dict[str, Any]:
    data = extract_json(raw)
    if not isinstance(data, dict):
        raise ResponseFormatError(
            f"expected JSON object, got {type(data).__name__}"
        )
    return cast(dict[str, Any], data)


def _as_list(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ResponseFormatError(
            f"field '{key}' must be a list, got {type(value).__name__}"
        )
    return cast(list[Any], value)


def _severity(value: Any, default: Severity) -> Severity:
    try:
        return Severity(str(value).strip().lower())
    except ValueError:
        return default


def _line(value: Any) -> int:
    try:
        line = int(value)
    except (TypeError, ValueError, OverflowError):
        return 1
    return max(line, 1)


def _category(value: Any, default: FindingCategory) -> FindingCategory:
    if value is None:
        return default
    name = str(value).strip().lower()
    if name == "quality":
        return FindingCategory.STYLE
    if name in _BACKEND_CATEGORIES:
        return FindingCategory(name)
    return default


def parse_findings(
    raw: str, stage: Stage, file: SourceFile
) -> list[Finding]:
    """Normalize an analysis-stage response into findings."""
    data = _as_object(raw)
    entries = _as_list(data, STAGE_RESPONSE_KEY[stage])
    default_category = STAGE_CATEGORY[stage]
    default_severity = (
        Severity.LOW
        if stage == Stage.CODE_QUALITY
        else Severity.MEDIUM
    )

    findings: list[Finding] = []
    for raw_item in entries:
        if not isinstance(raw_item, dict):
            continue
        item = cast(dict[str, Any], raw_item)
        message = str(item.get("message") or "").strip()
        if not message:
            continue
        cwe = item.get("cwe")
        findings.append(
            Finding(
                file=file.path,
                category=_category(
                    item.get("category") or item.get("type"),
                    default_category,
                ),
                severity=_severity(
                    item.get("severity"), default_severity
                ),
                message=message,
                line=_line(item.get("line")),
                suggestion=str(item.get("suggestion") or ""),
                stage=stage,
                cwe=str(cwe) if cwe else None,
            )
        )

    skipped = len(entries) - len(findings)
    if skipped:
        logger.debug(
            "event=entries_skipped stage=%s file=%s count=%d",
            stage,
            file.path,
            skipped,
        )
    return findings


def parse_fix_response(
    raw: str, file: SourceFile, errors: list[Finding]
) -> StageFindings:
    """Validate a fix-generation response.

    ``fixedCode`` must be a non-empty string. ``changes`` defaults to 1
    when the content changed and the backend omitted it.
    """
    data = _as_object(raw)
    fixed = data.get("fixedCode")
    if not isinstance(fixed, str) or not fixed.strip():
        raise ResponseFormatError("missing or empty 'fixedCode'")

    known_ids = {e.id for e in errors}
    fixes: list[Fix] = []
    for raw_item in _as_list(data, "fixes"):
        if not isinstance(raw_item, dict):
            continue
        item = cast(dict[str, Any], raw_item)
        line = item.get("line")
        try:
            complexity = FixComplexity(
                str(item.get("complexity", "simple")).lower()
            )
        except ValueError:
            complexity = FixComplexity.SIMPLE
        fixes.append(
            Fix(
                error_id=str(item.get("errorId") or ""),
                file=file.path,
                description=str(item.get("description") or ""),
                line=_line(line) if line is not None else None,
                complexity=complexity,
            )
        )

    applied = [
        str(i) for i in _as_list(data, "appliedFixes") if i is not None
    ]
    if not applied:
        applied = [f.error_id for f in fixes if f.error_id in known_ids]
    applied_set = set(applied)
    fixes = [
        f.model_copy(update={"applied": f.error_id in applied_set})
        for f in fixes
    ]

    changes = data.get("changes")
    if isinstance(changes, int) and not isinstance(changes, bool):
        change_count = max(changes, 0)
    else:
        change_count = 1 if fixed != file.content else 0

    return StageFindings(
        stage=Stage.FIX_GENERATION,
        file=file.path,
        fixes=fixes,
        fixed_content=fixed,
        change_count=change_count,
        applied_fix_ids=applied,
    )


def parse_recommendations(raw: str) -> list[Recommendation]:
    data = extract_json(raw, array=True)
    if isinstance(data, dict):
        # Some models wrap the array despite instructions
        data = cast(dict[str, Any], data).get("recommendations", [])
    if not isinstance(data, list):
        raise ResponseFormatError("expected a JSON array of recommendations")

    recommendations: list[Recommendation] = []
    for raw_item in cast(list[Any], data):
        if not isinstance(raw_item, dict):
            continue
        item = cast(dict[str, Any], raw_item)
        message = str(item.get("message") or "").strip()
        if not message:
            continue
        try:
            priority = RecommendationPriority(
                str(item.get("priority", "medium")).lower()
            )
        except ValueError:
            priority = RecommendationPriority.MEDIUM
        recommendations.append(
            Recommendation(
                category=str(
                    item.get("category") or item.get("type")
                    or "maintainability"
                ).lower(),
                priority=priority,
                message=message,
                suggestion=str(item.get("suggestion") or ""),
            )
        )
    return recommendations
