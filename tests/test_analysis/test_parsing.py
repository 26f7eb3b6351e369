"""Tests for backend response validation and normalization."""

from __future__ import annotations

import json

import pytest

from fixwright.analysis.llm.parsing import (
    extract_json,
    parse_findings,
    parse_fix_response,
    parse_recommendations,
)
from fixwright.analysis.schemas import Finding, SourceFile
from fixwright.constants import (
    FindingCategory,
    FixComplexity,
    RecommendationPriority,
    Severity,
    Stage,
)
from fixwright.resilience.errors import ResponseFormatError

FILE = SourceFile(path="src/app.py", language="python", content="x = 1\n")


class TestExtractJson:
    def test_plain_json(self) -> None:
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_fenced_block(self) -> None:
        raw = 'Here you go:\n```json\n{"a": 2}\n```\nDone.'
        assert extract_json(raw) == {"a": 2}

    def test_embedded_object(self) -> None:
        assert extract_json('Result: {"a": 3} hope it helps') == {"a": 3}

    def test_embedded_array(self) -> None:
        raw = 'Sure. [{"message": "m"}]'
        assert extract_json(raw, array=True) == [{"message": "m"}]

    def test_garbage_raises(self) -> None:
        with pytest.raises(ResponseFormatError):
            extract_json("I could not analyze this file.")


class TestParseFindings:
    def test_security_findings(self) -> None:
        raw = json.dumps({
            "vulnerabilities": [
                {
                    "line": 12,
                    "severity": "CRITICAL",
                    "message": "SQL injection",
                    "suggestion": "Use parameters",
                    "cwe": "CWE-89",
                }
            ]
        })
        findings = parse_findings(raw, Stage.SECURITY_SCAN, FILE)
        assert len(findings) == 1
        f = findings[0]
        assert f.file == "src/app.py"
        assert f.category == FindingCategory.SECURITY
        assert f.severity == Severity.CRITICAL
        assert f.line == 12
        assert f.cwe == "CWE-89"
        assert f.stage == Stage.SECURITY_SCAN

    def test_missing_key_means_no_findings(self) -> None:
        assert parse_findings("{}", Stage.SYNTAX_ANALYSIS, FILE) == []

    def test_non_list_key_is_malformed(self) -> None:
        with pytest.raises(ResponseFormatError):
            parse_findings(
                '{"errors": "none"}', Stage.SYNTAX_ANALYSIS, FILE
            )

    def test_non_object_is_malformed(self) -> None:
        with pytest.raises(ResponseFormatError):
            parse_findings("[1, 2]", Stage.SYNTAX_ANALYSIS, FILE)

    def test_entries_without_message_are_skipped(self) -> None:
        raw = json.dumps({
            "errors": [
                {"line": 1},
                "not an object",
                {"message": "  "},
                {"message": "Unclosed paren", "line": 3},
            ]
        })
        findings = parse_findings(raw, Stage.SYNTAX_ANALYSIS, FILE)
        assert [f.message for f in findings] == ["Unclosed paren"]

    def test_code_quality_defaults(self) -> None:
        raw = json.dumps({"issues": [{"message": "Long function"}]})
        [f] = parse_findings(raw, Stage.CODE_QUALITY, FILE)
        assert f.category == FindingCategory.STYLE
        assert f.severity == Severity.LOW

    def test_quality_type_maps_to_style(self) -> None:
        raw = json.dumps({
            "errors": [{"message": "m", "type": "quality"}]
        })
        [f] = parse_findings(raw, Stage.TYPE_CHECKING, FILE)
        assert f.category == FindingCategory.STYLE

    def test_backend_cannot_claim_stage_error(self) -> None:
        raw = json.dumps({
            "errors": [{"message": "m", "category": "stage_error"}]
        })
        [f] = parse_findings(raw, Stage.SYNTAX_ANALYSIS, FILE)
        assert f.category == FindingCategory.SYNTAX

    def test_bad_severity_and_line_fall_back(self) -> None:
        raw = json.dumps({
            "issues": [
                {"message": "m", "severity": "urgent", "line": "abc"},
                {"message": "n", "line": -4},
            ]
        })
        first, second = parse_findings(
            raw, Stage.PERFORMANCE_ANALYSIS, FILE
        )
        assert first.severity == Severity.MEDIUM
        assert first.line == 1
        assert second.line == 1

    def test_non_finite_line_falls_back(self) -> None:
        raw = '{"errors": [{"message": "m", "line": Infinity}]}'
        [f] = parse_findings(raw, Stage.SYNTAX_ANALYSIS, FILE)
        assert f.line == 1

    def test_deep_nesting_is_malformed(self) -> None:
        with pytest.raises(ResponseFormatError):
            parse_findings(
                "[" * 100_000 + "]" * 100_000, Stage.SYNTAX_ANALYSIS, FILE
            )


class TestParseFixResponse:
    def _errors(self) -> list[Finding]:
        return [
            Finding(
                id="err1",
                file="src/app.py",
                category=FindingCategory.SYNTAX,
                message="m",
            )
        ]

    def test_valid_response(self) -> None:
        raw = json.dumps({
            "fixedCode": "x = 2\n",
            "changes": 1,
            "fixes": [
                {
                    "errorId": "err1",
                    "description": "Fixed",
                    "line": 1,
                    "complexity": "moderate",
                }
            ],
            "appliedFixes": ["err1"],
        })
        result = parse_fix_response(raw, FILE, self._errors())
        assert result.stage == Stage.FIX_GENERATION
        assert result.fixed_content == "x = 2\n"
        assert result.change_count == 1
        assert result.applied_fix_ids == ["err1"]
        [fix] = result.fixes
        assert fix.error_id == "err1"
        assert fix.file == "src/app.py"
        assert fix.complexity == FixComplexity.MODERATE
        assert fix.applied is True

    def test_missing_fixed_code_is_malformed(self) -> None:
        with pytest.raises(ResponseFormatError):
            parse_fix_response('{"fixes": []}', FILE, self._errors())

    def test_change_count_defaults_from_content(self) -> None:
        changed = parse_fix_response(
            '{"fixedCode": "y = 1\\n"}', FILE, []
        )
        unchanged = parse_fix_response(
            '{"fixedCode": "x = 1\\n"}', FILE, []
        )
        assert changed.change_count == 1
        assert unchanged.change_count == 0

    def test_applied_defaults_to_known_error_ids(self) -> None:
        raw = json.dumps({
            "fixedCode": "x = 2\n",
            "fixes": [
                {"errorId": "err1"},
                {"errorId": "unknown"},
            ],
        })
        result = parse_fix_response(raw, FILE, self._errors())
        assert result.applied_fix_ids == ["err1"]
        assert [f.applied for f in result.fixes] == [True, False]


class TestParseRecommendations:
    def test_array(self) -> None:
        raw = json.dumps([
            {
                "category": "Security",
                "priority": "high",
                "message": "Add input validation",
            },
            {"priority": "high"},
        ])
        [rec] = parse_recommendations(raw)
        assert rec.category == "security"
        assert rec.priority == RecommendationPriority.HIGH

    def test_wrapped_array(self) -> None:
        raw = json.dumps({
            "recommendations": [{"message": "m", "priority": "bogus"}]
        })
        [rec] = parse_recommendations(raw)
        assert rec.priority == RecommendationPriority.MEDIUM

    def test_garbage_raises(self) -> None:
        with pytest.raises(ResponseFormatError):
            parse_recommendations("no advice today")
