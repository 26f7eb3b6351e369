"""LLM system prompts for fixwright.

One system prompt per analysis stage, plus the fix-generation and
recommendation prompts. User prompts are assembled by the ``build_*``
helpers at the bottom of this module.
"""

from __future__ import annotations

from collections.abc import Sequence

from fixwright.analysis.schemas import Finding, ProjectSummary
from fixwright.constants import MAX_PROMPT_FINDINGS, Stage

# ── Language context (deterministic dict lookup) ──────────────────

LANGUAGE_CONTEXT_MAP: dict[str, str] = {
    "python": (
        "Watch for: mutable default arguments, bare except clauses, "
        "unawaited coroutines, shadowed builtins, missing type narrowing."
    ),
    "javascript": (
        "Watch for: implicit globals, == versus ===, unhandled promise "
        "rejections, prototype pollution, callback error paths."
    ),
    "typescript": (
        "Watch for: any leaks, non-null assertions, unsafe casts, "
        "unhandled promise rejections, missing exhaustiveness checks."
    ),
    "java": (
        "Watch for: null dereferences, unclosed resources, raw types, "
        "swallowed exceptions, synchronization on mutable fields."
    ),
    "go": (
        "Watch for: ignored errors, goroutine leaks, nil map writes, "
        "loop variable capture, unbuffered channel deadlocks."
    ),
    "rust": (
        "Watch for: unwrap on fallible paths, unnecessary clones, "
        "unsafe blocks, blocking calls inside async code."
    ),
}

_JSON_ONLY = "Respond with a single JSON object only, no additional text."

SYNTAX_ANALYSIS_PROMPT = f"""\
You are a compiler front-end reviewing one source file for syntax errors.

Identify syntax errors, missing punctuation, unbalanced brackets and \
invalid expressions. Do not report style or logic problems.

Return JSON of the form:
{{"errors": [{{"message": "...", "line": 1, "severity": \
"critical|high|medium|low", "suggestion": "..."}}]}}

{_JSON_ONLY}"""

TYPE_CHECKING_PROMPT = f"""\
You are a static type checker reviewing one source file.

Identify type mismatches, undefined variables, incorrect function \
signatures and calls with the wrong arity.

Return JSON of the form:
{{"errors": [{{"message": "...", "line": 1, "severity": \
"critical|high|medium|low", "suggestion": "..."}}]}}

{_JSON_ONLY}"""

SECURITY_SCAN_PROMPT = f"""\
You are an application security reviewer auditing one source file.

Identify vulnerabilities: injection (SQL, command, template), XSS, \
broken authentication, hard-coded secrets and insecure data handling. \
Cite a CWE identifier where one applies.

Return JSON of the form:
{{"vulnerabilities": [{{"message": "...", "line": 1, "severity": \
"critical|high|medium|low", "cwe": "CWE-89", "suggestion": "..."}}]}}

{_JSON_ONLY}"""

PERFORMANCE_ANALYSIS_PROMPT = f"""\
You are a performance engineer reviewing one source file.

Identify slow algorithms, memory leaks, redundant work inside loops and \
blocking I/O on hot paths.

Return JSON of the form:
{{"issues": [{{"message": "...", "line": 1, "severity": \
"critical|high|medium|low", "suggestion": "..."}}]}}

{_JSON_ONLY}"""

CODE_QUALITY_PROMPT = f"""\
You are a senior reviewer assessing code quality in one source file.

Identify code smells, style violations, dead code and maintainability \
issues. Most of these are low severity.

Return JSON of the form:
{{"issues": [{{"message": "...", "line": 1, "severity": "low", \
"suggestion": "..."}}]}}

{_JSON_ONLY}"""

FIX_GENERATION_PROMPT = f"""\
You are a careful engineer repairing one source file.

Requirements:
1. Fix every listed issue.
2. Preserve the original behaviour.
3. Keep the existing structure where possible.
4. Return the COMPLETE fixed file, not a fragment.

Return JSON of the form:
{{"fixedCode": "<complete fixed file>", "changes": 3, "fixes": \
[{{"errorId": "<id of the fixed issue>", "description": "...", \
"line": 10, "complexity": "simple|moderate|complex"}}], \
"appliedFixes": ["<ids of fixed issues>"]}}

{_JSON_ONLY}"""

RECOMMENDATIONS_PROMPT = """\
You are a principal engineer summarizing a code review.

Given the project summary and its key issues, produce architectural and \
best-practice recommendations.

Return a JSON array of the form:
[{"category": "architecture|security|performance|maintainability", \
"message": "...", "priority": "high|medium|low", "suggestion": "..."}]

Respond with the JSON array only, no additional text."""

STAGE_PROMPTS: dict[Stage, str] = {
    Stage.SYNTAX_ANALYSIS: SYNTAX_ANALYSIS_PROMPT,
    Stage.TYPE_CHECKING: TYPE_CHECKING_PROMPT,
    Stage.SECURITY_SCAN: SECURITY_SCAN_PROMPT,
    Stage.PERFORMANCE_ANALYSIS: PERFORMANCE_ANALYSIS_PROMPT,
    Stage.CODE_QUALITY: CODE_QUALITY_PROMPT,
    Stage.FIX_GENERATION: FIX_GENERATION_PROMPT,
}


def build_file_prompt(
    content: str, file_path: str, language: str
) -> str:
    """Assemble the user prompt for a per-file analysis stage."""
    lang_ctx = LANGUAGE_CONTEXT_MAP.get(
        language, "Analyze based on observed patterns."
    )
    return (
        f"Language: {language}\n"
        f"Context: {lang_ctx}\n"
        f"File: {file_path}\n\n"
        f"<source_file>\n{content}\n</source_file>"
    )


def _format_findings(
    findings: Sequence[Finding], limit: int | None = None
) -> str:
    return "\n".join(
        f"- [{f.id}] line {f.line} ({f.category}, {f.severity}): "
        f"{f.message}"
        for f in findings[:limit]
    )


def build_fix_prompt(
    content: str,
    file_path: str,
    language: str,
    findings: Sequence[Finding],
) -> str:
    """User prompt for fix generation: the file plus its issues."""
    return (
        f"{build_file_prompt(content, file_path, language)}\n\n"
        f"Issues to fix:\n{_format_findings(findings)}"
    )


def build_recommendations_prompt(summary: ProjectSummary) -> str:
    key_issues = _format_findings(
        summary.top_findings, MAX_PROMPT_FINDINGS
    ) or "- none"
    return (
        f"Language: {summary.language}\n"
        f"Files: {summary.file_count}\n"
        f"Errors found: {summary.error_count}\n"
        f"Fixes generated: {summary.fix_count}\n\n"
        f"Key issues:\n{key_issues}"
    )
