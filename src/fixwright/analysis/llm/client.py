"""AI analysis client: cache, admission, backend call, validation.

``analyze`` never raises for upstream trouble. Rate-limit exhaustion,
backend errors, timeouts and malformed responses all come back as the
stage's typed default with ``error`` set, so one bad file cannot take
down a run. Only cancellation propagates.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

from fixwright.analysis.llm.backend import (
    AIBackend,
    BackendRequest,
    LiteLLMBackend,
)
from fixwright.analysis.llm.cache import (
    FingerprintCache,
    compute_fingerprint,
)
from fixwright.analysis.llm.parsing import (
    parse_findings,
    parse_fix_response,
    parse_recommendations,
)
from fixwright.analysis.schemas import (
    Finding,
    ProjectSummary,
    Recommendation,
    SourceFile,
    StageFindings,
)
from fixwright.config import Settings
from fixwright.constants import (
    ERROR_TRUNCATION_CHARS,
    FILE_STAGES,
    RECOMMENDATIONS_CATEGORY,
    Stage,
)
from fixwright.prompts import (
    RECOMMENDATIONS_PROMPT,
    STAGE_PROMPTS,
    build_file_prompt,
    build_fix_prompt,
    build_recommendations_prompt,
)
from fixwright.resilience.errors import (
    RateLimitError,
    ResponseFormatError,
    classify_error,
)
from fixwright.resilience.rate_limiter import (
    FixedWindowRateLimiter,
    RateWindow,
)
from fixwright.resilience.singleflight import SingleFlight

logger = logging.getLogger(__name__)


def _wait_retry_after(retry_state: RetryCallState) -> float:
    """Sleep exactly until the limiter's window reopens."""
    outcome = retry_state.outcome
    exc = outcome.exception() if outcome is not None else None
    if isinstance(exc, RateLimitError):
        return exc.retry_after
    return 1.0


def _truncate(text: str) -> str:
    return text[:ERROR_TRUNCATION_CHARS]


class AIAnalysisClient:
    """Shared by every run in the process, as are its cache and limiter."""

    def __init__(
        self,
        backend: AIBackend,
        cache: FingerprintCache,
        rate_limiter: FixedWindowRateLimiter,
        settings: Settings,
    ) -> None:
        self._backend = backend
        self._cache = cache
        self._rate_limiter = rate_limiter
        self._settings = settings
        self._flight: SingleFlight[StageFindings] = SingleFlight()

    @classmethod
    def from_settings(
        cls, settings: Settings, backend: AIBackend | None = None
    ) -> AIAnalysisClient:
        """Client with a fresh cache and limiter sized from ``settings``."""
        return cls(
            backend if backend is not None else LiteLLMBackend(settings),
            FingerprintCache(
                settings.cache_ttl_seconds, settings.cache_max_entries
            ),
            FixedWindowRateLimiter(
                settings.rate_limit_max_requests,
                settings.rate_limit_window_seconds,
            ),
            settings,
        )

    @property
    def cache(self) -> FingerprintCache:
        return self._cache

    def rate_window(self) -> RateWindow:
        return self._rate_limiter.snapshot()

    async def analyze(
        self,
        file: SourceFile,
        stage: Stage | str,
        *,
        errors: Sequence[Finding] | None = None,
    ) -> StageFindings:
        """Run one stage against one file.

        Fix generation needs ``errors`` (the findings to fix) and is
        never cached: its output points at finding ids that belong to
        the run that asked for it.
        """
        stage = Stage(stage)
        if stage not in FILE_STAGES:
            raise ValueError(f"{stage} is not a per-file stage")

        if stage == Stage.FIX_GENERATION:
            return await self._call(file, stage, list(errors or []), None)

        fingerprint = compute_fingerprint(file.path, file.content, stage)
        cached = self._cache.get(fingerprint)
        if cached is not None:
            logger.debug(
                "event=cache_hit stage=%s file=%s", stage, file.path
            )
            return cached

        return await self._flight.do(
            fingerprint,
            lambda: self._call(file, stage, [], fingerprint),
        )

    async def recommend(
        self, summary: ProjectSummary
    ) -> list[Recommendation]:
        """Project-wide recommendations; ``[]`` on any failure."""
        request = BackendRequest(
            file_path="",
            language=summary.language,
            content="",
            system_prompt=RECOMMENDATIONS_PROMPT,
            user_prompt=build_recommendations_prompt(summary),
            json_object=False,
        )
        try:
            await self._admit()
            async with asyncio.timeout(self._settings.llm_timeout_seconds):
                raw = await self._backend.invoke(
                    RECOMMENDATIONS_CATEGORY, request
                )
            return parse_recommendations(raw)
        except Exception as exc:
            logger.warning(
                "event=recommendations_failed error_class=%s error=%s",
                classify_error(exc).value,
                _truncate(str(exc)),
            )
            return []

    async def _admit(self) -> None:
        """Take a limiter slot, sleeping through full windows.

        Gives up after ``rate_limit_max_retries`` retries and re-raises
        the last ``RateLimitError``.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(
                self._settings.rate_limit_max_retries + 1
            ),
            wait=_wait_retry_after,
            retry=retry_if_exception_type(RateLimitError),
            reraise=True,
        ):
            with attempt:
                self._rate_limiter.admit()

    def _build_request(
        self, file: SourceFile, stage: Stage, errors: list[Finding]
    ) -> BackendRequest:
        if stage == Stage.FIX_GENERATION:
            user_prompt = build_fix_prompt(
                file.content, file.path, file.language, errors
            )
        else:
            user_prompt = build_file_prompt(
                file.content, file.path, file.language
            )
        return BackendRequest(
            file_path=file.path,
            language=file.language,
            content=file.content,
            system_prompt=STAGE_PROMPTS[stage],
            user_prompt=user_prompt,
        )

    async def _call(
        self,
        file: SourceFile,
        stage: Stage,
        errors: list[Finding],
        fingerprint: str | None,
    ) -> StageFindings:
        try:
            await self._admit()
        except RateLimitError as exc:
            return self._degraded(file, stage, str(exc), exc)

        request = self._build_request(file, stage, errors)
        timeout = self._settings.llm_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                raw = await self._backend.invoke(stage, request)
        except TimeoutError as exc:
            return self._degraded(
                file, stage, f"backend timed out after {timeout:g}s", exc
            )
        except Exception as exc:
            return self._degraded(file, stage, str(exc), exc)

        try:
            if stage == Stage.FIX_GENERATION:
                result = parse_fix_response(raw, file, errors)
            else:
                result = StageFindings(
                    stage=stage,
                    file=file.path,
                    findings=parse_findings(raw, stage, file),
                )
        except ResponseFormatError as exc:
            return self._degraded(
                file, stage, f"malformed response: {exc}", exc
            )

        if fingerprint is not None:
            self._cache.put(fingerprint, stage, result)
        return result

    def _degraded(
        self,
        file: SourceFile,
        stage: Stage,
        reason: str,
        exc: BaseException | None = None,
    ) -> StageFindings:
        reason = _truncate(reason) or "unknown error"
        logger.warning(
            "event=analysis_degraded stage=%s file=%s error_class=%s"
            " reason=%s",
            stage,
            file.path,
            classify_error(exc).value if exc is not None else "unknown",
            reason,
        )
        if stage == Stage.FIX_GENERATION:
            return StageFindings(
                stage=stage,
                file=file.path,
                fixed_content=file.content,
                error=reason,
            )
        return StageFindings(stage=stage, file=file.path, error=reason)
