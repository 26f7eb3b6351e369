"""AI backend capability and its LiteLLM implementation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from circuitbreaker import CircuitBreakerError

from fixwright.analysis.llm._llm_call import guarded_llm_call
from fixwright.config import Settings
from fixwright.resilience.errors import BackendError, classify_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackendRequest:
    """Everything a backend needs for one call.

    ``file_path``, ``language`` and ``content`` identify the unit of
    work; ``system_prompt`` and ``user_prompt`` are the assembled
    messages. ``json_object`` asks for provider-side JSON mode.
    """

    file_path: str
    language: str
    content: str
    system_prompt: str
    user_prompt: str
    json_object: bool = True

    def messages(self) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": self.user_prompt},
        ]


class AIBackend(Protocol):
    """Returns the raw text response for one stage call.

    May raise, may hang, may return garbage. Callers defend against
    all three.
    """

    async def invoke(
        self, category: str, request: BackendRequest
    ) -> str: ...


class LiteLLMBackend:
    """Walks ``litellm_model_chain`` until one model answers."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def invoke(
        self, category: str, request: BackendRequest
    ) -> str:
        messages = request.messages()
        last_error: BaseException | None = None
        for model in self._settings.litellm_model_chain:
            try:
                result = await guarded_llm_call(
                    model,
                    messages,
                    self._settings.llm_timeout_seconds,
                    json_mode=request.json_object,
                )
                return result.content
            except CircuitBreakerError as exc:
                logger.warning(
                    "event=circuit_open model=%s category=%s file=%s",
                    model,
                    category,
                    request.file_path,
                )
                last_error = exc
            except Exception as exc:
                logger.warning(
                    "event=model_failed model=%s category=%s file=%s"
                    " error_class=%s",
                    model,
                    category,
                    request.file_path,
                    classify_error(exc).value,
                    exc_info=True,
                )
                last_error = exc

        raise BackendError(
            f"all models failed for {category}: {last_error}"
        ) from last_error
