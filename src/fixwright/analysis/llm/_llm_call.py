"""Single guarded LiteLLM completion: per-model breaker plus 429 retry."""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import litellm
from circuitbreaker import (  # pyright: ignore[reportUnknownVariableType]
    CircuitBreaker,
    CircuitBreakerError,
)
from litellm.exceptions import RateLimitError as LitellmRateLimitError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from fixwright.constants import (
    CB_LLM_FAILURE_THRESHOLD,
    CB_LLM_RECOVERY_TIMEOUT,
    LLM_MAX_OUTPUT_TOKENS,
    LLM_TEMPERATURE,
    RETRY_INITIAL_WAIT,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_WAIT,
)

logger = logging.getLogger(__name__)

# Typed alias: litellm stubs have partially unknown types
if TYPE_CHECKING:
    _acompletion: Callable[..., Coroutine[Any, Any, Any]]
else:
    _acompletion = litellm.acompletion


@dataclass(frozen=True)
class LLMCallResult:
    content: str
    model: str
    input_tokens: int
    output_tokens: int


def _counts_as_failure(
    thrown_type: type, thrown_value: BaseException
) -> bool:
    """Provider 429s are backpressure, not outages; keep them off the breaker."""
    return not issubclass(thrown_type, LitellmRateLimitError)


# One breaker per model so an outage at one provider still lets the
# chain fall through to the next.
_breaker_registry: dict[str, CircuitBreaker] = {}  # pyright: ignore[reportUnknownVariableType]


def _get_breaker(model: str) -> CircuitBreaker:  # pyright: ignore[reportUnknownParameterType]
    if model not in _breaker_registry:
        _breaker_registry[model] = CircuitBreaker(  # pyright: ignore[reportUnknownMemberType]
            failure_threshold=CB_LLM_FAILURE_THRESHOLD,
            recovery_timeout=CB_LLM_RECOVERY_TIMEOUT,
            expected_exception=_counts_as_failure,
            name=f"llm_{model}",
        )
    return _breaker_registry[model]


def reset_breakers() -> None:
    """Forget all breaker state (startup and tests)."""
    _breaker_registry.clear()


@retry(
    stop=stop_after_attempt(RETRY_MAX_ATTEMPTS),
    wait=wait_exponential_jitter(
        initial=RETRY_INITIAL_WAIT, max=RETRY_MAX_WAIT
    ),
    retry=retry_if_exception_type(LitellmRateLimitError),
    reraise=True,
)
async def guarded_llm_call(
    model: str,
    messages: list[dict[str, str]],
    timeout: float,
    *,
    json_mode: bool = True,
) -> LLMCallResult:
    """Breaker-protected completion for one model.

    Raises ``CircuitBreakerError`` without calling the provider while
    the model's breaker is open. Provider 429s are retried here with
    jittered backoff; everything else propagates to the caller.
    """
    breaker = _get_breaker(model)
    if breaker.opened:  # pyright: ignore[reportUnknownMemberType]
        raise CircuitBreakerError(breaker)  # pyright: ignore[reportUnknownArgumentType]
    with breaker:  # pyright: ignore[reportUnknownMemberType]
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "timeout": timeout,
            "max_tokens": LLM_MAX_OUTPUT_TOKENS,
            "temperature": LLM_TEMPERATURE,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response: Any = await _acompletion(**kwargs)

    usage: Any = getattr(response, "usage", None)
    input_tokens: int = getattr(usage, "prompt_tokens", 0) or 0
    output_tokens: int = getattr(usage, "completion_tokens", 0) or 0
    logger.debug(
        "event=llm_call_done model=%s input_tokens=%d output_tokens=%d",
        model,
        input_tokens,
        output_tokens,
    )

    return LLMCallResult(
        content=str(response.choices[0].message.content or ""),
        model=model,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )
