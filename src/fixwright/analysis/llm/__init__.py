"""AI-backed analysis: cached, rate-limited, validated backend calls."""

from fixwright.analysis.llm._llm_call import (
    LLMCallResult,
    guarded_llm_call,
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
from fixwright.analysis.llm.client import AIAnalysisClient

__all__ = [
    "AIAnalysisClient",
    "AIBackend",
    "BackendRequest",
    "FingerprintCache",
    "LLMCallResult",
    "LiteLLMBackend",
    "compute_fingerprint",
    "guarded_llm_call",
]
