"""Scripted AI backend for testing.

Implements the AIBackend protocol from canned responses.
No network and no LiteLLM, so answers are instant.
"""

from __future__ import annotations

import asyncio
from typing import TypeAlias

from fixwright.analysis.llm.backend import BackendRequest
from fixwright.constants import RECOMMENDATIONS_CATEGORY

Scripted: TypeAlias = str | BaseException


class ScriptedBackend:
    """Answers from ``responses`` keyed by ``(category, file_path)``.

    Falls back to ``defaults[category]``, then to ``"{}"`` (``"[]"``
    for recommendations). Files listed in ``hang`` never answer, so
    the caller's timeout is what ends the call. Every call is recorded
    in ``calls`` as ``(category, file_path)``.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.responses: dict[tuple[str, str], Scripted] = {}
        self.defaults: dict[str, Scripted] = {}
        self.hang: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.requests: list[BackendRequest] = []
        self.delay = delay

    def script(
        self, category: str, file_path: str, response: Scripted
    ) -> None:
        self.responses[(str(category), file_path)] = response

    def calls_for(self, category: str) -> list[str]:
        return [path for cat, path in self.calls if cat == category]

    async def invoke(
        self, category: str, request: BackendRequest
    ) -> str:
        category = str(category)
        self.calls.append((category, request.file_path))
        self.requests.append(request)
        if request.file_path in self.hang:
            await asyncio.Event().wait()
        if self.delay:
            await asyncio.sleep(self.delay)

        fallback = "[]" if category == RECOMMENDATIONS_CATEGORY else "{}"
        value = self.responses.get(
            (category, request.file_path),
            self.defaults.get(category, fallback),
        )
        if isinstance(value, BaseException):
            raise value
        return value
