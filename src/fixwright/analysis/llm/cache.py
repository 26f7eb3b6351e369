"""Content-addressed memo of AI backend results.

Keys are fingerprints of (file path, content hash, stage), so the
same content analyzed under the same stage is never sent twice.
Entries expire by TTL, checked lazily on read and swept on write.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from fixwright.analysis.schemas import StageFindings
from fixwright.constants import Stage

logger = logging.getLogger(__name__)


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def compute_fingerprint(
    file_path: str, content: str, stage: Stage | str
) -> str:
    """Stable cache key for a file's content under one stage (null-byte delimited)."""
    payload = f"{file_path}\x00{content_hash(content)}\x00{stage}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    fingerprint: str
    stage: str
    response: StageFindings
    expires_at: float


class FingerprintCache:
    """Thread-safe TTL cache with a hard entry cap.

    When full, expired entries go first, then the entry closest to
    expiry. Stored results are copied on the way in and out, so a
    caller mutating its result cannot corrupt the cache.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, fingerprint: str) -> StageFindings | None:
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is None:
                self.misses += 1
                return None
            if entry.expires_at <= self._clock():
                del self._entries[fingerprint]
                self.misses += 1
                return None
            self.hits += 1
            return entry.response.model_copy(
                update={"from_cache": True}, deep=True
            )

    def put(
        self,
        fingerprint: str,
        stage: Stage | str,
        response: StageFindings,
        ttl: float | None = None,
    ) -> None:
        with self._lock:
            now = self._clock()
            self._sweep_locked(now)
            if (
                fingerprint not in self._entries
                and len(self._entries) >= self._max_entries
            ):
                oldest = min(
                    self._entries.values(),
                    key=lambda e: e.expires_at,
                )
                del self._entries[oldest.fingerprint]
                logger.debug(
                    "event=cache_evict fingerprint=%s",
                    oldest.fingerprint[:12],
                )
            self._entries[fingerprint] = CacheEntry(
                fingerprint=fingerprint,
                stage=str(stage),
                response=response.model_copy(deep=True),
                expires_at=now + (ttl if ttl is not None else self._ttl),
            )

    def sweep(self) -> int:
        """Purge expired entries; returns how many were removed."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: float) -> int:
        expired = [
            k for k, e in self._entries.items() if e.expires_at <= now
        ]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
