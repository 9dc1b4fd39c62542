"""In-memory response cache with TTL expiry and insertion-order eviction.

Eviction is FIFO by insertion, not LRU: a lookup never refreshes an
entry's position or timestamp. Entries live for the process lifetime at most
and are never persisted.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from .utils import hash_text

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_KEY_PREFIX = 200


@dataclass
class CacheEntry:
    key: str
    response_text: str
    inserted_at: float


class ResponseCache:
    def __init__(
        self,
        max_size: int = 100,
        ttl_seconds: float = 30 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # dict preserves insertion order; the first key is the oldest insert.
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @staticmethod
    def generate_key(system_prompt: str, user_prompt: str, model: str) -> str:
        # Only a prefix of the system prompt participates; requests differing
        # past that prefix share a key.
        raw = f"{model}:{system_prompt[:SYSTEM_PROMPT_KEY_PREFIX]}:{user_prompt}"
        return hash_text(raw)

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.inserted_at >= self.ttl_seconds:
                del self._entries[key]
                logger.debug("Cache EXPIRED: %s", key[:16])
                return None
        logger.debug("Cache HIT: %s", key[:16])
        return entry.response_text

    def set(self, key: str, response_text: str) -> None:
        with self._lock:
            if key in self._entries:
                # Overwrite counts as a fresh insertion.
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                logger.debug("Cache EVICT: %s", oldest[:16])
            self._entries[key] = CacheEntry(key=key, response_text=response_text, inserted_at=self._clock())
        logger.debug("Cache STORE: %s", key[:16])

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.debug("Cache cleared")

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
