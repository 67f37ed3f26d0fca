"""Read-through response caching with a fixed TTL and prefix invalidation."""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Callable, Protocol

# purpose: keep hot list endpoints (tasks, projects, vaults, team) off the database between writes
# inputs: endpoint-derived string keys, JSON-ready payloads
# outputs: deep-copied payloads while fresh; writers drop every key under an endpoint prefix

DEFAULT_TTL_SECONDS = int(os.getenv("RESPONSE_CACHE_TTL_SECONDS", "300"))


class ResponseCache(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def invalidate(self, prefix: str = "") -> None: ...


@dataclass
class _CacheEntry:
    value: Any
    expires_at: datetime


class TTLResponseCache:
    """In-process cache; entries expire ``ttl_seconds`` after being stored."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = Lock()

    def _prune(self, now: datetime) -> None:
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            self._entries.pop(key, None)

    def get(self, key: str) -> Any | None:
        now = self._clock()
        with self._lock:
            self._prune(now)
            entry = self._entries.get(key)
            if entry is None:
                return None
            return copy.deepcopy(entry.value)

    def set(self, key: str, value: Any) -> None:
        now = self._clock()
        with self._lock:
            self._prune(now)
            self._entries[key] = _CacheEntry(copy.deepcopy(value), now + self.ttl)

    def invalidate(self, prefix: str = "") -> None:
        with self._lock:
            for key in [k for k in self._entries if k.startswith(prefix)]:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return len(self._entries)


_response_cache = TTLResponseCache()


def get_response_cache() -> ResponseCache:
    return _response_cache


def user_key(endpoint: str, user_id) -> str:
    """Per-user key under ``endpoint`` so ``invalidate(endpoint)`` reaches every user."""
    return f"{endpoint}|user={user_id}"
