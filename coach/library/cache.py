"""
Exercise library cache.

Chat requests would otherwise carry the user's whole exercise catalog on every
turn. The server remembers the last catalog it saw per user together with a
content fingerprint; a client that echoes the fingerprint back may omit the
catalog.

Contract shared by every implementation:

* Entries are a transport optimization, never the source of truth. The
  exercise library store is authoritative and invalidates entries on write.
* Staleness is tolerated. A stale entry only means a slightly outdated prompt
  until the next write or expiry.
* Nothing here raises. Backend failures are logged and treated as a miss.
"""
from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from coach.config.constants import (
    CACHE_CLEANUP_INTERVAL,
    CACHE_TTL_EXERCISE_LIBRARY,
    _exercise_library_key,
)
from coach.library.models import LibraryExercise
from coach.redis import cache as redis_cache

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
# Rough per-exercise footprint used for stats only.
_BYTES_PER_EXERCISE = 500


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return sign + "".join(reversed(digits))


def library_hash(exercises: Sequence[Any]) -> str:
    """Cheap 32-bit fingerprint of the exercise count and sorted names. Not cryptographic."""
    names = sorted(_exercise_name(exercise) for exercise in exercises)
    source = f"{len(names)}:{','.join(names)}"
    value = 0
    for char in source:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value >= 2 ** 31:
        value -= 2 ** 32
    return _to_base36(value)


def _exercise_name(exercise: Any) -> str:
    if isinstance(exercise, dict):
        return str(exercise.get("name", ""))
    return str(getattr(exercise, "name", ""))


@dataclass
class CacheEntry:
    exercises: List[LibraryExercise]
    hash: str
    updated_at: float
    expires_at: float

    def expired(self, now: float) -> bool:
        return self.expires_at < now


@dataclass
class CacheResolution:
    exercises: List[LibraryExercise]
    hash: str
    from_cache: bool


class ExerciseLibraryCache(ABC):
    def __init__(self, ttl_seconds: int = CACHE_TTL_EXERCISE_LIBRARY, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @abstractmethod
    def _load_entry(self, user_id: str) -> Optional[CacheEntry]:
        ...

    @abstractmethod
    def _store_entry(self, user_id: str, entry: CacheEntry) -> None:
        ...

    @abstractmethod
    def _delete_entry(self, user_id: str) -> None:
        ...

    def _valid_entry(self, user_id: str) -> Optional[CacheEntry]:
        try:
            entry = self._load_entry(user_id)
        except Exception:
            logger.warning("Exercise library cache lookup failed for %s", user_id, exc_info=True)
            return None
        if entry is None:
            return None
        if entry.expired(self._clock()):
            self.invalidate(user_id)
            return None
        return entry

    def get(self, user_id: str) -> Optional[List[LibraryExercise]]:
        entry = self._valid_entry(user_id)
        return entry.exercises if entry else None

    def current_hash(self, user_id: str) -> Optional[str]:
        entry = self._valid_entry(user_id)
        return entry.hash if entry else None

    def put(self, user_id: str, exercises: Sequence[LibraryExercise]) -> str:
        now = self._clock()
        entry = CacheEntry(
            exercises=list(exercises),
            hash=library_hash(exercises),
            updated_at=now,
            expires_at=now + self.ttl_seconds,
        )
        try:
            self._store_entry(user_id, entry)
        except Exception:
            logger.warning("Exercise library cache write failed for %s", user_id, exc_info=True)
        return entry.hash

    def invalidate(self, user_id: str) -> None:
        try:
            self._delete_entry(user_id)
        except Exception:
            logger.warning("Exercise library cache invalidation failed for %s", user_id, exc_info=True)

    def match(self, user_id: str, client_hash: Optional[str]) -> Optional[CacheResolution]:
        if not client_hash:
            return None
        entry = self._valid_entry(user_id)
        if entry is None or entry.hash != client_hash:
            return None
        return CacheResolution(exercises=entry.exercises, hash=entry.hash, from_cache=True)

    def resolve(
        self,
        user_id: str,
        exercises: Sequence[LibraryExercise],
        client_hash: Optional[str] = None,
    ) -> CacheResolution:
        """Reuse the cached catalog when the client's fingerprint still matches, else cache what was sent."""
        cached = self.match(user_id, client_hash)
        if cached is not None:
            return cached
        new_hash = self.put(user_id, exercises)
        return CacheResolution(exercises=list(exercises), hash=new_hash, from_cache=False)


class InMemoryExerciseLibraryCache(ExerciseLibraryCache):
    """Process-local cache. Each server process has its own copy; not suitable for multi-instance deployments."""

    def __init__(self, ttl_seconds: int = CACHE_TTL_EXERCISE_LIBRARY, clock: Callable[[], float] = time.time):
        super().__init__(ttl_seconds=ttl_seconds, clock=clock)
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def _cleanup_expired(self) -> None:
        now = self._clock()
        if now - self._last_cleanup < CACHE_CLEANUP_INTERVAL:
            return
        self._last_cleanup = now
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info("Cleaned up %s expired exercise library cache entries", len(expired))

    def _load_entry(self, user_id: str) -> Optional[CacheEntry]:
        self._cleanup_expired()
        with self._lock:
            return self._entries.get(user_id)

    def _store_entry(self, user_id: str, entry: CacheEntry) -> None:
        self._cleanup_expired()
        with self._lock:
            self._entries[user_id] = entry

    def _delete_entry(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total_entries = len(self._entries)
            total_exercises = sum(len(entry.exercises) for entry in self._entries.values())
        memory_mb = total_exercises * _BYTES_PER_EXERCISE / 1024 / 1024
        return {"total_entries": total_entries, "memory_estimate": f"~{memory_mb:.2f} MB"}


class RedisExerciseLibraryCache(ExerciseLibraryCache):
    """Shared cache backed by Redis, for deployments with more than one server process."""

    def __init__(
        self,
        client: Any,
        ttl_seconds: int = CACHE_TTL_EXERCISE_LIBRARY,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(ttl_seconds=ttl_seconds, clock=clock)
        self._client = client

    def _load_entry(self, user_id: str) -> Optional[CacheEntry]:
        payload = redis_cache._redis_get_json(_exercise_library_key(user_id), client=self._client)
        if not isinstance(payload, dict):
            return None
        return CacheEntry(
            exercises=[LibraryExercise.model_validate(item) for item in payload.get("exercises", [])],
            hash=payload["hash"],
            updated_at=float(payload["updated_at"]),
            expires_at=float(payload["expires_at"]),
        )

    def _store_entry(self, user_id: str, entry: CacheEntry) -> None:
        payload = {
            "exercises": [exercise.model_dump(mode="json") for exercise in entry.exercises],
            "hash": entry.hash,
            "updated_at": entry.updated_at,
            "expires_at": entry.expires_at,
        }
        redis_cache._redis_set_json(
            _exercise_library_key(user_id),
            payload,
            ttl_seconds=self.ttl_seconds,
            client=self._client,
        )

    def _delete_entry(self, user_id: str) -> None:
        redis_cache._redis_delete(_exercise_library_key(user_id), client=self._client)

    def stats(self) -> Dict[str, Any]:
        return {"backend": "redis", "ttl_seconds": self.ttl_seconds}


def build_exercise_library_cache() -> ExerciseLibraryCache:
    if redis_cache.REDIS is not None:
        return RedisExerciseLibraryCache(redis_cache.REDIS)
    return InMemoryExerciseLibraryCache()
