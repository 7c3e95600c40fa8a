"""Bounded caches for validated contexts and plans.

Both caches evict in insertion order (FIFO): a hit does not refresh an entry.
Keys are versioned records hashed with SHA-256 over sorted JSON, so the same
inputs always produce the same key and a key-format change only needs a
version bump.
"""

import hashlib
import json
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass
from typing import Any, Generic, TypeVar

from loguru import logger

V = TypeVar("V")

CACHE_KEY_VERSION = 2


def stable_digest(payload: Mapping[str, Any]) -> str:
    """SHA-256 hex digest of a payload serialised with sorted keys."""
    sorted_data = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(sorted_data.encode("utf-8")).hexdigest()


def _lookup(raw: Mapping[str, Any], *path: str) -> Any:
    value: Any = raw
    for part in path:
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def _first(*values: Any) -> Any:
    return next((value for value in values if value is not None), None)


def _jsonable(value: Any) -> Any:
    # NaN and infinities are not valid JSON; keep them distinct but serialisable.
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return repr(value)
    return value


_LOAD_METRICS: tuple[str, ...] = ("atl7", "ctl28", "monotony", "strain")


def _load_section(raw: Mapping[str, Any]) -> dict[str, Any]:
    load = raw.get("load")
    section = {name: _jsonable(value) for name, value in load.items()} if isinstance(load, Mapping) else {}
    for metric in _LOAD_METRICS:
        if metric not in section and metric in raw:
            section[metric] = _jsonable(raw[metric])
    return section


def _confidence_section(raw: Mapping[str, Any]) -> Any:
    confidence = _first(raw.get("dataConfidence"), raw.get("data_confidence"))
    if isinstance(confidence, Mapping):
        return {name: _jsonable(value) for name, value in confidence.items()}
    return _jsonable(confidence)


@dataclass(frozen=True)
class ValidationCacheKey:
    """Every field of a raw context the validator reads.

    Readiness, the load metrics (nested or flat) and data confidence are
    normalised by the validator; user id and goals scope the entry.
    """

    version: int
    user_id: Any
    readiness: Any
    load: Any
    data_confidence: Any
    goals: Any

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "ValidationCacheKey":
        return cls(
            version=CACHE_KEY_VERSION,
            user_id=_first(_lookup(raw, "user", "id"), raw.get("userId")),
            readiness=_jsonable(_first(raw.get("readiness"), raw.get("readinessScore"))),
            load=_load_section(raw),
            data_confidence=_confidence_section(raw),
            goals=raw.get("goals"),
        )

    def digest(self) -> str:
        return stable_digest(asdict(self))


@dataclass(frozen=True)
class PlanCacheKey:
    """Fields of a raw context that determine its plan, plus the time bucket.

    Constraints, schedule and the recovery-day flag switch safety rules on, so
    a request that changes any of them never reuses an earlier plan.
    """

    version: int
    user_id: Any
    readiness: Any
    goals: Any
    preferences: Any
    constraints: Any
    schedule: Any
    recovery_day: Any
    bucket: int

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], now: float, bucket_minutes: int = 5) -> "PlanCacheKey":
        return cls(
            version=CACHE_KEY_VERSION,
            user_id=_first(_lookup(raw, "user", "id"), raw.get("userId")),
            readiness=_jsonable(raw.get("readiness")),
            goals=raw.get("goals"),
            preferences=raw.get("preferences"),
            constraints=raw.get("constraints"),
            schedule=raw.get("schedule"),
            recovery_day=_first(raw.get("recommendRecoveryDay"), raw.get("recommend_recovery_day")),
            bucket=time_bucket(now, bucket_minutes),
        )

    def digest(self) -> str:
        return stable_digest(asdict(self))


def time_bucket(now: float, bucket_minutes: int = 5) -> int:
    return math.floor(now / (bucket_minutes * 60))


@dataclass
class CacheEntry(Generic[V]):
    key: str
    value: V
    timestamp: float


class BoundedCache(Generic[V]):
    """Size-bounded FIFO cache with optional TTL.

    Args:
        name: Cache name for logs
        max_size: Entries kept before the oldest insertion is evicted
        ttl_seconds: Entry lifetime, or None for no expiry
        clock: Wall-clock source in seconds
    """

    def __init__(
        self,
        name: str,
        max_size: int,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self.name = name
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[V]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        return list(self._entries)

    def get(self, key: str) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.ttl_seconds is not None and self._clock() - entry.timestamp > self.ttl_seconds:
            del self._entries[key]
            logger.debug(f"{self.name}: Cache entry expired", cache_key=key)
            return None
        logger.debug(f"{self.name}: Cache hit", cache_key=key)
        return entry.value

    def set(self, key: str, value: V) -> None:
        # Re-setting a key counts as a new insertion.
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug(f"{self.name}: Evicted oldest entry", cache_key=oldest)
        self._entries[key] = CacheEntry(key=key, value=value, timestamp=self._clock())
        logger.debug(f"{self.name}: Cache set", cache_key=key, size=len(self._entries))

    def clear(self) -> None:
        self._entries.clear()
        logger.debug(f"{self.name}: Cache cleared")
