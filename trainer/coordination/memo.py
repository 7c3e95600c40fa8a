"""Memoized plan computation with request statistics."""

import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from loguru import logger

from trainer.coordination.cache import BoundedCache, PlanCacheKey
from trainer.coordination.types import Plan
from trainer.core.observability import log_event

RESPONSE_TIME_ALPHA = 0.1


@dataclass
class PlanCacheStats:
    cache_hits: int = 0
    cache_misses: int = 0
    total_requests: int = 0
    average_response_ms: float = 0.0

    @property
    def hit_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.cache_hits / self.total_requests

    def record_response(self, elapsed_ms: float) -> None:
        """Exponential moving average with alpha 0.1; the first sample seeds it."""
        if self.average_response_ms == 0.0:
            self.average_response_ms = elapsed_ms
        else:
            self.average_response_ms = (
                RESPONSE_TIME_ALPHA * elapsed_ms + (1 - RESPONSE_TIME_ALPHA) * self.average_response_ms
            )


class MemoizedCoordinator:
    """Serves plans from a time-bucketed cache, computing them on a miss.

    Fallback plans are returned but never cached.
    """

    def __init__(
        self,
        cache: BoundedCache[Plan],
        *,
        bucket_minutes: int = 5,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache = cache
        self._bucket_minutes = bucket_minutes
        self._clock = clock
        self.stats = PlanCacheStats()

    @property
    def cache(self) -> BoundedCache[Plan]:
        return self._cache

    async def plan(self, raw: Mapping[str, Any], compute: Callable[[], Awaitable[Plan]]) -> Plan:
        start = time.monotonic()
        self.stats.total_requests += 1

        key = PlanCacheKey.from_raw(raw, now=self._clock(), bucket_minutes=self._bucket_minutes).digest()
        cached = self._cache.get(key)
        if cached is not None:
            self.stats.cache_hits += 1
            self.stats.record_response((time.monotonic() - start) * 1000)
            log_event("plan_cache_hit", cache_key=key)
            return cached.model_copy(deep=True)

        self.stats.cache_misses += 1
        log_event("plan_cache_miss", cache_key=key)
        plan = await compute()
        if plan.is_fallback:
            logger.debug("Fallback plan not cached", cache_key=key)
        else:
            self._cache.set(key, plan.model_copy(deep=True))
        self.stats.record_response((time.monotonic() - start) * 1000)
        return plan

    def clear(self) -> None:
        self._cache.clear()
        logger.info("Plan cache cleared", total_requests=self.stats.total_requests)

    def get_stats(self) -> dict[str, Any]:
        return {
            "cacheHits": self.stats.cache_hits,
            "cacheMisses": self.stats.cache_misses,
            "totalRequests": self.stats.total_requests,
            "hitRate": round(self.stats.hit_rate, 4),
            "averageResponseTime": round(self.stats.average_response_ms, 3),
            "planCacheSize": len(self._cache),
        }
