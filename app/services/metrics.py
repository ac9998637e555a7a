"""In-process request counters exposed on the ``/stats`` endpoint."""

from __future__ import annotations

import time
from collections import deque
from typing import Any


class PerformanceMonitor:
    """Tracks request volume, errors, cache hit rate and response times."""

    def __init__(self, max_samples: int = 100) -> None:
        self._samples: deque[float] = deque(maxlen=max_samples)
        self.reset()

    def reset(self) -> None:
        self.requests = 0
        self.cache_hits = 0
        self.cache_misses = 0
        self.errors = 0
        self.started_at = time.time()
        self._samples.clear()

    def record_request(self, started: float) -> None:
        """Record a finished request that began at ``started`` (perf counter)."""

        self.requests += 1
        self._samples.append((time.perf_counter() - started) * 1000)

    def record_cache_hit(self) -> None:
        self.cache_hits += 1

    def record_cache_miss(self) -> None:
        self.cache_misses += 1

    def record_error(self) -> None:
        self.errors += 1

    def cache_hit_rate(self) -> float:
        total = self.cache_hits + self.cache_misses
        return round(self.cache_hits / total * 100, 1) if total else 0.0

    def stats(self) -> dict[str, Any]:
        uptime = max(time.time() - self.started_at, 1e-9)
        average = sum(self._samples) / len(self._samples) if self._samples else 0.0
        return {
            "requests": self.requests,
            "cacheHits": self.cache_hits,
            "cacheMisses": self.cache_misses,
            "errors": self.errors,
            "avgResponseTimeMs": round(average, 1),
            "cacheHitRate": f"{self.cache_hit_rate()}%",
            "uptime": f"{int(uptime)}s",
            "requestsPerMinute": round(self.requests / (uptime / 60)),
        }
