"""
In-process metrics for the catalog engine.

Tracks:
- Cache hits, misses and invalidations per cache scope
- Latency samples per catalog operation (sliding window)
"""

import statistics
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Deque, Dict, Optional


class CatalogMetrics:
    """
    In-memory metrics collector for cache and query observability.

    One instance is shared by a CatalogCache and the CatalogService that owns it.
    """

    def __init__(self, window_size: int = 1000):
        """
        Initialize metrics collector.

        Args:
            window_size: Number of recent latency samples to keep per operation
        """
        self.window_size = window_size
        self.latencies: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=window_size))
        self.cache_hits: Dict[str, int] = defaultdict(int)
        self.cache_misses: Dict[str, int] = defaultdict(int)
        self.invalidations: Dict[str, int] = defaultdict(int)
        self.last_reset = datetime.now(timezone.utc)

    def record_cache_hit(self, scope: str) -> None:
        self.cache_hits[scope] += 1

    def record_cache_miss(self, scope: str) -> None:
        self.cache_misses[scope] += 1

    def record_invalidation(self, scope: str) -> None:
        self.invalidations[scope] += 1

    def record_latency(self, operation: str, latency_ms: float) -> None:
        self.latencies[operation].append(latency_ms)

    def get_cache_hit_rate(self, scope: Optional[str] = None) -> float:
        """Get the cache hit rate as a percentage, for one scope or overall."""
        if scope is None:
            hits = sum(self.cache_hits.values())
            total = hits + sum(self.cache_misses.values())
        else:
            hits = self.cache_hits[scope]
            total = hits + self.cache_misses[scope]
        if total == 0:
            return 0.0
        return (hits / total) * 100.0

    def get_percentile(self, operation: str, percentile: float) -> Optional[float]:
        """
        Get a latency percentile for an operation.

        Returns:
            Latency in ms, or None if fewer than 10 samples were recorded
        """
        values = sorted(self.latencies.get(operation, ()))
        if len(values) < 10:
            return None
        index = min(int(len(values) * (percentile / 100.0)), len(values) - 1)
        return values[index]

    def get_summary(self) -> Dict:
        """Get a summary of all metrics."""
        scopes = set(self.cache_hits) | set(self.cache_misses) | set(self.invalidations)
        summary = {
            "cache": {
                "hit_rate_pct": round(self.get_cache_hit_rate(), 2),
                "scopes": {
                    scope: {
                        "hits": self.cache_hits[scope],
                        "misses": self.cache_misses[scope],
                        "invalidations": self.invalidations[scope],
                    }
                    for scope in sorted(scopes)
                },
            },
            "operations": {},
        }
        for operation, samples in self.latencies.items():
            if not samples:
                continue
            entry = {
                "samples": len(samples),
                "latency_avg_ms": round(statistics.mean(samples), 2),
            }
            p95 = self.get_percentile(operation, 95)
            if p95 is not None:
                entry["latency_p95_ms"] = round(p95, 2)
            summary["operations"][operation] = entry
        return summary

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        self.latencies.clear()
        self.cache_hits.clear()
        self.cache_misses.clear()
        self.invalidations.clear()
        self.last_reset = datetime.now(timezone.utc)
