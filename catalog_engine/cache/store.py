"""
Key/value stores behind the catalog read cache.

Two backends share one small interface (get / set / delete_prefix / ping):

- InMemoryCacheStore: process-local dict, expiry by insertion time.
- RedisCacheStore: Redis (local or hosted), expiry via SETEX, namespace
  invalidation via SCAN + DEL. After a backend failure it serves from an
  in-memory fallback so catalog reads stay available.

Values are stored as JSON strings in both backends. Neither backend raises
from a cache operation; failures degrade to a miss.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import redis

from catalog_engine.utils.logger import get_logger

logger = get_logger("cache.store")


class CacheStore:
    """Interface shared by cache backends."""

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        raise NotImplementedError

    def delete_prefix(self, prefix: str) -> int:
        raise NotImplementedError

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        """Release backend resources."""


@dataclass(frozen=True)
class _Entry:
    payload: str
    inserted_at: float
    ttl_seconds: float


class InMemoryCacheStore(CacheStore):
    """
    Process-local TTL store.

    An entry is visible while ``now - inserted_at < ttl``. Expired entries are
    dropped lazily on read. Reads take no lock: dict lookups and assignments
    are atomic, and invalidation removes keys one at a time from a snapshot.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.inserted_at >= entry.ttl_seconds:
            self._entries.pop(key, None)
            return None
        try:
            return json.loads(entry.payload)
        except ValueError as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            self._entries.pop(key, None)
            return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Cache value for {key} is not serializable: {e}")
            return False
        self._entries[key] = _Entry(payload, self._clock(), ttl_seconds)
        return True

    def delete_prefix(self, prefix: str) -> int:
        deleted = 0
        for key in list(self._entries):
            if key.startswith(prefix) and self._entries.pop(key, None) is not None:
                deleted += 1
        return deleted

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheStore(CacheStore):
    """
    Redis-backed store with bounded retries and an in-memory fallback.

    Once a Redis call fails after all retries, the store logs the failure once
    and serves from the fallback until ``reset_failure()`` is called (for
    example from a health check that sees ``ping()`` succeed again).
    """

    def __init__(
        self,
        client: Any,
        fallback: Optional[CacheStore] = None,
        retry_attempts: int = 3,
        retry_delay_seconds: float = 0.25,
        scan_count: int = 64,
    ):
        self.client = client
        self.fallback = fallback if fallback is not None else InMemoryCacheStore()
        self.retry_attempts = max(retry_attempts, 1)
        self.retry_delay_seconds = retry_delay_seconds
        self.scan_count = scan_count
        self.failed = False
        # Prefixes invalidated while Redis was unreachable
        self.pending_prefixes: List[str] = []

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisCacheStore":
        """Connect to a local or hosted Redis (redis:// or rediss://)."""
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        return cls(client, **kwargs)

    def _execute(self, operation: Callable[[], Any]) -> Any:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return operation()
            except Exception as e:
                last_error = e
                if attempt < self.retry_attempts and self.retry_delay_seconds > 0:
                    time.sleep(self.retry_delay_seconds)
        raise last_error

    def _mark_failure(self, action: str, key: str, error: Exception) -> None:
        if not self.failed:
            logger.error(f"Redis cache {action} failed for {key}: {error}; serving from in-memory fallback")
        self.failed = True

    def _remember_prefix(self, prefix: str) -> None:
        if prefix not in self.pending_prefixes:
            self.pending_prefixes.append(prefix)

    def _delete_remote(self, prefix: str) -> int:
        keys = self._execute(
            lambda: list(self.client.scan_iter(match=f"{prefix}*", count=self.scan_count))
        )
        if not keys:
            return 0
        return self._execute(lambda: self.client.delete(*keys))

    def reset_failure(self) -> bool:
        """
        Return to Redis after an outage.

        Namespaces invalidated during the outage are cleared in Redis first,
        since entries written before it may still be live there. If that
        fails the store stays on the fallback and returns False.
        """
        while self.pending_prefixes:
            prefix = self.pending_prefixes[0]
            try:
                self._delete_remote(prefix)
            except Exception as e:
                logger.warning(f"Redis still unavailable, keeping in-memory fallback: {e}")
                self.failed = True
                return False
            self.pending_prefixes.pop(0)
        self.failed = False
        logger.info("Redis cache restored")
        return True

    def get(self, key: str) -> Optional[Any]:
        if self.failed:
            return self.fallback.get(key)
        try:
            cached = self._execute(lambda: self.client.get(key))
        except Exception as e:
            self._mark_failure("read", key, e)
            return self.fallback.get(key)
        if cached is None:
            return None
        try:
            return json.loads(cached)
        except ValueError as e:
            logger.warning(f"Failed to parse cached payload for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        if self.failed:
            return self.fallback.set(key, value, ttl_seconds)
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Cache value for {key} is not serializable: {e}")
            return False
        try:
            self._execute(lambda: self.client.setex(key, int(ttl_seconds), payload))
            return True
        except Exception as e:
            self._mark_failure("write", key, e)
            return self.fallback.set(key, value, ttl_seconds)

    def delete_prefix(self, prefix: str) -> int:
        # The fallback may hold entries written during an earlier outage.
        deleted = self.fallback.delete_prefix(prefix)
        if self.failed:
            self._remember_prefix(prefix)
            return deleted
        try:
            deleted += self._delete_remote(prefix)
        except Exception as e:
            self._mark_failure("invalidation", f"{prefix}*", e)
            self._remember_prefix(prefix)
        return deleted

    def ping(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(self.client.ping())
        except Exception:
            return False

    def close(self) -> None:
        try:
            self.client.close()
        except Exception as e:
            logger.warning(f"Error closing Redis client: {e}")
