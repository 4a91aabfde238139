"""
Query result cache for staging tables.

Maps ``(query, dialect)`` to the staging table already holding that
query's result, so repeating a query within the staging table expiration
window reuses the table instead of running a new job.

Each key holds a ``concurrent.futures.Future``. The first caller for a key
runs the loader; concurrent callers wait on the same future and get the
same table reference or the same exception. The cache lock only guards the
map, never the loader. Entries expire by age from the moment their result
was written. Failures are not cached.
"""

import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any

import structlog
from pydantic import BaseModel, Field

from .config import STAGING_DATASET_TABLE_EXPIRATION_MS
from .errors import sanitize_error_message
from .models import CacheKey, TableReference

Loader = Callable[[CacheKey], TableReference]


class CacheConfig(BaseModel):
    """Configuration for the staging table cache."""

    ttl_seconds: float = Field(
        default=STAGING_DATASET_TABLE_EXPIRATION_MS / 1000,
        gt=0,
        description="Entry lifetime measured from write time",
    )


class CacheEntry:
    """A pending or completed computation for one key."""

    __slots__ = ("future", "written_at")

    def __init__(self) -> None:
        self.future: Future[TableReference] = Future()
        self.written_at: float | None = None

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        if self.written_at is None:
            return False
        return now - self.written_at >= ttl_seconds


class StagingTableCache:
    """Thread-safe, per-key single-flight cache of query destination tables."""

    def __init__(
        self,
        loader: Loader,
        config: CacheConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CacheConfig()
        self._loader = loader
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._lock = threading.Lock()
        self.logger = structlog.get_logger(__name__)

        # Metrics tracking
        self._hit_count = 0
        self._miss_count = 0
        self._load_failure_count = 0
        self._expired_count = 0

    def resolve(self, query: str, use_standard_sql: bool = False) -> TableReference:
        """
        Return the staging table holding the result of ``query``.

        Runs the loader on a miss or after expiry. Concurrent callers for the
        same key share one loader call.

        Raises:
            Exception: Whatever the loader raised, for every caller that
                waited on the failed computation
        """
        key = CacheKey(query=query, use_standard_sql=use_standard_sql)

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(self._clock(), self.config.ttl_seconds):
                del self._entries[key]
                self._expired_count += 1
                self.logger.info("cache_entry_expired", use_standard_sql=use_standard_sql)
                entry = None

            if entry is None:
                entry = CacheEntry()
                self._entries[key] = entry
                self._miss_count += 1
                owner = True
            else:
                self._hit_count += 1
                owner = False

        if not owner:
            return entry.future.result()

        return self._load(key, entry)

    def _load(self, key: CacheKey, entry: CacheEntry) -> TableReference:
        try:
            table = self._loader(key)
        except BaseException as e:
            with self._lock:
                if self._entries.get(key) is entry:
                    del self._entries[key]
                self._load_failure_count += 1
            self.logger.warning(
                "cache_load_failed",
                use_standard_sql=key.use_standard_sql,
                error_type=type(e).__name__,
                error=sanitize_error_message(str(e)),
            )
            entry.future.set_exception(e)
            raise

        with self._lock:
            entry.written_at = self._clock()
        entry.future.set_result(table)
        self.logger.info("cache_entry_stored", destination_table=str(table))
        return table

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def cleanup(self) -> int:
        """
        Remove expired entries.

        Returns:
            int: Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [
                key
                for key, entry in self._entries.items()
                if entry.is_expired(now, self.config.ttl_seconds)
            ]
            for key in expired:
                del self._entries[key]
            self._expired_count += len(expired)
        return len(expired)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics (thread-safe)."""
        with self._lock:
            in_flight = sum(1 for e in self._entries.values() if not e.future.done())
            total_requests = self._hit_count + self._miss_count
            hit_ratio = self._hit_count / total_requests if total_requests > 0 else 0.0

            return {
                "total_entries": len(self._entries),
                "in_flight": in_flight,
                "hit_count": self._hit_count,
                "miss_count": self._miss_count,
                "hit_ratio": round(hit_ratio, 4),
                "load_failure_count": self._load_failure_count,
                "expired_count": self._expired_count,
                "ttl_seconds": self.config.ttl_seconds,
            }
