"""
In-memory TTL cache for rule lookups.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector


DEFAULT_TTL_SECONDS = 3600
DEFAULT_CHECK_PERIOD_SECONDS = 120


@dataclass
class CacheEntry:
    """Cached lookup result."""
    value: Dict[str, Any]
    expires_at: float


class RuleCache:
    """Process-local, read-through cache of rule lookup results.

    Entries are written only with the result for their own deterministic
    key, so interleaved writers on the event loop race harmlessly and no
    lock is needed. Expired entries are never returned; the periodic sweep
    only reclaims memory.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        check_period_seconds: float = DEFAULT_CHECK_PERIOD_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.ttl_seconds = ttl_seconds
        self.check_period_seconds = check_period_seconds
        self.clock = clock
        self.metrics = metrics
        self.logger = get_logger("rules.cache")

        self._entries: Dict[str, CacheEntry] = {}
        self._sweeper: Optional[asyncio.Task] = None
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return a copy of the live value for key, or None."""
        entry = self._entries.get(key)
        if entry is not None and entry.expires_at <= self.clock():
            del self._entries[key]
            self._update_size()
            entry = None

        if entry is None:
            self.misses += 1
            if self.metrics:
                self.metrics.increment_counter("rule_cache_misses_total")
            return None

        self.hits += 1
        if self.metrics:
            self.metrics.increment_counter("rule_cache_hits_total")
        return dict(entry.value)

    def set(self, key: str, value: Dict[str, Any], ttl: Optional[float] = None) -> None:
        """Store a copy of value under key."""
        ttl = self.ttl_seconds if ttl is None else ttl
        self._entries[key] = CacheEntry(value=dict(value), expires_at=self.clock() + ttl)
        self._update_size()

    def sweep(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self.clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            self._update_size()
        return len(expired)

    def stats(self) -> Dict[str, int]:
        return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.expires_at > self.clock()

    async def start(self):
        """Start the periodic sweep."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())
            self.logger.info(
                "Rule cache started",
                ttl_seconds=self.ttl_seconds,
                check_period_seconds=self.check_period_seconds
            )

    async def stop(self):
        """Stop the periodic sweep."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        self.logger.info("Rule cache stopped")

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.check_period_seconds)
            removed = self.sweep()
            if removed:
                self.logger.debug("Swept expired cache entries", removed=removed, remaining=len(self._entries))

    def _update_size(self):
        if self.metrics:
            self.metrics.set_gauge("rule_cache_entries", len(self._entries))
