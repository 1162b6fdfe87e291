"""
Guide Cache

Holds the latest published NormalizedResult per upstream source. Time is
injected (clock or explicit ``now``) so staleness is deterministic in tests.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable
import logging

from epg_guide.services.fetch_types import NormalizedResult

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    result: NormalizedResult
    stored_at: datetime


class GuideCache:
    """
    Time-to-live cache of published guide results.

    Publication is latest-result-wins: a result generated before the one
    already cached is ignored, so overlapping refreshes cannot roll the
    guide back.
    """

    def __init__(self, ttl: timedelta, clock: Callable[[], datetime] = utc_now):
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def _now(self, now: datetime | None) -> datetime:
        return now if now is not None else self._clock()

    def peek(self, key: str) -> CacheEntry | None:
        """Return the entry for ``key`` regardless of staleness"""
        return self._entries.get(key)

    def is_stale(self, key: str, now: datetime | None = None) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return True
        return self._now(now) - entry.stored_at >= self.ttl

    def get(self, key: str, now: datetime | None = None) -> NormalizedResult | None:
        """Return the cached result for ``key`` if it is still fresh"""
        if self.is_stale(key, now):
            return None
        return self._entries[key].result

    def put(self, key: str, result: NormalizedResult, now: datetime | None = None) -> bool:
        """
        Publish a result

        Returns:
            True if stored, False if a newer result is already cached
        """
        current = self._entries.get(key)
        if current is not None and result.generated_at < current.result.generated_at:
            logger.info(
                "Ignoring result for %s generated at %s (cached result is newer: %s)",
                key,
                result.generated_at.isoformat(),
                current.result.generated_at.isoformat(),
            )
            return False

        self._entries[key] = CacheEntry(result=result, stored_at=self._now(now))
        logger.debug("Cached result for %s (%s programs)", key, len(result.programs))
        return True

    def invalidate(self, key: str | None = None) -> None:
        """Drop one entry, or all entries when ``key`` is None"""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)
