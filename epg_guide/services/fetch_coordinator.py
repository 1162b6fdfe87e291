"""
Fetch Coordination

Manages guide refresh coordination with concurrency protection: at most one
refresh runs per upstream source at a time.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Any


logger = logging.getLogger(__name__)


class FetchCoordinator:
    """
    Coordinates refresh operations to prevent concurrent runs against the same source.

    Keeps one asyncio.Lock per source key. A request for a source that is
    already being refreshed is skipped rather than queued.
    """

    def __init__(self):
        """Initialize the fetch coordinator."""
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def execute(self, key: str, fetch_func: Callable[[], Awaitable[Any]]) -> Any:
        """
        Execute a refresh operation with concurrency protection.

        Args:
            key: Source key (typically the upstream URL)
            fetch_func: Async function to execute

        Returns:
            Result from fetch_func or skip response if already running

        Raises:
            Any exception raised by fetch_func
        """
        lock = self._lock_for(key)
        # Try to acquire lock without blocking
        if lock.locked():
            logger.warning("Guide refresh already in progress for %s, skipping this request", key)
            return {
                "status": "skipped",
                "message": "Guide refresh already in progress"
            }

        async with lock:
            return await fetch_func()

    def is_fetching(self, key: str | None = None) -> bool:
        """
        Check if a refresh is currently in progress.

        Args:
            key: Source key, or None for any source

        Returns:
            True if a refresh is running, False otherwise
        """
        if key is None:
            return any(lock.locked() for lock in self._locks.values())
        lock = self._locks.get(key)
        return lock is not None and lock.locked()


# Global singleton instance
_coordinator: FetchCoordinator | None = None


def get_fetch_coordinator() -> FetchCoordinator:
    """
    Get or create the global fetch coordinator singleton.

    Returns:
        The global FetchCoordinator instance
    """
    global _coordinator
    if _coordinator is None:
        _coordinator = FetchCoordinator()
    return _coordinator


def reset_fetch_coordinator() -> None:
    """
    Reset the fetch coordinator (mainly for testing).

    WARNING: Only use this in test environments!
    """
    global _coordinator
    _coordinator = None
