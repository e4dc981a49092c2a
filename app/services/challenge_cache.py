"""
Single-slot challenge cache with TTL expiry and in-flight request sharing.

One instance lives per process (or per test). It remembers the last
successfully fetched challenge together with the (level, mode) it was fetched
for, and at most one outstanding fetch. Expiry is evaluated when reading; no
timer runs in the background.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, Tuple

from app.models.challenge import CacheEntry, Challenge, Level, Mode
from app.time_utils import is_expired, utc_now

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=5)

Fetcher = Callable[[Level, Mode], Awaitable[Challenge]]


class ChallengeCache:
    def __init__(
        self,
        fetcher: Fetcher,
        ttl: timedelta = DEFAULT_TTL,
        now: Callable[[], datetime] = utc_now,
    ):
        self._fetcher = fetcher
        self._ttl = ttl
        self._now = now
        self._entry: Optional[CacheEntry] = None
        self._in_flight: Optional[asyncio.Task] = None
        self._in_flight_key: Optional[Tuple[Level, Mode]] = None
        # Bumped by clear(); a fetch started under an older generation may not write.
        self._generation = 0

    @property
    def entry(self) -> Optional[CacheEntry]:
        return self._entry

    @property
    def in_flight_key(self) -> Optional[Tuple[Level, Mode]]:
        return self._in_flight_key

    def _is_valid(self, level: Level, mode: Mode) -> bool:
        entry = self._entry
        if entry is None or not entry.matches(level, mode):
            return False
        return not is_expired(entry.created_at, self._now(), self._ttl)

    def get_cached(self, level: Level, mode: Mode) -> Optional[Challenge]:
        """Return the cached challenge for (level, mode) if it is still fresh."""
        if self._is_valid(level, mode):
            return self._entry.challenge
        return None

    def get_in_flight(self, level: Optional[Level] = None, mode: Optional[Mode] = None) -> Optional[asyncio.Task]:
        """
        Return the outstanding fetch, if any.

        With a level and mode, only a fetch for that exact key is returned.
        Awaiting the task raises whatever the fetch raised.
        """
        task = self._in_flight
        if task is None:
            return None
        if level is not None and mode is not None and self._in_flight_key != (level, mode):
            return None
        return task

    def prefetch(self, level: Level, mode: Mode) -> Optional[asyncio.Task]:
        """
        Best-effort warm-up for (level, mode).

        Returns None when nothing had to be started. Otherwise returns a task
        callers may ignore: it never raises, failures are only logged.
        Must be called from inside a running event loop.
        """
        if self._is_valid(level, mode) or self._in_flight is not None:
            return None
        fetch = self._start_fetch(level, mode)
        return asyncio.ensure_future(self._swallow(fetch, level, mode))

    async def load(self, level: Level, mode: Mode) -> Challenge:
        """
        Return a challenge for (level, mode), reusing the cache or a matching
        in-flight fetch before starting a new one. Errors propagate.
        """
        while True:
            cached = self.get_cached(level, mode)
            if cached is not None:
                return cached
            task = self._in_flight
            if task is None:
                task = self._start_fetch(level, mode)
                break
            if self._in_flight_key == (level, mode):
                break
            # A fetch for another key is running; let it settle, then look again.
            # _release_in_flight has already run when this wakes up.
            await asyncio.wait({task})
        # shield: a cancelled caller must not cancel the shared fetch
        return await asyncio.shield(task)

    def clear(self) -> None:
        """Forget both the cached entry and any in-flight fetch."""
        self._entry = None
        self._in_flight = None
        self._in_flight_key = None
        self._generation += 1

    def _start_fetch(self, level: Level, mode: Mode) -> asyncio.Task:
        task = asyncio.ensure_future(self._fetch_and_store(level, mode, self._generation))
        self._in_flight = task
        self._in_flight_key = (level, mode)
        task.add_done_callback(self._release_in_flight)
        return task

    async def _fetch_and_store(self, level: Level, mode: Mode, generation: int) -> Challenge:
        logger.info("Fetching challenge level=%s mode=%s", level.value, mode.value)
        challenge = await self._fetcher(level, mode)
        if generation == self._generation:
            self._entry = CacheEntry(challenge=challenge, created_at=self._now(), level=level, mode=mode)
            logger.info("Challenge cached level=%s mode=%s topic=%r", level.value, mode.value, challenge.topic)
        else:
            logger.info("Cache cleared during fetch; discarding challenge for level=%s mode=%s",
                        level.value, mode.value)
        return challenge

    def _release_in_flight(self, task: asyncio.Task) -> None:
        if not task.cancelled():
            # Mark the outcome as retrieved; awaiters still receive the exception.
            task.exception()
        if self._in_flight is task:
            self._in_flight = None
            self._in_flight_key = None

    @staticmethod
    async def _swallow(fetch: asyncio.Task, level: Level, mode: Mode) -> Optional[Challenge]:
        try:
            return await fetch
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Challenge prefetch failed level=%s mode=%s: %s", level.value, mode.value, e)
            return None
