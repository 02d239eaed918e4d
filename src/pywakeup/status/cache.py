"""Single-flight request cache.

At most one call per key is outstanding at any time; concurrent callers
attach to it and share its outcome.  Successful results stay fresh for a
short TTL so bursts of reads (UI refresh, widgets, waiters) collapse onto
one remote call.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any, TypeVar

from pywakeup.exceptions import TransientDeliveryError

_logger = logging.getLogger(__name__)

T = TypeVar("T")

Loader = Callable[[], Awaitable[T]]


@dataclass(slots=True)
class CacheEntry:
    value: Any
    fetched_at: float


@dataclass(frozen=True, slots=True)
class CacheStats:
    total_entries: int
    valid_entries: int
    expired_entries: int
    in_flight: int


class RequestCache:
    """Per-key single-flight + TTL cache in front of a slow remote API.

    Parameters
    ----------
    ttl : float
        Seconds a successful result is served without calling the loader.
    timeout : float or None
        Per-call bound applied to every loader run.  A stalled call fails
        with :class:`TransientDeliveryError` for everyone attached to it.
    clock : callable
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        *,
        ttl: float = 5.0,
        timeout: float | None = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._timeout = timeout
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry] = {}
        self._in_flight: dict[Hashable, asyncio.Task[Any]] = {}
        self._commands: dict[Hashable, asyncio.Task[Any]] = {}
        # Bumped by invalidate() and put(); loads started under an older generation
        # must not repopulate the entry.
        self._generations: dict[Hashable, int] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def _is_fresh(self, entry: CacheEntry, ttl: float) -> bool:
        return (self._clock() - entry.fetched_at) < ttl

    def peek(self, key: Hashable) -> Any | None:
        """Return the cached value for *key* if it is still fresh."""
        entry = self._entries.get(key)
        if entry is None or not self._is_fresh(entry, self._ttl):
            return None
        return entry.value

    def generation(self, key: Hashable) -> int:
        """Counter bumped whenever *key* is invalidated or overwritten."""
        return self._generations.get(key, 0)

    def put(self, key: Hashable, value: Any) -> None:
        """Store *value* as a freshly fetched result.

        A load for *key* that is still in flight will not overwrite it.
        """
        self._generations[key] = self._generations.get(key, 0) + 1
        self._entries[key] = CacheEntry(value=value, fetched_at=self._clock())

    def invalidate(self, key: Hashable) -> bool:
        """Drop the cached value and detach any in-flight load for *key*.

        Callers already attached to the in-flight load still receive its
        result; new callers start a fresh load.
        """
        self._generations[key] = self._generations.get(key, 0) + 1
        self._in_flight.pop(key, None)
        removed = self._entries.pop(key, None) is not None
        if removed:
            _logger.debug("Invalidated cache entry %r", key)
        return removed

    def clear(self) -> None:
        for key in list(self._entries) + list(self._in_flight):
            self._generations[key] = self._generations.get(key, 0) + 1
        self._entries.clear()
        self._in_flight.clear()
        _logger.debug("Cache cleared")

    def stats(self) -> CacheStats:
        valid = sum(1 for entry in self._entries.values() if self._is_fresh(entry, self._ttl))
        return CacheStats(
            total_entries=len(self._entries),
            valid_entries=valid,
            expired_entries=len(self._entries) - valid,
            in_flight=len(self._in_flight) + len(self._commands),
        )

    async def fetch(
        self,
        key: Hashable,
        loader: Loader[T],
        *,
        ttl: float | None = None,
        timeout: float | None = None,
    ) -> T:
        """Return a fresh cached value or the result of a shared loader run."""
        entry = self._entries.get(key)
        if entry is not None and self._is_fresh(entry, self._ttl if ttl is None else ttl):
            _logger.debug("Using cached response for %r", key)
            return entry.value  # type: ignore[no-any-return]

        task = self._in_flight.get(key)
        if task is not None and not task.done():
            _logger.debug("Waiting for ongoing request for %r", key)
        else:
            _logger.debug("Performing new request for %r", key)
            task = asyncio.get_running_loop().create_task(
                self._run(key, loader, self._in_flight, timeout, store=True)
            )
            task.add_done_callback(_consume_exception)
            self._in_flight[key] = task
        return await asyncio.shield(task)  # type: ignore[no-any-return]

    async def run_once(self, key: Hashable, loader: Loader[T], *, timeout: float | None = None) -> T:
        """Single-flight without caching.

        Used for commands: identical concurrent commands collapse into one
        remote call, but a later call always runs again.
        """
        task = self._commands.get(key)
        if task is not None and not task.done():
            _logger.debug("Waiting for ongoing command %r", key)
        else:
            task = asyncio.get_running_loop().create_task(
                self._run(key, loader, self._commands, timeout, store=False)
            )
            task.add_done_callback(_consume_exception)
            self._commands[key] = task
        return await asyncio.shield(task)  # type: ignore[no-any-return]

    async def _run(
        self,
        key: Hashable,
        loader: Loader[T],
        registry: dict[Hashable, asyncio.Task[Any]],
        timeout: float | None,
        *,
        store: bool,
    ) -> T:
        generation = self._generations.get(key, 0)
        limit = self._timeout if timeout is None else timeout
        try:
            if limit is None:
                value = await loader()
            else:
                value = await asyncio.wait_for(loader(), limit)
        except TimeoutError as exc:
            raise TransientDeliveryError(f"Request {key!r} timed out after {limit}s") from exc
        finally:
            if registry.get(key) is asyncio.current_task():
                registry.pop(key, None)

        if store and self._generations.get(key, 0) == generation:
            self._entries[key] = CacheEntry(value=value, fetched_at=self._clock())
        return value


def _consume_exception(task: asyncio.Task[Any]) -> None:
    # Every attached caller re-raises the failure; this only silences the
    # "exception was never retrieved" warning when all of them went away.
    if not task.cancelled():
        task.exception()
