"""High-level status client: cached reads, deduplicated commands, waits."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from typing import Any, TypeVar

from pywakeup.config import WakeupConfig
from pywakeup.status.cache import RequestCache
from pywakeup.status.events import StatusBus, StatusEvent, StatusSource
from pywakeup.status.waiters import StatusFetcher, StatusPredicate, StatusWaitCoordinator

_logger = logging.getLogger(__name__)

T = TypeVar("T")


def _status_key(entity_id: str) -> Hashable:
    return ("status", entity_id)


def _command_key(entity_id: str, command: str) -> Hashable:
    return ("command", entity_id, command)


class StatusClient:
    """Front a slow status source for command-issuing code.

    Usage::

        client = StatusClient(api.fetch_vehicle_status)
        status = await client.get_status(vin)
        locked = await client.send_and_wait(
            vin, "lock", lambda: api.lock(vin), lambda s: s.locked,
            max_attempts=5, poll_interval=2.0,
        )

    Freshly fetched and pushed statuses are published on :attr:`bus`, which
    wakes any pending waits on the same entity.
    """

    def __init__(
        self,
        fetcher: StatusFetcher,
        *,
        config: WakeupConfig | None = None,
        cache: RequestCache | None = None,
        bus: StatusBus | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetcher = fetcher
        self._config = config or WakeupConfig()
        self._cache = cache or RequestCache(
            ttl=self._config.cache_ttl,
            timeout=self._config.fetch_timeout,
            clock=clock,
        )
        self._bus = bus or StatusBus()
        self._waits = StatusWaitCoordinator(self.get_status, bus=self._bus, config=self._config)

    @property
    def cache(self) -> RequestCache:
        return self._cache

    @property
    def bus(self) -> StatusBus:
        return self._bus

    @property
    def waits(self) -> StatusWaitCoordinator:
        return self._waits

    async def get_status(self, entity_id: str, *, force: bool = False) -> Any:
        """Cached, single-flight status read.  ``force`` skips the TTL."""
        key = _status_key(entity_id)
        if force:
            self._cache.invalidate(key)

        async def _load() -> Any:
            generation = self._cache.generation(key)
            status = await self._fetcher(entity_id)
            if self._cache.generation(key) != generation:
                _logger.debug("Discarding status for %s superseded during fetch", entity_id)
                return status
            self._bus.publish(StatusEvent(entity_id=entity_id, status=status, source=StatusSource.FETCH))
            return status

        return await self._cache.fetch(key, _load)

    def push_status(self, entity_id: str, status: Any) -> None:
        """Accept a status delivered out of band (push, background refresh)."""
        self._cache.put(_status_key(entity_id), status)
        self._bus.publish(StatusEvent(entity_id=entity_id, status=status, source=StatusSource.PUSH))

    def invalidate(self, entity_id: str) -> bool:
        return self._cache.invalidate(_status_key(entity_id))

    async def send_command(self, entity_id: str, command: str, sender: Callable[[], Awaitable[T]]) -> T:
        """Run *sender* once per concurrent burst of identical commands.

        The cached status is dropped first so the next read reflects the
        command's effect.
        """

        async def _run() -> T:
            self.invalidate(entity_id)
            _logger.debug("Sending %s to %s", command, entity_id)
            return await sender()

        return await self._cache.run_once(_command_key(entity_id, command), _run)

    async def wait_for(self, entity_id: str, predicate: StatusPredicate, **options: Any) -> Any:
        return await self._waits.wait_for(entity_id, predicate, **options)

    async def send_and_wait(
        self,
        entity_id: str,
        command: str,
        sender: Callable[[], Awaitable[Any]],
        predicate: StatusPredicate,
        **options: Any,
    ) -> Any:
        """Send *command*, then wait until the status reflects it."""
        await self.send_command(entity_id, command, sender)
        return await self._waits.wait_for(entity_id, predicate, **options)

    def close(self) -> None:
        self._waits.close()
