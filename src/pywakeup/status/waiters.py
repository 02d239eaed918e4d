"""Waiting for a polled status to satisfy a predicate.

Each :class:`StatusWait` runs its own bounded poll loop.  Statuses that
arrive out of band (pushes, other callers' fetches) are checked against
every pending waiter for the entity the moment they arrive, so a
satisfied waiter returns before its next poll would have fired.

A wait ends exactly once, in one of:

* ``SATISFIED``: the predicate matched, the matching status is returned.
* ``EXHAUSTED``: ``max_attempts`` polls without a match.
* ``TIMED_OUT``: the deadline passed first.
* ``CANCELLED``: the caller gave up.
* ``FAILED``: the status source raised a non-transient error.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pywakeup.config import WakeupConfig
from pywakeup.exceptions import (
    TransientDeliveryError,
    WaitCancelledError,
    WaitExhaustedError,
    WaitTimedOutError,
)
from pywakeup.models.wait import WaitOutcome
from pywakeup.status.events import StatusBus, StatusEvent

_logger = logging.getLogger(__name__)

StatusPredicate = Callable[[Any], bool]
StatusFetcher = Callable[[str], Awaitable[Any]]

class StatusWait:
    """Handle for one pending wait.  Await it (or :meth:`result`) for the outcome."""

    def __init__(
        self,
        coordinator: StatusWaitCoordinator,
        entity_id: str,
        predicate: StatusPredicate,
        *,
        max_attempts: int,
        poll_interval: float,
        initial_delay: float,
        deadline: float,
        future: asyncio.Future[Any],
    ) -> None:
        self._coordinator = coordinator
        self.entity_id = entity_id
        self.predicate = predicate
        self.max_attempts = max_attempts
        self.remaining_attempts = max_attempts
        self.poll_interval = poll_interval
        self.initial_delay = initial_delay
        self.deadline = deadline
        self.outcome = WaitOutcome.WAITING
        self.last_status: Any = None
        self.last_error: BaseException | None = None
        self._evaluations = 0
        self._future = future
        self._poll_task: asyncio.Task[None] | None = None
        self._timer: asyncio.TimerHandle | None = None

    def __repr__(self) -> str:
        return (
            f"StatusWait(entity_id={self.entity_id!r}, outcome={self.outcome.value}, "
            f"attempts={self.attempts}/{self.max_attempts})"
        )

    @property
    def attempts(self) -> int:
        return self.max_attempts - self.remaining_attempts

    @property
    def done(self) -> bool:
        return self.outcome.is_terminal

    def cancel(self) -> bool:
        """Stop waiting.  Returns ``False`` if the wait had already ended."""
        return self._coordinator._finish(self, WaitOutcome.CANCELLED)

    async def result(self) -> Any:
        """Matching status, or raise the :class:`WaitError` for the outcome.

        Cancelling the awaiting task cancels the wait as well.
        """
        try:
            return await asyncio.shield(self._future)
        except asyncio.CancelledError:
            if not self._future.done():
                self.cancel()
            raise

    def __await__(self):  # type: ignore[no-untyped-def]
        return self.result().__await__()


class StatusWaitCoordinator:
    """Registry of pending status waits, keyed by entity id.

    Parameters
    ----------
    fetcher : callable
        ``async fetcher(entity_id) -> status``.  Normally a
        :class:`~pywakeup.status.cache.RequestCache`-backed call so that
        concurrent pollers share remote requests.
    bus : StatusBus or None
        When given, the coordinator subscribes to it and every published
        status is checked against pending waiters.
    config : WakeupConfig or None
        Supplies default attempts, poll interval and timeout.
    """

    def __init__(
        self,
        fetcher: StatusFetcher,
        *,
        bus: StatusBus | None = None,
        config: WakeupConfig | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._config = config or WakeupConfig()
        self._waiters: dict[str, list[StatusWait]] = {}
        self._unsubscribe: Callable[[], None] | None = None
        if bus is not None:
            self._unsubscribe = bus.subscribe(self._on_event)

    def pending(self, entity_id: str | None = None) -> int:
        if entity_id is None:
            return sum(len(waiters) for waiters in self._waiters.values())
        return len(self._waiters.get(entity_id, ()))

    # ------------------------------------------------------------------
    # Starting waits
    # ------------------------------------------------------------------

    def start_wait(
        self,
        entity_id: str,
        predicate: StatusPredicate,
        *,
        max_attempts: int | None = None,
        poll_interval: float | None = None,
        timeout: float | None = None,
        initial_delay: float | None = None,
    ) -> StatusWait:
        """Register a waiter and start its poll loop and deadline timer."""
        attempts = self._config.wait_max_attempts if max_attempts is None else max_attempts
        interval = self._config.wait_poll_interval if poll_interval is None else poll_interval
        limit = self._config.wait_timeout if timeout is None else timeout
        delay = interval if initial_delay is None else initial_delay
        if attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {attempts}")
        if interval < 0 or delay < 0:
            raise ValueError("poll_interval and initial_delay must not be negative")
        if limit <= 0:
            raise ValueError(f"timeout must be positive, got {limit}")

        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        future.add_done_callback(_consume_exception)
        waiter = StatusWait(
            self,
            entity_id,
            predicate,
            max_attempts=attempts,
            poll_interval=interval,
            initial_delay=delay,
            deadline=loop.time() + limit,
            future=future,
        )
        self._waiters.setdefault(entity_id, []).append(waiter)
        waiter._timer = loop.call_later(limit, self._finish, waiter, WaitOutcome.TIMED_OUT)
        waiter._poll_task = loop.create_task(self._poll(waiter), name=f"pywakeup-wait-{entity_id}")
        _logger.debug(
            "Waiting for status change on %s (attempts=%d, interval=%ss, timeout=%ss)",
            entity_id,
            attempts,
            interval,
            limit,
        )
        return waiter

    async def wait_for(
        self,
        entity_id: str,
        predicate: StatusPredicate,
        *,
        max_attempts: int | None = None,
        poll_interval: float | None = None,
        timeout: float | None = None,
        initial_delay: float | None = None,
    ) -> Any:
        """Block until *predicate* holds for a status of *entity_id*.

        Returns the matching status.  Raises :class:`WaitExhaustedError`,
        :class:`WaitTimedOutError` or :class:`WaitCancelledError` when the
        wait gives up, and re-raises non-transient fetch errors as-is.
        """
        waiter = self.start_wait(
            entity_id,
            predicate,
            max_attempts=max_attempts,
            poll_interval=poll_interval,
            timeout=timeout,
            initial_delay=initial_delay,
        )
        return await waiter.result()

    # ------------------------------------------------------------------
    # Status arrival
    # ------------------------------------------------------------------

    def _on_event(self, event: StatusEvent) -> None:
        self.notify(event.entity_id, event.status)

    def notify(self, entity_id: str, status: Any) -> int:
        """Check *status* against every pending waiter of *entity_id*.

        Returns the number of waiters it satisfied.
        """
        waiters = self._waiters.get(entity_id)
        if not waiters:
            return 0

        satisfied = 0
        for waiter in list(waiters):
            if waiter.done:
                continue
            waiter._evaluations += 1
            waiter.last_status = status
            try:
                matched = bool(waiter.predicate(status))
            except Exception as exc:
                _logger.exception("Status predicate for %s raised", entity_id)
                self._finish(waiter, WaitOutcome.FAILED, error=exc)
                continue
            if matched and self._finish(waiter, WaitOutcome.SATISFIED, result=status):
                satisfied += 1
        return satisfied

    async def _poll(self, waiter: StatusWait) -> None:
        delay = waiter.initial_delay
        while waiter.remaining_attempts > 0:
            await asyncio.sleep(delay)
            delay = waiter.poll_interval
            if waiter.done:
                return

            evaluated = waiter._evaluations
            try:
                status = await self._fetcher(waiter.entity_id)
            except TransientDeliveryError as exc:
                waiter.remaining_attempts -= 1
                waiter.last_error = exc
                _logger.debug(
                    "Status poll for %s failed (%d/%d): %s",
                    waiter.entity_id,
                    waiter.attempts,
                    waiter.max_attempts,
                    exc,
                )
                continue
            except Exception as exc:
                self._finish(waiter, WaitOutcome.FAILED, error=exc)
                return

            waiter.remaining_attempts -= 1
            # A fetcher that publishes on the bus has already evaluated this waiter.
            if waiter._evaluations == evaluated:
                self.notify(waiter.entity_id, status)
            if waiter.done:
                return
            _logger.debug(
                "Waiting for %s (%d/%d)",
                waiter.entity_id,
                waiter.attempts,
                waiter.max_attempts,
            )

        self._finish(waiter, WaitOutcome.EXHAUSTED)

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def _finish(
        self,
        waiter: StatusWait,
        outcome: WaitOutcome,
        *,
        result: Any = None,
        error: BaseException | None = None,
    ) -> bool:
        if waiter.done:
            return False
        waiter.outcome = outcome

        bucket = self._waiters.get(waiter.entity_id)
        if bucket is not None and waiter in bucket:
            bucket.remove(waiter)
            if not bucket:
                self._waiters.pop(waiter.entity_id, None)

        if waiter._timer is not None:
            waiter._timer.cancel()
        task = waiter._poll_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        future = waiter._future
        if not future.done():
            if outcome is WaitOutcome.SATISFIED:
                future.set_result(result)
            else:
                future.set_exception(error if error is not None else self._wait_error(waiter, outcome))

        log = _logger.info if outcome is WaitOutcome.SATISFIED else _logger.debug
        log("Status wait on %s ended: %s after %d poll(s)", waiter.entity_id, outcome.value, waiter.attempts)
        return True

    @staticmethod
    def _wait_error(waiter: StatusWait, outcome: WaitOutcome) -> Exception:
        kwargs: dict[str, Any] = {
            "entity_id": waiter.entity_id,
            "attempts": waiter.attempts,
            "last_status": waiter.last_status,
        }
        if outcome is WaitOutcome.EXHAUSTED:
            return WaitExhaustedError(
                f"Status condition for {waiter.entity_id} not met after {waiter.max_attempts} attempts",
                **kwargs,
            )
        if outcome is WaitOutcome.TIMED_OUT:
            return WaitTimedOutError(f"Timed out waiting for status of {waiter.entity_id}", **kwargs)
        return WaitCancelledError(f"Wait for {waiter.entity_id} cancelled", **kwargs)

    def cancel_all(self, entity_id: str | None = None) -> int:
        """Cancel pending waits for *entity_id* (or every entity)."""
        if entity_id is None:
            targets = [waiter for waiters in self._waiters.values() for waiter in waiters]
        else:
            targets = list(self._waiters.get(entity_id, ()))
        cancelled = sum(1 for waiter in targets if self._finish(waiter, WaitOutcome.CANCELLED))
        if cancelled:
            _logger.debug("Cleared %d pending status waiter(s)", cancelled)
        return cancelled

    def close(self) -> None:
        """Cancel everything and detach from the bus."""
        self.cancel_all()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None


def _consume_exception(future: asyncio.Future[Any]) -> None:
    if not future.cancelled():
        future.exception()
