"""Periodic wake-up dispatch.

Each tick purges expired registrations, lists the due ones and sends one
push to each.  Ticks never overlap: a tick that fires while the previous
one is still running is skipped and logged.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pywakeup._redact import short_token
from pywakeup.dispatch.push import PushSender
from pywakeup.exceptions import PermanentDeliveryError, StorageError, TransientDeliveryError
from pywakeup.models.registration import Registration
from pywakeup.registry.service import RegistrationService

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class TickReport:
    """Outcome counters for one scheduler tick."""

    started_at: datetime
    due: int = 0
    sent: int = 0
    removed: int = 0
    transient_failures: int = 0
    errors: int = 0
    expired: int = 0
    aborted: bool = False


class DispatchScheduler:
    """Drive wake-up pushes on a fixed interval.

    Usage::

        async with DispatchScheduler(service, sender) as scheduler:
            ...  # ticks run every ``config.tick_interval`` seconds
    """

    def __init__(
        self,
        service: RegistrationService,
        sender: PushSender,
        *,
        interval: float | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._service = service
        self._sender = sender
        self._interval = interval if interval is not None else service.config.tick_interval
        self._clock = clock
        self._loop_task: asyncio.Task[None] | None = None
        self._tick_task: asyncio.Task[TickReport] | None = None
        self._tick_lock = asyncio.Lock()
        self.skipped_ticks = 0
        self.last_report: TickReport | None = None

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def tick_in_progress(self) -> bool:
        return self._tick_lock.locked()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> DispatchScheduler:
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    def start(self) -> None:
        if self.is_running:
            return
        self._loop_task = asyncio.get_running_loop().create_task(self._run(), name="pywakeup-dispatch")
        _logger.info("Dispatch scheduler started (interval=%ss)", self._interval)

    async def stop(self) -> None:
        tasks = [task for task in (self._loop_task, self._tick_task) if task is not None]
        self._loop_task = None
        self._tick_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        _logger.info("Dispatch scheduler stopped")

    async def _run(self) -> None:
        while True:
            self.trigger()
            await asyncio.sleep(self._interval)

    def trigger(self) -> bool:
        """Start a tick in the background unless one is still running."""
        if self._tick_lock.locked() or (self._tick_task is not None and not self._tick_task.done()):
            self.skipped_ticks += 1
            _logger.warning("Previous dispatch tick still running; skipping this one")
            return False
        self._tick_task = asyncio.get_running_loop().create_task(self.tick(), name="pywakeup-tick")
        self._tick_task.add_done_callback(self._on_tick_done)
        return True

    def _on_tick_done(self, task: asyncio.Task[TickReport]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error("Dispatch tick crashed", exc_info=exc)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def tick(self, now: datetime | None = None) -> TickReport:
        """Run one dispatch pass.

        Returns a skipped report (``aborted=True``) without doing any work
        if another tick holds the guard.
        """
        at = now or self._clock()
        if self._tick_lock.locked():
            self.skipped_ticks += 1
            _logger.warning("Dispatch tick at %s overlaps a running tick; skipped", at.isoformat())
            return TickReport(started_at=at, aborted=True)

        async with self._tick_lock:
            report = TickReport(started_at=at)
            try:
                report.expired = await self._service.purge_expired(at)
                due = await self._service.list_due(at)
            except StorageError:
                _logger.exception("Registration store unavailable; skipping tick")
                report.aborted = True
                self.last_report = report
                return report

            report.due = len(due)
            if due:
                _logger.info("Dispatching wakeups to %d registration(s)", len(due))
            outcomes = await asyncio.gather(*(self._dispatch_one(reg, at) for reg in due))
            for outcome in outcomes:
                if outcome == "sent":
                    report.sent += 1
                elif outcome == "removed":
                    report.removed += 1
                elif outcome == "transient":
                    report.transient_failures += 1
                elif outcome == "error":
                    report.errors += 1

            self.last_report = report
            return report

    async def _dispatch_one(self, registration: Registration, now: datetime) -> str:
        token = registration.push_token
        try:
            await self._sender.send(token)
        except PermanentDeliveryError as exc:
            _logger.warning("Gateway rejected %s (%s); removing registration", short_token(token), exc.reason or exc)
            try:
                removed = await self._service.remove(registration)
            except StorageError:
                return "error"
            if not removed:
                _logger.info("Registration %s changed during dispatch; nothing removed", short_token(token))
                return "stale"
            return "removed"
        except TransientDeliveryError as exc:
            _logger.warning("Transient push failure for %s: %s", short_token(token), exc)
            return "transient"
        except Exception:
            _logger.exception("Unexpected error dispatching to %s", short_token(token))
            return "error"

        try:
            updated = await self._service.mark_notified(registration, now)
        except StorageError:
            _logger.exception("Push sent to %s but last-notified update failed", short_token(token))
            return "error"
        if not updated:
            _logger.debug("Registration %s changed during dispatch; keeping newer record", short_token(token))
        _logger.info(
            "Wakeup sent to %s (type=%s, age=%.1fmin)",
            short_token(token),
            registration.activity_type.value,
            (now - registration.created_at).total_seconds() / 60,
        )
        return "sent"
