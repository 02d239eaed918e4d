from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from pywakeup.config import WakeupConfig
from pywakeup.dispatch.scheduler import DispatchScheduler
from pywakeup.exceptions import PermanentDeliveryError, StorageError, TransientDeliveryError
from pywakeup.models.push import PushAck
from pywakeup.models.registration import ActivityType, Registration
from pywakeup.registry.service import RegistrationService
from pywakeup.registry.store import MemoryRegistrationStore


def _t0() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


def _at(seconds: float) -> datetime:
    return _t0() + timedelta(seconds=seconds)


class _FakeSender:
    def __init__(self, failures: dict[str, BaseException] | None = None) -> None:
        self.sent: list[str] = []
        self.failures = failures or {}
        self.gate: asyncio.Event | None = None

    async def send(self, token: str) -> PushAck:
        if self.gate is not None:
            await self.gate.wait()
        failure = self.failures.get(token)
        if failure is not None:
            raise failure
        self.sent.append(token)
        return PushAck(token=token)


class _BrokenStore(MemoryRegistrationStore):
    async def scan(self, predicate: Callable[[Registration], bool]) -> list[Registration]:
        raise StorageError("table unavailable")


def _setup(sender: _FakeSender | None = None) -> tuple[DispatchScheduler, RegistrationService, _FakeSender]:
    service = RegistrationService(MemoryRegistrationStore(), clock=_t0)
    fake = sender or _FakeSender()
    return DispatchScheduler(service, fake, clock=_t0), service, fake  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_charging_cadence_scenario() -> None:
    scheduler, service, sender = _setup()
    await service.register("abc", ActivityType.CHARGING, now=_at(0))

    first = await scheduler.tick(_at(0))
    assert first.sent == 1

    idle = await scheduler.tick(_at(60))
    assert idle.due == 0
    assert sender.sent == ["abc"]

    due = await scheduler.tick(_at(360))
    assert due.sent == 1
    assert sender.sent == ["abc", "abc"]
    stored = await service.get("abc")
    assert stored is not None
    assert stored.last_notified_at == _at(360)


@pytest.mark.asyncio
async def test_expired_registration_is_purged_and_never_dispatched() -> None:
    scheduler, service, sender = _setup()
    await service.register("xyz", ActivityType.DEBUG, now=_at(0))

    report = await scheduler.tick(_t0() + timedelta(hours=8, seconds=1))

    assert report.expired == 1
    assert report.sent == 0
    assert sender.sent == []
    assert await service.get("xyz") is None


@pytest.mark.asyncio
async def test_transient_failure_keeps_registration_due() -> None:
    sender = _FakeSender({"abc": TransientDeliveryError("503", token="abc", status_code=503)})
    scheduler, service, _ = _setup(sender)
    await service.register("abc", ActivityType.CHARGING, now=_at(0))

    report = await scheduler.tick(_at(0))
    assert report.transient_failures == 1

    sender.failures.clear()
    retry = await scheduler.tick(_at(60))
    assert retry.sent == 1


@pytest.mark.asyncio
async def test_permanent_failure_deletes_registration() -> None:
    sender = _FakeSender({"gone": PermanentDeliveryError("410", token="gone", status_code=410, reason="Unregistered")})
    scheduler, service, _ = _setup(sender)
    await service.register("gone", ActivityType.CHARGING, now=_at(0))

    report = await scheduler.tick(_at(0))

    assert report.removed == 1
    assert await service.get("gone") is None


@pytest.mark.asyncio
async def test_permanent_failure_keeps_registration_renewed_during_send() -> None:
    sender = _FakeSender({"abc": PermanentDeliveryError("410", token="abc", status_code=410, reason="Unregistered")})
    sender.gate = asyncio.Event()
    scheduler, service, _ = _setup(sender)
    await service.register("abc", ActivityType.CHARGING, now=_at(0))

    pending = asyncio.create_task(scheduler.tick(_at(0)))
    await asyncio.sleep(0.01)
    renewed = await service.register("abc", ActivityType.CHARGING, now=_at(1))
    sender.gate.set()
    report = await pending

    assert report.removed == 0
    stored = await service.get("abc")
    assert stored is not None
    assert stored.created_at == renewed.created_at

@pytest.mark.asyncio
async def test_one_failure_does_not_block_others() -> None:
    sender = _FakeSender(
        {
            "flaky": TransientDeliveryError("timeout", token="flaky"),
            "gone": PermanentDeliveryError("410", token="gone", status_code=410),
            "buggy": RuntimeError("boom"),
        }
    )
    scheduler, service, _ = _setup(sender)
    for token in ("flaky", "gone", "buggy", "ok"):
        await service.register(token, ActivityType.DEBUG, now=_at(0))

    report = await scheduler.tick(_at(0))

    assert (report.sent, report.transient_failures, report.removed, report.errors) == (1, 1, 1, 1)
    assert sender.sent == ["ok"]


@pytest.mark.asyncio
async def test_storage_error_aborts_tick() -> None:
    service = RegistrationService(_BrokenStore(), clock=_t0)
    sender = _FakeSender()
    scheduler = DispatchScheduler(service, sender, clock=_t0)  # type: ignore[arg-type]

    report = await scheduler.tick(_at(0))

    assert report.aborted is True
    assert sender.sent == []


@pytest.mark.asyncio
async def test_overlapping_tick_is_skipped_and_no_double_send() -> None:
    sender = _FakeSender()
    sender.gate = asyncio.Event()
    scheduler, service, _ = _setup(sender)
    await service.register("abc", ActivityType.DEBUG, now=_at(0))

    slow = asyncio.create_task(scheduler.tick(_at(0)))
    await asyncio.sleep(0.01)
    assert scheduler.tick_in_progress

    overlap = await scheduler.tick(_at(61))
    assert overlap.aborted is True
    assert scheduler.skipped_ticks == 1

    sender.gate.set()
    report = await slow
    assert report.sent == 1
    assert sender.sent == ["abc"]


@pytest.mark.asyncio
async def test_background_loop_dispatches_once_per_interval() -> None:
    service = RegistrationService(MemoryRegistrationStore(), config=WakeupConfig(tick_interval=0.01))
    sender = _FakeSender()
    await service.register("abc", ActivityType.DEBUG)

    async with DispatchScheduler(service, sender) as scheduler:  # type: ignore[arg-type]
        await asyncio.sleep(0.1)
        assert scheduler.is_running

    assert sender.sent == ["abc"]
    assert not scheduler.is_running
