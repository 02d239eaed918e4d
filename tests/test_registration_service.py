from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from pywakeup._constants import EPOCH
from pywakeup.exceptions import WakeupValidationError
from pywakeup.models.registration import ActivityType
from pywakeup.registry.service import RegistrationService
from pywakeup.registry.store import MemoryRegistrationStore


def _t0() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


def _service() -> tuple[RegistrationService, MemoryRegistrationStore]:
    store = MemoryRegistrationStore()
    return RegistrationService(store, clock=_t0), store


@pytest.mark.asyncio
async def test_register_then_unregister_is_idempotent() -> None:
    service, store = _service()

    await service.register("abc", "charging")
    assert len(store) == 1

    assert await service.unregister("abc") is True
    assert await service.unregister("abc") is False
    assert len(store) == 0


@pytest.mark.asyncio
async def test_register_rejects_unknown_activity_type_without_storing() -> None:
    service, store = _service()

    with pytest.raises(WakeupValidationError):
        await service.register("abc", "teleport")
    assert len(store) == 0


@pytest.mark.asyncio
async def test_register_rejects_blank_token() -> None:
    service, _store = _service()
    with pytest.raises(WakeupValidationError):
        await service.register("  ", ActivityType.DEBUG)
    with pytest.raises(WakeupValidationError):
        await service.unregister("")


@pytest.mark.asyncio
async def test_reregister_resets_expiry_and_makes_token_due_immediately() -> None:
    service, store = _service()
    first = await service.register("abc", ActivityType.CHARGING)
    await store.mark_notified("abc", _t0() + timedelta(minutes=1), created_at=first.created_at)

    later = _t0() + timedelta(minutes=2)
    again = await service.register("abc", ActivityType.CHARGING, now=later)

    assert again.last_notified_at == EPOCH
    assert again.expires_at == later + timedelta(hours=8)
    assert [r.push_token for r in await service.list_due(later)] == ["abc"]


@pytest.mark.asyncio
async def test_list_due_excludes_expired_registrations() -> None:
    service, _store = _service()
    await service.register("xyz", "debug", now=_t0())

    assert [r.push_token for r in await service.list_due(_t0() + timedelta(hours=7))] == ["xyz"]
    assert await service.list_due(_t0() + timedelta(hours=8, seconds=1)) == []


@pytest.mark.asyncio
async def test_list_due_respects_per_type_cadence() -> None:
    service, store = _service()
    charging = await service.register("charge", ActivityType.CHARGING)
    debug = await service.register("dbg", ActivityType.DEBUG)
    for reg in (charging, debug):
        await store.mark_notified(reg.push_token, _t0(), created_at=reg.created_at)

    due = await service.list_due(_t0() + timedelta(minutes=2))

    assert [r.push_token for r in due] == ["dbg"]


@pytest.mark.asyncio
async def test_purge_expired_deletes_only_expired() -> None:
    service, store = _service()
    await service.register("old", "charging", now=_t0())
    await service.register("new", "charging", now=_t0() + timedelta(hours=4))

    removed = await service.purge_expired(_t0() + timedelta(hours=9))

    assert removed == 1
    assert await store.get("old") is None
    assert await store.get("new") is not None
