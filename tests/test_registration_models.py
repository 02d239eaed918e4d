from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from pywakeup._constants import EPOCH
from pywakeup.models.registration import ActivityType, RegisterRequest, Registration


def _t0() -> datetime:
    return datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def test_create_sets_fixed_lifetime_and_epoch_last_notified() -> None:
    reg = Registration.create("abc", ActivityType.CHARGING, now=_t0())

    assert reg.created_at == _t0()
    assert reg.expires_at == _t0() + timedelta(hours=8)
    assert reg.last_notified_at == EPOCH


def test_due_and_live_boundaries() -> None:
    reg = Registration.create("abc", ActivityType.CHARGING, now=_t0()).notified(_t0())
    interval = timedelta(minutes=5)

    assert not reg.is_due(_t0() + timedelta(seconds=299), interval)
    assert reg.is_due(_t0() + timedelta(seconds=300), interval)
    assert reg.is_live(_t0() + timedelta(hours=8) - timedelta(seconds=1))
    assert not reg.is_live(_t0() + timedelta(hours=8))


def test_persisted_layout_uses_camel_case_fields() -> None:
    reg = Registration.create("abc", ActivityType.DEBUG, now=_t0())

    dumped = reg.model_dump(mode="json", by_alias=True)

    assert set(dumped) == {"pushToken", "activityType", "createdAt", "expiresAt", "lastNotifiedAt"}
    assert Registration.model_validate(dumped) == reg


def test_naive_datetimes_are_treated_as_utc() -> None:
    reg = Registration.create("abc", ActivityType.DEBUG, now=datetime(2026, 1, 1, 12, 0))
    assert reg.created_at.tzinfo is not None


def test_register_request_defaults_missing_activity_type_to_charging() -> None:
    assert RegisterRequest.model_validate({"pushToken": "abc"}).activity_type is ActivityType.CHARGING
    assert RegisterRequest.model_validate({"pushToken": "abc", "activityType": ""}).activity_type is ActivityType.CHARGING
    assert RegisterRequest.model_validate({"pushToken": "abc", "activityType": " Debug "}).activity_type is ActivityType.DEBUG


@pytest.mark.parametrize("body", [{}, {"pushToken": "   "}, {"pushToken": "abc", "activityType": "teleport"}])
def test_register_request_rejects_malformed_bodies(body: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        RegisterRequest.model_validate(body)
