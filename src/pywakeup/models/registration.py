"""Device registration models.

A :class:`Registration` binds a push token to an activity type and an
expiry.  Its JSON form (camelCase keys, ISO-8601 timestamps) is the
persisted record layout.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from pywakeup._constants import EPOCH, REGISTRATION_LIFETIME


class ActivityType(StrEnum):
    """Kind of on-device activity a registration keeps fresh."""

    CHARGING = "charging"
    CLIMATE = "climate"
    DEBUG = "debug"


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _normalize_token(value: str) -> str:
    token = value.strip()
    if not token:
        raise ValueError("pushToken must be non-empty")
    return token


class Registration(BaseModel):
    """A device subscribed to wake-up pushes."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    push_token: str
    activity_type: ActivityType
    created_at: datetime
    expires_at: datetime
    last_notified_at: datetime = EPOCH

    @field_validator("push_token")
    @classmethod
    def _strip_token(cls, value: str) -> str:
        return _normalize_token(value)

    @field_validator("created_at", "expires_at", "last_notified_at")
    @classmethod
    def _tz_aware(cls, value: datetime) -> datetime:
        return _ensure_utc(value)

    @classmethod
    def create(
        cls,
        push_token: str,
        activity_type: ActivityType,
        *,
        now: datetime,
        lifetime: timedelta = REGISTRATION_LIFETIME,
    ) -> Registration:
        """Build a fresh registration that is due immediately."""
        created_at = _ensure_utc(now)
        return cls(
            push_token=push_token,
            activity_type=activity_type,
            created_at=created_at,
            expires_at=created_at + lifetime,
            last_notified_at=EPOCH,
        )

    def is_live(self, now: datetime) -> bool:
        return _ensure_utc(now) < self.expires_at

    def due_at(self, interval: timedelta) -> datetime:
        """Earliest time the next wake-up may be sent."""
        return self.last_notified_at + interval

    def is_due(self, now: datetime, interval: timedelta) -> bool:
        return _ensure_utc(now) >= self.due_at(interval)

    def notified(self, at: datetime) -> Registration:
        """Copy with ``last_notified_at`` moved to *at*."""
        return self.model_copy(update={"last_notified_at": _ensure_utc(at)})


class RegisterRequest(BaseModel):
    """Body of ``POST /wakeup``."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    push_token: str
    activity_type: ActivityType = Field(default=ActivityType.CHARGING)

    @field_validator("push_token")
    @classmethod
    def _strip_token(cls, value: str) -> str:
        return _normalize_token(value)

    @field_validator("activity_type", mode="before")
    @classmethod
    def _default_blank_type(cls, value: object) -> object:
        # The app omits or blanks the field for charging activities.
        if value is None or (isinstance(value, str) and not value.strip()):
            return ActivityType.CHARGING
        if isinstance(value, str):
            return value.strip().lower()
        return value


class UnregisterRequest(BaseModel):
    """Body of ``POST /wakeup/unregister``."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    push_token: str

    @field_validator("push_token")
    @classmethod
    def _strip_token(cls, value: str) -> str:
        return _normalize_token(value)
