"""Registration boundary: validate, then mutate the store."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError

from pywakeup._redact import short_token
from pywakeup.config import WakeupConfig
from pywakeup.exceptions import StorageError, WakeupValidationError
from pywakeup.models.registration import ActivityType, RegisterRequest, Registration, UnregisterRequest
from pywakeup.registry.store import RegistrationStore

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0] if exc.errors() else {}
    loc = ".".join(str(part) for part in first.get("loc", ())) or "body"
    return f"Invalid {loc}: {first.get('msg', 'malformed input')}"


def parse_register_request(body: Mapping[str, Any]) -> RegisterRequest:
    """Validate a ``POST /wakeup`` body."""
    try:
        return RegisterRequest.model_validate(body)
    except ValidationError as exc:
        raise WakeupValidationError(_validation_message(exc)) from exc


def parse_unregister_request(body: Mapping[str, Any]) -> UnregisterRequest:
    """Validate a ``POST /wakeup/unregister`` body."""
    try:
        return UnregisterRequest.model_validate(body)
    except ValidationError as exc:
        raise WakeupValidationError(_validation_message(exc)) from exc


class RegistrationService:
    """Register/unregister devices and answer which ones are due.

    Storage failures surface as :class:`~pywakeup.exceptions.StorageError`;
    malformed input as :class:`~pywakeup.exceptions.WakeupValidationError`
    and is never stored.
    """

    def __init__(
        self,
        store: RegistrationStore,
        *,
        config: WakeupConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._config = config or WakeupConfig()
        self._clock = clock

    @property
    def store(self) -> RegistrationStore:
        return self._store

    @property
    def config(self) -> WakeupConfig:
        return self._config

    def interval_for(self, registration: Registration) -> timedelta:
        return self._config.interval_for(registration.activity_type)

    async def register(
        self,
        token: str,
        activity_type: ActivityType | str | None = None,
        *,
        now: datetime | None = None,
    ) -> Registration:
        """Create or refresh the registration for *token*.

        Re-registering resets the expiry and makes the token due on the
        next scheduler tick.
        """
        body: dict[str, Any] = {"pushToken": token}
        if activity_type is not None:
            body["activityType"] = activity_type
        request = parse_register_request(body)

        registration = Registration.create(
            request.push_token,
            request.activity_type,
            now=now or self._clock(),
            lifetime=self._config.registration_lifetime,
        )
        await self._store.put(registration)
        _logger.info(
            "Registered %s for wakeups (type=%s, interval=%s, expires=%s)",
            short_token(registration.push_token),
            registration.activity_type.value,
            self._config.interval_for(registration.activity_type),
            registration.expires_at.isoformat(),
        )
        return registration

    async def unregister(self, token: str) -> bool:
        """Remove *token*.  Returns ``False`` when it was not registered."""
        request = parse_unregister_request({"pushToken": token})
        removed = await self._store.delete(request.push_token)
        _logger.info("Unregistered %s (existed=%s)", short_token(request.push_token), removed)
        return removed

    async def get(self, token: str) -> Registration | None:
        return await self._store.get(token.strip())

    async def count(self) -> int:
        return len(await self._store.scan(lambda _reg: True))

    async def list_due(self, now: datetime | None = None) -> list[Registration]:
        """All live registrations whose cadence has elapsed at *now*."""
        at = now or self._clock()
        return await self._store.scan(
            lambda reg: reg.is_live(at) and reg.is_due(at, self._config.interval_for(reg.activity_type))
        )

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Delete registrations past their expiry.  Returns how many went."""
        at = now or self._clock()
        expired = await self._store.scan(lambda reg: not reg.is_live(at))
        removed = 0
        for reg in expired:
            if await self._store.delete(reg.push_token, created_at=reg.created_at):
                removed += 1
                _logger.info("Expired registration %s", short_token(reg.push_token))
        return removed

    async def mark_notified(self, registration: Registration, at: datetime) -> bool:
        return await self._store.mark_notified(
            registration.push_token,
            at,
            created_at=registration.created_at,
        )

    async def remove(self, registration: Registration) -> bool:
        """Delete *registration* unless the token was registered again since."""
        try:
            return await self._store.delete(registration.push_token, created_at=registration.created_at)
        except StorageError:
            _logger.exception("Failed to remove registration %s", short_token(registration.push_token))
            raise
