"""Status events and the bus that fans them out.

Every path that obtains a status (poll, on-demand fetch, out-of-band
push) publishes a :class:`StatusEvent`.  Subscribers such as the wait
coordinator react to it; publishers never know who is listening.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_logger = logging.getLogger(__name__)


class StatusSource(StrEnum):
    POLL = "poll"
    FETCH = "fetch"
    PUSH = "push"


class StatusEvent(BaseModel):
    """A status observed for one entity."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    entity_id: str = Field(..., description="Entity (vehicle) identifier")
    status: Any = None
    source: StatusSource
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("entity_id")
    @classmethod
    def _normalize_entity_id(cls, value: str) -> str:
        entity_id = value.strip()
        if not entity_id:
            raise ValueError("entity_id must be non-empty")
        return entity_id


StatusListener = Callable[[StatusEvent], None]


class StatusBus:
    """In-loop publish/subscribe keyed by entity id.

    Listeners subscribed without an entity id receive every event.
    """

    def __init__(self) -> None:
        self._listeners: dict[str | None, list[StatusListener]] = {}

    def subscribe(self, listener: StatusListener, entity_id: str | None = None) -> Callable[[], None]:
        """Register *listener*; the returned callable unsubscribes it."""
        self._listeners.setdefault(entity_id, []).append(listener)

        def _unsubscribe() -> None:
            bucket = self._listeners.get(entity_id)
            if bucket is not None and listener in bucket:
                bucket.remove(listener)
                if not bucket:
                    self._listeners.pop(entity_id, None)

        return _unsubscribe

    def publish(self, event: StatusEvent) -> None:
        listeners = [*self._listeners.get(event.entity_id, ()), *self._listeners.get(None, ())]
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                _logger.exception("Status listener failed for %s", event.entity_id)

    def publish_threadsafe(self, loop: asyncio.AbstractEventLoop, event: StatusEvent) -> None:
        """Publish from a foreign thread (e.g. a push receiver) onto *loop*."""
        loop.call_soon_threadsafe(self.publish, event)
