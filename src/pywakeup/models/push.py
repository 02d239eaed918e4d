"""Push delivery result model."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field


class PushAck(BaseModel):
    """Gateway acknowledgement of an accepted push."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    token: str
    push_id: str | None = None
    """Gateway-assigned id (``apns-id`` header), if returned."""
    status_code: int = 200
    sent_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
