"""Custom exception hierarchy for pywakeup."""

from __future__ import annotations

from typing import Any


class WakeupError(Exception):
    """Base exception for all pywakeup errors."""


class WakeupConfigError(WakeupError):
    """Invalid or missing configuration."""


class WakeupValidationError(WakeupError):
    """Malformed registration input, rejected before anything is stored."""


class StorageError(WakeupError):
    """Registration store unavailable or unreadable."""


class DeliveryError(WakeupError):
    """An external call (push send or status fetch) failed."""

    def __init__(
        self,
        message: str,
        *,
        token: str = "",
        status_code: int | None = None,
        reason: str = "",
    ) -> None:
        self.token = token
        self.status_code = status_code
        self.reason = reason
        super().__init__(message)


class TransientDeliveryError(DeliveryError):
    """Failure eligible for retry (network, timeout, rate limit, 5xx)."""


class PermanentDeliveryError(DeliveryError):
    """The push gateway rejected the token for good.

    Raised for HTTP ``410`` or the reasons ``Unregistered``,
    ``BadDeviceToken`` and ``ExpiredToken``.  The dispatch scheduler
    deletes the registration when it sees this.
    """


class WaitError(WakeupError):
    """A status wait ended without its predicate being satisfied.

    These are terminal outcomes, not failures of the status source;
    they never subclass :class:`DeliveryError`.
    """

    def __init__(
        self,
        message: str,
        *,
        entity_id: str,
        attempts: int = 0,
        last_status: Any = None,
    ) -> None:
        self.entity_id = entity_id
        self.attempts = attempts
        self.last_status = last_status
        super().__init__(message)


class WaitExhaustedError(WaitError):
    """All poll attempts were used without a matching status."""


class WaitTimedOutError(WaitError):
    """The wait deadline elapsed first."""


class WaitCancelledError(WaitError):
    """The caller cancelled the wait."""
