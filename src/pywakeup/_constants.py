"""Internal constants shared across the library."""

from datetime import UTC, datetime, timedelta

#: Registrations stop receiving wake-ups this long after (re-)registration.
REGISTRATION_LIFETIME = timedelta(hours=8)

#: ``last_notified_at`` of a registration that has never been woken up.
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

DEFAULT_TICK_INTERVAL_S = 60.0
DEFAULT_INTERVAL = timedelta(minutes=5)

# ------------------------------------------------------------------
# Push gateway (APNs-compatible relay)
# ------------------------------------------------------------------

USER_AGENT = "pywakeup/0.1"
DEFAULT_PUSH_TOPIC = "com.markschmidt.BetterBlue"

#: Background pushes must use priority 5 and carry no alert.
PUSH_PRIORITY = "5"
PUSH_TYPE = "background"

WAKEUP_PAYLOAD: dict[str, object] = {
    "aps": {"content-available": 1},
    "liveActivityWakeup": True,
}

#: HTTP statuses and gateway reasons that mean the token is gone for good.
PERMANENT_STATUS_CODES: frozenset[int] = frozenset({410})
PERMANENT_REASONS: frozenset[str] = frozenset({"Unregistered", "BadDeviceToken", "ExpiredToken"})
