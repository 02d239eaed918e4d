"""Runtime configuration for pywakeup."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from pywakeup._constants import (
    DEFAULT_INTERVAL,
    DEFAULT_PUSH_TOPIC,
    DEFAULT_TICK_INTERVAL_S,
    REGISTRATION_LIFETIME,
)
from pywakeup.exceptions import WakeupConfigError
from pywakeup.models.registration import ActivityType


def _default_intervals() -> dict[ActivityType, timedelta]:
    return {
        ActivityType.CHARGING: timedelta(minutes=5),
        ActivityType.CLIMATE: timedelta(minutes=5),
        ActivityType.DEBUG: timedelta(minutes=1),
    }


def _env_float(env: Mapping[str, str], key: str) -> float | None:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise WakeupConfigError(f"{key} must be a number, got {raw!r}") from exc
    if value < 0:
        raise WakeupConfigError(f"{key} must not be negative, got {value}")
    return value


@dataclasses.dataclass(frozen=True)
class WakeupConfig:
    """Service and client configuration.

    Parameters
    ----------
    push_gateway_url : str
        Base URL of the APNs-compatible push relay.  Pushes are posted to
        ``{push_gateway_url}/3/device/{token}``.
    push_topic : str
        App bundle id sent as ``apns-topic``.
    push_auth_token : str or None
        Bearer token for the relay, if it requires one.
    tick_interval : float
        Seconds between dispatch scheduler ticks.
    registration_lifetime : timedelta
        How long a registration keeps receiving wake-ups.
    intervals : dict
        Minimum spacing between wake-ups per activity type.
    push_timeout : float
        Per-push timeout in seconds.
    push_expiration : float
        Seconds after which the gateway may drop an undelivered push.
    cache_ttl : float
        Freshness window for :class:`~pywakeup.status.cache.RequestCache`.
    fetch_timeout : float
        Per-call timeout for status fetches.
    wait_timeout, wait_max_attempts, wait_poll_interval
        Defaults for :meth:`StatusWaitCoordinator.start_wait`.
    store_path : str or None
        JSON file for the registration store.  ``None`` keeps
        registrations in memory.
    host, port
        Bind address of the HTTP API.
    """

    push_gateway_url: str = "https://api.push.apple.com"
    push_topic: str = DEFAULT_PUSH_TOPIC
    push_auth_token: str | None = None
    tick_interval: float = DEFAULT_TICK_INTERVAL_S
    registration_lifetime: timedelta = REGISTRATION_LIFETIME
    intervals: dict[ActivityType, timedelta] = dataclasses.field(default_factory=_default_intervals)
    push_timeout: float = 10.0
    push_expiration: float = 60.0
    cache_ttl: float = 5.0
    fetch_timeout: float = 15.0
    wait_timeout: float = 120.0
    wait_max_attempts: int = 3
    wait_poll_interval: float = 10.0
    store_path: str | None = None
    host: str = "0.0.0.0"
    port: int = 8080

    def interval_for(self, activity_type: ActivityType) -> timedelta:
        """Wake-up cadence for *activity_type*."""
        return self.intervals.get(activity_type, DEFAULT_INTERVAL)

    @classmethod
    def from_env(cls, **overrides: Any) -> WakeupConfig:
        """Create configuration from ``WAKEUP_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "WAKEUP_PUSH_GATEWAY_URL": "push_gateway_url",
            "WAKEUP_PUSH_TOPIC": "push_topic",
            "WAKEUP_PUSH_AUTH_TOKEN": "push_auth_token",
            "WAKEUP_STORE_PATH": "store_path",
            "WAKEUP_HOST": "host",
        }
        _ENV_FLOAT_MAP = {
            "WAKEUP_TICK_INTERVAL": "tick_interval",
            "WAKEUP_PUSH_TIMEOUT": "push_timeout",
            "WAKEUP_PUSH_EXPIRATION": "push_expiration",
            "WAKEUP_CACHE_TTL": "cache_ttl",
            "WAKEUP_FETCH_TIMEOUT": "fetch_timeout",
            "WAKEUP_WAIT_TIMEOUT": "wait_timeout",
            "WAKEUP_WAIT_POLL_INTERVAL": "wait_poll_interval",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            num = _env_float(env, env_key)
            if num is not None:
                config_kwargs[field_name] = num

        # Integer settings
        for env_key, field_name in (("WAKEUP_PORT", "port"), ("WAKEUP_WAIT_MAX_ATTEMPTS", "wait_max_attempts")):
            num = _env_float(env, env_key)
            if num is not None:
                config_kwargs[field_name] = int(num)

        lifetime_h = _env_float(env, "WAKEUP_REGISTRATION_LIFETIME_HOURS")
        if lifetime_h is not None:
            config_kwargs["registration_lifetime"] = timedelta(hours=lifetime_h)

        intervals = _default_intervals()
        for activity_type in ActivityType:
            minutes = _env_float(env, f"WAKEUP_INTERVAL_{activity_type.name}")
            if minutes is not None:
                intervals[activity_type] = timedelta(minutes=minutes)
        config_kwargs["intervals"] = intervals

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
