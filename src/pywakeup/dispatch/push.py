"""Wake-up push delivery.

``PushSender`` builds the silent background push and hands it to a
``PushGateway``.  Gateway failures are classified as transient (retry on
a later tick) or permanent (the device token is gone); the sender itself
never retries.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Mapping
from typing import Any, Protocol
from urllib.parse import quote

import aiohttp

from pywakeup._constants import (
    PERMANENT_REASONS,
    PERMANENT_STATUS_CODES,
    PUSH_PRIORITY,
    PUSH_TYPE,
    USER_AGENT,
    WAKEUP_PAYLOAD,
)
from pywakeup._redact import short_token
from pywakeup.config import WakeupConfig
from pywakeup.exceptions import DeliveryError, PermanentDeliveryError, TransientDeliveryError
from pywakeup.models.push import PushAck

_logger = logging.getLogger(__name__)


class PushGateway(Protocol):
    """Structural gateway interface.

    Implementations raise :class:`TransientDeliveryError` or
    :class:`PermanentDeliveryError`; anything else is treated as a bug.
    """

    async def deliver(self, token: str, payload: Mapping[str, Any], headers: Mapping[str, str]) -> PushAck:
        ...


def classify_failure(status_code: int, reason: str) -> type[DeliveryError]:
    """Map a gateway rejection to the matching error type."""
    if status_code in PERMANENT_STATUS_CODES or reason in PERMANENT_REASONS:
        return PermanentDeliveryError
    return TransientDeliveryError


class HttpPushGateway:
    """APNs-compatible HTTP gateway.

    Posts to ``{push_gateway_url}/3/device/{token}`` and reads the
    ``reason`` field of error bodies the way APNs reports them.
    """

    def __init__(self, config: WakeupConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    def _url(self, token: str) -> str:
        return f"{self._config.push_gateway_url.rstrip('/')}/3/device/{quote(token, safe='')}"

    async def deliver(self, token: str, payload: Mapping[str, Any], headers: Mapping[str, str]) -> PushAck:
        request_headers: dict[str, str] = {
            "content-type": "application/json",
            "user-agent": USER_AGENT,
            **headers,
        }
        if self._config.push_auth_token:
            request_headers["authorization"] = f"bearer {self._config.push_auth_token}"

        body = json.dumps(payload, separators=(",", ":"))
        _logger.debug("POST push for %s", short_token(token))

        try:
            async with self._http.post(self._url(token), data=body, headers=request_headers) as resp:
                status = resp.status
                text = await resp.text()
                if status == 200:
                    return PushAck(token=token, push_id=resp.headers.get("apns-id"), status_code=status)
                reason = _parse_reason(text)
        except aiohttp.ClientError as exc:
            raise TransientDeliveryError(
                f"Push to {short_token(token)} failed: {exc}",
                token=token,
            ) from exc

        error_cls = classify_failure(status, reason)
        raise error_cls(
            f"Push to {short_token(token)} rejected: HTTP {status} {reason}".rstrip(),
            token=token,
            status_code=status,
            reason=reason,
        )


def _parse_reason(text: str) -> str:
    if not text.strip():
        return ""
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return ""
    if isinstance(parsed, dict):
        reason = parsed.get("reason")
        if isinstance(reason, str):
            return reason
    return ""


class PushSender:
    """Send one silent wake-up push per call.

    Every send is bounded by ``config.push_timeout``; a stalled gateway
    surfaces as :class:`TransientDeliveryError`.
    """

    def __init__(self, gateway: PushGateway, *, config: WakeupConfig | None = None) -> None:
        self._gateway = gateway
        self._config = config or WakeupConfig()

    def _headers(self) -> dict[str, str]:
        return {
            "apns-push-type": PUSH_TYPE,
            "apns-priority": PUSH_PRIORITY,
            "apns-expiration": str(int(time.time() + self._config.push_expiration)),
            "apns-topic": self._config.push_topic,
        }

    async def send(self, token: str) -> PushAck:
        try:
            ack = await asyncio.wait_for(
                self._gateway.deliver(token, WAKEUP_PAYLOAD, self._headers()),
                self._config.push_timeout,
            )
        except TimeoutError as exc:
            raise TransientDeliveryError(
                f"Push to {short_token(token)} timed out after {self._config.push_timeout}s",
                token=token,
            ) from exc
        _logger.debug("Push accepted for %s (id=%s)", short_token(token), ack.push_id)
        return ack
