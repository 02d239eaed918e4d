from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Mapping
from typing import Any

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from pywakeup.config import WakeupConfig
from pywakeup.dispatch.push import HttpPushGateway, PushSender, classify_failure
from pywakeup.exceptions import PermanentDeliveryError, TransientDeliveryError
from pywakeup.models.push import PushAck


class _Gateway:
    def __init__(self, status: int, body: dict[str, Any] | None = None) -> None:
        self.status = status
        self.body = body
        self.requests: list[tuple[str, dict[str, str], dict[str, Any]]] = []

    async def handle(self, request: web.Request) -> web.Response:
        self.requests.append((request.match_info["token"], dict(request.headers), await request.json()))
        if self.status == 200:
            return web.Response(status=200, headers={"apns-id": "ID-1"})
        return web.json_response(self.body or {}, status=self.status)


@pytest_asyncio.fixture
async def http() -> AsyncIterator[aiohttp.ClientSession]:
    async with aiohttp.ClientSession() as session:
        yield session


async def _serve(gateway: _Gateway) -> TestServer:
    app = web.Application()
    app.router.add_post("/3/device/{token}", gateway.handle)
    server = TestServer(app)
    await server.start_server()
    return server


def _sender(server: TestServer, http: aiohttp.ClientSession) -> PushSender:
    config = WakeupConfig(push_gateway_url=str(server.make_url("/")), push_topic="com.example.app")
    return PushSender(HttpPushGateway(config, http), config=config)


@pytest.mark.asyncio
async def test_successful_push_sends_silent_background_payload(http: aiohttp.ClientSession) -> None:
    gateway = _Gateway(200)
    server = await _serve(gateway)
    try:
        ack = await _sender(server, http).send("abc123")
    finally:
        await server.close()

    assert ack.push_id == "ID-1"
    token, headers, payload = gateway.requests[0]
    assert token == "abc123"
    assert headers["apns-push-type"] == "background"
    assert headers["apns-priority"] == "5"
    assert headers["apns-topic"] == "com.example.app"
    assert payload == {"aps": {"content-available": 1}, "liveActivityWakeup": True}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "body", "expected"),
    [
        (410, {"reason": "Unregistered"}, PermanentDeliveryError),
        (400, {"reason": "BadDeviceToken"}, PermanentDeliveryError),
        (400, {"reason": "BadTopic"}, TransientDeliveryError),
        (429, {"reason": "TooManyRequests"}, TransientDeliveryError),
        (503, {}, TransientDeliveryError),
    ],
)
async def test_gateway_rejections_are_classified(
    http: aiohttp.ClientSession,
    status: int,
    body: dict[str, Any],
    expected: type[Exception],
) -> None:
    server = await _serve(_Gateway(status, body))
    try:
        with pytest.raises(expected) as exc_info:
            await _sender(server, http).send("abc123")
    finally:
        await server.close()

    assert exc_info.value.status_code == status  # type: ignore[attr-defined]
    assert exc_info.value.token == "abc123"  # type: ignore[attr-defined]


@pytest.mark.asyncio
async def test_connection_failure_is_transient(http: aiohttp.ClientSession) -> None:
    config = WakeupConfig(push_gateway_url="http://127.0.0.1:1")
    sender = PushSender(HttpPushGateway(config, http), config=config)

    with pytest.raises(TransientDeliveryError):
        await sender.send("abc123")


@pytest.mark.asyncio
async def test_stalled_gateway_times_out_as_transient() -> None:
    class _Stalled:
        async def deliver(self, token: str, payload: Mapping[str, Any], headers: Mapping[str, str]) -> PushAck:
            await asyncio.sleep(1)
            return PushAck(token=token)

    sender = PushSender(_Stalled(), config=WakeupConfig(push_timeout=0.01))

    with pytest.raises(TransientDeliveryError, match="timed out"):
        await sender.send("abc123")


def test_classify_failure() -> None:
    assert classify_failure(410, "") is PermanentDeliveryError
    assert classify_failure(400, "ExpiredToken") is PermanentDeliveryError
    assert classify_failure(500, "InternalServerError") is TransientDeliveryError
