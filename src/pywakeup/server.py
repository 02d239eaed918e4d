"""HTTP boundary for wake-up registrations (aiohttp.web).

Routes:
  - ``POST /wakeup``             register ``{pushToken, activityType}``
  - ``POST /wakeup/unregister``  unregister ``{pushToken}``
  - ``GET  /health``             liveness + registration count
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from aiohttp import web

from pywakeup._redact import redact_for_log
from pywakeup.dispatch.scheduler import DispatchScheduler
from pywakeup.exceptions import StorageError, WakeupValidationError
from pywakeup.registry.service import RegistrationService, parse_register_request, parse_unregister_request

_logger = logging.getLogger(__name__)

SERVICE_KEY = web.AppKey("service", RegistrationService)
SCHEDULER_KEY = web.AppKey("scheduler", DispatchScheduler)

_CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _json(body: dict[str, Any], *, status: int = 200) -> web.Response:
    return web.json_response(body, status=status, headers=_CORS_HEADERS)


async def _read_body(request: web.Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise WakeupValidationError("Request body must be JSON") from exc
    if not isinstance(body, dict):
        raise WakeupValidationError("Request body must be a JSON object")
    _logger.debug("%s %s body=%s", request.method, request.path, redact_for_log(body))
    return body


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except WakeupValidationError as exc:
        return _json({"error": str(exc)}, status=400)
    except StorageError as exc:
        _logger.exception("Storage failure handling %s %s", request.method, request.path)
        return _json({"error": str(exc)}, status=500)


async def register_wakeup(request: web.Request) -> web.Response:
    body = await _read_body(request)
    parsed = parse_register_request(body)
    registration = await request.app[SERVICE_KEY].register(parsed.push_token, parsed.activity_type)
    return _json(
        {
            "success": True,
            "activityType": registration.activity_type.value,
            "expiresAt": registration.expires_at.isoformat(),
        }
    )


async def unregister_wakeup(request: web.Request) -> web.Response:
    body = await _read_body(request)
    parsed = parse_unregister_request(body)
    await request.app[SERVICE_KEY].unregister(parsed.push_token)
    return _json({"success": True})


async def health(request: web.Request) -> web.Response:
    count = await request.app[SERVICE_KEY].count()
    return _json({"status": "ok", "registrations": count})


def create_app(service: RegistrationService, *, scheduler: DispatchScheduler | None = None) -> web.Application:
    """Build the aiohttp application.

    When *scheduler* is given it is started with the app and stopped on
    shutdown.
    """
    app = web.Application(middlewares=[error_middleware])
    app[SERVICE_KEY] = service
    app.router.add_post("/wakeup", register_wakeup)
    app.router.add_post("/wakeup/unregister", unregister_wakeup)
    app.router.add_get("/health", health)

    if scheduler is not None:
        app[SCHEDULER_KEY] = scheduler

        async def _scheduler_ctx(_app: web.Application) -> AsyncIterator[None]:
            scheduler.start()
            yield
            await scheduler.stop()

        app.cleanup_ctx.append(_scheduler_ctx)

    return app
