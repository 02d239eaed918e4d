"""Command-line entry point: ``python -m pywakeup serve``."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import AsyncIterator, Sequence

import aiohttp
from aiohttp import web

from pywakeup.config import WakeupConfig
from pywakeup.dispatch.push import HttpPushGateway, PushSender
from pywakeup.dispatch.scheduler import DispatchScheduler
from pywakeup.exceptions import WakeupConfigError
from pywakeup.registry.service import RegistrationService
from pywakeup.registry.store import JsonFileRegistrationStore, MemoryRegistrationStore, RegistrationStore
from pywakeup.server import create_app

_logger = logging.getLogger("pywakeup")


def build_store(config: WakeupConfig) -> RegistrationStore:
    if config.store_path:
        return JsonFileRegistrationStore(config.store_path)
    _logger.warning("No store path configured; registrations are kept in memory only")
    return MemoryRegistrationStore()


def build_app(config: WakeupConfig) -> web.Application:
    """Wire store, push sender, scheduler and HTTP routes together."""
    service = RegistrationService(build_store(config), config=config)
    app = create_app(service)

    async def _dispatch_ctx(_app: web.Application) -> AsyncIterator[None]:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=config.push_timeout)) as http:
            sender = PushSender(HttpPushGateway(config, http), config=config)
            scheduler = DispatchScheduler(service, sender)
            async with scheduler:
                yield

    app.cleanup_ctx.append(_dispatch_ctx)
    return app


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="pywakeup", description="Wake-up push registration and dispatch service")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API and the dispatch scheduler")
    serve.add_argument("--host", default=None, help="Bind address (env WAKEUP_HOST)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (env WAKEUP_PORT)")
    serve.add_argument("--store", default=None, help="Registration JSON file (env WAKEUP_STORE_PATH)")
    serve.add_argument("--tick-interval", type=float, default=None, help="Seconds between dispatch ticks")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, object] = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.store is not None:
        overrides["store_path"] = args.store
    if args.tick_interval is not None:
        overrides["tick_interval"] = args.tick_interval

    try:
        config = WakeupConfig.from_env(**overrides)
    except WakeupConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    web.run_app(build_app(config), host=config.host, port=config.port, print=None)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
