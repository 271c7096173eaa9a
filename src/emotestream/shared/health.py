"""Shared HTTP endpoint utilities for EmoteStream services."""

import time
from collections.abc import Callable
from typing import Any

from aiohttp import web

from .logger import get_logger

logger = get_logger(__name__)


class HealthRunner:
    """aiohttp runner and site pair with ordered cleanup."""

    def __init__(self, runner: web.AppRunner, site: web.TCPSite):
        self.runner = runner
        self.site = site

    async def cleanup(self):
        """Clean up both site and runner."""
        try:
            await self.site.stop()
        except Exception as e:
            logger.warning(f"Site stop error (non-critical): {e}")

        try:
            await self.runner.cleanup()
        except Exception as e:
            logger.warning(f"Runner cleanup error (non-critical): {e}")


async def start_web_app(app: web.Application, port: int, host: str | None = None) -> HealthRunner:
    """Serve an aiohttp application and return its runner."""
    # Access logging off; health polling would otherwise log every request
    runner = web.AppRunner(app, access_log=None)
    await runner.setup()

    if host is None:
        host = "0.0.0.0"

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"HTTP endpoint available at http://{host}:{port}")
    return HealthRunner(runner, site)


def build_health_payload(
    service_name: str, start_time: float, status_provider: Callable[[], dict[str, Any]] | None = None
) -> dict[str, Any]:
    """Assemble the JSON body returned by every /health endpoint."""
    health_data = {
        "status": "healthy",
        "service": service_name,
        "timestamp": int(time.time()),
        "uptime_seconds": int(time.monotonic() - start_time),
    }

    if status_provider:
        try:
            health_data.update(status_provider())
        except Exception as e:
            logger.error(f"Failed to collect health details: {e}")
            health_data["status"] = "degraded"
            health_data["error"] = str(e)

    return health_data


async def create_basic_health_app(
    port: int,
    service_name: str,
    host: str | None = None,
    status_provider: Callable[[], dict[str, Any]] | None = None,
) -> HealthRunner:
    """Create basic health check web app with proper cleanup."""

    async def health_check(request):
        return web.json_response(build_health_payload(service_name, request.app["start_time"], status_provider))

    app = web.Application()
    app["start_time"] = time.monotonic()
    app.router.add_get("/health", health_check)

    return await start_web_app(app, port, host)
