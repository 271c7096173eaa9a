"""HTTP API for reading and changing the emote settings at runtime."""

import json
import time

from aiohttp import web

from ..errors import ConfigurationRejected
from ..shared.health import build_health_payload
from ..shared.logger import get_logger
from .ingestor import EventIngestor
from .settings import EmoteSettings

logger = get_logger(__name__)

SETTINGS_KEY = web.AppKey("settings", EmoteSettings)
INGESTOR_KEY = web.AppKey("ingestor", EventIngestor)
START_TIME_KEY = web.AppKey("start_time", float)


async def _read_json(request: web.Request) -> dict:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise web.HTTPBadRequest(
            text=json.dumps({"error": "Request body must be JSON"}), content_type="application/json"
        )
    if not isinstance(body, dict):
        raise web.HTTPBadRequest(
            text=json.dumps({"error": "Request body must be a JSON object"}), content_type="application/json"
        )
    return body


def _rejected(error: ConfigurationRejected) -> web.Response:
    logger.warning("Settings update rejected", field=error.field, value=repr(error.value), reason=error.reason)
    return web.json_response({"error": str(error)}, status=400)


async def get_settings(request: web.Request) -> web.Response:
    """GET /settings: all three settings from one snapshot."""
    return web.json_response(request.app[SETTINGS_KEY].snapshot().to_wire())


async def get_interval(request: web.Request) -> web.Response:
    return web.json_response({"interval": request.app[SETTINGS_KEY].interval})


async def put_interval(request: web.Request) -> web.Response:
    """PUT /settings/interval with ``{"interval": <int>}``. 400 and no change on a bad value."""
    body = await _read_json(request)
    try:
        interval = request.app[SETTINGS_KEY].set_interval(body.get("interval"))
    except ConfigurationRejected as e:
        return _rejected(e)
    return web.json_response({"interval": interval})


async def get_threshold(request: web.Request) -> web.Response:
    return web.json_response({"threshold": request.app[SETTINGS_KEY].threshold})


async def put_threshold(request: web.Request) -> web.Response:
    body = await _read_json(request)
    try:
        threshold = request.app[SETTINGS_KEY].set_threshold(body.get("threshold"))
    except ConfigurationRejected as e:
        return _rejected(e)
    return web.json_response({"threshold": threshold})


async def get_allowed_emotes(request: web.Request) -> web.Response:
    return web.json_response({"allowedEmotes": sorted(request.app[SETTINGS_KEY].allowed_emotes)})


async def put_allowed_emotes(request: web.Request) -> web.Response:
    """PUT /settings/allowed-emotes with ``{"allowedEmotes": [...]}``; replaces the whole list."""
    body = await _read_json(request)
    try:
        allowed = request.app[SETTINGS_KEY].set_allowed_emotes(body.get("allowedEmotes"))
    except ConfigurationRejected as e:
        return _rejected(e)
    return web.json_response({"allowedEmotes": sorted(allowed)})


async def health_check(request: web.Request) -> web.Response:
    """GET /health: uptime plus buffer counters; reports ``stopping`` while ingestion is closed."""
    app = request.app
    ingestor = app.get(INGESTOR_KEY)

    def buffer_status() -> dict:
        if ingestor is None:
            return {}
        status = {"buffer": ingestor.get_stats()}
        if ingestor.closed:
            status["status"] = "stopping"
        return status

    return web.json_response(build_health_payload("aggregator", app[START_TIME_KEY], buffer_status))


def create_settings_app(settings: EmoteSettings, ingestor: EventIngestor | None = None) -> web.Application:
    """Build the settings API application.

    Routes:
        GET /settings
        GET|PUT /settings/interval
        GET|PUT /settings/threshold
        GET|PUT /settings/allowed-emotes
        GET /health
    """
    app = web.Application()
    app[SETTINGS_KEY] = settings
    app[START_TIME_KEY] = time.monotonic()
    if ingestor is not None:
        app[INGESTOR_KEY] = ingestor

    app.router.add_get("/settings", get_settings)
    app.router.add_get("/settings/interval", get_interval)
    app.router.add_put("/settings/interval", put_interval)
    app.router.add_get("/settings/threshold", get_threshold)
    app.router.add_put("/settings/threshold", put_threshold)
    app.router.add_get("/settings/allowed-emotes", get_allowed_emotes)
    app.router.add_put("/settings/allowed-emotes", put_allowed_emotes)
    app.router.add_get("/health", health_check)
    return app
