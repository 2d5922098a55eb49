"""aiohttp application exposing health and tool invocation routes."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from aiohttp import web

from core.dispatcher import ToolDispatcher
from core.errors import SpawnError, ToolExecutionError, ToolInputError, UnknownToolError
from utils.constants import SERVICE_NAME, SERVICE_VERSION

logger = logging.getLogger(__name__)

DISPATCHER_KEY = web.AppKey("dispatcher", ToolDispatcher)
STARTED_AT_KEY = web.AppKey("started_at", float)


def _error(status: int, message: str, **extra) -> web.Response:
    payload = {"ok": False, "error": message}
    payload.update(extra)
    return web.json_response(payload, status=status)


async def health_handler(request: web.Request) -> web.Response:
    dispatcher = request.app[DISPATCHER_KEY]
    limiter = dispatcher.executor.limiter
    return web.json_response({
        "ok": True,
        "name": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "ts": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": round(time.time() - request.app[STARTED_AT_KEY], 1),
        "concurrency": {
            "capacity": limiter.capacity,
            "active": limiter.active,
            "waiting": limiter.waiting,
        },
    })


async def list_tools_handler(request: web.Request) -> web.Response:
    return web.json_response({"tools": request.app[DISPATCHER_KEY].list_tools()})


async def call_tool_handler(request: web.Request) -> web.Response:
    name = request.match_info["name"]
    params = {}
    if request.can_read_body:
        try:
            params = await request.json()
        except ValueError:
            return _error(400, "request body is not valid JSON")
        if params is None:
            params = {}
    if not isinstance(params, dict):
        return _error(400, "request body must be a JSON object")

    try:
        response = await request.app[DISPATCHER_KEY].call(name, params)
    except UnknownToolError as e:
        return _error(404, str(e))
    except ToolInputError as e:
        return _error(400, str(e))
    except ToolExecutionError as e:
        return _error(
            502,
            str(e),
            exit_code=e.result.exit_code,
            reboot_required=e.result.reboot_required,
            state=e.result.state.value,
        )
    except SpawnError as e:
        logger.error("Tool %s could not start: %s", name, e)
        return _error(503, str(e))
    return web.json_response(response.to_dict())


def build_app(dispatcher: ToolDispatcher) -> web.Application:
    app = web.Application()
    app[DISPATCHER_KEY] = dispatcher
    app[STARTED_AT_KEY] = time.time()
    app.router.add_get("/health", health_handler)
    app.router.add_get("/tools", list_tools_handler)
    app.router.add_post("/tools/{name}", call_tool_handler)
    return app
