"""aiohttp application exposing the controller under ``/api/brake``.

Every JSON response uses one envelope::

    {"success": true, "data": {...}}
    {"success": false, "error": "...", "field": "..."}

Handlers stay thin: validate the body with a request model, call one
controller operation, wrap the result. Errors are mapped to status codes
in :func:`error_middleware`.
"""

from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from aiohttp import web
from pydantic import BaseModel, ValidationError

from pypedal.controller import PedalController
from pypedal.exceptions import PedalConflictError, PedalError, PedalSerialError, PedalValidationError
from pypedal.models.requests import (
    CommandRequest,
    ConfigureRequest,
    ConnectRequest,
    ManualUpdateRequest,
    TestForceRequest,
)
from pypedal.models.state import ControllerMode

_logger = logging.getLogger(__name__)

API_PREFIX = "/api/brake"

CONTROLLER_KEY = web.AppKey("controller", PedalController)

_RequestT = TypeVar("_RequestT", bound=BaseModel)
_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


# ------------------------------------------------------------------
# Envelope helpers
# ------------------------------------------------------------------


def _ok(data: Any, *, message: str | None = None) -> web.Response:
    body: dict[str, Any] = {"success": True, "data": data}
    if message is not None:
        body["message"] = message
    return web.json_response(body)


def _error(status: int, message: str, **extra: Any) -> web.Response:
    body: dict[str, Any] = {"success": False, "error": message}
    body.update({key: value for key, value in extra.items() if value})
    return web.json_response(body, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler: _Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except PedalValidationError as exc:
        return _error(400, str(exc), field=exc.field)
    except ValidationError as exc:
        return _error(
            400,
            "Invalid request body",
            details=exc.errors(include_url=False, include_context=False, include_input=False),
        )
    except PedalConflictError as exc:
        return _error(409, str(exc))
    except PedalSerialError as exc:
        return _error(502, str(exc), port=exc.port)
    except PedalError as exc:
        _logger.warning("Unhandled pypedal error on %s %s: %s", request.method, request.path, exc)
        return _error(500, str(exc))


async def _read_body(request: web.Request, model: type[_RequestT]) -> _RequestT:
    try:
        payload = await request.json()
    except json.JSONDecodeError as exc:
        raise PedalValidationError("Request body must be valid JSON") from exc
    return model.model_validate(payload)


def _controller(request: web.Request) -> PedalController:
    return request.app[CONTROLLER_KEY]


# ------------------------------------------------------------------
# Telemetry
# ------------------------------------------------------------------


async def get_telemetry(request: web.Request) -> web.Response:
    controller = _controller(request)
    return _ok(
        {
            "brake": controller.get_telemetry().to_wire(),
            "mode": controller.mode.value,
            "isSimulating": controller.is_simulating,
        }
    )


async def get_full_state(request: web.Request) -> web.Response:
    return _ok(_controller(request).get_full_state().to_wire())


async def get_pedals(request: web.Request) -> web.Response:
    frame = _controller(request).get_pedals()
    if frame is None:
        raise PedalConflictError("Pedal data is only available while the pedal board is connected")
    return _ok(frame.to_wire())


async def get_health(request: web.Request) -> web.Response:
    return _ok(_controller(request).get_health().to_wire())


async def stream_telemetry(request: web.Request) -> web.StreamResponse:
    """Server-Sent Events: one ``data: <json>`` event per push until the client leaves."""
    interval: float | None = None
    if "interval" in request.query:
        try:
            interval = float(request.query["interval"])
        except ValueError as exc:
            raise PedalValidationError("interval must be a number of seconds", field="interval") from exc
        if not interval > 0:
            raise PedalValidationError("interval must be positive", field="interval")

    response = web.StreamResponse(
        headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "Access-Control-Allow-Origin": "*",
        }
    )
    await response.prepare(request)

    controller = _controller(request)
    async with contextlib.aclosing(controller.subscribe_stream(interval)) as frames:
        try:
            async for frame in frames:
                payload = json.dumps(frame.to_wire(), separators=(",", ":"))
                await response.write(f"data: {payload}\n\n".encode())
        except ConnectionResetError:
            _logger.debug("Stream client disconnected")
    return response


# ------------------------------------------------------------------
# Calibration and manual control
# ------------------------------------------------------------------


async def update_manual(request: web.Request) -> web.Response:
    body = await _read_body(request, ManualUpdateRequest)
    controller = _controller(request)
    snapshot = controller.update_manual(body.raw_reading)
    return _ok(
        {
            "brake": snapshot.to_wire(),
            "validation": controller.get_full_state().validation.to_wire(),
        },
        message="Brake telemetry updated",
    )


async def configure(request: web.Request) -> web.Response:
    body = await _read_body(request, ConfigureRequest)
    controller = _controller(request)
    calibration = controller.configure(max_force=body.max_force, dead_zone=body.dead_zone)
    return _ok(
        {
            "configuration": calibration.to_wire(),
            "validation": controller.get_full_state().validation.to_wire(),
        },
        message="Calibration updated",
    )


async def reset(request: web.Request) -> web.Response:
    snapshot = _controller(request).reset()
    return _ok({"brake": snapshot.to_wire()}, message="Brake telemetry reset")


async def apply_test_force(request: web.Request) -> web.Response:
    body = await _read_body(request, TestForceRequest)
    controller = _controller(request)
    snapshot = controller.apply_test_force(body.force)
    return _ok(
        {"testForce": body.force, "rawReading": snapshot.raw_reading, "brake": snapshot.to_wire()},
        message=f"Test force of {body.force}kg applied",
    )


# ------------------------------------------------------------------
# Sources
# ------------------------------------------------------------------


async def start_simulation(request: web.Request) -> web.Response:
    controller = _controller(request)
    await controller.start_simulation()
    return _ok(
        {"isSimulating": controller.is_simulating, "interval": controller.simulator.interval},
        message="Simulation started",
    )


async def stop_simulation(request: web.Request) -> web.Response:
    controller = _controller(request)
    await controller.stop_simulation()
    return _ok({"isSimulating": controller.is_simulating}, message="Simulation stopped")


async def connect_port(request: web.Request) -> web.Response:
    body = await _read_body(request, ConnectRequest)
    status = await _controller(request).connect_port(body.port, body.baud_rate)
    return _ok(status.to_wire(), message=f"Connected to {body.port}")


async def disconnect(request: web.Request) -> web.Response:
    controller = _controller(request)
    closed = await controller.disconnect()
    message = "Pedal board disconnected, simulation active" if closed else "No active connection"
    return _ok({"closed": closed, "connection": controller.get_connection_status().to_wire()}, message=message)


async def reconnect(request: web.Request) -> web.Response:
    controller = _controller(request)
    mode = await controller.reconnect()
    return _ok({"mode": mode.value, "connection": controller.get_connection_status().to_wire()})


async def send_command(request: web.Request) -> web.Response:
    body = await _read_body(request, CommandRequest)
    controller = _controller(request)
    await controller.send_command(body.command)
    return _ok(
        {"command": body.command, "port": controller.get_connection_status().port},
        message=f"Command {body.command} sent",
    )


async def list_ports(request: web.Request) -> web.Response:
    controller = _controller(request)
    ports = await controller.list_ports()
    connection = controller.get_connection_status()
    return _ok(
        {
            "ports": [port.to_wire() for port in ports],
            "total": len(ports),
            "targetLikePorts": sum(1 for port in ports if port.is_target_like),
            "currentConnection": {"isConnected": connection.hardware_connected, "port": connection.port},
        }
    )


async def get_connection(request: web.Request) -> web.Response:
    controller = _controller(request)
    connection = controller.get_connection_status()
    return _ok(
        {
            **connection.to_wire(),
            "mode": controller.mode.value,
            "dataSource": "hardware" if controller.mode == ControllerMode.HARDWARE_ACTIVE else "simulation",
            "hasPedalData": controller.get_pedals() is not None,
            "lastDataUpdate": controller.get_telemetry().to_wire()["capturedAt"],
        }
    )


async def get_info(request: web.Request) -> web.Response:
    controller = _controller(request)
    hardware = controller.mode == ControllerMode.HARDWARE_ACTIVE
    routes = sorted(
        f"{route.method} {route.resource.canonical}"
        for route in request.app.router.routes()
        if route.resource is not None and route.method != "HEAD"
    )
    return _ok(
        {
            "name": "pypedal",
            "description": "Brake pedal telemetry with pedal-board and simulation sources",
            "mode": controller.mode.value,
            "endpoints": routes,
            "calibration": controller.get_calibration().to_wire(),
            "features": {
                "hardware": hardware,
                "simulation": controller.is_simulating,
                "allPedals": hardware,
                "autoReconnect": controller.config.max_reconnect_attempts > 0,
            },
        }
    )


# ------------------------------------------------------------------
# Application factory
# ------------------------------------------------------------------


def create_app(controller: PedalController, *, manage_lifecycle: bool = True) -> web.Application:
    """Build the application around an existing controller.

    With *manage_lifecycle* the controller is started on app startup and
    closed on cleanup; otherwise the caller owns both.
    """
    app = web.Application(middlewares=[error_middleware])
    app[CONTROLLER_KEY] = controller

    app.router.add_get(f"{API_PREFIX}", get_telemetry)
    app.router.add_get(f"{API_PREFIX}/full", get_full_state)
    app.router.add_get(f"{API_PREFIX}/pedals", get_pedals)
    app.router.add_get(f"{API_PREFIX}/stream", stream_telemetry)
    app.router.add_get(f"{API_PREFIX}/health", get_health)
    app.router.add_get(f"{API_PREFIX}/ports", list_ports)
    app.router.add_get(f"{API_PREFIX}/connection", get_connection)
    app.router.add_get(f"{API_PREFIX}/info", get_info)
    app.router.add_put(f"{API_PREFIX}/update", update_manual)
    app.router.add_put(f"{API_PREFIX}/config", configure)
    app.router.add_post(f"{API_PREFIX}/reset", reset)
    app.router.add_post(f"{API_PREFIX}/simulation/start", start_simulation)
    app.router.add_post(f"{API_PREFIX}/simulation/stop", stop_simulation)
    app.router.add_post(f"{API_PREFIX}/connect", connect_port)
    app.router.add_post(f"{API_PREFIX}/disconnect", disconnect)
    app.router.add_post(f"{API_PREFIX}/reconnect", reconnect)
    app.router.add_post(f"{API_PREFIX}/command", send_command)
    app.router.add_post(f"{API_PREFIX}/test", apply_test_force)

    if manage_lifecycle:

        async def _on_startup(app: web.Application) -> None:
            mode = await app[CONTROLLER_KEY].start()
            _logger.info("Pedal controller started mode=%s", mode)

        async def _on_cleanup(app: web.Application) -> None:
            await app[CONTROLLER_KEY].close()

        app.on_startup.append(_on_startup)
        app.on_cleanup.append(_on_cleanup)

    return app
