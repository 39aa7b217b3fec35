"""Command line entry point: ``pypedal`` / ``python -m pypedal``.

Usage
-----
::

    pypedal                      # auto-detect a pedal board, else simulate
    pypedal --port /dev/ttyUSB0  # use this port
    pypedal --select-port        # choose interactively (0 = simulation)
    pypedal --simulate --display # simulation with live terminal bars

Every option can also be set through ``PYPEDAL_*`` environment variables;
command line values win.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
from collections.abc import AsyncIterator, Callable, Sequence
from typing import TextIO

from aiohttp import web

from pypedal.config import PedalConfig
from pypedal.controller import PedalController
from pypedal.exceptions import PedalConfigError
from pypedal.models.pedals import PedalFrame
from pypedal.models.ports import SerialPortInfo
from pypedal.models.telemetry import TelemetrySnapshot
from pypedal.sources.ports import list_serial_ports, rank_ports
from pypedal.web import CONTROLLER_KEY, create_app

_logger = logging.getLogger(__name__)

_DISPLAY_INTERVAL_S = 0.2
_BAR_WIDTH = 20

# ── terminal display ─────────────────────────────────────────


def _bar(percentage: int, width: int = _BAR_WIDTH) -> str:
    filled = max(0, min(width, round(percentage / 100 * width)))
    return "█" * filled + "░" * (width - filled)


def render_display(snapshot: TelemetrySnapshot, frame: PedalFrame | None = None) -> str:
    """One status line: three pedals from the board, or the brake alone."""
    if frame is not None:
        return (
            f"THR [{_bar(frame.throttle.percentage)}] {frame.throttle.percentage:3d}% | "
            f"BRK [{_bar(frame.brake.percentage)}] {frame.brake.percentage:3d}% | "
            f"CLU [{_bar(frame.clutch.percentage)}] {frame.clutch.percentage:3d}% | "
            f"{frame.status.value}"
        )
    state = "ACTIVE" if snapshot.active else "idle"
    return f"BRK [{_bar(snapshot.percentage)}] {snapshot.percentage:3d}% {snapshot.force:5.2f}kg {state}"


async def _display_loop(controller: PedalController, stream: TextIO) -> None:
    while True:
        line = render_display(controller.get_telemetry(), controller.get_pedals())
        stream.write(f"\r{line}\033[K")
        stream.flush()
        await asyncio.sleep(_DISPLAY_INTERVAL_S)


async def _display_context(app: web.Application) -> AsyncIterator[None]:
    task = asyncio.create_task(_display_loop(app[CONTROLLER_KEY], sys.stdout), name="pypedal-display")
    yield
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


# ── port selection ───────────────────────────────────────────


def select_port_interactively(
    ports: Sequence[SerialPortInfo],
    *,
    input_fn: Callable[[str], str] = input,
    output: TextIO = sys.stdout,
) -> str | None:
    """Numbered menu of *ports*; returns the chosen path or ``None`` for simulation.

    Invalid answers fall back to simulation rather than asking again.
    """
    if not ports:
        print("No serial ports found; running simulation.", file=output)
        return None

    ranked = rank_ports(ports)
    print("Serial ports (* = likely pedal board):", file=output)
    for index, port in enumerate(ranked, start=1):
        marker = "*" if port.is_target_like else " "
        print(f"{marker} {index}. {port.path}", file=output)
        print(f"     manufacturer: {port.manufacturer or 'unknown'}", file=output)
        print(f"     vendor id: {port.vendor_id or 'n/a'} | product id: {port.product_id or 'n/a'}", file=output)
    print("  0. Simulation (no pedal board)", file=output)

    try:
        answer = input_fn(f"Select a port [0-{len(ranked)}]: ").strip()
    except EOFError:
        answer = ""
    try:
        choice = int(answer)
    except ValueError:
        choice = -1
    if choice == 0:
        print("Simulation selected.", file=output)
        return None
    if 1 <= choice <= len(ranked):
        selected = ranked[choice - 1].path
        print(f"Selected {selected}.", file=output)
        return selected
    print("Invalid selection; running simulation.", file=output)
    return None


# ── entry point ──────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pypedal", description="Brake pedal telemetry service")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--port", help="Serial port of the pedal board (default: auto-detect)")
    source.add_argument("--select-port", action="store_true", help="Choose the serial port interactively")
    source.add_argument("--simulate", action="store_true", help="Skip the pedal board and run the simulation")
    parser.add_argument("--baud", type=int, help="Serial baud rate (default: 9600)")
    parser.add_argument("--host", help="HTTP bind address (default: 0.0.0.0)")
    parser.add_argument("--port-http", type=int, help="HTTP port (default: 3000)")
    parser.add_argument("--display", action="store_true", help="Show live pedal bars in the terminal")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def config_from_args(args: argparse.Namespace) -> PedalConfig:
    overrides: dict[str, object] = {}
    if args.port:
        overrides["serial_port"] = args.port
    if args.baud is not None:
        overrides["baud_rate"] = args.baud
    if args.host:
        overrides["http_host"] = args.host
    if args.port_http is not None:
        overrides["http_port"] = args.port_http
    if args.simulate:
        overrides.update(serial_port=None, auto_connect=False)
    elif args.select_port:
        overrides.update(serial_port=select_port_interactively(list_serial_ports()), auto_connect=False)
    return PedalConfig.from_env(**overrides)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        config = config_from_args(args)
    except PedalConfigError as exc:
        print(f"pypedal: configuration error: {exc}", file=sys.stderr)
        return 2

    app = create_app(PedalController(config))
    if args.display:
        app.cleanup_ctx.append(_display_context)
    _logger.info("Serving on http://%s:%d/api/brake", config.http_host, config.http_port)
    web.run_app(app, host=config.http_host, port=config.http_port, print=None)
    return 0
