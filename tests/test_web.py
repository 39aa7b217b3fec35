from __future__ import annotations

import json
import random
from typing import Any

import pytest
from aiohttp.test_utils import TestClient, TestServer
from conftest import BRAKING_LINE, FakeOpener, wait_until

from pypedal.config import PedalConfig
from pypedal.controller import PedalController
from pypedal.sources.simulator import SimulatedGenerator
from pypedal.web import create_app


def _controller(opener: FakeOpener, **config: Any) -> PedalController:
    config.setdefault("auto_connect", False)
    config.setdefault("stream_interval", 0.01)
    return PedalController(
        PedalConfig(**config),
        simulator=SimulatedGenerator(interval=60.0, noise=0.0, rng=random.Random(0)),
        opener=opener,
        port_enumerator=lambda: [],
    )


def _client(controller: PedalController) -> TestClient:
    return TestClient(TestServer(create_app(controller)))


@pytest.mark.asyncio
async def test_get_telemetry_envelope(opener: FakeOpener) -> None:
    async with _client(_controller(opener)) as client:
        resp = await client.get("/api/brake")
        body = await resp.json()

    assert resp.status == 200
    assert body["success"] is True
    assert body["data"]["mode"] == "simulation_active"
    assert body["data"]["isSimulating"] is True
    assert set(body["data"]["brake"]) >= {"rawReading", "force", "value", "percentage", "active", "timestamp"}


@pytest.mark.asyncio
async def test_manual_update_and_full_state(opener: FakeOpener) -> None:
    async with _client(_controller(opener)) as client:
        resp = await client.put("/api/brake/update", json={"rawReading": 3_000_000})
        body = await resp.json()
        full = await (await client.get("/api/brake/full")).json()

    assert resp.status == 200
    assert body["data"]["brake"]["value"] == 409
    assert body["data"]["validation"]["isValid"] is True
    assert full["data"]["snapshot"]["percentage"] == 40
    assert full["data"]["calibration"] == {"maxForce": 5.0, "deadZone": 1.0}


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"rawReading": "abc"}, {}, {"rawReading": 1, "extra": True}, [1, 2]])
async def test_manual_update_rejects_bad_bodies(opener: FakeOpener, payload: Any) -> None:
    async with _client(_controller(opener)) as client:
        resp = await client.put("/api/brake/update", json=payload)
        body = await resp.json()

    assert resp.status == 400
    assert body["success"] is False


@pytest.mark.asyncio
async def test_invalid_json_is_a_bad_request(opener: FakeOpener) -> None:
    async with _client(_controller(opener)) as client:
        resp = await client.put(
            "/api/brake/update", data="{not json", headers={"Content-Type": "application/json"}
        )

    assert resp.status == 400


@pytest.mark.asyncio
async def test_configure_out_of_range_is_rejected(opener: FakeOpener) -> None:
    controller = _controller(opener)
    async with _client(controller) as client:
        resp = await client.put("/api/brake/config", json={"maxForce": 60})
        body = await resp.json()
        ok = await client.put("/api/brake/config", json={"deadZone": 0.5})
        ok_body = await ok.json()

    assert resp.status == 400
    assert body["field"] == "max_force"
    assert ok.status == 200
    assert ok_body["data"]["configuration"] == {"maxForce": 5.0, "deadZone": 0.5}


@pytest.mark.asyncio
async def test_simulation_conflicts_map_to_409(opener: FakeOpener) -> None:
    async with _client(_controller(opener)) as client:
        started = await client.post("/api/brake/simulation/start")
        stopped = await client.post("/api/brake/simulation/stop")
        stopped_again = await client.post("/api/brake/simulation/stop")

    assert started.status == 409
    assert stopped.status == 200
    assert (await stopped.json())["data"]["isSimulating"] is False
    assert stopped_again.status == 409


@pytest.mark.asyncio
async def test_connect_failure_maps_to_502_and_keeps_simulating(opener: FakeOpener) -> None:
    opener.failing = True
    controller = _controller(opener)
    async with _client(controller) as client:
        resp = await client.post("/api/brake/connect", json={"port": "/dev/ttyUSB7"})
        body = await resp.json()

        assert controller.is_simulating is True

    assert resp.status == 502
    assert body["port"] == "/dev/ttyUSB7"


@pytest.mark.asyncio
async def test_connect_then_pedals_then_disconnect(opener: FakeOpener) -> None:
    controller = _controller(opener)
    async with _client(controller) as client:
        no_pedals = await client.get("/api/brake/pedals")
        connected = await client.post("/api/brake/connect", json={"port": "/dev/ttyACM0", "baudRate": 115200})
        opener.last_link.feed(BRAKING_LINE)
        await wait_until(lambda: controller.get_pedals() is not None)
        pedals = await (await client.get("/api/brake/pedals")).json()
        manual = await client.put("/api/brake/update", json={"rawReading": 1})
        disconnected = await (await client.post("/api/brake/disconnect")).json()

    assert no_pedals.status == 409
    assert connected.status == 200
    assert (await connected.json())["data"]["baudRate"] == 115200
    assert pedals["data"]["status"] == "FRENANDO"
    assert pedals["data"]["brake"] == {"value": 512, "percentage": 50, "active": True}
    assert manual.status == 409
    assert disconnected["data"]["closed"] is True
    assert disconnected["data"]["connection"]["simulationRunning"] is True


@pytest.mark.asyncio
async def test_command_route_needs_the_board(opener: FakeOpener) -> None:
    controller = _controller(opener)
    async with _client(controller) as client:
        simulated = await client.post("/api/brake/command", json={"command": "TARE"})
        await client.post("/api/brake/connect", json={"port": "/dev/ttyACM0"})
        opener.last_link.feed("HX711 tare complete")
        sent = await client.post("/api/brake/command", json={"command": "TARE"})
        blank = await client.post("/api/brake/command", json={"command": "   "})
        await wait_until(lambda: controller.hardware.lines_received == 1)
        connection = await (await client.get("/api/brake/connection")).json()

    assert simulated.status == 409
    assert sent.status == 200
    assert (await sent.json())["data"] == {"command": "TARE", "port": "/dev/ttyACM0"}
    assert blank.status == 400
    assert opener.last_link.written == [b"TARE\n"]
    assert connection["data"]["linesDiscarded"] == 1


@pytest.mark.asyncio
async def test_test_force_and_reset(opener: FakeOpener) -> None:
    async with _client(_controller(opener)) as client:
        applied = await (await client.post("/api/brake/test", json={"force": 2})).json()
        too_big = await client.post("/api/brake/test", json={"force": 51})
        reset = await (await client.post("/api/brake/reset")).json()

    assert applied["data"]["rawReading"] == 3_000_000.0
    assert applied["data"]["brake"]["force"] == pytest.approx(2.0)
    assert too_big.status == 400
    assert reset["data"]["brake"]["active"] is False


@pytest.mark.asyncio
async def test_health_connection_ports_and_info(opener: FakeOpener) -> None:
    async with _client(_controller(opener)) as client:
        health = await (await client.get("/api/brake/health")).json()
        connection = await (await client.get("/api/brake/connection")).json()
        ports = await (await client.get("/api/brake/ports")).json()
        info = await (await client.get("/api/brake/info")).json()

    assert health["data"]["operational"] is True
    assert connection["data"]["dataSource"] == "simulation"
    assert connection["data"]["hardwareConnected"] is False
    assert ports["data"]["total"] == 0
    assert "GET /api/brake/stream" in info["data"]["endpoints"]
    assert "POST /api/brake/test" in info["data"]["endpoints"]


@pytest.mark.asyncio
async def test_stream_sends_server_sent_events(opener: FakeOpener) -> None:
    controller = _controller(opener)
    async with _client(controller) as client:
        resp = await client.get("/api/brake/stream")
        assert resp.headers["Content-Type"].startswith("text/event-stream")

        events = []
        while len(events) < 2:
            line = (await resp.content.readline()).decode().strip()
            if line.startswith("data: "):
                events.append(json.loads(line[len("data: ") :]))
        assert controller.broadcaster.subscriber_count == 1
        resp.close()

        await wait_until(lambda: controller.broadcaster.subscriber_count == 0)

    assert events[0]["isSimulating"] is True
    assert events[0]["mode"] == "simulation_active"
    assert "brake" in events[0]


@pytest.mark.asyncio
async def test_stream_rejects_bad_interval(opener: FakeOpener) -> None:
    async with _client(_controller(opener)) as client:
        resp = await client.get("/api/brake/stream", params={"interval": "fast"})

    assert resp.status == 400
