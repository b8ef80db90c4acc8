from __future__ import annotations

import asyncio
import json
from typing import Any

import aiohttp
import pytest

from pytelesync.config import HttpFeedSettings, MqttFeedSettings, TelesyncConfig
from pytelesync.exceptions import SourceFault
from pytelesync.models.reading import SourceKind
from pytelesync.sources.factory import build_live_source, build_simulator_source
from pytelesync.sources.http import HttpPollingLiveSource
from pytelesync.sources.mqtt import MqttLiveSource

_FULL = {"speed": 20.0, "rpm": 1500.0, "batteryLevel": 0.6, "latitude": 1.0, "longitude": 2.0}

# ------------------------------------------------------------------
# MQTT
# ------------------------------------------------------------------


class _Reason:
    def __init__(self, value: int) -> None:
        self.value = value

    def __str__(self) -> str:
        return "Success" if self.value == 0 else "Not authorized"


class _Message:
    def __init__(self, payload: Any, topic: str = "vehicle/telemetry") -> None:
        self.topic = topic
        self.payload = payload if isinstance(payload, bytes) else json.dumps(payload).encode()


class _FakeMqttClient:
    def __init__(self) -> None:
        self.connect_args: tuple[str, int, int] | None = None
        self.subscriptions: list[str] = []
        self.loop_running = False
        self.disconnected = False
        self.on_connect: Any = None
        self.on_connect_fail: Any = None
        self.on_message: Any = None
        self.on_disconnect: Any = None

    def connect_async(self, host: str, port: int, keepalive: int = 60) -> None:
        self.connect_args = (host, port, keepalive)

    def loop_start(self) -> None:
        self.loop_running = True

    def loop_stop(self) -> None:
        self.loop_running = False

    def disconnect(self) -> None:
        self.disconnected = True

    def subscribe(self, topic: str, qos: int = 0) -> None:
        self.subscriptions.append(topic)


class _Recorder:
    def __init__(self) -> None:
        self.readings: list[Any] = []
        self.faults: list[SourceFault] = []


def _mqtt_source(settings: MqttFeedSettings | None = None) -> tuple[MqttLiveSource, list[_FakeMqttClient]]:
    clients: list[_FakeMqttClient] = []

    def factory(_settings: MqttFeedSettings) -> Any:
        client = _FakeMqttClient()
        clients.append(client)
        return client

    return MqttLiveSource(settings, client_factory=factory), clients


@pytest.mark.asyncio
async def test_mqtt_connects_subscribes_and_delivers_readings() -> None:
    settings = MqttFeedSettings(host="broker.local", port=1884, topic="car/1", keepalive=30)
    source, clients = _mqtt_source(settings)
    rec = _Recorder()

    source.attach(rec.readings.append, rec.faults.append)
    client = clients[0]
    assert client.connect_args == ("broker.local", 1884, 30)
    assert client.loop_running

    client.on_connect(client, None, None, _Reason(0), None)
    client.on_message(client, None, _Message(_FULL))
    await asyncio.sleep(0)

    assert client.subscriptions == ["car/1"]
    assert len(rec.readings) == 1
    assert rec.readings[0]["battery_level"] == 0.6
    assert rec.faults == []
    assert source.kind == SourceKind.LIVE


@pytest.mark.asyncio
async def test_mqtt_assembles_partial_obd_messages() -> None:
    source, clients = _mqtt_source()
    rec = _Recorder()
    source.attach(rec.readings.append, rec.faults.append)
    client = clients[0]

    client.on_message(client, None, _Message({"batteryLevel": 0.5, "latitude": 3.0, "longitude": 4.0}))
    client.on_message(client, None, _Message({"obd": "41 0D 32"}))
    client.on_message(client, None, _Message({"obd": "41 0C 1A F8"}))
    await asyncio.sleep(0)

    assert len(rec.readings) == 1
    assert rec.readings[0]["speed"] == 50.0
    assert rec.readings[0]["rpm"] == 1726.0


@pytest.mark.asyncio
async def test_mqtt_garbage_payload_is_ignored() -> None:
    source, clients = _mqtt_source()
    rec = _Recorder()
    source.attach(rec.readings.append, rec.faults.append)
    client = clients[0]

    client.on_message(client, None, _Message(b"\x00not-json"))
    await asyncio.sleep(0)

    assert rec.readings == []
    assert rec.faults == []


@pytest.mark.asyncio
async def test_mqtt_connection_problems_are_faults() -> None:
    source, clients = _mqtt_source()
    rec = _Recorder()
    source.attach(rec.readings.append, rec.faults.append)
    client = clients[0]

    client.on_connect(client, None, None, _Reason(5), None)
    client.on_connect_fail(client, None)
    client.on_disconnect(client, None, None, _Reason(7), None)
    await asyncio.sleep(0)

    assert len(rec.faults) == 3
    assert all(fault.source == "live" for fault in rec.faults)
    assert client.subscriptions == []


@pytest.mark.asyncio
async def test_mqtt_detach_stops_client_and_silences_callbacks() -> None:
    source, clients = _mqtt_source()
    rec = _Recorder()
    detach = source.attach(rec.readings.append, rec.faults.append)
    client = clients[0]

    detach()
    client.on_disconnect(client, None, None, _Reason(0), None)
    client.on_message(client, None, _Message(_FULL))
    await asyncio.sleep(0)

    assert client.disconnected
    assert not client.loop_running
    assert source.is_running is False
    assert rec.readings == []
    assert rec.faults == []


@pytest.mark.asyncio
async def test_mqtt_reattach_replaces_client() -> None:
    source, clients = _mqtt_source()
    rec = _Recorder()
    first_detach = source.attach(rec.readings.append, rec.faults.append)
    source.attach(rec.readings.append, rec.faults.append)

    first_detach()

    assert clients[0].disconnected
    assert not clients[1].disconnected
    assert source.is_running


# ------------------------------------------------------------------
# HTTP polling
# ------------------------------------------------------------------


class _FakeResponse:
    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self._body = body

    async def text(self) -> str:
        return self._body

    async def __aenter__(self) -> _FakeResponse:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


class _FakeSession:
    """Replays queued responses; the last one repeats."""

    def __init__(self, *responses: _FakeResponse | Exception) -> None:
        self._responses = list(responses)
        self.urls: list[str] = []

    def get(self, url: str, **_kwargs: Any) -> _FakeResponse:
        self.urls.append(url)
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(item, Exception):
            raise item
        return item


_SETTINGS = HttpFeedSettings(url="http://obd.local/api", poll_interval=0.01, timeout=1.0)


@pytest.mark.asyncio
async def test_http_fetch_decodes_json() -> None:
    source = HttpPollingLiveSource(_SETTINGS)
    session = _FakeSession(_FakeResponse(200, json.dumps(_FULL)))

    payload = await source.fetch(session)  # type: ignore[arg-type]

    assert payload == _FULL
    assert session.urls == ["http://obd.local/api"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        _FakeResponse(503, "unavailable"),
        _FakeResponse(200, "<html>"),
        _FakeResponse(200, "[1]"),
        aiohttp.ClientConnectionError("refused"),
        asyncio.TimeoutError(),
    ],
)
async def test_http_fetch_failures_raise_source_fault(response: _FakeResponse | Exception) -> None:
    source = HttpPollingLiveSource(_SETTINGS)

    with pytest.raises(SourceFault) as exc_info:
        await source.fetch(_FakeSession(response))  # type: ignore[arg-type]

    assert exc_info.value.source == "live"


@pytest.mark.asyncio
async def test_http_polling_reports_outage_once_and_recovers() -> None:
    session = _FakeSession(
        _FakeResponse(200, json.dumps(_FULL)),
        _FakeResponse(500, "boom"),
        _FakeResponse(500, "boom"),
        aiohttp.ClientConnectionError("refused"),
        _FakeResponse(200, json.dumps({**_FULL, "speed": 33.0})),
    )
    source = HttpPollingLiveSource(_SETTINGS, session=session)  # type: ignore[arg-type]
    rec = _Recorder()

    detach = source.attach(rec.readings.append, rec.faults.append)
    await asyncio.sleep(0.15)
    detach()
    await asyncio.sleep(0)

    assert len(rec.faults) == 1
    assert rec.readings[0]["speed"] == 20.0
    assert rec.readings[-1]["speed"] == 33.0
    assert source.is_running is False


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------


def test_factory_selects_transport() -> None:
    assert isinstance(build_live_source(TelesyncConfig(live_transport="mqtt")), MqttLiveSource)
    assert isinstance(build_live_source(TelesyncConfig(live_transport="http")), HttpPollingLiveSource)


def test_factory_builds_seeded_simulator() -> None:
    config = TelesyncConfig(simulator_seed=5, simulator_interval=0.2)

    first = build_simulator_source(config)
    second = build_simulator_source(config)

    assert first.kind == SourceKind.SIMULATOR
    assert first.tick()["rpm"] == second.tick()["rpm"]
