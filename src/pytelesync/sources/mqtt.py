"""Live telemetry over MQTT."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, cast

import paho.mqtt.client as mqtt

from pytelesync.config import MqttFeedSettings
from pytelesync.exceptions import SourceFault
from pytelesync.ingestion.assembler import ReadingAssembler
from pytelesync.ingestion.feed import assemble_feed_payload, decode_feed_payload
from pytelesync.models.reading import SourceKind
from pytelesync.sources.base import Detach, FaultCallback, ReadingCallback

_logger = logging.getLogger(__name__)


def _default_client_factory(settings: MqttFeedSettings) -> mqtt.Client:
    client = mqtt.Client(
        callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
        client_id=settings.client_id,
        protocol=mqtt.MQTTv5,
    )
    client.enable_logger(_logger)
    if settings.username:
        client.username_pw_set(settings.username, settings.password)
    if settings.tls:
        client.tls_set()
    return client


class MqttLiveSource:
    """Threaded paho-mqtt subscriber that delivers readings onto the event loop.

    Messages are decoded and assembled on the paho network thread;
    complete readings and faults are handed to the store with
    ``loop.call_soon_threadsafe``. Each ``attach`` creates a fresh
    client, so callbacks from a detached client are ignored.
    """

    kind = SourceKind.LIVE

    def __init__(
        self,
        settings: MqttFeedSettings | None = None,
        *,
        assembler: ReadingAssembler | None = None,
        client_factory: Callable[[MqttFeedSettings], mqtt.Client] | None = None,
    ) -> None:
        self._settings = settings or MqttFeedSettings()
        self._assembler = assembler or ReadingAssembler()
        self._client_factory = client_factory or _default_client_factory
        self._client: mqtt.Client | None = None

    @property
    def is_running(self) -> bool:
        return self._client is not None

    def attach(self, on_reading: ReadingCallback, on_fault: FaultCallback) -> Detach:
        loop = asyncio.get_running_loop()
        settings = self._settings
        self._stop()
        _logger.debug(
            "MQTT source start requested host=%s port=%s topic=%s client_id=%s",
            settings.host,
            settings.port,
            settings.topic,
            settings.client_id,
        )

        client = self._client_factory(settings)

        def fault(message: str) -> None:
            if self._client is not client:
                return
            loop.call_soon_threadsafe(on_fault, SourceFault(message, source=self.kind.value))

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                _logger.warning("MQTT connect failed: %s", reason_code)
                fault(f"MQTT connect failed: {reason_code}")
                return
            _logger.debug("MQTT connected reason=%s, subscribing topic=%s", reason_code, settings.topic)
            c.subscribe(settings.topic, qos=0)

        def on_connect_fail(_c: mqtt.Client, _userdata: Any) -> None:
            fault(f"MQTT broker {settings.host}:{settings.port} unreachable")

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            if self._client is not client:
                return
            try:
                payload = decode_feed_payload(msg.payload)
                reading = assemble_feed_payload(self._assembler, payload)
            except Exception:
                _logger.debug("MQTT payload parse failure topic=%s", msg.topic, exc_info=True)
                return
            if reading is None:
                _logger.debug("MQTT partial update, missing=%s", self._assembler.missing_fields())
                return
            loop.call_soon_threadsafe(on_reading, reading)

        def on_disconnect(
            _c: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            _logger.debug("MQTT disconnected: %s", reason_code)
            fault(f"MQTT disconnected: {reason_code}")

        client.on_connect = on_connect
        client.on_connect_fail = on_connect_fail
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect_async(settings.host, settings.port, keepalive=settings.keepalive)
        self._client = client
        client.loop_start()
        _logger.debug("MQTT network loop started")

        def detach() -> None:
            if self._client is client:
                self._stop()

        return detach

    def _stop(self) -> None:
        client = self._client
        self._client = None
        if client is None:
            return
        try:
            _logger.debug("MQTT disconnect requested")
            client.disconnect()
        finally:
            client.loop_stop()
            _logger.debug("MQTT network loop stopped")
