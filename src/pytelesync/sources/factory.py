"""Source construction from configuration."""

from __future__ import annotations

import logging

from pytelesync.config import TelesyncConfig
from pytelesync.sources.base import TelemetrySource
from pytelesync.sources.simulator import SimulatorSource

_logger = logging.getLogger(__name__)


def build_live_source(config: TelesyncConfig) -> TelemetrySource:
    """Build the live adapter selected by ``config.live_transport``."""
    if config.live_transport == "http":
        from pytelesync.sources.http import HttpPollingLiveSource

        _logger.debug("Live transport: HTTP polling %s", config.http.url)
        return HttpPollingLiveSource(config.http)

    from pytelesync.sources.mqtt import MqttLiveSource

    _logger.debug("Live transport: MQTT %s:%s", config.mqtt.host, config.mqtt.port)
    return MqttLiveSource(config.mqtt)


def build_simulator_source(config: TelesyncConfig) -> SimulatorSource:
    return SimulatorSource(interval=config.simulator_interval, seed=config.simulator_seed)
