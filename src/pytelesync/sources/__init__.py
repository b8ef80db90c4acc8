"""Telemetry sources: the simulator and the live feed adapters."""

from pytelesync.sources.base import InjectableSource, TelemetrySource
from pytelesync.sources.factory import build_live_source, build_simulator_source
from pytelesync.sources.simulator import SimulatorSource

__all__ = [
    "InjectableSource",
    "SimulatorSource",
    "TelemetrySource",
    "build_live_source",
    "build_simulator_source",
]
