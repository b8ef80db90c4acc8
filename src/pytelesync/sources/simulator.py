"""Synthetic telemetry source.

Drives a small vehicle model through idle / accelerate / cruise / brake
phases, couples speed to rpm through the gearbox, drifts the GPS
position along a slowly turning great circle and periodically raises a
simulated engine fault (low oil pressure, high coolant temperature).
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields
from typing import Any

from pydantic import ValidationError

from pytelesync.exceptions import SourceFault
from pytelesync.ingestion.normalize import normalize_keys
from pytelesync.models.reading import STAMP_FIELDS, SensorReading, SourceKind
from pytelesync.sources.base import Detach, FaultCallback, ReadingCallback

_logger = logging.getLogger(__name__)

RPM_IDLE = 800.0
RPM_MAX = 8000.0
MAX_SPEED = 280.0
GEAR_RATIOS: tuple[float, ...] = (0.0, 3.6, 2.1, 1.4, 1.0, 0.8, 0.6)
EARTH_RADIUS_M = 6_371_000.0

_IDLE, _ACCELERATE, _CRUISE, _BRAKE = range(4)

_INTERNAL_FIELDS = frozenset({"phase", "phase_until", "last_tick", "heading"})


@dataclass
class _VehicleModel:
    rpm: float = RPM_IDLE
    speed: float = 0.0
    gear: int = 1
    fuel_used: float = 19.4
    long_term_fuel_trim: float = 1.5
    distance: float = 0.0
    battery_level: float = 0.85
    latitude: float = -37.88
    longitude: float = 175.55
    heading: float = 0.0
    phase: int = _IDLE
    phase_until: float = 0.0
    last_tick: float | None = None


_MODEL_FIELDS = frozenset(f.name for f in fields(_VehicleModel)) - _INTERNAL_FIELDS


class SimulatorSource:
    """Synthetic reading generator with the source ``attach`` shape.

    ``tick()`` advances the model once and returns a payload; it needs
    no event loop. ``attach()`` runs ticks on the running loop every
    ``interval`` seconds until detached.
    """

    kind = SourceKind.SIMULATOR

    def __init__(
        self,
        *,
        interval: float = 0.1,
        seed: int | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._interval = interval
        self._rng = rng or random.Random(seed)
        self._clock = clock
        self._model = _VehicleModel()
        self._overrides: dict[str, Any] = {}
        self._on_reading: ReadingCallback | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def attach(self, on_reading: ReadingCallback, on_fault: FaultCallback) -> Detach:
        loop = asyncio.get_running_loop()
        self._on_reading = on_reading
        task = loop.create_task(self._run(on_reading, on_fault))
        self._task = task
        _logger.debug("Simulator started interval=%.3fs", self._interval)

        def detach() -> None:
            if self._task is task:
                self._task = None
                self._on_reading = None
            task.cancel()
            _logger.debug("Simulator stopped")

        return detach

    async def _run(self, on_reading: ReadingCallback, on_fault: FaultCallback) -> None:
        try:
            while True:
                on_reading(self.tick())
                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            _logger.debug("Simulator loop failed", exc_info=True)
            on_fault(SourceFault(f"simulator failed: {exc}", source=self.kind.value))

    def inject(self, values: Mapping[str, Any]) -> None:
        """Override model values and emit a reading straight away.

        Known model values (speed, rpm, gear, position, ...) become the
        new starting point for subsequent ticks; other sensor values
        stay pinned until overridden again. Values that would not make
        a valid reading are emitted once (and rejected by the store)
        without being written into the model.
        """
        normalized = normalize_keys(values)
        for name in STAMP_FIELDS | _INTERNAL_FIELDS:
            normalized.pop(name, None)
        model_updates = {name: value for name, value in normalized.items() if name in _MODEL_FIELDS}
        pinned = {name: value for name, value in normalized.items() if name not in _MODEL_FIELDS}

        payload = self._snapshot(self._clock(), fault_active=False)
        payload.update(pinned)
        payload.update(model_updates)
        try:
            SensorReading.model_validate(payload)
        except ValidationError:
            _logger.debug("Injected values rejected: %s", sorted(normalized))
        else:
            for name, value in model_updates.items():
                if name == "gear":
                    value = min(max(int(value), 1), len(GEAR_RATIOS) - 1)
                else:
                    value = float(value)
                setattr(self._model, name, value)
            self._overrides.update(pinned)
            _logger.debug("Simulator values injected: %s", sorted(normalized))

        if self._on_reading is not None:
            self._on_reading(payload)

    def tick(self) -> dict[str, Any]:
        """Advance the model by the time since the previous tick."""
        now = self._clock()
        model = self._model
        dt = 0.0 if model.last_tick is None else max(now - model.last_tick, 0.0)
        model.last_tick = now

        if now > model.phase_until:
            model.phase = (model.phase + self._rng.randint(1, 2)) % 4
            model.phase_until = now + 3.0 + self._rng.random() * 5.0

        previous_speed = model.speed
        self._step_drivetrain()
        if model.speed > 1 and dt > 0:
            self._step_position(dt)

        model.rpm = max(RPM_IDLE, min(model.rpm, RPM_MAX))
        model.speed = max(0.0, min(model.speed, MAX_SPEED))
        if model.speed < 1:
            model.speed = 0.0

        fault_active = math.sin(now / 20.0) > 0.7
        model.fuel_used += (model.rpm / RPM_MAX) * 0.005
        trim_step = 0.01 if fault_active else -0.005
        model.long_term_fuel_trim = min(10.0, model.long_term_fuel_trim + trim_step)
        model.distance += model.speed * dt / 3600.0
        model.battery_level = max(0.05, model.battery_level - 0.0005 * dt * (model.rpm / RPM_MAX))
        longitudinal = ((model.speed - previous_speed) / 3.6 / dt) / 9.81 if dt > 0 else 0.0
        return self._snapshot(now, fault_active=fault_active, longitudinal_g_force=longitudinal)

    def _step_drivetrain(self) -> None:
        model = self._model
        if model.phase == _ACCELERATE:
            if model.rpm > 4500 and model.gear < len(GEAR_RATIOS) - 1:
                model.gear += 1
                model.rpm *= 0.6
            model.rpm += (RPM_MAX / (model.gear * 15)) * (1 - model.rpm / RPM_MAX) + self._rng.random() * 50
        elif model.phase == _CRUISE:
            model.rpm += (2500 - model.rpm) * 0.05
        elif model.phase == _BRAKE:
            if model.rpm < 2000 and model.gear > 1:
                model.gear -= 1
                model.rpm *= 1.2
            model.rpm *= 0.98
        else:
            model.rpm += (RPM_IDLE - model.rpm) * 0.1
            if model.speed < 5:
                model.gear = 1
        model.speed = (model.rpm / (GEAR_RATIOS[model.gear] * 300)) * (1 - 1 / model.gear) * 10

    def _step_position(self, dt: float) -> None:
        model = self._model
        moved_m = (model.speed / 3.6) * dt
        model.heading = (model.heading + 0.5 * dt) % 360
        bearing = math.radians(model.heading)
        lat = math.radians(model.latitude)
        lon = math.radians(model.longitude)
        angular = moved_m / EARTH_RADIUS_M

        new_lat = math.asin(
            math.sin(lat) * math.cos(angular) + math.cos(lat) * math.sin(angular) * math.cos(bearing)
        )
        new_lon = lon + math.atan2(
            math.sin(bearing) * math.sin(angular) * math.cos(lat),
            math.cos(angular) - math.sin(lat) * math.sin(new_lat),
        )
        model.latitude = math.degrees(new_lat)
        # Normalize to [-180, 180).
        model.longitude = (math.degrees(new_lon) + 540.0) % 360.0 - 180.0

    def _snapshot(self, now: float, *, fault_active: bool, longitudinal_g_force: float = 0.0) -> dict[str, Any]:
        model = self._model
        load = model.rpm / RPM_MAX
        payload: dict[str, Any] = {
            "timestamp": now,
            "speed": model.speed,
            "rpm": model.rpm,
            "gear": model.gear if model.speed > 0 else 0,
            "battery_level": model.battery_level,
            "latitude": model.latitude,
            "longitude": model.longitude,
            "fuel_used": model.fuel_used,
            "inlet_air_temp": 25 + (model.speed / MAX_SPEED) * 20,
            "battery_voltage": 13.8 + (0.2 if model.rpm > 1000 else 0.0) - self._rng.random() * 0.1
            - (0.5 if fault_active else 0.0),
            "engine_temp": 90 + load * 15 + (5 if fault_active else 0),
            "fuel_temp": 20 + (model.speed / MAX_SPEED) * 10,
            "turbo_boost": -0.8 + load * 2.8 * (model.gear / 6),
            "fuel_pressure": 3.5 + load * 2,
            "oil_pressure": 1.5 + load * 5.0 - (0.5 if fault_active else 0.0),
            "short_term_fuel_trim": 2.0 + (self._rng.random() - 0.5) * 4 + (5 if fault_active else 0),
            "long_term_fuel_trim": model.long_term_fuel_trim,
            "o2_sensor_voltage": 0.1 + (0.5 + math.sin(now * 2) * 0.4),
            "engine_load": 15 + (model.rpm - RPM_IDLE) / (RPM_MAX - RPM_IDLE) * 85,
            "distance": model.distance,
            "longitudinal_g_force": longitudinal_g_force,
            "lateral_g_force": math.sin(now / 2.5) * (model.speed / 80) * min(1.0, model.rpm / 4000),
            "fault_active": fault_active,
        }
        payload.update(self._overrides)
        return payload
