"""Sensor reading model."""

from __future__ import annotations

import math
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import ConfigDict, Field, model_validator

from pytelesync.models._base import TelesyncBaseModel

#: Fields every published reading must carry.
REQUIRED_FIELDS: tuple[str, ...] = ("speed", "rpm", "battery_level", "latitude", "longitude")

#: Fields written by the store when a reading is published.
STAMP_FIELDS: frozenset[str] = frozenset({"timestamp", "received_at", "sequence", "source"})


class SourceKind(StrEnum):
    LIVE = "live"
    SIMULATOR = "simulator"


class SensorReading(TelesyncBaseModel):
    """One immutable snapshot of vehicle telemetry.

    Produced by a source adapter (live feed or simulator) and stamped by
    the store on publish. A new reading replaces the previous one as a
    whole; there are no partial updates at this level.

    Parameters
    ----------
    speed : float
        Vehicle speed in km/h.
    rpm : float
        Engine rotation rate.
    battery_level : float
        Battery charge as a fraction in ``[0, 1]``.
    latitude : float
        Latitude in degrees.
    longitude : float
        Longitude in degrees.
    timestamp : float or None
        Epoch seconds the reading was taken. Filled in by the store
        when the source does not provide one.
    received_at : datetime or None
        UTC time the store accepted the reading.
    sequence : int
        Store publish counter, ``0`` until published.
    source : SourceKind or None
        Origin of the reading.

    Any other sensor value is accepted as an extra field; numeric
    extras must be finite like the declared fields.
    """

    model_config = ConfigDict(extra="allow")

    speed: float = Field(..., ge=0)
    rpm: float = Field(..., ge=0)
    battery_level: float = Field(..., ge=0, le=1)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    gear: int | None = None
    fuel_used: float | None = None
    inlet_air_temp: float | None = None
    battery_voltage: float | None = None
    engine_temp: float | None = None
    fuel_temp: float | None = None
    turbo_boost: float | None = None
    fuel_pressure: float | None = None
    oil_pressure: float | None = None
    short_term_fuel_trim: float | None = None
    long_term_fuel_trim: float | None = None
    o2_sensor_voltage: float | None = None
    engine_load: float | None = None
    distance: float | None = None
    longitudinal_g_force: float | None = None
    lateral_g_force: float | None = None

    timestamp: float | None = None
    received_at: datetime | None = None
    sequence: int = 0
    source: SourceKind | None = None

    @model_validator(mode="after")
    def _check_extra_values_finite(self) -> SensorReading:
        for key, value in (self.model_extra or {}).items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            if not math.isfinite(value):
                raise ValueError(f"sensor field {key!r} is not finite")
        return self

    def sensor_values(self) -> dict[str, Any]:
        """Sensor fields only (declared and extra), without store stamps."""
        values = self.model_dump(exclude=set(STAMP_FIELDS), exclude_none=True)
        return values
