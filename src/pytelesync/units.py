"""Display unit conversion.

Sensor values are produced in metric units (km/h, km, °C, bar). These
helpers convert them to the selected display unit system and back. All
functions are pure and safe to call from any consumer.
"""

from __future__ import annotations

from enum import StrEnum
from typing import NamedTuple


class UnitSystem(StrEnum):
    METRIC = "metric"
    IMPERIAL = "imperial"


class Quantity(StrEnum):
    SPEED = "speed"
    DISTANCE = "distance"
    TEMPERATURE = "temperature"
    PRESSURE = "pressure"


class _Linear(NamedTuple):
    """``display = metric * scale + offset``"""

    scale: float
    offset: float
    metric_label: str
    imperial_label: str


MPH_PER_KPH = 0.621371
MILES_PER_KM = 0.621371
PSI_PER_BAR = 14.5038

_IMPERIAL: dict[Quantity, _Linear] = {
    Quantity.SPEED: _Linear(MPH_PER_KPH, 0.0, "km/h", "mph"),
    Quantity.DISTANCE: _Linear(MILES_PER_KM, 0.0, "km", "mi"),
    Quantity.TEMPERATURE: _Linear(9.0 / 5.0, 32.0, "°C", "°F"),
    Quantity.PRESSURE: _Linear(PSI_PER_BAR, 0.0, "bar", "psi"),
}


def _system(system: UnitSystem | str) -> UnitSystem:
    try:
        return UnitSystem(system)
    except ValueError:
        raise ValueError(f"Unknown unit system: {system!r}") from None


def _quantity(quantity: Quantity | str) -> Quantity:
    try:
        return Quantity(quantity)
    except ValueError:
        raise ValueError(f"Unknown quantity: {quantity!r}") from None


def convert(quantity: Quantity | str, value: float, system: UnitSystem | str) -> float:
    """Convert a metric *value* of *quantity* to *system*."""
    rule = _IMPERIAL[_quantity(quantity)]
    if _system(system) == UnitSystem.METRIC:
        return value
    return value * rule.scale + rule.offset


def convert_back(quantity: Quantity | str, value: float, system: UnitSystem | str) -> float:
    """Inverse of :func:`convert`: a *system* value back to metric."""
    rule = _IMPERIAL[_quantity(quantity)]
    if _system(system) == UnitSystem.METRIC:
        return value
    return (value - rule.offset) / rule.scale


def label_for(quantity: Quantity | str, system: UnitSystem | str) -> str:
    """Unit suffix for *quantity* displayed in *system*."""
    rule = _IMPERIAL[_quantity(quantity)]
    if _system(system) == UnitSystem.METRIC:
        return rule.metric_label
    return rule.imperial_label


def convert_speed(speed_kph: float, system: UnitSystem | str) -> float:
    return convert(Quantity.SPEED, speed_kph, system)


def convert_distance(distance_km: float, system: UnitSystem | str) -> float:
    return convert(Quantity.DISTANCE, distance_km, system)


def convert_temperature(temp_c: float, system: UnitSystem | str) -> float:
    return convert(Quantity.TEMPERATURE, temp_c, system)


def convert_pressure(pressure_bar: float, system: UnitSystem | str) -> float:
    return convert(Quantity.PRESSURE, pressure_bar, system)
