"""ELM327 / OBD-II response parsing.

Mode 01 responses map to partial sensor patches keyed by reading field
names; mode 03 responses decode to SAE J1979 trouble codes.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import Any

_logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

PidParser = Callable[[list[int]], dict[str, Any]]


def _rpm(data: list[int]) -> dict[str, Any]:
    a, b = data[0], data[1]
    return {"rpm": (a * 256 + b) / 4}


def _speed(data: list[int]) -> dict[str, Any]:
    return {"speed": float(data[0])}


def _coolant_temp(data: list[int]) -> dict[str, Any]:
    return {"engine_temp": float(data[0] - 40)}


def _intake_temp(data: list[int]) -> dict[str, Any]:
    return {"inlet_air_temp": float(data[0] - 40)}


def _manifold_pressure(data: list[int]) -> dict[str, Any]:
    # kPa absolute; boost relative to 1 bar atmosphere.
    return {"turbo_boost": data[0] / 100 - 1.0}


def _engine_load(data: list[int]) -> dict[str, Any]:
    return {"engine_load": data[0] * 100 / 255}


def _module_voltage(data: list[int]) -> dict[str, Any]:
    a, b = data[0], data[1]
    return {"battery_voltage": (a * 256 + b) / 1000}


def _fuel_pressure(data: list[int]) -> dict[str, Any]:
    return {"fuel_pressure": data[0] * 3 / 100}


def _fuel_level(data: list[int]) -> dict[str, Any]:
    level = data[0] * 100 / 255
    return {"fuel_used": 100 - level}


def _short_term_trim(data: list[int]) -> dict[str, Any]:
    return {"short_term_fuel_trim": (data[0] - 128) * 100 / 128}


def _long_term_trim(data: list[int]) -> dict[str, Any]:
    return {"long_term_fuel_trim": (data[0] - 128) * 100 / 128}


def _o2_voltage(data: list[int]) -> dict[str, Any]:
    return {"o2_sensor_voltage": data[0] / 200}


PID_PARSERS: dict[str, PidParser] = {
    "04": _engine_load,
    "05": _coolant_temp,
    "06": _short_term_trim,
    "07": _long_term_trim,
    "0A": _fuel_pressure,
    "0B": _manifold_pressure,
    "0C": _rpm,
    "0D": _speed,
    "0F": _intake_temp,
    "14": _o2_voltage,
    "2F": _fuel_level,
    "42": _module_voltage,
}


def _hex_bytes(text: str) -> list[int]:
    return [int(text[i : i + 2], 16) for i in range(0, len(text) - 1, 2)]


def parse_obd_response(response: str) -> dict[str, Any] | None:
    """Decode a mode 01 response (e.g. ``"41 0C 1A F8"``) into a patch.

    Returns ``None`` for ``NO DATA``, non mode-01 replies, unknown PIDs
    and truncated payloads.
    """
    cleaned = _WHITESPACE.sub("", response).upper()
    if "NODATA" in cleaned or not cleaned.startswith("41") or len(cleaned) < 4:
        return None

    pid = cleaned[2:4]
    parser = PID_PARSERS.get(pid)
    if parser is None:
        return None
    try:
        return parser(_hex_bytes(cleaned[4:]))
    except (IndexError, ValueError):
        _logger.debug("Unparseable OBD response pid=%s data=%s", pid, cleaned[4:])
        return None


_DTC_CATEGORIES = ("P", "C", "B", "U")


def parse_dtc_response(response: str) -> list[str]:
    """Decode a mode 03 response into trouble codes (``"P0102"``, ...).

    The byte after the ``43`` header is the code count; pairs of
    ``00 00`` are padding.
    """
    cleaned = _WHITESPACE.sub("", response).upper()
    if not cleaned.startswith("43"):
        return []

    try:
        data = _hex_bytes(cleaned[4:])
    except ValueError:
        return []

    codes: list[str] = []
    for first, second in zip(data[0::2], data[1::2]):
        if first == 0 and second == 0:
            continue
        category = _DTC_CATEGORIES[first >> 6]
        kind = (first >> 4) & 0x03
        codes.append(f"{category}{kind}{first & 0x0F:X}{second:02X}")
    return codes
