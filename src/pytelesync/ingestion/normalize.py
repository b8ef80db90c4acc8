"""Normalization helpers.

Centralizes lenient parsing of feed payloads.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from pytelesync.models.reading import SensorReading


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def normalize_timestamp_seconds(value: Any) -> float | None:
    """Normalize feed timestamps to epoch seconds.

    - Empty/missing -> None
    - <= 0 -> None
    - Milliseconds (> 1e11) -> seconds
    """

    ts = safe_float(value)
    if ts is None or ts <= 0:
        return None
    if ts > 1e11:
        ts /= 1000.0
    return ts


def _field_aliases() -> dict[str, str]:
    aliases = {"time": "timestamp"}
    for name, info in SensorReading.model_fields.items():
        if info.alias and info.alias != name:
            aliases[info.alias] = name
    return aliases


_KEY_ALIASES: dict[str, str] = _field_aliases()


def normalize_keys(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of *payload* keyed by reading field names.

    camelCase aliases of declared fields (``batteryLevel``) and ``time``
    are renamed; unknown keys are kept as they are.
    """
    normalized: dict[str, Any] = {}
    for key, value in payload.items():
        name = _KEY_ALIASES.get(str(key), str(key))
        normalized[name] = value
    if "timestamp" in normalized:
        ts = normalize_timestamp_seconds(normalized["timestamp"])
        if ts is None:
            normalized.pop("timestamp")
        else:
            normalized["timestamp"] = ts
    return normalized
