"""Assemble complete readings from partial live updates.

Live feeds (an OBD-II adapter in particular) report one or a few values
per message. The store only accepts complete readings, so adapters keep
an assembler that merges partial patches onto the last known values and
emits a full payload once every required field has been seen.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from typing import Any

from pytelesync.ingestion.normalize import normalize_keys, safe_float
from pytelesync.ingestion.obd import parse_obd_response
from pytelesync.models.reading import REQUIRED_FIELDS, STAMP_FIELDS

_GRAVITY = 9.81


class ReadingAssembler:
    """Merge partial patches into full reading payloads.

    Also derives ``distance`` (km) and ``longitudinal_g_force`` from
    consecutive speed samples.
    """

    def __init__(self, *, defaults: Mapping[str, Any] | None = None, clock: Callable[[], float] = time.time) -> None:
        self._values: dict[str, Any] = normalize_keys(defaults or {})
        self._clock = clock
        # Distance integrates across every patch; g-force only across speed samples.
        self._last_patch_ts: float | None = None
        self._last_speed_ts: float | None = None
        self._last_speed: float | None = None

    @property
    def is_complete(self) -> bool:
        return all(name in self._values for name in REQUIRED_FIELDS)

    def missing_fields(self) -> list[str]:
        return [name for name in REQUIRED_FIELDS if name not in self._values]

    def update(self, patch: Mapping[str, Any]) -> dict[str, Any] | None:
        """Merge *patch*; return a full payload or ``None`` if still incomplete."""
        normalized = normalize_keys(patch)
        ts = normalized.pop("timestamp", None)
        now = ts if ts is not None else self._clock()
        for name in STAMP_FIELDS:
            normalized.pop(name, None)
        self._values.update(normalized)
        self._derive(now, speed_sample="speed" in normalized)

        if not self.is_complete:
            return None
        return {**self._values, "timestamp": now}

    def update_from_obd(self, response: str) -> dict[str, Any] | None:
        patch = parse_obd_response(response)
        if patch is None:
            return None
        return self.update(patch)

    def _derive(self, now: float, *, speed_sample: bool) -> None:
        speed = safe_float(self._values.get("speed"))
        if speed is None:
            return
        last_patch_ts = self._last_patch_ts
        if last_patch_ts is None or now > last_patch_ts:
            self._last_patch_ts = now
            if last_patch_ts is not None:
                distance = safe_float(self._values.get("distance")) or 0.0
                self._values["distance"] = distance + speed * (now - last_patch_ts) / 3600.0

        if not speed_sample:
            return
        last_ts, last_speed = self._last_speed_ts, self._last_speed
        self._last_speed_ts, self._last_speed = now, speed
        if last_ts is None or last_speed is None:
            return
        dt = now - last_ts
        if dt <= 0:
            return
        accel = (speed - last_speed) / 3.6 / dt
        self._values["longitudinal_g_force"] = accel / _GRAVITY
