"""Source adapter interface.

A source produces readings for the store. The store attaches exactly one
source at a time and tears it down (by calling the returned detach
callable) before attaching another.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol

from pytelesync.exceptions import SourceFault
from pytelesync.models.reading import SensorReading, SourceKind

ReadingCallback = Callable[[SensorReading | Mapping[str, Any]], None]
FaultCallback = Callable[[SourceFault], None]
Detach = Callable[[], None]


class TelemetrySource(Protocol):
    """Structural interface for live and simulated sources.

    ``attach`` must not block. Readings and faults are delivered on the
    event loop thread; adapters backed by a worker thread hand them over
    with ``loop.call_soon_threadsafe``.
    """

    @property
    def kind(self) -> SourceKind:
        ...

    def attach(self, on_reading: ReadingCallback, on_fault: FaultCallback) -> Detach:
        ...


class InjectableSource(TelemetrySource, Protocol):
    """A source that accepts operator-supplied values (the simulator)."""

    def inject(self, values: Mapping[str, Any]) -> None:
        ...
