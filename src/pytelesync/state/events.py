"""Store events and status enums.

Subscribers of the telemetry store receive :class:`TelemetryEvent`
instances. Events are immutable and delivered in publish order.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from pytelesync.models.reading import SensorReading, SourceKind


class ConnectionStatus(StrEnum):
    CONNECTED = "Connected"
    CONNECTING = "Connecting"
    DISCONNECTED = "Disconnected"
    ERROR = "Error"


class EventKind(StrEnum):
    READING = "reading"
    STATUS = "status"


class FaultKind(StrEnum):
    VALIDATION = "validation"
    LIVENESS = "liveness"
    SOURCE = "source"


class TelemetryEvent(BaseModel):
    """One fan-out event: a published reading or a status transition."""

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    sequence: int = Field(..., description="Store event counter, strictly increasing")
    status: ConnectionStatus
    previous_status: ConnectionStatus | None = None
    reading: SensorReading | None = None
    source: SourceKind | None = None
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
