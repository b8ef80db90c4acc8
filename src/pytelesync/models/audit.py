"""Audit trail entry model."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import Field

from pytelesync.models._base import TelesyncBaseModel


class AuditEvent(StrEnum):
    DATA_SYNC = "data_sync"
    AUTHORIZATION = "authorization"
    SIMULATION = "simulation"


class AuditStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"


class AuditEntry(TelesyncBaseModel):
    event: AuditEvent
    description: str
    status: AuditStatus = AuditStatus.SUCCESS
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
