"""Data models for pytelesync."""

from pytelesync.models._base import TelesyncBaseModel
from pytelesync.models.audit import AuditEntry, AuditEvent, AuditStatus
from pytelesync.models.identity import Identity, Role
from pytelesync.models.reading import REQUIRED_FIELDS, STAMP_FIELDS, SensorReading, SourceKind

__all__ = [
    "REQUIRED_FIELDS",
    "STAMP_FIELDS",
    "AuditEntry",
    "AuditEvent",
    "AuditStatus",
    "Identity",
    "Role",
    "SensorReading",
    "SourceKind",
    "TelesyncBaseModel",
]
