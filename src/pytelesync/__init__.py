"""pytelesync - Vehicle telemetry state, simulation and role-gated control."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pytelesync")
except PackageNotFoundError:
    __version__ = "0+local"
from pytelesync.audit import AuditLog
from pytelesync.auth import (
    AccessGate,
    EmailDomainRoleResolver,
    IdentitySession,
    RoleResolver,
    StaticRoleResolver,
    is_authorized,
)
from pytelesync.config import HttpFeedSettings, MqttFeedSettings, TelesyncConfig
from pytelesync.exceptions import (
    AuthorizationFault,
    InvalidTransitionError,
    LivenessFault,
    SourceFault,
    TelemetryFault,
    TelesyncConfigError,
    TelesyncError,
    ValidationFault,
)
from pytelesync.models import (
    AuditEntry,
    AuditEvent,
    AuditStatus,
    Identity,
    Role,
    SensorReading,
    SourceKind,
)
from pytelesync.runtime import TelemetryRuntime
from pytelesync.simulation import SimulationController
from pytelesync.sources import SimulatorSource, TelemetrySource, build_live_source
from pytelesync.state.events import ConnectionStatus, EventKind, FaultKind, TelemetryEvent
from pytelesync.state.store import TelemetryStore
from pytelesync.units import Quantity, UnitSystem, convert, convert_back, label_for

__all__ = [
    "AccessGate",
    "AuditEntry",
    "AuditEvent",
    "AuditLog",
    "AuditStatus",
    "AuthorizationFault",
    "ConnectionStatus",
    "EmailDomainRoleResolver",
    "EventKind",
    "FaultKind",
    "HttpFeedSettings",
    "Identity",
    "IdentitySession",
    "InvalidTransitionError",
    "LivenessFault",
    "MqttFeedSettings",
    "Quantity",
    "Role",
    "RoleResolver",
    "SensorReading",
    "SimulationController",
    "SimulatorSource",
    "SourceFault",
    "SourceKind",
    "StaticRoleResolver",
    "TelemetryEvent",
    "TelemetryFault",
    "TelemetryRuntime",
    "TelemetrySource",
    "TelemetryStore",
    "TelesyncConfig",
    "TelesyncConfigError",
    "TelesyncError",
    "UnitSystem",
    "ValidationFault",
    "convert",
    "convert_back",
    "is_authorized",
    "label_for",
]
