"""Custom exception hierarchy for pytelesync."""

from __future__ import annotations

from typing import Any


class TelesyncError(Exception):
    """Base exception for all pytelesync errors."""


class TelesyncConfigError(TelesyncError):
    """Invalid or missing configuration."""


class InvalidTransitionError(TelesyncError):
    """A connection status change not permitted by the state machine."""

    def __init__(self, message: str, *, current: Any = None, target: Any = None) -> None:
        self.current = current
        self.target = target
        super().__init__(message)


class TelemetryFault(TelesyncError):
    """Base for the fault taxonomy reported by the telemetry store."""


class ValidationFault(TelemetryFault):
    """A malformed reading was dropped before publication.

    Never raised out of the store; recorded in the fault counters only.
    """

    def __init__(self, message: str, *, payload: Any = None) -> None:
        self.payload = payload
        super().__init__(message)


class LivenessFault(TelemetryFault):
    """The live source produced no reading within the liveness window."""

    def __init__(self, message: str, *, timeout: float = 0.0) -> None:
        self.timeout = timeout
        super().__init__(message)


class SourceFault(TelemetryFault):
    """The active source reported a failure (disconnect, transport error)."""

    def __init__(self, message: str, *, source: str = "") -> None:
        self.source = source
        super().__init__(message)


class AuthorizationFault(TelemetryFault):
    """A role-gated action was refused.

    Unlike the other faults this one is raised to the caller: the action
    was not applied and must be re-requested with sufficient privilege.
    """

    def __init__(
        self,
        message: str,
        *,
        action: str = "",
        required_role: Any = None,
        current_role: Any = None,
    ) -> None:
        self.action = action
        self.required_role = required_role
        self.current_role = current_role
        super().__init__(message)
