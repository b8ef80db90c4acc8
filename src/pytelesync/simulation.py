"""Simulation mode controller.

Owns the process-wide live/simulated flag. The initial value is an
explicit configuration input (see :attr:`TelesyncConfig.simulate_by_default`);
afterwards it only changes through an authorized call.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from pytelesync.audit import AuditLog
from pytelesync.auth import AccessGate
from pytelesync.config import TelesyncConfig
from pytelesync.models.audit import AuditEvent
from pytelesync.models.identity import Role

_logger = logging.getLogger(__name__)

ModeListener = Callable[[bool], None]


class SimulationController:
    """Live vs. simulated data selection.

    Mutations require at least ``editor``. A refused call raises
    :class:`~pytelesync.exceptions.AuthorizationFault` and leaves the
    mode unchanged.
    """

    REQUIRED_ROLE: Role = Role.EDITOR

    def __init__(self, gate: AccessGate, *, simulating: bool = True, audit: AuditLog | None = None) -> None:
        self._gate = gate
        self._simulating = bool(simulating)
        self._audit = audit
        self._listeners: list[ModeListener] = []

    @classmethod
    def from_config(
        cls,
        config: TelesyncConfig,
        gate: AccessGate,
        *,
        audit: AuditLog | None = None,
    ) -> SimulationController:
        return cls(gate, simulating=config.simulate_by_default, audit=audit)

    def is_simulating(self) -> bool:
        return self._simulating

    def toggle(self) -> bool:
        """Flip the mode; returns the new value."""
        self._gate.require(self.REQUIRED_ROLE, action="toggle simulation")
        self._apply(not self._simulating)
        return self._simulating

    def set_simulating(self, value: bool) -> None:
        self._gate.require(self.REQUIRED_ROLE, action="set simulation mode")
        self._apply(bool(value))

    def add_listener(self, listener: ModeListener) -> Callable[[], None]:
        """Register *listener* for mode changes; returns a remover."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _apply(self, value: bool) -> None:
        if value == self._simulating:
            return
        self._simulating = value
        mode = "simulated" if value else "live"
        _logger.info("Simulation mode changed: %s", mode)
        if self._audit is not None:
            self._audit.record(AuditEvent.SIMULATION, f"Switched to {mode} data")
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                _logger.error("Simulation mode listener failed", exc_info=True)
