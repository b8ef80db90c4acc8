"""Composition root.

Wires the audit log, identity session, access gate, simulation
controller, sources and store from one :class:`TelesyncConfig`. Nothing
in the package reaches for a global; everything is built here and
passed explicitly.
"""

from __future__ import annotations

import logging
from typing import Any

from pytelesync.audit import AuditLog
from pytelesync.auth import AccessGate, IdentitySession, RoleResolver, StaticRoleResolver
from pytelesync.config import TelesyncConfig
from pytelesync.models.identity import Identity, Role
from pytelesync.simulation import SimulationController
from pytelesync.sources.base import InjectableSource, TelemetrySource
from pytelesync.sources.factory import build_live_source, build_simulator_source
from pytelesync.state.store import TelemetryStore
from pytelesync.units import Quantity, UnitSystem, convert, label_for

_logger = logging.getLogger(__name__)


class TelemetryRuntime:
    """Async entry point owning the telemetry components.

    Usage::

        async with TelemetryRuntime(TelesyncConfig.from_env()) as runtime:
            await runtime.sign_in(Identity(uid="u1", email="ops@example.com"))
            runtime.store.subscribe(print)
            runtime.controller.toggle()

    Entering the context starts the store on the running loop; leaving it
    detaches the active source and releases the controller listener.
    """

    def __init__(
        self,
        config: TelesyncConfig | None = None,
        *,
        resolver: RoleResolver | None = None,
        live_source: TelemetrySource | None = None,
        simulator_source: InjectableSource | None = None,
    ) -> None:
        self._config = config or TelesyncConfig.from_env()
        self._unit_system = UnitSystem(self._config.unit_system)
        self.audit = AuditLog(self._config.audit_capacity)
        self.session = IdentitySession(resolver or StaticRoleResolver(Role.VIEWER))
        self.gate = AccessGate.for_session(self.session, audit=self.audit)
        self.controller = SimulationController.from_config(self._config, self.gate, audit=self.audit)
        self.store = TelemetryStore(
            self.controller,
            live_source=live_source or build_live_source(self._config),
            simulator_source=simulator_source or build_simulator_source(self._config),
            gate=self.gate,
            audit=self.audit,
            liveness_timeout=self._config.liveness_timeout,
            reconnect_delay=self._config.reconnect_delay,
        )

    @property
    def config(self) -> TelesyncConfig:
        return self._config

    @property
    def unit_system(self) -> UnitSystem:
        return self._unit_system

    @unit_system.setter
    def unit_system(self, value: UnitSystem | str) -> None:
        self._unit_system = UnitSystem(value)

    async def __aenter__(self) -> TelemetryRuntime:
        _logger.debug(
            "Telemetry runtime starting build_mode=%s simulating=%s",
            self._config.build_mode,
            self.controller.is_simulating(),
        )
        self.store.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.store.close()
        _logger.debug("Telemetry runtime stopped")

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    async def sign_in(self, identity: Identity) -> Role | None:
        """Bind *identity* and resolve its role."""
        return await self.session.set_identity(identity)

    async def sign_out(self) -> None:
        await self.session.set_identity(None)

    # ------------------------------------------------------------------
    # Display helpers
    # ------------------------------------------------------------------

    def display_value(self, value: float, quantity: Quantity | str) -> float:
        """Convert a metric sensor value to the selected display units."""
        return convert(quantity, value, self._unit_system)

    def display_label(self, quantity: Quantity | str) -> str:
        return label_for(quantity, self._unit_system)
