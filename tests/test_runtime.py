from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from pytelesync import TelemetryRuntime, TelesyncConfig
from pytelesync.auth import EmailDomainRoleResolver, StaticRoleResolver
from pytelesync.exceptions import AuthorizationFault
from pytelesync.models.audit import AuditEvent
from pytelesync.models.identity import Identity, Role
from pytelesync.models.reading import SourceKind
from pytelesync.state.events import ConnectionStatus
from pytelesync.units import Quantity


class _QuietLiveSource:
    kind = SourceKind.LIVE

    def __init__(self) -> None:
        self.attached = False

    def attach(self, on_reading: Callable[[Any], None], on_fault: Callable[[Any], None]) -> Callable[[], None]:
        self.attached = True

        def detach() -> None:
            self.attached = False

        return detach


def _config(**overrides: Any) -> TelesyncConfig:
    values: dict[str, Any] = {"simulate_on_start": True, "simulator_interval": 0.01, "simulator_seed": 11}
    values.update(overrides)
    return TelesyncConfig(**values)


@pytest.mark.asyncio
async def test_runtime_streams_simulated_readings() -> None:
    live = _QuietLiveSource()
    runtime = TelemetryRuntime(_config(), live_source=live)

    async with runtime:
        assert runtime.store.get_connection_status() == ConnectionStatus.CONNECTED
        await asyncio.sleep(0.05)
        latest = runtime.store.get_latest()

    assert latest is not None
    assert latest.source == SourceKind.SIMULATOR
    assert latest.sequence >= 2
    assert runtime.store.get_connection_status() == ConnectionStatus.DISCONNECTED
    assert live.attached is False


@pytest.mark.asyncio
async def test_runtime_requires_editor_to_switch() -> None:
    live = _QuietLiveSource()
    resolver = EmailDomainRoleResolver(editor_domains=["fleet.example"])

    async with TelemetryRuntime(_config(), resolver=resolver, live_source=live) as runtime:
        with pytest.raises(AuthorizationFault):
            runtime.controller.toggle()

        assert await runtime.sign_in(Identity(uid="v", email="guest@else.example")) == Role.VIEWER
        with pytest.raises(AuthorizationFault):
            runtime.controller.toggle()

        assert await runtime.sign_in(Identity(uid="e", email="mech@fleet.example")) == Role.EDITOR
        runtime.controller.toggle()

        assert live.attached is True
        assert runtime.store.active_source_kind == SourceKind.LIVE
        assert runtime.store.get_connection_status() == ConnectionStatus.CONNECTING

        await runtime.sign_out()
        assert runtime.gate.current_role is None

    events = {entry.event for entry in runtime.audit.entries()}
    assert {AuditEvent.AUTHORIZATION, AuditEvent.SIMULATION, AuditEvent.DATA_SYNC} <= events


@pytest.mark.asyncio
async def test_runtime_inject_while_simulating() -> None:
    runtime = TelemetryRuntime(_config(simulator_interval=10.0), resolver=StaticRoleResolver(Role.EDITOR))

    async with runtime:
        await runtime.sign_in(Identity(uid="ops"))
        runtime.store.inject({"speed": 123.0})
        latest = runtime.store.get_latest()

    assert latest is not None
    assert latest.speed == 123.0


def test_runtime_display_units() -> None:
    runtime = TelemetryRuntime(_config(unit_system="imperial"), live_source=_QuietLiveSource())

    assert runtime.display_value(100.0, Quantity.SPEED) == pytest.approx(62.1371)
    assert runtime.display_label("speed") == "mph"

    runtime.unit_system = "metric"

    assert runtime.display_value(100.0, "speed") == 100.0
    assert runtime.display_label(Quantity.TEMPERATURE) == "°C"


@pytest.mark.asyncio
async def test_rapid_double_toggle_settles_on_final_source() -> None:
    live = _QuietLiveSource()
    runtime = TelemetryRuntime(
        _config(simulate_on_start=False),
        resolver=StaticRoleResolver(Role.ADMIN),
        live_source=live,
    )

    async with runtime:
        await runtime.sign_in(Identity(uid="ops"))
        runtime.controller.toggle()
        runtime.controller.toggle()
        await asyncio.sleep(0.05)

        assert runtime.store.active_source_kind == SourceKind.LIVE
        assert live.attached is True
        assert runtime.store.get_latest() is None
