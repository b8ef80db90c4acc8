from __future__ import annotations

import pytest

from pytelesync.audit import AuditLog
from pytelesync.auth import AccessGate
from pytelesync.config import TelesyncConfig
from pytelesync.exceptions import AuthorizationFault
from pytelesync.models.audit import AuditEvent
from pytelesync.models.identity import Role
from pytelesync.simulation import SimulationController


def _controller(role: Role | None, *, simulating: bool = True, audit: AuditLog | None = None) -> SimulationController:
    return SimulationController(AccessGate(lambda: role), simulating=simulating, audit=audit)


@pytest.mark.parametrize(
    ("build_mode", "explicit", "expected"),
    [
        ("development", None, True),
        ("production", None, False),
        ("PRODUCTION", None, False),
        ("production", True, True),
        ("development", False, False),
    ],
)
def test_initial_mode_from_config(build_mode: str, explicit: bool | None, expected: bool) -> None:
    config = TelesyncConfig(build_mode=build_mode, simulate_on_start=explicit)

    controller = SimulationController.from_config(config, AccessGate(lambda: None))

    assert controller.is_simulating() is expected


def test_toggle_flips_and_notifies() -> None:
    audit = AuditLog()
    controller = _controller(Role.EDITOR, audit=audit)
    seen: list[bool] = []
    controller.add_listener(seen.append)

    assert controller.toggle() is False
    assert controller.toggle() is True

    assert seen == [False, True]
    assert [entry.event for entry in audit.entries()] == [AuditEvent.SIMULATION, AuditEvent.SIMULATION]
    assert audit.entries()[0].description == "Switched to simulated data"


def test_set_same_value_does_not_notify() -> None:
    controller = _controller(Role.ADMIN)
    seen: list[bool] = []
    controller.add_listener(seen.append)

    controller.set_simulating(True)

    assert seen == []


@pytest.mark.parametrize("role", [None, Role.VIEWER])
def test_insufficient_role_is_refused(role: Role | None) -> None:
    controller = _controller(role)
    seen: list[bool] = []
    controller.add_listener(seen.append)

    with pytest.raises(AuthorizationFault):
        controller.toggle()
    with pytest.raises(AuthorizationFault):
        controller.set_simulating(False)

    assert controller.is_simulating() is True
    assert seen == []


def test_removed_listener_is_not_called() -> None:
    controller = _controller(Role.EDITOR)
    seen: list[bool] = []
    remove = controller.add_listener(seen.append)

    remove()
    remove()
    controller.toggle()

    assert seen == []


def test_failing_listener_does_not_block_others() -> None:
    controller = _controller(Role.EDITOR)
    seen: list[bool] = []

    def broken(value: bool) -> None:
        raise RuntimeError("boom")

    controller.add_listener(broken)
    controller.add_listener(seen.append)

    controller.toggle()

    assert seen == [False]
