from __future__ import annotations

import asyncio

import pytest

from pytelesync.audit import AuditLog
from pytelesync.auth import (
    AccessGate,
    EmailDomainRoleResolver,
    IdentitySession,
    StaticRoleResolver,
    is_authorized,
    role_rank,
)
from pytelesync.exceptions import AuthorizationFault
from pytelesync.models.audit import AuditEvent, AuditStatus
from pytelesync.models.identity import Identity, Role

_ROLES: list[Role | None] = [None, Role.VIEWER, Role.EDITOR, Role.ADMIN]


@pytest.mark.parametrize("current", _ROLES)
@pytest.mark.parametrize("required", _ROLES)
def test_role_matrix(current: Role | None, required: Role | None) -> None:
    expected = required is None or (current is not None and role_rank(current) >= role_rank(required))

    assert is_authorized(current, required) is expected


def test_role_matrix_spot_checks() -> None:
    assert is_authorized(None, None) is True
    assert is_authorized(None, Role.VIEWER) is False
    assert is_authorized(Role.VIEWER, Role.EDITOR) is False
    assert is_authorized(Role.EDITOR, Role.EDITOR) is True
    assert is_authorized(Role.ADMIN, Role.EDITOR) is True
    assert is_authorized(Role.EDITOR, Role.ADMIN) is False


def test_role_order() -> None:
    assert [role_rank(role) for role in _ROLES] == [0, 1, 2, 3]


def test_unknown_roles_are_refused() -> None:
    assert role_rank("superuser") == 0
    assert is_authorized("superuser", Role.VIEWER) is False
    assert is_authorized(Role.ADMIN, "superuser") is False
    assert is_authorized("admin", Role.EDITOR) is True


@pytest.mark.asyncio
async def test_email_domain_resolver() -> None:
    resolver = EmailDomainRoleResolver(admin_emails=["Boss@Fleet.example"], editor_domains=["@fleet.example"])

    assert await resolver.resolve_role(Identity(uid="1", email="boss@fleet.example")) == Role.ADMIN
    assert await resolver.resolve_role(Identity(uid="2", email="mech@fleet.example")) == Role.EDITOR
    assert await resolver.resolve_role(Identity(uid="3", email="guest@other.example")) == Role.VIEWER
    assert await resolver.resolve_role(Identity(uid="4")) == Role.VIEWER


class _CountingResolver:
    def __init__(self, role: Role) -> None:
        self.role = role
        self.calls = 0

    async def resolve_role(self, identity: Identity) -> Role:
        self.calls += 1
        return self.role


class _BlockingResolver:
    def __init__(self) -> None:
        self.gates: dict[str, asyncio.Future[Role]] = {}

    async def resolve_role(self, identity: Identity) -> Role:
        future: asyncio.Future[Role] = asyncio.get_running_loop().create_future()
        self.gates[identity.uid] = future
        return await future


@pytest.mark.asyncio
async def test_session_caches_role_per_identity() -> None:
    resolver = _CountingResolver(Role.EDITOR)
    session = IdentitySession(resolver)
    identity = Identity(uid="u1", email="a@b.example")

    assert await session.set_identity(identity) == Role.EDITOR
    assert await session.set_identity(identity) == Role.EDITOR

    assert resolver.calls == 1
    assert session.current_role() == Role.EDITOR


@pytest.mark.asyncio
async def test_session_sign_out_clears_role() -> None:
    session = IdentitySession(StaticRoleResolver(Role.ADMIN))
    await session.set_identity(Identity(uid="u1"))

    assert await session.set_identity(None) is None

    assert session.identity is None
    assert session.current_role() is None


@pytest.mark.asyncio
async def test_role_is_none_while_resolving() -> None:
    resolver = _BlockingResolver()
    session = IdentitySession(resolver)

    task = asyncio.create_task(session.set_identity(Identity(uid="u1")))
    await asyncio.sleep(0)

    assert session.is_resolving is True
    assert session.current_role() is None

    resolver.gates["u1"].set_result(Role.ADMIN)
    assert await task == Role.ADMIN
    assert session.is_resolving is False


@pytest.mark.asyncio
async def test_superseded_resolution_is_discarded() -> None:
    resolver = _BlockingResolver()
    session = IdentitySession(resolver)

    first = asyncio.create_task(session.set_identity(Identity(uid="old")))
    await asyncio.sleep(0)
    second = asyncio.create_task(session.set_identity(Identity(uid="new")))
    await asyncio.sleep(0)

    resolver.gates["new"].set_result(Role.VIEWER)
    await second
    resolver.gates["old"].set_result(Role.ADMIN)
    await first

    assert session.identity == Identity(uid="new")
    assert session.current_role() == Role.VIEWER


def test_gate_require_refuses_with_reason_and_audits() -> None:
    audit = AuditLog()
    gate = AccessGate(lambda: Role.VIEWER, audit=audit)

    with pytest.raises(AuthorizationFault) as exc_info:
        gate.require(Role.EDITOR, action="toggle simulation")

    fault = exc_info.value
    assert fault.action == "toggle simulation"
    assert fault.required_role == Role.EDITOR
    assert fault.current_role == Role.VIEWER
    assert "editor" in str(fault)
    entry = audit.entries()[0]
    assert entry.event == AuditEvent.AUTHORIZATION
    assert entry.status == AuditStatus.FAILURE


def test_gate_require_allows_and_audits() -> None:
    audit = AuditLog()
    gate = AccessGate(lambda: Role.ADMIN, audit=audit)

    gate.require(Role.EDITOR, action="inject reading")

    assert gate.is_allowed(Role.ADMIN) is True
    assert audit.entries()[0].status == AuditStatus.SUCCESS


@pytest.mark.asyncio
async def test_gate_for_session_follows_identity() -> None:
    session = IdentitySession(StaticRoleResolver(Role.EDITOR))
    gate = AccessGate.for_session(session)

    assert gate.current_role is None
    assert gate.is_allowed(Role.VIEWER) is False

    await session.set_identity(Identity(uid="u1"))

    assert gate.is_allowed(Role.EDITOR) is True
