"""Role-based authorization.

:func:`is_authorized` is the single comparison used before any mutating
action on the store or the simulation controller. How an identity maps
to a role is a deployment policy, supplied through a
:class:`RoleResolver`; the gate itself never inspects identity
attributes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Protocol

from pytelesync.audit import AuditLog
from pytelesync.exceptions import AuthorizationFault
from pytelesync.models.audit import AuditEvent, AuditStatus
from pytelesync.models.identity import Identity, Role

_logger = logging.getLogger(__name__)

_ROLE_RANKS: dict[Role, int] = {
    Role.VIEWER: 1,
    Role.EDITOR: 2,
    Role.ADMIN: 3,
}


def role_rank(role: Role | str | None) -> int:
    """Position of *role* in the fixed order; ``0`` for no or an unknown role."""
    if role is None:
        return 0
    try:
        return _ROLE_RANKS[Role(role)]
    except ValueError:
        _logger.warning("Unknown role %r ranks as no role", role)
        return 0


def is_authorized(current_role: Role | str | None, required_role: Role | str | None) -> bool:
    """Return ``True`` when *current_role* satisfies *required_role*.

    No requirement is always satisfied. An unauthenticated caller
    (``None``) or an unknown role fails every concrete requirement, and
    an unknown requirement is never satisfied.
    """
    if required_role is None:
        return True
    required_rank = role_rank(required_role)
    if required_rank == 0:
        return False
    return role_rank(current_role) >= required_rank


class RoleResolver(Protocol):
    """Maps an authenticated identity to a role (external lookup)."""

    async def resolve_role(self, identity: Identity) -> Role:
        ...


class StaticRoleResolver:
    """Resolve every identity to the same role."""

    def __init__(self, role: Role) -> None:
        self._role = role

    async def resolve_role(self, identity: Identity) -> Role:
        return self._role


class EmailDomainRoleResolver:
    """Assign roles from e-mail addresses.

    Listed admin addresses become ``admin``, any other address within
    one of the editor domains becomes ``editor``, everyone else is a
    ``viewer``.
    """

    def __init__(self, *, admin_emails: Iterable[str] = (), editor_domains: Iterable[str] = ()) -> None:
        self._admin_emails = frozenset(email.strip().lower() for email in admin_emails)
        self._editor_domains = frozenset(domain.strip().lower().lstrip("@") for domain in editor_domains)

    async def resolve_role(self, identity: Identity) -> Role:
        email = identity.email or ""
        if email in self._admin_emails:
            return Role.ADMIN
        _, _, domain = email.rpartition("@")
        if domain and domain in self._editor_domains:
            return Role.EDITOR
        return Role.VIEWER


class IdentitySession:
    """Tracks the current identity and its cached role.

    The role is resolved once per identity change. While a resolution is
    in flight the role is ``None`` (least privilege); a resolution that
    finishes after a newer identity change is discarded.
    """

    def __init__(self, resolver: RoleResolver) -> None:
        self._resolver = resolver
        self._identity: Identity | None = None
        self._role: Role | None = None
        self._resolving = False
        self._generation = 0

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def is_resolving(self) -> bool:
        return self._resolving

    def current_role(self) -> Role | None:
        return self._role

    async def set_identity(self, identity: Identity | None) -> Role | None:
        """Switch to *identity* (``None`` signs out) and resolve its role."""
        if identity is not None and identity == self._identity and self._role is not None:
            return self._role

        self._generation += 1
        generation = self._generation
        self._identity = identity
        self._role = None

        if identity is None:
            self._resolving = False
            _logger.debug("Identity cleared")
            return None

        self._resolving = True
        try:
            role = await self._resolver.resolve_role(identity)
        finally:
            if generation == self._generation:
                self._resolving = False

        if generation != self._generation:
            _logger.debug("Discarding superseded role resolution uid=%s", identity.uid)
            return self._role

        self._role = Role(role)
        _logger.debug("Resolved role uid=%s role=%s", identity.uid, self._role.value)
        return self._role


class AccessGate:
    """Checks the caller's role before a mutating action.

    Refusals raise :class:`AuthorizationFault` with the reason; both
    outcomes are written to the audit trail when one is configured.
    """

    def __init__(self, role_provider: Callable[[], Role | None], *, audit: AuditLog | None = None) -> None:
        self._role_provider = role_provider
        self._audit = audit

    @classmethod
    def for_session(cls, session: IdentitySession, *, audit: AuditLog | None = None) -> AccessGate:
        return cls(session.current_role, audit=audit)

    @property
    def current_role(self) -> Role | None:
        return self._role_provider()

    def is_allowed(self, required_role: Role | None) -> bool:
        return is_authorized(self._role_provider(), required_role)

    def require(self, required_role: Role, *, action: str) -> None:
        """Raise :class:`AuthorizationFault` unless the caller holds *required_role*."""
        current = self._role_provider()
        if is_authorized(current, required_role):
            if self._audit is not None:
                self._audit.record(AuditEvent.AUTHORIZATION, f"Allowed {action} (role={current})")
            return

        held = current.value if current is not None else "none"
        reason = f"{action} requires role {required_role.value!r}, caller has {held!r}"
        _logger.warning("Authorization refused: %s", reason)
        if self._audit is not None:
            self._audit.record(AuditEvent.AUTHORIZATION, f"Refused {reason}", AuditStatus.FAILURE)
        raise AuthorizationFault(
            reason,
            action=action,
            required_role=required_role,
            current_role=current,
        )
