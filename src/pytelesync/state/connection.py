"""Connection health state machine.

::

    DISCONNECTED -> CONNECTING -> CONNECTED -> ERROR -> CONNECTING
                        |             |          |
                        +-> ERROR     +----------+--> DISCONNECTED

``CONNECTED`` never goes straight back to ``CONNECTING``: a reconnect
passes through a detach (``DISCONNECTED``) or a fault (``ERROR``).
"""

from __future__ import annotations

from pytelesync.exceptions import InvalidTransitionError
from pytelesync.state.events import ConnectionStatus

_ALLOWED: dict[ConnectionStatus, frozenset[ConnectionStatus]] = {
    ConnectionStatus.DISCONNECTED: frozenset({ConnectionStatus.CONNECTING}),
    ConnectionStatus.CONNECTING: frozenset(
        {ConnectionStatus.CONNECTED, ConnectionStatus.ERROR, ConnectionStatus.DISCONNECTED}
    ),
    ConnectionStatus.CONNECTED: frozenset({ConnectionStatus.ERROR, ConnectionStatus.DISCONNECTED}),
    ConnectionStatus.ERROR: frozenset({ConnectionStatus.CONNECTING, ConnectionStatus.DISCONNECTED}),
}


def can_transition(current: ConnectionStatus, target: ConnectionStatus) -> bool:
    return target in _ALLOWED[current]


class ConnectionStateMachine:
    """Tracks the health of the active source.

    Starts in ``DISCONNECTED``. Also remembers when the last reading
    arrived so the owner can evaluate the liveness window.
    """

    def __init__(self) -> None:
        self._status = ConnectionStatus.DISCONNECTED
        self._last_reading_at: float | None = None

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def last_reading_at(self) -> float | None:
        return self._last_reading_at

    def can_transition(self, target: ConnectionStatus) -> bool:
        return can_transition(self._status, target)

    def transition(self, target: ConnectionStatus) -> bool:
        """Move to *target*.

        Returns ``False`` when already in *target*; raises
        :class:`InvalidTransitionError` for a move the machine forbids.
        """
        if target == self._status:
            return False
        if not can_transition(self._status, target):
            raise InvalidTransitionError(
                f"Cannot move from {self._status.value} to {target.value}",
                current=self._status,
                target=target,
            )
        self._status = target
        if target in (ConnectionStatus.DISCONNECTED, ConnectionStatus.CONNECTING):
            self._last_reading_at = None
        return True

    def record_reading(self, now: float) -> None:
        self._last_reading_at = now

    def is_stale(self, now: float, timeout: float) -> bool:
        """Whether the liveness window has elapsed while ``CONNECTED``."""
        if self._status != ConnectionStatus.CONNECTED or self._last_reading_at is None:
            return False
        return (now - self._last_reading_at) >= timeout
