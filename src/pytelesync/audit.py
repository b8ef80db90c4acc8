"""Bounded in-memory audit trail.

Records connection lifecycle changes and gated-action decisions. Only
the most recent entries are kept; nothing is persisted.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime

from pytelesync.models.audit import AuditEntry, AuditEvent, AuditStatus

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AuditLog:
    """Newest-first audit trail with a fixed capacity."""

    def __init__(self, capacity: int = 200, *, clock: Callable[[], datetime] = _utcnow) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._entries: deque[AuditEntry] = deque(maxlen=capacity)
        self._clock = clock

    def record(
        self,
        event: AuditEvent,
        description: str,
        status: AuditStatus = AuditStatus.SUCCESS,
    ) -> AuditEntry:
        entry = AuditEntry(event=event, description=description, status=status, timestamp=self._clock())
        self._entries.appendleft(entry)
        _logger.debug("Audit %s [%s]: %s", event.value, status.value, description)
        return entry

    def entries(self) -> list[AuditEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
