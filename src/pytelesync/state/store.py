"""Telemetry store.

The single source of truth for the latest reading and the connection
status. Only this module mutates either of them; everything else reads
snapshots or subscribes to events.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from pytelesync.audit import AuditLog
from pytelesync.auth import AccessGate
from pytelesync.exceptions import (
    AuthorizationFault,
    LivenessFault,
    SourceFault,
    TelemetryFault,
    ValidationFault,
)
from pytelesync.models.audit import AuditEvent, AuditStatus
from pytelesync.models.identity import Role
from pytelesync.models.reading import SensorReading, SourceKind
from pytelesync.simulation import SimulationController
from pytelesync.sources.base import Detach, InjectableSource, TelemetrySource
from pytelesync.state.connection import ConnectionStateMachine
from pytelesync.state.events import ConnectionStatus, EventKind, FaultKind, TelemetryEvent

_logger = logging.getLogger(__name__)

Subscriber = Callable[[TelemetryEvent], None]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class _Subscription:
    callback: Subscriber
    # Last event sequence that existed when the subscription was made.
    since: int
    active: bool = True


class TelemetryStore:
    """Latest-reading store with ordered fan-out.

    Initial state: ``DISCONNECTED`` and no reading. Call :meth:`start`
    to attach the source selected by the simulation controller.

    Dispatch rule: events are delivered synchronously, one at a time, to
    every subscriber. An event raised while a dispatch is running (for
    example a subscriber that toggles simulation) is queued and
    delivered only after the current event reached all subscribers.
    """

    INJECT_ROLE: Role = Role.EDITOR

    def __init__(
        self,
        controller: SimulationController,
        *,
        live_source: TelemetrySource,
        simulator_source: InjectableSource,
        gate: AccessGate | None = None,
        audit: AuditLog | None = None,
        liveness_timeout: float = 5.0,
        reconnect_delay: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._controller = controller
        self._sources: dict[SourceKind, TelemetrySource] = {
            SourceKind.LIVE: live_source,
            SourceKind.SIMULATOR: simulator_source,
        }
        self._simulator = simulator_source
        self._gate = gate
        self._audit = audit
        self._liveness_timeout = liveness_timeout
        self._reconnect_delay = reconnect_delay
        self._clock = clock
        self._wall_clock = wall_clock

        self._machine = ConnectionStateMachine()
        self._latest: SensorReading | None = None
        self._subscribers: list[_Subscription] = []
        self._pending: deque[TelemetryEvent] = deque()
        self._dispatching = False
        self._event_seq = 0
        self._reading_seq = 0

        self._started = False
        self._generation = 0
        self._active_kind: SourceKind | None = None
        self._detach: Detach | None = None
        self._liveness_handle: asyncio.TimerHandle | None = None
        self._retry_handle: asyncio.TimerHandle | None = None

        self._fault_counts: dict[FaultKind, int] = {kind: 0 for kind in FaultKind}
        self._last_fault: TelemetryFault | None = None

        self._remove_mode_listener = controller.add_listener(self._on_mode_changed)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_latest(self) -> SensorReading | None:
        """Most recent published reading, even while connecting or in error.

        Consult :meth:`get_connection_status` to judge freshness.
        """
        return self._latest

    def get_connection_status(self) -> ConnectionStatus:
        return self._machine.status

    @property
    def active_source_kind(self) -> SourceKind | None:
        return self._active_kind

    @property
    def fault_counts(self) -> dict[FaultKind, int]:
        return dict(self._fault_counts)

    @property
    def last_fault(self) -> TelemetryFault | None:
        return self._last_fault

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback* for readings and status transitions.

        Returns an idempotent ``unsubscribe`` callable. Once it returns,
        *callback* is not invoked again.
        """
        subscription = _Subscription(callback=callback, since=self._event_seq)
        self._subscribers.append(subscription)

        def unsubscribe() -> None:
            if not subscription.active:
                return
            subscription.active = False
            self._subscribers.remove(subscription)

        return unsubscribe

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Attach the source selected by the simulation controller."""
        if self._started:
            return
        self._started = True
        self._attach(self._selected_kind())

    def stop(self) -> None:
        """Detach the active source and move to ``DISCONNECTED``."""
        self._started = False
        self._teardown_source()
        self._active_kind = None
        self._set_status(ConnectionStatus.DISCONNECTED)

    def close(self) -> None:
        self.stop()
        self._remove_mode_listener()

    def reconnect(self) -> None:
        """Re-attach the selected source (retry path after a fault)."""
        if not self._started:
            self.start()
            return
        self._attach(self._selected_kind())

    def _selected_kind(self) -> SourceKind:
        return SourceKind.SIMULATOR if self._controller.is_simulating() else SourceKind.LIVE

    def _on_mode_changed(self, simulating: bool) -> None:
        if not self._started:
            return
        target = SourceKind.SIMULATOR if simulating else SourceKind.LIVE
        _logger.debug("Switching source to %s", target.value)
        self._attach(target)

    def _attach(self, kind: SourceKind) -> None:
        self._teardown_source()
        token = self._generation

        # Switch events are tagged with the source being attached.
        if self._machine.status == ConnectionStatus.CONNECTED:
            self._set_status(ConnectionStatus.DISCONNECTED, source=kind)
        self._set_status(ConnectionStatus.CONNECTING, source=kind)
        if token != self._generation:
            # A subscriber requested another switch while we were notifying.
            return

        self._generation += 1
        generation = self._generation
        self._active_kind = kind
        source = self._sources[kind]

        on_reading = functools.partial(self._on_source_reading, generation, kind)
        on_fault = functools.partial(self._on_source_fault, generation, kind)
        try:
            detach = source.attach(on_reading, on_fault)
        except Exception as exc:
            if generation == self._generation:
                _logger.debug("Source attach failed kind=%s", kind.value, exc_info=True)
                self._handle_source_fault(SourceFault(f"attach failed: {exc}", source=kind.value))
            return

        if generation != self._generation:
            # Superseded by a switch requested while attaching.
            _logger.debug("Tearing down superseded attach kind=%s", kind.value)
            self._safe_detach(detach)
            return

        self._detach = detach
        _logger.debug("Source attached kind=%s generation=%d", kind.value, generation)
        if kind == SourceKind.SIMULATOR and self._machine.status == ConnectionStatus.CONNECTING:
            # The simulator is connected by definition once attached.
            self._set_status(ConnectionStatus.CONNECTED)

    def _teardown_source(self) -> None:
        self._generation += 1
        self._cancel_liveness()
        self._cancel_retry()
        detach = self._detach
        self._detach = None
        if detach is not None:
            self._safe_detach(detach)

    @staticmethod
    def _safe_detach(detach: Detach) -> None:
        try:
            detach()
        except Exception:
            _logger.warning("Source detach failed", exc_info=True)

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def publish(self, reading: SensorReading | Mapping[str, Any], *, source: SourceKind | None = None) -> bool:
        """Validate, stamp and publish *reading*.

        Entry point for the active source adapter. Malformed input is
        dropped, counted as a validation fault and leaves both the
        latest reading and the status untouched. Returns whether the
        reading was published.
        """
        candidate = self._validate(reading)
        if candidate is None:
            return False

        kind = source or self._active_kind or SourceKind.LIVE
        received_at = self._wall_clock()
        self._reading_seq += 1
        update: dict[str, Any] = {
            "sequence": self._reading_seq,
            "received_at": received_at,
            "source": kind,
        }
        if candidate.timestamp is None:
            update["timestamp"] = received_at.timestamp()
        stamped = candidate.model_copy(update=update)

        previous_latest = self._latest
        generation = self._generation
        self._latest = stamped
        if self._machine.status == ConnectionStatus.ERROR:
            self._set_status(ConnectionStatus.CONNECTING)
        if self._machine.status == ConnectionStatus.CONNECTING:
            self._set_status(ConnectionStatus.CONNECTED)
        if generation != self._generation:
            # A subscriber switched sources while the status events went out.
            _logger.debug("Dropping reading from superseded source kind=%s", kind.value)
            if self._latest is stamped:
                self._latest = previous_latest
            return False
        if self._machine.status == ConnectionStatus.CONNECTED:
            self._machine.record_reading(self._clock())

        self._emit(EventKind.READING, reading=stamped, source=kind)
        self._arm_liveness()
        return True

    def inject(self, values: Mapping[str, Any]) -> None:
        """Feed operator-supplied values through the simulator.

        Requires ``editor`` and an attached simulator; live-feed values
        are never writable. Refusals raise
        :class:`~pytelesync.exceptions.AuthorizationFault`.
        """
        if self._gate is None:
            raise AuthorizationFault(
                "inject reading requires an access gate",
                action="inject reading",
                required_role=self.INJECT_ROLE,
            )
        self._gate.require(self.INJECT_ROLE, action="inject reading")
        if self._active_kind != SourceKind.SIMULATOR or not self._controller.is_simulating():
            raise AuthorizationFault(
                "live feed values are not writable",
                action="inject reading",
                required_role=self.INJECT_ROLE,
                current_role=self._gate.current_role,
            )
        self._simulator.inject(values)

    def _validate(self, reading: SensorReading | Mapping[str, Any]) -> SensorReading | None:
        try:
            if isinstance(reading, SensorReading):
                # Re-validate: instances built with model_construct skip checks.
                return SensorReading.model_validate(reading.model_dump())
            return SensorReading.model_validate(reading)
        except ValidationError as exc:
            self._record_fault(
                FaultKind.VALIDATION,
                ValidationFault(f"malformed reading dropped ({exc.error_count()} errors)", payload=reading),
            )
            _logger.debug("Validation details: %s", exc)
            return None

    # ------------------------------------------------------------------
    # Source callbacks
    # ------------------------------------------------------------------

    def _on_source_reading(
        self,
        generation: int,
        kind: SourceKind,
        reading: SensorReading | Mapping[str, Any],
    ) -> None:
        if generation != self._generation:
            _logger.debug("Discarding reading from detached source kind=%s", kind.value)
            return
        self.publish(reading, source=kind)

    def _on_source_fault(self, generation: int, kind: SourceKind, error: BaseException) -> None:
        if generation != self._generation:
            return
        fault = error if isinstance(error, SourceFault) else SourceFault(str(error), source=kind.value)
        self._handle_source_fault(fault)

    def _handle_source_fault(self, fault: SourceFault) -> None:
        self._record_fault(FaultKind.SOURCE, fault)
        self._cancel_liveness()
        if self._machine.can_transition(ConnectionStatus.ERROR):
            self._set_status(ConnectionStatus.ERROR)
        self._schedule_retry()

    # ------------------------------------------------------------------
    # Liveness and retry
    # ------------------------------------------------------------------

    def check_liveness(self) -> bool:
        """Evaluate the liveness window now.

        Returns ``True`` when the live source went quiet for longer than
        the window and the status moved to ``ERROR``. The last reading is
        kept.
        """
        if self._active_kind != SourceKind.LIVE:
            return False
        if not self._machine.is_stale(self._clock(), self._liveness_timeout):
            return False
        self._record_fault(
            FaultKind.LIVENESS,
            LivenessFault(
                f"no reading within {self._liveness_timeout:.1f}s",
                timeout=self._liveness_timeout,
            ),
        )
        self._cancel_liveness()
        self._set_status(ConnectionStatus.ERROR)
        self._schedule_retry()
        return True

    def _arm_liveness(self) -> None:
        if self._active_kind != SourceKind.LIVE or self._machine.status != ConnectionStatus.CONNECTED:
            return
        self._arm_liveness_in(self._liveness_timeout)

    def _arm_liveness_in(self, delay: float) -> None:
        self._cancel_liveness()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._liveness_handle = loop.call_later(delay, self._on_liveness_timer, self._generation)

    def _on_liveness_timer(self, generation: int) -> None:
        self._liveness_handle = None
        if generation != self._generation:
            return
        if self.check_liveness():
            return
        last = self._machine.last_reading_at
        if self._machine.status == ConnectionStatus.CONNECTED and last is not None:
            remaining = self._liveness_timeout - (self._clock() - last)
            self._arm_liveness_in(max(remaining, 0.001))

    def _cancel_liveness(self) -> None:
        handle = self._liveness_handle
        self._liveness_handle = None
        if handle is not None:
            handle.cancel()

    def _schedule_retry(self) -> None:
        if self._reconnect_delay <= 0 or not self._started:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._cancel_retry()
        self._retry_handle = loop.call_later(self._reconnect_delay, self._on_retry_timer, self._generation)

    def _on_retry_timer(self, generation: int) -> None:
        self._retry_handle = None
        if generation != self._generation or self._machine.status != ConnectionStatus.ERROR:
            return
        _logger.info("Retrying source attach after fault")
        self.reconnect()

    def _cancel_retry(self) -> None:
        handle = self._retry_handle
        self._retry_handle = None
        if handle is not None:
            handle.cancel()

    # ------------------------------------------------------------------
    # Status and dispatch
    # ------------------------------------------------------------------

    def _record_fault(self, kind: FaultKind, fault: TelemetryFault) -> None:
        self._fault_counts[kind] += 1
        self._last_fault = fault
        _logger.warning("Telemetry %s fault: %s", kind.value, fault)

    def _set_status(self, target: ConnectionStatus, *, source: SourceKind | None = None) -> None:
        previous = self._machine.status
        if not self._machine.transition(target):
            return
        _logger.debug("Connection status %s -> %s", previous.value, target.value)
        if self._audit is not None and target != ConnectionStatus.CONNECTING:
            kind = self._active_kind.value if self._active_kind is not None else "none"
            status = AuditStatus.FAILURE if target == ConnectionStatus.ERROR else AuditStatus.SUCCESS
            self._audit.record(AuditEvent.DATA_SYNC, f"{target.value} ({kind} source)", status)
        self._emit(EventKind.STATUS, previous_status=previous, source=source or self._active_kind)

    def _emit(self, kind: EventKind, **fields: Any) -> None:
        self._event_seq += 1
        self._pending.append(
            TelemetryEvent(
                kind=kind,
                sequence=self._event_seq,
                status=self._machine.status,
                emitted_at=self._wall_clock(),
                **fields,
            )
        )
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._pending:
                event = self._pending.popleft()
                for subscription in list(self._subscribers):
                    if not subscription.active or event.sequence <= subscription.since:
                        continue
                    try:
                        subscription.callback(event)
                    except Exception:
                        _logger.error("Telemetry subscriber failed on event %d", event.sequence, exc_info=True)
        finally:
            self._dispatching = False
