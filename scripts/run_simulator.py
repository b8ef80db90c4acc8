#!/usr/bin/env python3
"""Stream telemetry from the store to the terminal.

Starts a :class:`TelemetryRuntime` from ``TELESYNC_*`` environment
variables, subscribes to the store and prints every status transition
and reading. Optionally switches to the live feed after a delay to
exercise the source switch.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pytelesync import (  # noqa: E402
    AuthorizationFault,
    EventKind,
    Identity,
    Quantity,
    Role,
    StaticRoleResolver,
    TelemetryEvent,
    TelemetryRuntime,
    TelesyncConfig,
)

_LOG = logging.getLogger("run_simulator")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print live or simulated telemetry readings.")
    parser.add_argument(
        "--duration",
        type=float,
        default=10.0,
        help="Seconds to run (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--role",
        choices=[role.value for role in Role],
        default=Role.EDITOR.value,
        help="Role granted to the demo operator.",
    )
    parser.add_argument(
        "--switch-after",
        type=float,
        default=0.0,
        help="Toggle simulation after N seconds (0 = never).",
    )
    parser.add_argument(
        "--imperial",
        action="store_true",
        help="Display speed and temperatures in imperial units.",
    )
    parser.add_argument(
        "--every",
        type=int,
        default=10,
        help="Print every Nth reading.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> int:
    overrides = {"unit_system": "imperial"} if args.imperial else {}
    config = TelesyncConfig.from_env(**overrides)
    _LOG.debug("Runtime config: %s", config)
    runtime = TelemetryRuntime(config, resolver=StaticRoleResolver(Role(args.role)))

    def on_event(event: TelemetryEvent) -> None:
        if event.kind == EventKind.STATUS:
            previous = event.previous_status.value if event.previous_status else "-"
            print(f"[telemetry] status {previous} -> {event.status.value} source={event.source}")
            return
        reading = event.reading
        if reading is None or reading.sequence % max(args.every, 1):
            return
        speed = runtime.display_value(reading.speed, Quantity.SPEED)
        print(
            f"[telemetry] #{reading.sequence} {reading.source} "
            f"speed={speed:.1f}{runtime.display_label(Quantity.SPEED)} rpm={reading.rpm:.0f} "
            f"gear={reading.gear} battery={reading.battery_level:.0%} "
            f"pos={reading.latitude:.5f},{reading.longitude:.5f}"
        )

    started = time.monotonic()
    switched = False
    async with runtime:
        await runtime.sign_in(Identity(uid="demo", email="demo@localhost"))
        runtime.store.subscribe(on_event)
        while args.duration <= 0 or time.monotonic() - started < args.duration:
            await asyncio.sleep(0.1)
            if args.switch_after and not switched and time.monotonic() - started >= args.switch_after:
                switched = True
                try:
                    simulating = runtime.controller.toggle()
                except AuthorizationFault as exc:
                    print(f"[telemetry] switch refused: {exc}", file=sys.stderr)
                else:
                    print(f"[telemetry] simulation {'on' if simulating else 'off'}")

    counts = {kind.value: count for kind, count in runtime.store.fault_counts.items()}
    print(f"[telemetry] faults={counts} audit_entries={len(runtime.audit)}")
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(_main())
