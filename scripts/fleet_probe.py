#!/usr/bin/env python3
"""Passive probe for the dispatch event stream.

Connects a :class:`FleetClient` to the broker configured through
``CHRONO_*`` environment variables, prints every server event and the
position store's view of each driver, and optionally requests one ETA
between two points on start.

Use this to check which events a deployment actually emits and how often
positions arrive.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from chronofleet import Coordinate, FleetClient, FleetConfig, VehicleType  # noqa: E402
from chronofleet._constants import (  # noqa: E402
    EVENT_CONNECTED,
    EVENT_CONNECTION_FAILED,
    EVENT_DISCONNECTED,
    EVENT_DRIVER_OFFLINE,
    EVENT_DRIVER_ONLINE,
    EVENT_DRIVER_POSITION,
    EVENT_INITIAL_DRIVERS,
    EVENT_ORDER_STATUS,
)
from chronofleet._redact import redact_for_log  # noqa: E402
from chronofleet.models import DriverState  # noqa: E402

_WATCHED_EVENTS = (
    EVENT_CONNECTED,
    EVENT_DISCONNECTED,
    EVENT_CONNECTION_FAILED,
    EVENT_INITIAL_DRIVERS,
    EVENT_DRIVER_ONLINE,
    EVENT_DRIVER_OFFLINE,
    EVENT_DRIVER_POSITION,
    EVENT_ORDER_STATUS,
)


@dataclass
class ProbeStats:
    started_at: float
    total_events: int = 0
    position_updates: int = 0
    accepted_changes: int = 0
    last_event_at: float | None = None

    def on_event(self, event: str, now: float) -> float | None:
        previous = self.last_event_at
        self.total_events += 1
        if event == EVENT_DRIVER_POSITION:
            self.position_updates += 1
        self.last_event_at = now
        return None if previous is None else now - previous


def _coordinate(text: str) -> Coordinate:
    try:
        lat, lng = (float(part) for part in text.split(","))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected 'lat,lng', got {text!r}") from exc
    return Coordinate(lat=lat, lng=lng)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Passive probe for the dispatch event stream.",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--eta",
        nargs=2,
        type=_coordinate,
        metavar=("PICKUP", "DROPOFF"),
        help="Request one ETA between two 'lat,lng' points on start.",
    )
    parser.add_argument(
        "--vehicle",
        choices=[v.value for v in VehicleType],
        default=VehicleType.VEHICULE.value,
        help="Vehicle type for --eta.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Pretty-print event payloads.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_driver(state: DriverState) -> None:
    position = "-"
    if state.sample is not None:
        position = f"{state.sample.latitude:.5f},{state.sample.longitude:.5f} @ {state.sample.timestamp.isoformat()}"
    heading = "-" if state.heading is None else f"{state.heading:.0f}°"
    print(
        f"[probe]   driver {state.entity_id}: online={state.is_online} "
        f"available={state.is_available} pos={position} heading={heading}",
    )


def _print_summary(stats: ProbeStats, client: FleetClient) -> None:
    runtime = time.time() - stats.started_at
    print("[probe] Summary")
    print(f"[probe]   runtime_s        : {runtime:.1f}")
    print(f"[probe]   total_events     : {stats.total_events}")
    print(f"[probe]   position_updates : {stats.position_updates}")
    print(f"[probe]   accepted_changes : {stats.accepted_changes}")
    print(f"[probe]   drivers_tracked  : {len(client.store)}")
    for state in client.drivers():
        _print_driver(state)


async def _run(args: argparse.Namespace, config: FleetConfig) -> int:
    stats = ProbeStats(started_at=time.time())
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    async with FleetClient(config) as client:

        def printer(event: str) -> Any:
            def _handle(payload: Any) -> None:
                delta = stats.on_event(event, time.time())
                gap_text = "first" if delta is None else f"{delta:.1f}s"
                print(f"[probe] event#{stats.total_events} {event} gap={gap_text}")
                if payload is not None:
                    indent = 2 if args.json else None
                    print(json.dumps(redact_for_log(payload), indent=indent, ensure_ascii=False, default=str))
                if event == EVENT_CONNECTION_FAILED:
                    stop.set()

            return _handle

        for event in _WATCHED_EVENTS:
            client.on(event, printer(event))

        def on_change(_state: DriverState) -> None:
            stats.accepted_changes += 1

        client.on_driver_change(on_change)

        print(f"[probe] Connecting to {config.stream_url}...")
        await client.connect()

        if args.eta:
            pickup, dropoff = args.eta
            estimate = await client.estimate_eta(pickup, dropoff, VehicleType(args.vehicle))
            if estimate is None:
                print("[probe] ETA: Calculating... (no estimate available)")
            else:
                print(
                    f"[probe] ETA: {estimate.text} ({estimate.seconds}s, "
                    f"traffic={estimate.traffic.has_traffic_data})",
                )

        try:
            timeout = args.duration if args.duration > 0 else None
            await asyncio.wait_for(stop.wait(), timeout=timeout)
        except TimeoutError:
            print(f"[probe] Reached --duration={args.duration}s, stopping.")

        _print_summary(stats, client)
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = FleetConfig.from_env()
    try:
        return asyncio.run(_run(args, config))
    except Exception as exc:  # pragma: no cover - network/system interaction
        print(f"[probe] Probe failed: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(_main())
