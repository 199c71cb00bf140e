#!/usr/bin/env python3
"""Live-feed probe for pyconnect resource events.

Connects to the MQTT broker configured through ``CC_MQTT_*`` variables,
subscribes to one or more resource event names and prints every record
change the bus dispatches for them. Useful to check topic layout and
enable/disable behaviour against a real broker.

Example::

    CC_MQTT_HOST=broker.local python scripts/resource_probe.py \\
        resource:posts:create resource:posts:update:42
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyconnect import ConnectConfig, ConnectContext, ResourceBindingError  # noqa: E402
from pyconnect._redact import redact_for_log  # noqa: E402

_LOG = logging.getLogger("resource_probe")


@dataclass
class ProbeStats:
    started_at: float
    total_events: int = 0
    per_name: dict[str, int] = field(default_factory=dict)
    last_event_at: float | None = None

    def on_event(self, name: str, now: float) -> float | None:
        previous = self.last_event_at
        self.total_events += 1
        self.per_name[name] = self.per_name.get(name, 0) + 1
        self.last_event_at = now
        return None if previous is None else now - previous


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Subscribe to resource events over MQTT and print them.",
    )
    parser.add_argument(
        "names",
        nargs="+",
        help="Resource event names, e.g. resource:posts:create or resource:posts:update:42.",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Pretty-print record payloads.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_summary(stats: ProbeStats) -> None:
    runtime = time.time() - stats.started_at
    print("[probe] Summary")
    print(f"[probe]   runtime_s    : {runtime:.1f}")
    print(f"[probe]   total_events : {stats.total_events}")
    for name, count in sorted(stats.per_name.items()):
        print(f"[probe]   {name} : {count}")


async def _run(args: argparse.Namespace) -> int:
    config = ConnectConfig.from_env(mqtt_enabled=True)
    print(f"[probe] broker : {config.mqtt_host}:{config.mqtt_port}")
    print(f"[probe] topics : {config.mqtt_topic_prefix}/...")

    stats = ProbeStats(started_at=time.time())
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    async with ConnectContext(config, session_storage=None, local_storage=None) as cc:
        for name in args.names:
            if cc.bus.parse(name) is None:
                print(f"[probe] Not a resource event name: {name}", file=sys.stderr)
                return 2

            def handler(payload: Any, _name: str = name) -> None:
                delta = stats.on_event(_name, time.time())
                gap_text = "first" if delta is None else f"{delta:.1f}s"
                record = redact_for_log(payload)
                body = json.dumps(record, indent=2 if args.json else None, ensure_ascii=False, sort_keys=True)
                print(f"[probe] #{stats.total_events} {_name} gap={gap_text} {body}")

            sub = cc.bus.on(name, handler)
            _LOG.debug("Subscribed %s id=%s", name, sub.id)
            try:
                await sub.ready
            except ResourceBindingError as exc:
                print(f"[probe] Enable failed for {name}: {exc}", file=sys.stderr)
                return 2
            print(f"[probe] Live: {name}")

        try:
            if args.duration > 0:
                await asyncio.wait_for(stop.wait(), args.duration)
            else:
                await stop.wait()
        except TimeoutError:
            print(f"[probe] Reached --duration={args.duration}s, stopping.")

    _print_summary(stats)
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except OSError as exc:  # pragma: no cover - network/system interaction
        print(f"[probe] Connection failed: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(_main())
