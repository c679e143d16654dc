"""Utility for stress-testing relay placement on the Beacon signaling endpoint.

One host opens the room, then ``--viewers`` relay viewers join it with a
mix of device profiles. The summary reports join acknowledgement
latency, the resulting tier distribution and how many viewers had to
fall back to a direct host connection.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import itertools
import json
import logging
import signal
import statistics
import sys
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable

import websockets

logger = logging.getLogger(__name__)

DEVICE_PROFILES: dict[str, dict[str, Any]] = {
    "wired": {"connection": "ethernet"},
    "wifi": {"connection": "wifi", "bandwidth": 8000},
    "slow-wifi": {"connection": "wifi", "bandwidth": 1500},
    "mobile": {"isMobile": True, "connection": "4g"},
    "unknown": {},
}


@dataclass(slots=True)
class ViewerResult:
    """Outcome of a single relay viewer."""

    connected: bool
    profile: str
    join_latency: float | None = None
    relay: bool = False
    tier: int | None = None
    fallback_reason: str | None = None
    parent_changes: int = 0
    ping_latencies: list[float] = field(default_factory=list)
    error: str | None = None


class SignalClient:
    """Minimal request/ack client over an open websocket."""

    def __init__(self, websocket: Any) -> None:
        self.websocket = websocket
        self.socket_id: str | None = None
        self.events: list[dict[str, Any]] = []
        self._acks = itertools.count(1)

    async def welcome(self, timeout: float) -> str:
        frame = await self._receive(timeout)
        if frame.get("type") != "welcome":
            raise RuntimeError(f"expected welcome frame, got {frame.get('type')!r}")
        self.socket_id = frame["id"]
        return self.socket_id

    async def request(self, payload: dict[str, Any], timeout: float) -> dict[str, Any]:
        ack = next(self._acks)
        await self.websocket.send(json.dumps({**payload, "ack": ack}))
        deadline = time.perf_counter() + timeout
        while True:
            frame = await self._receive(max(0.0, deadline - time.perf_counter()))
            if frame.get("type") == "ack" and frame.get("ack") == ack:
                return frame
            self.events.append(frame)

    async def drain(self, timeout: float) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            while True:
                self.events.append(await self._receive(timeout))

    async def _receive(self, timeout: float) -> dict[str, Any]:
        raw = await asyncio.wait_for(self.websocket.recv(), timeout=timeout)
        return json.loads(raw)


async def _viewer(
    index: int,
    args: argparse.Namespace,
    profile: str,
    ready: asyncio.Event,
) -> ViewerResult:
    result = ViewerResult(connected=False, profile=profile)
    await ready.wait()
    try:
        async with websockets.connect(args.url, open_timeout=args.open_timeout) as websocket:
            client = SignalClient(websocket)
            await client.welcome(args.reply_timeout)
            result.connected = True

            started = time.perf_counter()
            reply = await client.request(
                {
                    "type": "join-room-relay",
                    "room": args.room,
                    "name": f"viewer-{index}",
                    "deviceInfo": DEVICE_PROFILES[profile],
                },
                args.reply_timeout,
            )
            result.join_latency = time.perf_counter() - started
            if not reply.get("ok"):
                result.error = reply.get("error", "UNKNOWN")
                return result
            result.relay = bool(reply.get("relay"))
            result.tier = reply.get("tier")
            result.fallback_reason = reply.get("reason")

            deadline = time.perf_counter() + args.session_duration
            while time.perf_counter() < deadline:
                sent = time.perf_counter()
                await client.request({"type": "ping"}, args.reply_timeout)
                result.ping_latencies.append(time.perf_counter() - sent)
                await asyncio.sleep(args.interval)
            result.parent_changes = sum(1 for event in client.events if event.get("type") == "parent-changed")
    except asyncio.CancelledError:
        raise
    except Exception as exc:  # pragma: no cover - network failures are non-deterministic
        result.error = f"{type(exc).__name__}: {exc}"
        logger.warning("viewer %s failed: %s", index, result.error)
    return result


def _stats(samples: list[float]) -> dict[str, float] | None:
    if not samples:
        return None
    samples_sorted = sorted(samples)
    count = len(samples_sorted)
    return {
        "avg": statistics.fmean(samples_sorted),
        "p50": statistics.median(samples_sorted),
        "p95": samples_sorted[int(0.95 * (count - 1))],
        "max": samples_sorted[-1],
    }


def _aggregate(results: Iterable[ViewerResult]) -> dict[str, Any]:
    """Compute summary metrics for all viewers."""

    results = list(results)
    joined = [item for item in results if item.connected and item.error is None]
    failures = Counter(item.error for item in results if item.error)

    return {
        "attempted": len(results),
        "joined": len(joined),
        "failed": len(results) - len(joined),
        "relayed": sum(1 for item in joined if item.relay),
        "fallbacks": dict(Counter(item.fallback_reason for item in joined if not item.relay)),
        "tiers": dict(sorted(Counter(item.tier for item in joined if item.relay).items())),
        "profiles": dict(Counter(item.profile for item in results)),
        "parent_changes": sum(item.parent_changes for item in joined),
        "join_latency": _stats([item.join_latency for item in joined if item.join_latency]),
        "ping_latency": _stats([lat for item in joined for lat in item.ping_latencies]),
        "failures": dict(failures),
    }


async def run_load_test(args: argparse.Namespace) -> dict[str, Any]:
    """Entry point used by the CLI wrapper."""

    profiles = list(itertools.islice(itertools.cycle(args.profile or list(DEVICE_PROFILES)), args.viewers))
    logger.info(
        "starting relay load test: url=%s room=%s viewers=%s duration=%ss",
        args.url,
        args.room,
        args.viewers,
        args.session_duration,
    )

    async with websockets.connect(args.url, open_timeout=args.open_timeout) as host_socket:
        host = SignalClient(host_socket)
        await host.welcome(args.reply_timeout)
        joined = await host.request(
            {"type": "join-room", "room": args.room, "name": "load-host"}, args.reply_timeout
        )
        if not joined.get("ok") or not joined.get("isHost"):
            raise SystemExit(f"host could not take room {args.room!r}: {joined}")

        ready = asyncio.Event()
        tasks = [
            asyncio.create_task(_viewer(index, args, profile, ready), name=f"relay-load-viewer-{index}")
            for index, profile in enumerate(profiles)
        ]

        def _cancel(signum: int, _frame: Any) -> None:  # pragma: no cover - signal handling
            logger.warning("received signal %s, cancelling load test", signum)
            for task in tasks:
                task.cancel()

        handlers: dict[int, Any] = {}
        for signum in (signal.SIGINT, signal.SIGTERM):  # pragma: no cover - platform specific
            with contextlib.suppress(ValueError):
                handlers[signum] = signal.getsignal(signum)
                signal.signal(signum, _cancel)

        ready.set()
        try:
            results = await asyncio.gather(*tasks)
        finally:
            for signum, previous in handlers.items():  # pragma: no cover - best effort cleanup
                with contextlib.suppress(ValueError):
                    signal.signal(signum, previous)
        await host.drain(0.2)

    summary = _aggregate(results)
    summary["host_child_connecting"] = sum(
        1 for event in host.events if event.get("type") == "child-connecting"
    )
    logger.info("load test finished: %s joined, %s failed", summary["joined"], summary["failed"])
    return summary


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("url", help="Websocket URL, e.g. ws://localhost:8000/ws/signal")
    parser.add_argument("--room", default="load-test", help="Room used for the run")
    parser.add_argument("--viewers", type=int, default=25, help="Number of relay viewers to join")
    parser.add_argument(
        "--profile",
        action="append",
        choices=sorted(DEVICE_PROFILES),
        help="Device profile to cycle through; repeat to mix. Defaults to all profiles",
    )
    parser.add_argument(
        "--session-duration",
        type=float,
        default=10.0,
        help="How long each viewer should stay connected after joining (seconds)",
    )
    parser.add_argument("--interval", type=float, default=2.0, help="Delay between pings (seconds)")
    parser.add_argument(
        "--reply-timeout",
        type=float,
        default=5.0,
        help="Timeout when waiting for acknowledgements (seconds)",
    )
    parser.add_argument(
        "--open-timeout",
        type=float,
        default=10.0,
        help="Timeout for establishing the websocket connection",
    )
    parser.add_argument("--json", action="store_true", help="Emit the summary as JSON for machine processing")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log verbosity level",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    try:
        summary = asyncio.run(run_load_test(args))
    except KeyboardInterrupt:  # pragma: no cover - manual interruption
        logger.warning("interrupted by user")
        return 130

    if args.json:
        print(json.dumps(summary, indent=2, sort_keys=True, default=str))
    else:
        print("\n=== Relay Load Test Summary ===")
        for key, value in summary.items():
            print(f"{key}: {value}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
