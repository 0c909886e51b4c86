"""
Collector daemon main loop.

Runs one asyncio poll loop: every ``POLL_INTERVAL_S`` it polls all configured
meters concurrently, stores each device's readings in that device's current
month shard, and rewrites the health file with the per-device outcome.

A failing meter or a locked shard is logged and reported in the health file;
it never stops the loop or affects other devices. Graceful shutdown on
SIGTERM/SIGINT sets a shared asyncio.Event, letting the current cycle finish
before exit.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
import sys
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from collector.src.health import HealthWriter
from collector.src.service import poll_devices

if TYPE_CHECKING:
    from collector.src.config import CollectorSettings, MeterDevice
    from collector.src.models import PollOutcome
    from collector.src.shards import ShardStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging on the root logger (stderr)."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def log_config_summary(settings: CollectorSettings) -> None:
    """Log the effective configuration at startup."""
    logger.info(
        "Collector starting with config: workdir=%s, devices=%s, "
        "poll_interval_s=%s, read_timeout_s=%s, lock_timeout_s=%s, "
        "server_timezone=%s, local_timezone=%s, health_path=%s",
        settings.workdir,
        [f"{d.device}@{d.host}:{d.port}" for d in settings.devices],
        settings.poll_interval_s,
        settings.read_timeout_s,
        settings.lock_timeout_s,
        settings.server_timezone,
        settings.local_timezone,
        settings.health_path,
    )


# ---------------------------------------------------------------------------
# Single-iteration function (easily testable)
# ---------------------------------------------------------------------------


async def _poll_once(
    *,
    devices: Sequence[MeterDevice],
    store: ShardStore,
    read_timeout_s: float,
    health: HealthWriter | None,
) -> list[PollOutcome]:
    """Execute one poll cycle across all devices.

    Catches all exceptions so that the caller's loop is never broken.
    The health writer is updated after every cycle.
    """
    outcomes: list[PollOutcome] = []
    try:
        outcomes = await poll_devices(devices, store, read_timeout_s=read_timeout_s)
        ok = sum(1 for o in outcomes if o.ok)
        logger.info("Poll cycle done: %d/%d devices ok", ok, len(outcomes))
    except Exception:
        logger.error("Poll cycle error", exc_info=True)

    if health is not None:
        try:
            health.record_cycle(outcomes)
        except OSError:
            logger.warning("Failed to write health file", exc_info=True)
    return outcomes


# ---------------------------------------------------------------------------
# Loop runner
# ---------------------------------------------------------------------------


async def run_loop(
    *,
    devices: Sequence[MeterDevice],
    store: ShardStore,
    poll_interval_s: float,
    read_timeout_s: float,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None = None,
) -> None:
    """Run poll cycles until shutdown_event is set."""
    logger.info("Poll loop started (interval=%ss)", poll_interval_s)
    while not shutdown_event.is_set():
        await _poll_once(
            devices=devices,
            store=store,
            read_timeout_s=read_timeout_s,
            health=health,
        )
        # Use wait with timeout so we can check shutdown between sleeps
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(shutdown_event.wait(), timeout=poll_interval_s)
    logger.info("Poll loop stopped")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> None:
    """Async entrypoint: load config, build components, run the loop."""
    configure_logging()

    from collector.src.config import CollectorSettings
    from collector.src.shards import ShardStore

    settings = CollectorSettings()
    log_config_summary(settings)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: _handle_signal(shutdown_event))

    store = ShardStore(
        settings.workdir,
        lock_timeout_s=settings.lock_timeout_s,
        extension=settings.shard_extension,
    )
    await run_loop(
        devices=settings.devices,
        store=store,
        poll_interval_s=settings.poll_interval_s,
        read_timeout_s=settings.read_timeout_s,
        shutdown_event=shutdown_event,
        health=HealthWriter(settings.health_path),
    )


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event."""
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the collector daemon."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
