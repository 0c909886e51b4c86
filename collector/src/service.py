"""
Poll and query facade over the meter client, parser, shard store and rollups.

``poll_device`` runs one full write-path cycle for a single meter in strict
order (connect -> read -> parse -> lock -> insert -> commit -> close) and
turns every failure into a typed :class:`PollOutcome`, so one broken meter
never affects the others. ``poll_devices`` fans the cycle out concurrently;
devices write to disjoint shards.

``fetch_measurements`` and ``fetch_rollups`` are the read-side entry points
used by the API.

CHANGELOG:
- 2026-10-20: Report shard create/open failures as storage_error outcomes
- 2026-10-19: Add poll_devices fan-out (STORY-008)
- 2026-10-19: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Sequence
from datetime import datetime, tzinfo
from typing import TYPE_CHECKING

from collector.src.client import read_meter
from collector.src.errors import (
    LockFailure,
    MeterConnectionError,
    MeterProtocolError,
    MeterTimeoutError,
    ShardUnavailable,
)
from collector.src.models import Measurement, PollOutcome, RollupRecord
from collector.src.parser import build_measurements, parse_measurements
from collector.src.rollup import compute_rollups

if TYPE_CHECKING:
    from collector.src.config import MeterDevice
    from collector.src.shards import ShardStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------


async def poll_device(
    device: MeterDevice,
    store: ShardStore,
    *,
    now: float | None = None,
    read_timeout_s: float = 5.0,
) -> PollOutcome:
    """Read one meter and store its allow-listed channels.

    Args:
        device: Meter to poll.
        store: Shard store to write into.
        now: Poll time in unix seconds (defaults to the wall clock); every
            row of the batch is stamped with this time truncated to the hour.
        read_timeout_s: Socket inactivity timeout.

    Returns:
        A :class:`PollOutcome`; never raises for meter, lock or storage
        failures.
    """
    if now is None:
        now = time.time()

    try:
        response = await read_meter(device.host, device.port, timeout_s=read_timeout_s)
    except MeterProtocolError as exc:
        return _failed(device, "protocol_error", exc)
    except MeterTimeoutError as exc:
        return _failed(device, "timeout", exc)
    except MeterConnectionError as exc:
        return _failed(device, "connection_error", exc)

    rows = build_measurements(parse_measurements(response, device.channels), now)
    logger.info(
        "%s parsed %d allow-listed channels (of %d allowed)",
        device.device,
        len(rows),
        len(device.channels),
    )

    try:
        result = await store.store(device.device, rows)
    except LockFailure as exc:
        logger.error("%s shard lock failed: %s", device.device, exc)
        return PollOutcome(device=device.device, status="lock_failure", error=str(exc))
    except ShardUnavailable as exc:
        logger.error("%s shard unavailable: %s", device.device, exc)
        return PollOutcome(device=device.device, status="storage_error", error=str(exc))

    return PollOutcome(
        device=device.device,
        status="ok",
        recorded_time=rows[0].recorded_time if rows else None,
        inserted=result.inserted,
        failed=result.failed,
    )


def _failed(device: MeterDevice, status: str, exc: Exception) -> PollOutcome:
    logger.warning("%s poll failed (%s): %s", device.device, status, exc)
    return PollOutcome(device=device.device, status=status, error=str(exc))


async def poll_devices(
    devices: Iterable[MeterDevice],
    store: ShardStore,
    *,
    now: float | None = None,
    read_timeout_s: float = 5.0,
) -> list[PollOutcome]:
    """Poll every device concurrently with one shared poll time."""
    if now is None:
        now = time.time()
    return list(
        await asyncio.gather(
            *(
                poll_device(dev, store, now=now, read_timeout_s=read_timeout_s)
                for dev in devices
            )
        )
    )


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


async def fetch_measurements(
    store: ShardStore,
    device: str,
    from_time: int | datetime,
    to_time: int | datetime,
    channel: int | None = None,
) -> list[Measurement]:
    """Return the ordered measurements of *device* within ``[from, to]``."""
    return await store.query_range(device, from_time, to_time, channel)


def fetch_rollups(
    measurements: Sequence[Measurement],
    timezone: str | tzinfo,
    granularity: str,
    add_first: bool = False,
    *,
    local_timezone: str | tzinfo | None = None,
) -> list[RollupRecord]:
    """Aggregate ordered measurements into delta records (see ``compute_rollups``)."""
    return compute_rollups(
        measurements,
        timezone=timezone,
        granularity=granularity,
        add_first=add_first,
        local_timezone=local_timezone,
    )
