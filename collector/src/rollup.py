"""
Rollup engine: cumulative meter readings -> per-interval consumption deltas.

Consumes a ``(recorded_time, channel)``-ordered stream of Measurements for one
device and emits a RollupRecord every time a channel crosses an hourly, daily
or monthly boundary in the target timezone. Each record covers the closed
interval ``[previous emission, this emission]`` and renders both endpoints in
UTC, in the target ("server") timezone and in the caller's local timezone.

State is kept per channel in a dict:

- ``last_emitted``: reading at the most recent boundary (interval start).
- ``last_seen``: most recent raw reading, emitted or not.

If the stream ends mid-interval, one trailing record per channel closes the
partial bucket so every query ends with the most recent data.

This is a pure module: no I/O, no clock, no process-global timezone.

CHANGELOG:
- 2026-10-20: Count monthly boundaries in whole calendar months
- 2026-10-19: Log negative deltas as counter resets instead of dropping them
- 2026-10-19: Compare calendar dates for daily boundaries (DST-safe)
- 2026-10-19: Initial creation (STORY-007)

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo

from collector.src.models import VALID_GRANULARITIES, Measurement, RollupRecord

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
"""Rendering of interval endpoints in all three projections."""

_UTC = ZoneInfo("UTC")


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def _resolve_tz(tz: str | tzinfo | None) -> tzinfo | None:
    if tz is None or isinstance(tz, tzinfo):
        return tz
    return ZoneInfo(tz)


def _at(ts: int, tz: tzinfo | None) -> datetime:
    if tz is None:
        return datetime.fromtimestamp(ts)
    return datetime.fromtimestamp(ts, tz=tz)


def render_time(ts: int, tz: tzinfo | None) -> str:
    """Render unix seconds as ``YYYY-MM-DD HH:MM:SS`` in *tz*.

    ``None`` renders in the process-local timezone.
    """
    return _at(ts, tz).strftime(TIME_FORMAT)


def month_diff(start: datetime, end: datetime) -> int:
    """Number of calendar months from the month of *start* to that of *end*.

    Day and time of day are ignored, so Jan 31 -> Feb 1 is one month.
    """
    return (end.year - start.year) * 12 + (end.month - start.month)


def crosses_boundary(
    granularity: str,
    previous_ts: int,
    ts: int,
    tz: tzinfo,
) -> bool:
    """Return True when *ts* starts a new bucket relative to *previous_ts*.

    - ``hourly``: every distinct timestamp.
    - ``daily``: the calendar date in *tz* is at least one day later.
    - ``monthly``: the calendar month in *tz* is at least one month later.
    """
    if granularity == "hourly":
        return True
    if granularity == "daily":
        return (_at(ts, tz).date() - _at(previous_ts, tz).date()).days >= 1
    if granularity == "monthly":
        return month_diff(_at(previous_ts, tz), _at(ts, tz)) >= 1
    raise ValueError(f"Unknown granularity '{granularity}'")


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


@dataclass
class _ChannelState:
    last_emitted: Measurement
    last_seen: Measurement


def _interval_record(
    start: Measurement,
    end: Measurement,
    server_tz: tzinfo,
    local_tz: tzinfo | None,
) -> RollupRecord:
    diff = end.measured_value - start.measured_value
    if diff < 0:
        logger.warning(
            "Channel %d: counter decreased by %.3f between %d and %d "
            "(meter reset or rollover?)",
            end.channel,
            -diff,
            start.recorded_time,
            end.recorded_time,
        )
    return RollupRecord(
        channel=end.channel,
        recorded_time=end.recorded_time,
        measured_value=end.measured_value,
        diff=diff,
        from_utc_time=render_time(start.recorded_time, _UTC),
        to_utc_time=render_time(end.recorded_time, _UTC),
        from_server_time=render_time(start.recorded_time, server_tz),
        to_server_time=render_time(end.recorded_time, server_tz),
        from_local_time=render_time(start.recorded_time, local_tz),
        to_local_time=render_time(end.recorded_time, local_tz),
    )


def compute_rollups(
    measurements: Iterable[Measurement],
    *,
    timezone: str | tzinfo,
    granularity: str,
    add_first: bool = False,
    local_timezone: str | tzinfo | None = None,
) -> list[RollupRecord]:
    """Turn an ordered measurement stream into consumption delta records.

    Args:
        measurements: Rows for one device sorted by ``(recorded_time,
            channel)``. The order is trusted, not re-checked.
        timezone: Target ("server") timezone for boundaries and the
            ``*_server_time`` projection. IANA name or ``tzinfo``.
        granularity: ``hourly``, ``daily`` or ``monthly``.
        add_first: Emit a zero-diff baseline record the first time each
            channel is seen.
        local_timezone: Timezone of the ``*_local_time`` projection;
            ``None`` uses the process-local timezone.

    Returns:
        Records in emission order.

    Raises:
        ValueError: *granularity* is not one of the supported values.
    """
    if granularity not in VALID_GRANULARITIES:
        raise ValueError(
            f"Invalid granularity '{granularity}'. "
            f"Must be one of: {sorted(VALID_GRANULARITIES)}."
        )
    server_tz = _resolve_tz(timezone)
    local_tz = _resolve_tz(local_timezone)

    states: dict[int, _ChannelState] = {}
    result: list[RollupRecord] = []
    emitted_last = False

    for m in measurements:
        state = states.get(m.channel)
        if state is None:
            states[m.channel] = _ChannelState(last_emitted=m, last_seen=m)
            if add_first:
                result.append(
                    RollupRecord(
                        channel=m.channel,
                        recorded_time=m.recorded_time,
                        measured_value=m.measured_value,
                        diff=0,
                    )
                )
            continue

        # Same-timestamp duplicates keep the previous decision.
        if m.recorded_time != state.last_seen.recorded_time:
            emitted_last = crosses_boundary(
                granularity,
                state.last_emitted.recorded_time,
                m.recorded_time,
                server_tz,
            )
            if emitted_last:
                result.append(_interval_record(state.last_emitted, m, server_tz, local_tz))
                state.last_emitted = m
        state.last_seen = m

    if emitted_last or not states:
        return result

    # Close the partial bucket at the end of the stream.
    for channel, state in states.items():
        if state.last_seen.recorded_time == state.last_emitted.recorded_time:
            continue
        try:
            record = _interval_record(state.last_emitted, state.last_seen, server_tz, local_tz)
        except (OverflowError, OSError, ValueError):
            logger.warning("Channel %d: trailing rollup failed, skipping", channel, exc_info=True)
            continue
        result.append(record)
        state.last_emitted = state.last_seen
    return result
