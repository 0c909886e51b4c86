"""
Pure parser that converts a raw meter response into Measurement rows.

Takes the plaintext returned by the meter client, extracts
``channel_<N> : <value>`` lines, keeps only allow-listed channels and scales
each reading to milli-units. The hour-bucketed timestamp is injected by the
caller; nothing is inferred from the payload.

This is a pure module: no side effects, no I/O, no clock.

CHANGELOG:
- 2026-10-19: Skip lines whose value is not a number instead of storing NaN
- 2026-10-19: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

import logging
import re
from collections.abc import Collection, Iterable

from collector.src.models import Measurement

logger = logging.getLogger(__name__)

_LINE_RE = re.compile(r"^channel_(\d{1,2}) : (.*)")

VALUE_SCALE: int = 1000
"""Readings are stored in milli-units of the meter's reported unit."""

_HOUR_S = 3600


def truncate_to_hour(ts: int | float) -> int:
    """Floor unix seconds to the top of the hour."""
    ts = int(ts)
    return ts - ts % _HOUR_S


def parse_measurements(
    response: str,
    channels: Collection[str],
) -> list[tuple[int, float]]:
    """Extract allow-listed ``(channel, milli_value)`` pairs from a response.

    Lines that do not match the ``channel_<N> : <value>`` pattern, channels
    missing from *channels* and values that are not numbers are skipped.

    Args:
        response: Raw text returned by the meter.
        channels: Allow-listed channel numbers as strings (``"1"``, ``"13"``).
            Matching is on the textual channel number, so ``"01"`` and ``"1"``
            are different channels.

    Returns:
        List of ``(channel, value * 1000)`` in response order.
    """
    pairs: list[tuple[int, float]] = []
    for line in response.splitlines():
        match = _LINE_RE.match(line)
        if match is None:
            continue
        channel, raw_value = match.group(1), match.group(2).strip()
        if channel not in channels:
            continue
        try:
            value = float(raw_value)
        except ValueError:
            logger.warning("Channel %s: unparseable value %r", channel, raw_value)
            continue
        pairs.append((int(channel), value * VALUE_SCALE))
    return pairs


def build_measurements(
    pairs: Iterable[tuple[int, float]],
    now: int | float,
) -> list[Measurement]:
    """Turn parsed pairs into unsaved rows sharing one hour bucket.

    Args:
        pairs: ``(channel, milli_value)`` tuples from :func:`parse_measurements`.
        now: Poll time in unix seconds; truncated to the hour for every row.
    """
    recorded_time = truncate_to_hour(now)
    return [
        Measurement(channel=channel, measured_value=value, recorded_time=recorded_time)
        for channel, value in pairs
    ]
