"""
Pydantic models for stored measurements and derived rollup records.

Defines the single persisted entity (Measurement), the derived RollupRecord
produced by the rollup engine, and the small result types returned by the
write path and the per-device poll cycle.

CHANGELOG:
- 2026-10-19: Add PollOutcome and WriteResult (STORY-006)
- 2026-10-19: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

Granularity = Literal["hourly", "daily", "monthly"]
"""Rollup granularities understood by the rollup engine."""

VALID_GRANULARITIES: frozenset[str] = frozenset({"hourly", "daily", "monthly"})

PollStatus = Literal[
    "ok",
    "connection_error",
    "timeout",
    "protocol_error",
    "lock_failure",
    "storage_error",
]


class Measurement(BaseModel):
    """A single meter reading as stored in a monthly shard.

    Attributes:
        id: Auto-increment row id; ``None`` until the row is persisted.
        channel: Meter channel number (1-indexed).
        measured_value: Reading in milli-units of the meter's unit
            (raw value * 1000).
        recorded_time: Unix seconds, always truncated to the top of the hour.
    """

    id: int | None = None
    channel: int
    measured_value: float
    recorded_time: int


class RollupRecord(BaseModel):
    """Consumption delta for one channel over a closed interval.

    A baseline record (first observation of a channel) has ``diff == 0`` and
    no interval endpoints.

    Attributes:
        channel: Meter channel number.
        recorded_time: Unix seconds of the interval end.
        measured_value: Reading at the interval end.
        diff: End reading minus start reading.
        from_utc_time: Interval start rendered in UTC.
        to_utc_time: Interval end rendered in UTC.
        from_server_time: Interval start rendered in the query timezone.
        to_server_time: Interval end rendered in the query timezone.
        from_local_time: Interval start rendered in the caller's timezone.
        to_local_time: Interval end rendered in the caller's timezone.
    """

    channel: int
    recorded_time: int
    measured_value: float
    diff: float
    from_utc_time: str | None = None
    to_utc_time: str | None = None
    from_server_time: str | None = None
    to_server_time: str | None = None
    from_local_time: str | None = None
    to_local_time: str | None = None


class WriteResult(BaseModel):
    """Outcome of one exclusive write transaction.

    Attributes:
        inserted: Rows committed.
        failed: Rows that raised an insert error and were skipped.
    """

    inserted: int = 0
    failed: int = 0


class PollOutcome(BaseModel):
    """Typed result of one poll cycle for one device.

    Attributes:
        device: Device identifier.
        status: ``ok`` or the failure kind.
        recorded_time: Hour bucket used for the batch, when one was written.
        inserted: Rows committed.
        failed: Rows skipped on insert errors.
        error: Failure message, when ``status`` is not ``ok``.
    """

    device: str
    status: PollStatus
    recorded_time: int | None = None
    inserted: int = 0
    failed: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        """True when the poll cycle committed its batch."""
        return self.status == "ok"
