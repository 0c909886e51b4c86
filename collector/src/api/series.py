"""
GET endpoints for stored measurements and rollup deltas of one device.

- ``/v1/devices/{device}/measurements``: raw hourly readings in a range.
- ``/v1/devices/{device}/rollups``: hourly / daily / monthly consumption
  deltas computed from those readings in the requested timezone.

Naive ``from_time`` / ``to_time`` values are interpreted in the query
timezone (the device's reporting timezone unless overridden).

CHANGELOG:
- 2026-10-19: Interpret naive bounds in the query timezone
- 2026-10-19: Initial creation (STORY-010)

TODO:
- None
"""

import logging
from datetime import datetime, tzinfo
from typing import Annotated
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from collector.src.api.deps import Settings, Store
from collector.src.config import CollectorSettings, MeterDevice
from collector.src.models import VALID_GRANULARITIES, Measurement, RollupRecord
from collector.src.service import fetch_measurements, fetch_rollups

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["series"])


# ---------------------------------------------------------------------------
# Pydantic response models
# ---------------------------------------------------------------------------


class MeasurementsResponse(BaseModel):
    """Response model for the measurements endpoint.

    Attributes:
        device: Identifier of the queried device.
        measurements: Readings ordered by (recorded_time, channel).
    """

    device: str
    measurements: list[Measurement]


class RollupsResponse(BaseModel):
    """Response model for the rollups endpoint.

    Attributes:
        device: Identifier of the queried device.
        granularity: Bucket size used (hourly, daily, monthly).
        timezone: Timezone the buckets were aligned to.
        rollups: Delta records in emission order.
    """

    device: str
    granularity: str
    timezone: str
    rollups: list[RollupRecord]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_device(settings: CollectorSettings, device: str) -> MeterDevice:
    dev = settings.get_device(device)
    if dev is None:
        raise HTTPException(status_code=404, detail=f"Unknown device '{device}'.")
    return dev


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(
            status_code=422, detail=f"Unknown timezone '{name}'."
        ) from None


def _bounds(
    from_time: datetime, to_time: datetime, tz: tzinfo
) -> tuple[datetime, datetime]:
    if from_time.tzinfo is None:
        from_time = from_time.replace(tzinfo=tz)
    if to_time.tzinfo is None:
        to_time = to_time.replace(tzinfo=tz)
    if from_time > to_time:
        raise HTTPException(
            status_code=422, detail="from_time must not be after to_time."
        )
    return from_time, to_time


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/devices/{device}/measurements", response_model=MeasurementsResponse)
async def get_measurements(
    device: str,
    settings: Settings,
    store: Store,
    from_time: Annotated[datetime, Query(description="Range start (inclusive).")],
    to_time: Annotated[datetime, Query(description="Range end (inclusive).")],
    channel: Annotated[int | None, Query(ge=1, le=99)] = None,
) -> MeasurementsResponse:
    """Return stored readings of a device within ``[from_time, to_time]``.

    Raises:
        HTTPException: 404 for an unconfigured device.
        HTTPException: 422 when from_time is after to_time.
    """
    dev = _require_device(settings, device)
    start, end = _bounds(from_time, to_time, _zone(dev.timezone))
    rows = await fetch_measurements(store, device, start, end, channel)

    logger.debug("Measurements query: device=%s rows=%d", device, len(rows))
    return MeasurementsResponse(device=device, measurements=rows)


@router.get("/devices/{device}/rollups", response_model=RollupsResponse)
async def get_rollups(
    device: str,
    settings: Settings,
    store: Store,
    from_time: Annotated[datetime, Query(description="Range start (inclusive).")],
    to_time: Annotated[datetime, Query(description="Range end (inclusive).")],
    granularity: Annotated[
        str, Query(description="Bucket size: hourly, daily, or monthly.")
    ] = "daily",
    timezone: Annotated[
        str | None,
        Query(description="IANA timezone; defaults to the device's timezone."),
    ] = None,
    channel: Annotated[int | None, Query(ge=1, le=99)] = None,
    add_first: bool = False,
) -> RollupsResponse:
    """Return consumption deltas of a device at the requested granularity.

    Raises:
        HTTPException: 404 for an unconfigured device.
        HTTPException: 422 for an invalid granularity, unknown timezone, or
            from_time after to_time.
    """
    if granularity not in VALID_GRANULARITIES:
        raise HTTPException(
            status_code=422,
            detail=(
                f"Invalid granularity '{granularity}'. "
                f"Must be one of: {sorted(VALID_GRANULARITIES)}."
            ),
        )
    dev = _require_device(settings, device)
    tz_name = timezone or dev.timezone
    tz = _zone(tz_name)
    start, end = _bounds(from_time, to_time, tz)

    rows = await fetch_measurements(store, device, start, end, channel)
    rollups = fetch_rollups(
        rows,
        tz,
        granularity,
        add_first,
        local_timezone=settings.local_timezone,
    )

    logger.debug(
        "Rollups query: device=%s granularity=%s rows=%d rollups=%d",
        device,
        granularity,
        len(rows),
        len(rollups),
    )
    return RollupsResponse(
        device=device,
        granularity=granularity,
        timezone=tz_name,
        rollups=rollups,
    )
