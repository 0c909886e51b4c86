"""
Tests for the rollup engine.

Covers hourly, daily and monthly boundary detection in the target timezone,
baseline records, trailing records for partial buckets, per-channel state,
duplicate timestamps, the three time projections, and counter resets.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-007)

TODO:
- None
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest
from collector.src.models import Measurement
from collector.src.rollup import (
    compute_rollups,
    crosses_boundary,
    month_diff,
    render_time,
)

BUDAPEST = ZoneInfo("Europe/Budapest")
HOUR = 3600


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _ts(*args: int, tz=UTC) -> int:
    return int(datetime(*args, tzinfo=tz).timestamp())


def _m(ts: int, value: float, channel: int = 1) -> Measurement:
    return Measurement(channel=channel, measured_value=value, recorded_time=ts)


def _hourly_series(start: int, values: list[float], channel: int = 1) -> list[Measurement]:
    return [_m(start + i * HOUR, v, channel) for i, v in enumerate(values)]


def _interleave(*series: list[Measurement]) -> list[Measurement]:
    rows = [m for s in series for m in s]
    return sorted(rows, key=lambda m: (m.recorded_time, m.channel))


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


class TestCalendarHelpers:
    def test_render_time_projections(self) -> None:
        ts = _ts(2024, 7, 1, 22)

        assert render_time(ts, ZoneInfo("UTC")) == "2024-07-01 22:00:00"
        assert render_time(ts, BUDAPEST) == "2024-07-02 00:00:00"

    def test_month_diff_whole_months(self) -> None:
        assert month_diff(datetime(2024, 1, 1), datetime(2024, 3, 1)) == 2
        assert month_diff(datetime(2023, 12, 1), datetime(2024, 1, 1)) == 1

    def test_month_diff_ignores_day_and_time(self) -> None:
        assert month_diff(datetime(2024, 1, 31, 23), datetime(2024, 2, 1)) == 1
        assert month_diff(datetime(2024, 4, 1), datetime(2024, 4, 30, 23)) == 0

    def test_month_diff_same_instant(self) -> None:
        assert month_diff(datetime(2024, 2, 1), datetime(2024, 2, 1)) == 0

    def test_daily_boundary_uses_target_timezone(self) -> None:
        """21:00 and 22:00 UTC fall on different Budapest days in summer."""
        a, b = _ts(2024, 7, 1, 21), _ts(2024, 7, 1, 22)

        assert crosses_boundary("daily", a, b, BUDAPEST) is True
        assert crosses_boundary("daily", a, b, ZoneInfo("UTC")) is False

    def test_daily_boundary_on_short_dst_day(self) -> None:
        """The 23-hour spring-forward day still counts as a full day."""
        start = _ts(2024, 3, 31, 0, tz=BUDAPEST)
        next_midnight = _ts(2024, 4, 1, 0, tz=BUDAPEST)

        assert next_midnight - start == 23 * HOUR
        assert crosses_boundary("daily", start, next_midnight, BUDAPEST) is True

    def test_monthly_boundary(self) -> None:
        jan_end = _ts(2024, 1, 31, 23, tz=BUDAPEST)
        feb_start = _ts(2024, 2, 1, 0, tz=BUDAPEST)

        assert crosses_boundary("monthly", jan_end, feb_start, BUDAPEST) is True
        assert crosses_boundary("monthly", _ts(2024, 1, 1), jan_end, BUDAPEST) is False

    def test_hourly_always_crosses(self) -> None:
        assert crosses_boundary("hourly", 0, HOUR, BUDAPEST) is True

    def test_unknown_granularity(self) -> None:
        with pytest.raises(ValueError):
            crosses_boundary("weekly", 0, HOUR, BUDAPEST)


# ---------------------------------------------------------------------------
# Hourly
# ---------------------------------------------------------------------------


class TestHourly:
    def test_n_readings_give_n_minus_one_deltas(self) -> None:
        values = [100.0, 150.0, 175.0, 300.0, 301.0]
        rows = _hourly_series(_ts(2024, 3, 5, 0), values)

        records = compute_rollups(rows, timezone="UTC", granularity="hourly")

        assert len(records) == len(values) - 1
        assert [r.diff for r in records] == [50.0, 25.0, 125.0, 1.0]
        assert [r.measured_value for r in records] == values[1:]

    def test_add_first_emits_zero_baseline(self) -> None:
        values = [100.0, 150.0, 175.0]
        rows = _hourly_series(_ts(2024, 3, 5, 0), values)

        records = compute_rollups(rows, timezone="UTC", granularity="hourly", add_first=True)

        assert len(records) == len(values)
        baseline = records[0]
        assert baseline.diff == 0
        assert baseline.measured_value == 100.0
        assert baseline.recorded_time == rows[0].recorded_time
        assert baseline.from_utc_time is None
        assert baseline.to_utc_time is None

    def test_interval_endpoints(self) -> None:
        start = _ts(2024, 7, 1, 21)
        rows = _hourly_series(start, [1.0, 2.0])

        (record,) = compute_rollups(
            rows,
            timezone=BUDAPEST,
            granularity="hourly",
            local_timezone="America/New_York",
        )

        assert record.recorded_time == start + HOUR
        assert record.from_utc_time == "2024-07-01 21:00:00"
        assert record.to_utc_time == "2024-07-01 22:00:00"
        assert record.from_server_time == "2024-07-01 23:00:00"
        assert record.to_server_time == "2024-07-02 00:00:00"
        assert record.from_local_time == "2024-07-01 17:00:00"
        assert record.to_local_time == "2024-07-01 18:00:00"

    def test_channels_tracked_independently(self) -> None:
        start = _ts(2024, 3, 5, 0)
        rows = _interleave(
            _hourly_series(start, [10.0, 20.0, 40.0], channel=1),
            _hourly_series(start, [5.0, 6.0, 8.0], channel=2),
        )

        records = compute_rollups(rows, timezone="UTC", granularity="hourly")

        assert [(r.channel, r.diff) for r in records] == [
            (1, 10.0),
            (2, 1.0),
            (1, 20.0),
            (2, 2.0),
        ]

    def test_duplicate_timestamp_is_not_a_new_bucket(self) -> None:
        """A second row for the same channel and hour emits nothing."""
        start = _ts(2024, 3, 5, 0)
        rows = [_m(start, 1.0), _m(start + HOUR, 2.0), _m(start + HOUR, 2.5)]

        records = compute_rollups(rows, timezone="UTC", granularity="hourly")

        assert [r.diff for r in records] == [1.0]

    def test_channel_appearing_late_gets_its_own_baseline(self) -> None:
        start = _ts(2024, 3, 5, 0)
        rows = _interleave(
            _hourly_series(start, [1.0, 2.0, 3.0], channel=1),
            _hourly_series(start + HOUR, [7.0, 9.0], channel=2),
        )

        records = compute_rollups(rows, timezone="UTC", granularity="hourly", add_first=True)

        assert [(r.channel, r.diff) for r in records] == [
            (1, 0.0),
            (1, 1.0),
            (2, 0.0),
            (1, 1.0),
            (2, 2.0),
        ]


# ---------------------------------------------------------------------------
# Daily
# ---------------------------------------------------------------------------


class TestDaily:
    def test_25_hourly_readings_across_local_midnight(self) -> None:
        """Midnight-to-midnight in the target timezone yields one record."""
        start = _ts(2024, 3, 5, 0, tz=BUDAPEST)
        values = [1000.0 + 10 * i for i in range(25)]
        rows = _hourly_series(start, values)

        records = compute_rollups(rows, timezone="Europe/Budapest", granularity="daily")

        assert len(records) == 1
        assert records[0].diff == values[24] - values[0]
        assert records[0].from_server_time == "2024-03-05 00:00:00"
        assert records[0].to_server_time == "2024-03-06 00:00:00"

    def test_partial_day_gets_trailing_record(self) -> None:
        """A stream ending mid-day closes with a trailing record."""
        start = _ts(2024, 3, 5, 12, tz=BUDAPEST)
        values = [float(i) for i in range(25)]  # 12:00 -> next day 12:00
        rows = _hourly_series(start, values)

        records = compute_rollups(rows, timezone=BUDAPEST, granularity="daily")

        assert len(records) == 2
        crossing, trailing = records
        assert crossing.diff == 12.0
        assert crossing.to_server_time == "2024-03-06 00:00:00"
        assert trailing.diff == 12.0
        assert trailing.from_server_time == "2024-03-06 00:00:00"
        assert trailing.to_server_time == "2024-03-06 12:00:00"

    def test_single_day_only_trailing_record(self) -> None:
        start = _ts(2024, 3, 5, 8)
        rows = _hourly_series(start, [5.0, 6.0, 9.0])

        records = compute_rollups(rows, timezone="UTC", granularity="daily", add_first=True)

        assert [r.diff for r in records] == [0.0, 4.0]
        assert records[1].from_utc_time == "2024-03-05 08:00:00"
        assert records[1].to_utc_time == "2024-03-05 10:00:00"

    def test_day_boundary_depends_on_timezone(self) -> None:
        """Readings 21:00-23:00 UTC in July cross Budapest midnight only."""
        rows = _hourly_series(_ts(2024, 7, 1, 21), [1.0, 2.0, 3.0])

        utc_records = compute_rollups(rows, timezone="UTC", granularity="daily")
        bud_records = compute_rollups(rows, timezone=BUDAPEST, granularity="daily")

        assert [r.diff for r in utc_records] == [2.0]
        assert [r.diff for r in bud_records] == [1.0, 1.0]

    def test_trailing_skips_channel_without_new_data(self) -> None:
        """A channel whose last reading is its last boundary adds no trailer."""
        day1 = _ts(2024, 3, 5, 0)
        day2 = _ts(2024, 3, 6, 0)
        rows = [
            _m(day1, 1.0, channel=1),
            _m(day1, 10.0, channel=2),
            _m(day2, 2.0, channel=1),
            _m(day2, 20.0, channel=2),
            _m(day2 + HOUR, 3.0, channel=1),
        ]

        records = compute_rollups(rows, timezone="UTC", granularity="daily")

        assert [(r.channel, r.diff) for r in records] == [
            (1, 1.0),
            (2, 10.0),
            (1, 1.0),
        ]


# ---------------------------------------------------------------------------
# Monthly
# ---------------------------------------------------------------------------


class TestMonthly:
    def test_daily_readings_over_two_months(self) -> None:
        """Jan 1 -> Feb 1 -> Mar 1 emit two month records, no trailer."""
        jan = _ts(2024, 1, 1, 0, tz=BUDAPEST)
        feb = _ts(2024, 2, 1, 0, tz=BUDAPEST)
        mar = _ts(2024, 3, 1, 0, tz=BUDAPEST)
        rows = [_m(jan, 0.0), _m(jan + 15 * 86400, 50.0), _m(feb, 100.0),
                _m(feb + 10 * 86400, 130.0), _m(mar, 250.0)]

        records = compute_rollups(rows, timezone=BUDAPEST, granularity="monthly")

        assert [r.diff for r in records] == [100.0, 150.0]
        assert records[1].from_server_time == "2024-02-01 00:00:00"
        assert records[1].to_server_time == "2024-03-01 00:00:00"

    def test_month_boundary_in_target_timezone(self) -> None:
        """Jan 31 23:00 UTC is already February in Budapest."""
        rows = [_m(_ts(2024, 1, 31, 22), 1.0), _m(_ts(2024, 1, 31, 23), 2.0)]

        bud = compute_rollups(rows, timezone=BUDAPEST, granularity="monthly")
        utc = compute_rollups(rows, timezone="UTC", granularity="monthly")

        assert bud[0].to_server_time == "2024-02-01 00:00:00"
        assert len(bud) == 1
        # UTC sees one month: only the trailing record.
        assert len(utc) == 1
        assert utc[0].to_utc_time == "2024-01-31 23:00:00"

    def test_short_february_still_counts(self) -> None:
        feb = _ts(2023, 2, 1, 0)
        mar = _ts(2023, 3, 1, 0)
        rows = [_m(feb, 1.0), _m(mar, 29.0)]

        records = compute_rollups(rows, timezone="UTC", granularity="monthly")

        assert [r.diff for r in records] == [28.0]


# ---------------------------------------------------------------------------
# Edge cases
# ---------------------------------------------------------------------------


class TestEdgeCases:
    def test_empty_input(self) -> None:
        assert compute_rollups([], timezone="UTC", granularity="daily") == []

    def test_single_reading_without_baseline(self) -> None:
        rows = [_m(_ts(2024, 3, 5, 0), 1.0)]

        assert compute_rollups(rows, timezone="UTC", granularity="hourly") == []

    def test_single_reading_with_baseline(self) -> None:
        rows = [_m(_ts(2024, 3, 5, 0), 1.0)]

        records = compute_rollups(rows, timezone="UTC", granularity="daily", add_first=True)

        assert [(r.diff, r.measured_value) for r in records] == [(0.0, 1.0)]

    def test_invalid_granularity(self) -> None:
        with pytest.raises(ValueError, match="Invalid granularity"):
            compute_rollups([], timezone="UTC", granularity="weekly")

    def test_counter_reset_is_kept_and_logged(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        rows = _hourly_series(_ts(2024, 3, 5, 0), [500.0, 20.0])

        with caplog.at_level(logging.WARNING, logger="collector.src.rollup"):
            records = compute_rollups(rows, timezone="UTC", granularity="hourly")

        assert [r.diff for r in records] == [-480.0]
        assert "counter decreased" in caplog.text

    def test_accepts_generator_input(self) -> None:
        rows = _hourly_series(_ts(2024, 3, 5, 0), [1.0, 3.0])

        records = compute_rollups(iter(rows), timezone="UTC", granularity="hourly")

        assert [r.diff for r in records] == [2.0]
