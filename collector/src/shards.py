"""
Per-device, per-month SQLite shard store.

Each device gets a directory under the work directory and one SQLite file per
calendar month (UTC): ``<workdir>/<device>/<YYYY-MM>-monthly``. A shard is
created lazily on the first write for its month, with a single append-only
``Measurements`` table.

Operations:
- open_shard(device, year_month, create): scoped handle to one shard.
- write_batch(db, rows): BEGIN EXCLUSIVE -> insert each row -> COMMIT.
- store(device, rows): open-or-create the batch's month shard and write.
- query_range(device, from, to, channel): ordered scan across every month
  shard overlapping the range; missing months are skipped.

Writes are at-least-once, not atomic: a row that fails to insert is logged
and skipped while the rest of the batch still commits.

CHANGELOG:
- 2026-10-20: Wrap shard create/open failures in ShardUnavailable; idempotent schema bootstrap
- 2026-10-19: Open read handles with mode=ro so queries never create shards
- 2026-10-19: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite

from collector.src.errors import (
    InsertFailure,
    LockFailure,
    ShardMissing,
    ShardUnavailable,
)
from collector.src.models import Measurement, WriteResult

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS Measurements (
    id INTEGER NOT NULL,
    channel INTEGER,
    measured_value REAL,
    recorded_time INTEGER,
    PRIMARY KEY (id AUTOINCREMENT)
);
"""

_INSERT_SQL = """\
INSERT INTO Measurements (channel, measured_value, recorded_time)
VALUES (?, ?, ?);
"""

_RANGE_SQL = """\
SELECT id, channel, measured_value, recorded_time
FROM Measurements
WHERE recorded_time BETWEEN ? AND ?
"""

_ORDER_SQL = " ORDER BY recorded_time ASC, channel ASC, id ASC;"

SHARD_SUFFIX = "-monthly"


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def to_unix(value: int | float | datetime) -> int:
    """Return unix seconds for an int/float timestamp or an aware datetime."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            raise ValueError("datetime bounds must be timezone-aware")
        return int(value.timestamp())
    return int(value)


def year_month(ts: int | float | datetime) -> str:
    """Return the ``YYYY-MM`` shard key (UTC) for a timestamp."""
    return datetime.fromtimestamp(to_unix(ts), tz=UTC).strftime("%Y-%m")


def iter_months(from_time: int, to_time: int) -> list[str]:
    """List ``YYYY-MM`` keys of every UTC month overlapping ``[from, to]``."""
    start = datetime.fromtimestamp(from_time, tz=UTC)
    end = datetime.fromtimestamp(to_time, tz=UTC)
    year, month = start.year, start.month
    months: list[str] = []
    while (year, month) <= (end.year, end.month):
        months.append(f"{year:04d}-{month:02d}")
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return months


# ---------------------------------------------------------------------------
# Exclusive write transaction
# ---------------------------------------------------------------------------


@asynccontextmanager
async def exclusive_transaction(db: aiosqlite.Connection) -> AsyncIterator[None]:
    """Hold an exclusive lock on *db* for the duration of the block.

    The transaction is committed on every exit path, including when the
    block raises, so rows inserted before a failure are kept.

    Raises:
        LockFailure: The lock could not be acquired within the connection's
            busy timeout, or the final commit failed.
    """
    try:
        await db.execute("BEGIN EXCLUSIVE")
    except sqlite3.OperationalError as exc:
        raise LockFailure(f"Could not lock shard: {exc}") from exc
    try:
        yield
    finally:
        try:
            await db.execute("COMMIT")
        except sqlite3.OperationalError as exc:
            with contextlib.suppress(sqlite3.Error):
                await db.execute("ROLLBACK")
            raise LockFailure(f"Commit failed: {exc}") from exc


def _is_busy(exc: sqlite3.Error) -> bool:
    name = getattr(exc, "sqlite_errorname", "") or ""
    return name.startswith(("SQLITE_BUSY", "SQLITE_LOCKED"))


async def _bootstrap_schema(db: aiosqlite.Connection, path: Path) -> None:
    try:
        await db.execute(_CREATE_TABLE_SQL)
    except sqlite3.Error as exc:
        if _is_busy(exc):
            raise LockFailure(f"Could not lock shard: {exc}") from exc
        raise ShardUnavailable(str(path), str(exc)) from exc


async def _insert_row(db: aiosqlite.Connection, row: Measurement) -> None:
    try:
        await db.execute(
            _INSERT_SQL,
            (row.channel, row.measured_value, row.recorded_time),
        )
    except (sqlite3.Error, OverflowError) as exc:
        raise InsertFailure(f"Insert of channel {row.channel!r} failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class ShardStore:
    """Monthly SQLite shards for every device under one work directory.

    The store holds no open connections; each operation opens and closes its
    own shard handle.

    Args:
        workdir: Root directory of the shard tree. Accepts ``str`` or
            ``pathlib.Path``.
        lock_timeout_s: SQLite busy timeout used while waiting for the
            exclusive write lock.
        extension: Optional suffix appended to shard file names.

    Usage::

        store = ShardStore("/data/meters")
        await store.store("10.0.0.5", rows)
        rows = await store.query_range("10.0.0.5", start, end, channel=1)
    """

    def __init__(
        self,
        workdir: str | Path,
        *,
        lock_timeout_s: float = 5.0,
        extension: str = "",
    ) -> None:
        self.workdir = Path(workdir)
        self._lock_timeout_s = lock_timeout_s
        self._extension = extension

    def shard_path(self, device: str, year_month: str) -> Path:
        """Return ``<workdir>/<device>/<YYYY-MM>-monthly[extension]``."""
        return self.workdir / device / f"{year_month}{SHARD_SUFFIX}{self._extension}"

    @asynccontextmanager
    async def open_shard(
        self,
        device: str,
        year_month: str,
        *,
        create: bool = False,
        read_only: bool = False,
    ) -> AsyncIterator[aiosqlite.Connection]:
        """Open one shard, creating it (and its directory) when *create* is set.

        The connection runs in autocommit mode so transactions are explicit.
        It is closed when the block exits.

        With *create* the schema statement runs on every open; it is a no-op
        once the table exists.

        Raises:
            ShardMissing: The shard does not exist and *create* is false.
            LockFailure: Another connection held the shard past the busy
                timeout while the schema was checked.
            ShardUnavailable: The directory or file could not be created or
                opened, or the schema could not be applied.
        """
        path = self.shard_path(device, year_month)
        exists = path.exists()
        if not exists and not create:
            raise ShardMissing(str(path))

        if read_only:
            target, uri = f"{path.resolve().as_uri()}?mode=ro", True
        else:
            target, uri = str(path), False

        try:
            if not exists:
                path.parent.mkdir(parents=True, exist_ok=True)
                logger.info("Creating shard '%s'", path)
            db = await aiosqlite.connect(
                target,
                uri=uri,
                timeout=self._lock_timeout_s,
                isolation_level=None,
            )
        except (OSError, sqlite3.Error) as exc:
            raise ShardUnavailable(str(path), str(exc)) from exc

        try:
            if create and not read_only:
                await _bootstrap_schema(db, path)
            yield db
        finally:
            await db.close()

    async def write_batch(
        self,
        db: aiosqlite.Connection,
        rows: Sequence[Measurement],
    ) -> WriteResult:
        """Insert *rows* inside one exclusive transaction.

        Rows that fail to insert are logged and counted; the others commit.

        Raises:
            LockFailure: The exclusive lock could not be acquired.
        """
        result = WriteResult()
        async with exclusive_transaction(db):
            for row in rows:
                try:
                    await _insert_row(db, row)
                except InsertFailure as exc:
                    logger.warning("Skipping row: %s", exc)
                    result.failed += 1
                else:
                    result.inserted += 1
        return result

    async def store(self, device: str, rows: Sequence[Measurement]) -> WriteResult:
        """Write a batch into the shard of its month, creating it if needed.

        All rows of a batch share one ``recorded_time``; the first row picks
        the shard. An empty batch is a no-op and touches no file.

        Raises:
            LockFailure: The exclusive lock could not be acquired.
            ShardUnavailable: The shard could not be created or opened.
        """
        if not rows:
            return WriteResult()
        month = year_month(rows[0].recorded_time)
        async with self.open_shard(device, month, create=True) as db:
            logger.debug("%s locking shard %s", device, month)
            result = await self.write_batch(db, rows)
        logger.info(
            "%s stored %d rows in %s (%d failed)",
            device,
            result.inserted,
            month,
            result.failed,
        )
        return result

    async def query_range(
        self,
        device: str,
        from_time: int | datetime,
        to_time: int | datetime,
        channel: int | None = None,
    ) -> list[Measurement]:
        """Return measurements with ``from <= recorded_time <= to``.

        Every month shard overlapping the range is scanned in ascending
        order; months without a shard contribute nothing. Each shard's rows
        are ordered by ``(recorded_time, channel)`` so the concatenation is
        globally time-ordered.

        Args:
            device: Device identifier.
            from_time: Inclusive start, unix seconds or aware datetime.
            to_time: Inclusive end, unix seconds or aware datetime.
            channel: Restrict to one channel when given.
        """
        from_s, to_s = to_unix(from_time), to_unix(to_time)
        if from_s > to_s:
            return []

        sql = _RANGE_SQL
        params: list[int] = [from_s, to_s]
        if channel is not None:
            sql += " AND channel = ?"
            params.append(channel)
        sql += _ORDER_SQL

        result: list[Measurement] = []
        for month in iter_months(from_s, to_s):
            try:
                async with self.open_shard(device, month, read_only=True) as db:
                    db.row_factory = aiosqlite.Row
                    async with db.execute(sql, params) as cursor:
                        rows = await cursor.fetchall()
            except ShardMissing:
                continue
            except (ShardUnavailable, sqlite3.Error):
                logger.error(
                    "%s query on shard %s failed, skipping",
                    device,
                    month,
                    exc_info=True,
                )
                continue
            result.extend(Measurement(**dict(row)) for row in rows)
        return result
