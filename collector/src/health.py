"""
Health file writer for the collector daemon.

Writes a JSON health file at a configurable path with three fields:
- last_poll_ts: ISO timestamp of the most recent poll cycle.
- last_success_ts: ISO timestamp of the most recent cycle where at least one
  device committed its batch.
- devices: mapping of device identifier -> status of its last poll.

The file is rewritten after every poll cycle, giving Docker HEALTHCHECK or
monitoring a simple liveness signal.

CHANGELOG:
- 2026-10-19: Track per-device poll status instead of spool depth
- 2026-10-19: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from collector.src.models import PollOutcome


class HealthWriter:
    """Writes collector health status to a JSON file.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_poll_ts: str | None = None
        self._last_success_ts: str | None = None
        self._devices: dict[str, str] = {}

    def record_cycle(self, outcomes: Iterable[PollOutcome]) -> None:
        """Record the outcomes of one poll cycle and write the health file."""
        now = datetime.now(tz=UTC).isoformat()
        self._last_poll_ts = now
        any_ok = False
        for outcome in outcomes:
            self._devices[outcome.device] = outcome.status
            any_ok = any_ok or outcome.ok
        if any_ok:
            self._last_success_ts = now
        self._write()

    def _write(self) -> None:
        data = {
            "last_poll_ts": self._last_poll_ts,
            "last_success_ts": self._last_success_ts,
            "devices": self._devices,
        }
        self.path.write_text(json.dumps(data))
