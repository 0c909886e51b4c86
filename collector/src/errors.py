"""
Typed failure taxonomy for the collector core.

Every failure a poll cycle or a shard operation can hit has its own exception
class so callers can tell a refused connection from a lock timeout without
parsing messages. All classes derive from :class:`CollectorError`.

CHANGELOG:
- 2026-10-20: Add ShardUnavailable for shard create/open failures
- 2026-10-19: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations


class CollectorError(Exception):
    """Base class for all collector failures."""


# ---------------------------------------------------------------------------
# Meter protocol failures
# ---------------------------------------------------------------------------


class MeterConnectionError(CollectorError):
    """The meter refused the connection, was unreachable, or reset it."""


class MeterTimeoutError(CollectorError):
    """No bytes arrived from the meter within the inactivity timeout."""


class MeterProtocolError(MeterTimeoutError):
    """The meter closed the stream before the last channel line was seen.

    An incomplete payload is handled like a missing terminator, so this is a
    timeout-class failure.
    """


# ---------------------------------------------------------------------------
# Shard store failures
# ---------------------------------------------------------------------------


class ShardMissing(CollectorError):
    """A shard was opened without ``create`` and does not exist on disk."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Shard '{path}' does not exist")
        self.path = path


class LockFailure(CollectorError):
    """The exclusive write lock on a shard could not be acquired."""


class InsertFailure(CollectorError):
    """A single measurement row could not be inserted."""


class ShardUnavailable(CollectorError):
    """A shard could not be created or opened (filesystem or SQLite error)."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Shard '{path}' unavailable: {reason}")
        self.path = path
