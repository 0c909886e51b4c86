"""
Energy meter collector package.

Polls networked energy meters over a line-based TCP protocol, stores hourly
readings in per-device monthly SQLite shards, and rebuilds consumption deltas
at hourly, daily or monthly granularity.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-001)

TODO:
- None
"""
