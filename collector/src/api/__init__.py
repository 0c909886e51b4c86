"""
Read-only HTTP API over the shard store and rollup engine.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-010)
"""
