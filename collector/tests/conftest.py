"""
Shared test fixtures for collector tests.

Provides environment variable fixtures for CollectorSettings and a factory
for validated MeterDevice objects. All collector env vars are cleaned before
each test to ensure isolation.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from collector.src.config import MeterDevice

# All CollectorSettings environment variable names, used for cleanup.
_ALL_COLLECTOR_ENV_VARS = (
    "WORKDIR",
    "DEVICES",
    "POLL_INTERVAL_S",
    "READ_TIMEOUT_S",
    "LOCK_TIMEOUT_S",
    "SERVER_TIMEZONE",
    "LOCAL_TIMEZONE",
    "HEALTH_PATH",
    "SHARD_EXTENSION",
)

DEVICES = [
    {
        "device": "10.0.0.5",
        "port": 4001,
        "channels": ["1", "2"],
        "timezone": "Europe/Budapest",
    },
    {
        "device": "meter-b",
        "host": "10.0.0.6",
        "port": 4002,
        "channels": ["1", "2", "3"],
    },
]


@pytest.fixture(autouse=True)
def _clean_collector_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove all collector env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_COLLECTOR_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> dict[str, str]:
    """Set all required and optional environment variables for CollectorSettings.

    Returns the dict of env var names to values for assertion convenience.
    """
    env = {
        "WORKDIR": str(tmp_path / "shards"),
        "DEVICES": json.dumps(DEVICES),
        "POLL_INTERVAL_S": "60",
        "READ_TIMEOUT_S": "2.5",
        "LOCK_TIMEOUT_S": "1",
        "SERVER_TIMEZONE": "Europe/Budapest",
        "LOCAL_TIMEZONE": "America/New_York",
        "HEALTH_PATH": str(tmp_path / "health.json"),
        "SHARD_EXTENSION": ".sqlite",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_required_only(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> dict[str, str]:
    """Set only the required environment variables (no optional ones)."""
    env = {
        "WORKDIR": str(tmp_path / "shards"),
        "DEVICES": json.dumps(DEVICES[:1]),
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def make_device():
    """Return a factory building a MeterDevice with overridable fields."""

    def _make(**overrides: object) -> MeterDevice:
        fields: dict[str, object] = {
            "device": "10.0.0.5",
            "host": "127.0.0.1",
            "port": 4001,
            "channels": ["1", "2"],
        }
        fields.update(overrides)
        return MeterDevice(**fields)

    return _make
