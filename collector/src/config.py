"""
Collector configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
The device list is supplied as a JSON array in ``DEVICES``; every other value
is a plain scalar. No hardcoded meter addresses or paths.

CHANGELOG:
- 2026-10-19: Add SHARD_EXTENSION for shards written with a file suffix
- 2026-10-19: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import BaseSettings


def _check_timezone(v: str) -> str:
    try:
        ZoneInfo(v)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone '{v}'") from exc
    return v


class MeterDevice(BaseModel):
    """One polled energy meter.

    Attributes:
        device: Device identifier; also the shard directory name
            (usually the meter's IP address).
        host: Meter IP address / hostname. Defaults to ``device``.
        port: Meter TCP port.
        channels: Allow-listed channel numbers, as strings.
        timezone: Reporting timezone used for this device's rollups.
    """

    device: str
    host: str = ""
    port: int
    channels: list[str]
    timezone: str = "UTC"

    @model_validator(mode="after")
    def _default_host(self) -> MeterDevice:
        """Default host to the device identifier when not set."""
        if not self.host:
            self.host = self.device
        return self

    @field_validator("port")
    @classmethod
    def port_must_be_valid(cls, v: int) -> int:
        """Validate TCP port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("channels")
    @classmethod
    def channels_must_be_numeric(cls, v: list[str]) -> list[str]:
        """Validate the allow-list is non-empty and holds 1-2 digit numbers."""
        if not v:
            raise ValueError("channels must list at least one channel")
        for channel in v:
            if not (channel.isdigit() and 1 <= len(channel) <= 2):
                raise ValueError(f"channel '{channel}' must be a 1-2 digit number")
        return v

    @field_validator("timezone")
    @classmethod
    def timezone_must_exist(cls, v: str) -> str:
        """Validate the reporting timezone is a known IANA name."""
        return _check_timezone(v)


class CollectorSettings(BaseSettings):
    """Collector daemon and read API configuration.

    Attributes:
        workdir: Root directory holding ``<device>/<YYYY-MM>-monthly`` shards.
        devices: Meters to poll.
        poll_interval_s: Seconds between poll cycles (min 5).
        read_timeout_s: Socket inactivity timeout per meter read.
        lock_timeout_s: SQLite busy timeout while acquiring the write lock.
        server_timezone: Default target timezone for rollups.
        local_timezone: Timezone for the ``*_local_time`` projection.
        health_path: Health JSON file written after each poll cycle.
        shard_extension: Suffix appended to shard file names (e.g. ``.sqlite``).
    """

    workdir: str
    devices: list[MeterDevice]
    poll_interval_s: int = 300
    read_timeout_s: float = 5.0
    lock_timeout_s: float = 5.0
    server_timezone: str = "UTC"
    local_timezone: str = "UTC"
    health_path: str = "/data/health.json"
    shard_extension: str = ""

    @field_validator("poll_interval_s")
    @classmethod
    def poll_interval_must_be_reasonable(cls, v: int) -> int:
        """Validate poll interval is at least 5 seconds."""
        if v < 5:
            raise ValueError("POLL_INTERVAL_S must be >= 5")
        return v

    @field_validator("read_timeout_s")
    @classmethod
    def read_timeout_must_be_positive(cls, v: float) -> float:
        """Validate the socket inactivity timeout is positive."""
        if v <= 0:
            raise ValueError("READ_TIMEOUT_S must be > 0")
        return v

    @field_validator("lock_timeout_s")
    @classmethod
    def lock_timeout_must_be_non_negative(cls, v: float) -> float:
        """Validate the lock timeout is non-negative."""
        if v < 0:
            raise ValueError("LOCK_TIMEOUT_S must be >= 0")
        return v

    @field_validator("server_timezone", "local_timezone")
    @classmethod
    def timezones_must_exist(cls, v: str) -> str:
        """Validate timezone names against the IANA database."""
        return _check_timezone(v)

    @field_validator("devices")
    @classmethod
    def device_ids_must_be_unique(cls, v: list[MeterDevice]) -> list[MeterDevice]:
        """Reject two devices writing into the same shard directory."""
        seen: set[str] = set()
        for dev in v:
            if dev.device in seen:
                raise ValueError(f"DEVICES lists '{dev.device}' more than once")
            seen.add(dev.device)
        return v

    def get_device(self, device: str) -> MeterDevice | None:
        """Return the configured device with identifier *device*, if any."""
        for dev in self.devices:
            if dev.device == device:
                return dev
        return None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
