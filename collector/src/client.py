"""
Async TCP client for the energy meter line protocol.

Connects to a meter, sends the literal ``read all`` command, and accumulates
the plaintext response. The meter answers with one ``channel_<N> : <value>``
line per channel; once the line for the last channel (channel 13) has been
seen the client half-closes its write side and waits for the meter to close
the stream.

- Every read is bounded by an inactivity timeout.
- Timeouts, refused connections and truncated payloads raise distinct
  exceptions from :mod:`collector.src.errors`; nothing is retried here.
- The connection is closed exactly once on every exit path.

CHANGELOG:
- 2026-10-19: Raise MeterProtocolError when the stream ends before the sentinel
- 2026-10-19: Initial creation (STORY-003)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging

from collector.src.errors import (
    MeterConnectionError,
    MeterProtocolError,
    MeterTimeoutError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

READ_COMMAND: bytes = b"read all"
"""Command sent once per connection; no framing or handshake."""

SENTINEL: str = "channel_13"
"""Marker of the last channel line; the response is complete once seen."""

READ_TIMEOUT_S: float = 5.0
"""Default inactivity timeout in seconds for connect and each read."""

_CHUNK_SIZE = 4096


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def read_meter(
    host: str,
    port: int,
    *,
    timeout_s: float = READ_TIMEOUT_S,
) -> str:
    """Request all channel readings from one meter and return the raw text.

    Args:
        host: Meter IP address or hostname.
        port: Meter TCP port.
        timeout_s: Inactivity timeout applied to the connect and to every
            individual read.

    Returns:
        The full decoded response text.

    Raises:
        MeterConnectionError: Connection refused, unreachable, or reset.
        MeterTimeoutError: No bytes within *timeout_s*.
        MeterProtocolError: The meter closed the stream before the
            ``channel_13`` line arrived.
    """
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=timeout_s,
        )
    except TimeoutError as exc:
        logger.warning("%s:%d connect timeout after %.1fs", host, port, timeout_s)
        raise MeterTimeoutError(f"Connect to {host}:{port} timed out") from exc
    except OSError as exc:
        logger.warning("%s:%d connect failed: %s", host, port, exc)
        raise MeterConnectionError(f"Connect to {host}:{port} failed: {exc}") from exc

    logger.info("%s TCP connection established", host)
    try:
        return await _exchange(reader, writer, host=host, timeout_s=timeout_s)
    finally:
        await _close(writer, host=host)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


async def _exchange(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    *,
    host: str,
    timeout_s: float,
) -> str:
    """Send the read command and collect the response until EOF."""
    try:
        writer.write(READ_COMMAND)
        await asyncio.wait_for(writer.drain(), timeout=timeout_s)

        response = ""
        half_closed = False
        while True:
            chunk = await asyncio.wait_for(reader.read(_CHUNK_SIZE), timeout=timeout_s)
            if not chunk:
                break
            response += chunk.decode("utf-8", errors="replace")
            if not half_closed and SENTINEL in response:
                # Meter closes its side once our write side is shut.
                if writer.can_write_eof():
                    writer.write_eof()
                half_closed = True
    except TimeoutError as exc:
        logger.warning("%s connection timeout", host)
        raise MeterTimeoutError(f"No data from {host} within {timeout_s}s") from exc
    except OSError as exc:
        logger.warning("%s connection error: %s", host, exc)
        raise MeterConnectionError(f"Connection to {host} failed: {exc}") from exc

    if not half_closed:
        logger.warning("%s closed the stream before '%s'", host, SENTINEL)
        raise MeterProtocolError(
            f"Incomplete response from {host}: no '{SENTINEL}' line"
        )

    logger.info("%s data received (%d bytes)", host, len(response))
    return response


async def _close(writer: asyncio.StreamWriter, *, host: str) -> None:
    """Close the stream, logging (not raising) teardown errors."""
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        logger.debug("%s error while closing connection", host, exc_info=True)
