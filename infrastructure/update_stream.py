# ============================================================================
# PUSH UPDATE STREAM
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Infrastructure - Server-sent events subscriber
# PURPOSE: Feed backend push frames to the reconciler, reconnecting on loss
# CREATED: 19 OCT 2026
# ============================================================================
"""
Push Update Stream

Subscribes to GET /real-time-updates (text/event-stream). Each event's
`data:` lines are joined and decoded as JSON, then handed to a callback.
The first frame after connecting is the full active listing (a JSON list).

run() keeps the subscription alive until cancelled, reconnecting with
exponential backoff (initial and max delay from MonitorDefaults). The
backoff resets once a connection delivers a frame.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional

import httpx

from core.config import MonitorDefaults
from core.errors import TransientNetworkError

logger = logging.getLogger(__name__)

STREAM_PATH = "/real-time-updates"

# No read timeout: the stream is idle between events
STREAM_TIMEOUT = httpx.Timeout(connect=10.0, read=None, write=10.0, pool=10.0)

FrameHandler = Callable[[Any], None]


def parse_event_lines(lines: List[str]) -> Optional[Any]:
    """
    Decode one SSE event from its raw lines.

    Returns None for events without data (comments, keep-alives).

    Raises:
        ValueError: data is not JSON
    """
    data = [
        line[5:].lstrip(" ") if line.startswith("data:") else None
        for line in lines
    ]
    payload = "\n".join(d for d in data if d is not None)
    if not payload:
        return None
    return json.loads(payload)


class UpdateStream:
    """Reconnecting SSE subscriber."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        on_frame: FrameHandler,
        defaults: Optional[MonitorDefaults] = None,
        path: str = STREAM_PATH,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self._on_frame = on_frame
        self._defaults = defaults or MonitorDefaults()
        self._path = path
        self._sleep = sleep

        self.connected = False
        self.frames_received = 0
        self.reconnects = 0

    async def frames(self) -> AsyncIterator[Any]:
        """
        Yield decoded frames from a single connection.

        Raises:
            TransientNetworkError: connect failure, non-2xx, or dropped stream
        """
        try:
            async with self._client.stream("GET", self._path, timeout=STREAM_TIMEOUT) as resp:
                if resp.status_code >= 400:
                    raise TransientNetworkError(
                        f"Update stream returned {resp.status_code}",
                        operation="stream", status_code=resp.status_code,
                    )
                self.connected = True
                logger.info("Update stream connected")

                pending: List[str] = []
                async for line in resp.aiter_lines():
                    if line:
                        pending.append(line)
                        continue
                    frame = self._decode(pending)
                    pending = []
                    if frame is not None:
                        yield frame

                # Stream closed by the server; flush a trailing event
                frame = self._decode(pending)
                if frame is not None:
                    yield frame
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"Update stream failed: {e}", operation="stream") from e
        finally:
            self.connected = False

    async def run(self) -> None:
        """Consume frames until cancelled."""
        delay = self._defaults.stream_reconnect_initial
        while True:
            try:
                async for frame in self.frames():
                    delay = self._defaults.stream_reconnect_initial
                    self.frames_received += 1
                    self._dispatch(frame)
                logger.info("Update stream closed by server")
            except TransientNetworkError as e:
                logger.warning(f"{e}; reconnecting in {delay:.1f}s")

            self.reconnects += 1
            await self._sleep(delay)
            delay = min(delay * 2, self._defaults.stream_reconnect_max)

    def _decode(self, lines: List[str]) -> Optional[Any]:
        if not lines:
            return None
        try:
            return parse_event_lines(lines)
        except ValueError as e:
            logger.warning(f"Dropping undecodable stream event: {e}")
            return None

    def _dispatch(self, frame: Any) -> None:
        try:
            self._on_frame(frame)
        except Exception as e:
            # A bad frame must not take the subscription down
            logger.exception(f"Stream frame handler failed: {e}")


__all__ = ["UpdateStream", "parse_event_lines", "STREAM_PATH"]
