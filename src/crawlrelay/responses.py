"""
Pending-response registry and result dispatcher.

Maps a job's unique key to the caller's still-open response channel. Each
entry is consumed exactly once: the first dispatch writes and closes the
channel, later dispatches for the same key are logged and ignored.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Protocol, Tuple

from .exceptions import DuplicateKeyError

logger = logging.getLogger(__name__)


class ResponseChannel(Protocol):
    """What the outer HTTP layer hands in for each request."""

    def write(self, status: int, body: str) -> None:
        ...

    def close(self) -> None:
        ...


class FutureResponseChannel:
    """
    Response channel backed by an asyncio future.

    Usage:
        channel = FutureResponseChannel()
        await service.add_request(job, channel, options)
        status, body = await channel.wait()
    """

    def __init__(self) -> None:
        self._future: "asyncio.Future[Tuple[int, str]]" = asyncio.get_running_loop().create_future()
        self.status: Optional[int] = None
        self.body: Optional[str] = None
        self.closed = False
        self.write_count = 0

    def write(self, status: int, body: str) -> None:
        self.write_count += 1
        self.status = status
        self.body = body

    def close(self) -> None:
        self.closed = True
        if not self._future.done():
            self._future.set_result((self.status, self.body))

    async def wait(self, timeout: Optional[float] = None) -> Tuple[int, str]:
        """Wait until the channel is closed and return ``(status, body)``."""
        return await asyncio.wait_for(asyncio.shield(self._future), timeout)

    def json(self) -> Any:
        return json.loads(self.body) if self.body is not None else None


class PendingResponseRegistry:
    """Correlation table from unique key to open response channel."""

    def __init__(self) -> None:
        self._channels: Dict[str, ResponseChannel] = {}

    def register(self, key: str, channel: ResponseChannel) -> None:
        """Register ``channel`` under ``key``; a live key raises ``DuplicateKeyError``."""
        if key in self._channels:
            raise DuplicateKeyError(key)
        self._channels[key] = channel
        logger.debug(f"Registered response for {key}")

    def discard(self, key: str) -> None:
        """Drop a registration without responding (admission rollback)."""
        self._channels.pop(key, None)

    def dispatch(self, key: str, payload: Any, status_code: int) -> bool:
        """
        Deliver a response and remove the entry.

        Args:
            key: Unique key of the job
            payload: Body; anything other than ``str`` is JSON-encoded
            status_code: HTTP status to write

        Returns:
            True if this call delivered the response, False if the key had
            no pending response (already delivered or never registered)
        """
        channel = self._channels.pop(key, None)
        if channel is None:
            logger.warning(f"No pending response for {key}, ignoring dispatch with status {status_code}")
            return False

        body = payload if isinstance(payload, str) else json.dumps(payload)
        try:
            channel.write(status_code, body)
        except Exception as e:
            logger.error(f"Failed to write response for {key}: {e}")
        finally:
            try:
                channel.close()
            except Exception as e:
                logger.warning(f"Failed to close response for {key}: {e}")

        logger.info(f"Response sent for {key} (status={status_code})")
        return True

    def __contains__(self, key: str) -> bool:
        return key in self._channels

    def __len__(self) -> int:
        return len(self._channels)
