"""
In-memory request queue.

Stands in for the durable queue of a worker pool: FIFO order, de-duplication
by unique key, and reclaiming of failed jobs for a retry. A key is known to
the queue from ``add_request`` until ``mark_request_as_handled``; adding a
known key again is a no-op.
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Dict

from .models import CrawlJob

logger = logging.getLogger(__name__)


class RequestQueue:
    """FIFO queue of crawl jobs, de-duplicated by ``unique_key``."""

    def __init__(self, name: str = "default"):
        self.name = name
        self._pending: Deque[CrawlJob] = deque()
        self._in_progress: Dict[str, CrawlJob] = {}
        self._known: set = set()
        self._available = asyncio.Condition()

    async def add_request(self, job: CrawlJob) -> bool:
        """
        Enqueue a job.

        Returns:
            True if the job was added, False if its key is already queued or in progress
        """
        async with self._available:
            if job.unique_key in self._known:
                logger.debug(f"Queue {self.name}: {job.unique_key} already present, not adding")
                return False
            self._known.add(job.unique_key)
            self._pending.append(job)
            self._available.notify()
        return True

    async def fetch_next_request(self) -> CrawlJob:
        """Wait for and return the next pending job."""
        async with self._available:
            while not self._pending:
                await self._available.wait()
            job = self._pending.popleft()
            self._in_progress[job.unique_key] = job
            return job

    async def reclaim_request(self, job: CrawlJob) -> None:
        """Put an in-progress job back at the tail of the queue for another attempt."""
        async with self._available:
            self._in_progress.pop(job.unique_key, None)
            self._known.add(job.unique_key)
            self._pending.append(job)
            self._available.notify()

    async def mark_request_as_handled(self, job: CrawlJob) -> None:
        """Forget a job that reached a terminal state."""
        async with self._available:
            self._in_progress.pop(job.unique_key, None)
            self._known.discard(job.unique_key)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def in_progress_count(self) -> int:
        return len(self._in_progress)

    def is_empty(self) -> bool:
        return not self._pending

    def __contains__(self, unique_key: str) -> bool:
        return unique_key in self._known
