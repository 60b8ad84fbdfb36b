"""
Request admission.

``CrawlerService`` is the entry point used by the outer HTTP layer: it maps a
job and its response channel onto the worker pool for the job's
configuration, creating that pool on first use.
"""

import logging
from typing import Any, Optional, Sequence

from .diagnostics import DiagnosticsSink
from .exceptions import AdmissionError
from .lifecycle import PreNavigationHook, RequestHandler
from .models import CrawlJob
from .options import DEFAULT_CRAWLER_OPTIONS, CrawlerOptions
from .pool import BeforePullHook, PoolRegistry, WorkerPool
from .responses import PendingResponseRegistry, ResponseChannel
from .timing import TimingEvent

logger = logging.getLogger(__name__)


class CrawlerService:
    """
    Admits crawl jobs and routes their results back to the callers.

    Usage:
        service = CrawlerService()
        channel = FutureResponseChannel()
        await service.add_request(job, channel, CrawlerOptions())
        status, body = await channel.wait()
    """

    def __init__(
        self,
        responses: Optional[PendingResponseRegistry] = None,
        diagnostics: Optional[DiagnosticsSink] = None,
        engine_factory: Optional[Any] = None,
        request_handler: Optional[RequestHandler] = None,
        pre_navigation_hooks: Optional[Sequence[PreNavigationHook]] = None,
        before_pull_hooks: Optional[Sequence[BeforePullHook]] = None,
        registry: Optional[PoolRegistry] = None,
    ):
        """
        Initialize the service.

        Args:
            responses: Pending-response registry (one per process)
            diagnostics: Sink for finished-job timings
            engine_factory: Callable ``(options) -> engine``; defaults to Playwright
            request_handler: Handler invoked in the HANDLING stage; defaults to the label router
            pre_navigation_hooks: Replaces the default pre-navigation hooks
            before_pull_hooks: Called by each worker before it dequeues a job
            registry: Pool registry; built from the arguments above if omitted
        """
        self.responses = responses or PendingResponseRegistry()
        self.diagnostics = diagnostics or DiagnosticsSink()
        self._engine_factory = engine_factory
        self._request_handler = request_handler
        self._pre_navigation_hooks = pre_navigation_hooks
        self._before_pull_hooks = before_pull_hooks
        self.pools = registry or PoolRegistry(self._build_pool)

    def _build_pool(self, options: CrawlerOptions) -> WorkerPool:
        engine = self._engine_factory(options) if self._engine_factory else None
        return WorkerPool(
            options,
            self.responses,
            diagnostics=self.diagnostics,
            engine=engine,
            request_handler=self._request_handler,
            pre_navigation_hooks=self._pre_navigation_hooks,
            before_pull_hooks=self._before_pull_hooks,
        )

    async def create_and_start_crawler(
        self, options: CrawlerOptions = DEFAULT_CRAWLER_OPTIONS
    ) -> WorkerPool:
        """Return the running pool for ``options``, starting it if needed."""
        return await self.pools.get_or_create(options)

    async def add_request(
        self,
        job: CrawlJob,
        channel: ResponseChannel,
        options: CrawlerOptions = DEFAULT_CRAWLER_OPTIONS,
    ) -> None:
        """
        Admit a job. Returns once it is queued; the result is written to
        ``channel`` later.

        Raises:
            AdmissionError: If the job has no unique key
            DuplicateKeyError: If a response is already pending for the key
        """
        if not job.unique_key:
            raise AdmissionError("Job must have a non-empty unique key")

        pool = await self.pools.get_or_create(options)
        self.responses.register(job.unique_key, channel)

        job.time_measures.push(TimingEvent.BEFORE_QUEUE_ADD)
        try:
            added = await pool.add_request(job)
        except BaseException:
            # Covers cancellation of the admitting task as well
            self.responses.discard(job.unique_key)
            raise

        if not added:
            logger.warning(f"{job.unique_key} is already queued in pool {pool.fingerprint}")

    async def shutdown(self) -> None:
        """Stop every pool. Pools never stop on their own."""
        await self.pools.stop_all()
        await self.diagnostics.flush()
