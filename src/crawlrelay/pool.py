"""
Worker pools and the pool registry.

A worker pool owns one request queue, one proxy pool, one browser engine and
``max_concurrency`` worker tasks that pull jobs from the queue. Pools are
created lazily, one per distinct configuration fingerprint, and stay warm
for the lifetime of the process.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from .browser import PlaywrightEngine
from .constants import DEFAULT_ERROR_STATUS_CODE, DEFAULT_SUCCESS_STATUS_CODE
from .diagnostics import DiagnosticsSink
from .exceptions import StageError, TerminalFailure
from .failure import build_failure_response, resolve_status_code, upstream_status
from .lifecycle import CrawlingContext, Lifecycle, PreNavigationHook, RequestHandler
from .models import CrawlJob, CrawlState
from .options import CrawlerOptions
from .proxy import ProxyPool, create_proxy_configuration
from .queue import RequestQueue
from .responses import PendingResponseRegistry
from .router import create_default_router
from .timing import TimingEvent

logger = logging.getLogger(__name__)

# Called by each worker right before it waits for the next job
BeforePullHook = Callable[["WorkerPool"], None]


@dataclass
class PoolStatus:
    """Current status of a worker pool."""
    fingerprint: str
    max_concurrency: int
    pending: int
    in_progress: int
    requests_finished: int
    requests_failed: int
    requests_retried: int
    uptime_seconds: float


class WorkerPool:
    """
    Bounded-concurrency executor for the jobs of one configuration.

    Each admitted job reaches exactly one terminal delivery through the
    pending-response registry: a success, or a failure once its retries are
    exhausted.
    """

    def __init__(
        self,
        options: CrawlerOptions,
        responses: PendingResponseRegistry,
        diagnostics: Optional[DiagnosticsSink] = None,
        engine: Optional[Any] = None,
        request_handler: Optional[RequestHandler] = None,
        pre_navigation_hooks: Optional[Sequence[PreNavigationHook]] = None,
        before_pull_hooks: Optional[Sequence[BeforePullHook]] = None,
    ):
        self.options = options
        self.fingerprint = options.fingerprint()
        self.queue = RequestQueue(name=self.fingerprint)
        self.proxy_pool: Optional[ProxyPool] = create_proxy_configuration(
            options.proxy_configuration_options
        )
        self.engine = engine or PlaywrightEngine(headless=options.headless)
        self.lifecycle = Lifecycle(
            self.engine,
            request_handler or create_default_router(),
            pre_navigation_hooks=pre_navigation_hooks,
            navigation_timeout_ms=options.navigation_timeout_ms,
            request_handler_timeout_secs=options.request_handler_timeout_secs,
        )
        self.before_pull_hooks: List[BeforePullHook] = list(before_pull_hooks or [])

        self._responses = responses
        self._diagnostics = diagnostics or DiagnosticsSink()
        self._workers: List[asyncio.Task] = []
        self._running = False
        self._start_time: Optional[datetime] = None
        self._finished = 0
        self._failed = 0
        self._retried = 0

    async def start(self) -> None:
        """Start the browser, the proxy pool and the worker tasks."""
        if self._running:
            return

        await self.engine.start()
        if self.proxy_pool:
            await self.proxy_pool.start()

        self._running = True
        self._start_time = datetime.now()
        for worker_id in range(self.options.max_concurrency):
            self._workers.append(
                asyncio.create_task(self._worker(worker_id), name=f"crawl-worker-{worker_id}")
            )
        logger.info(f"Crawler ready with {self.options.max_concurrency} worker(s): {self.fingerprint}")

    async def stop(self) -> None:
        """Cancel the workers and release the browser and proxies."""
        self._running = False
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()

        await self.engine.stop()
        if self.proxy_pool:
            await self.proxy_pool.stop()
        logger.info(f"Crawler stopped: {self.fingerprint}")

    async def add_request(self, job: CrawlJob) -> bool:
        return await self.queue.add_request(job)

    @property
    def is_running(self) -> bool:
        return self._running

    def get_status(self) -> PoolStatus:
        uptime = 0.0
        if self._start_time:
            uptime = (datetime.now() - self._start_time).total_seconds()
        return PoolStatus(
            fingerprint=self.fingerprint,
            max_concurrency=self.options.max_concurrency,
            pending=self.queue.pending_count,
            in_progress=self.queue.in_progress_count,
            requests_finished=self._finished,
            requests_failed=self._failed,
            requests_retried=self._retried,
            uptime_seconds=uptime,
        )

    async def _worker(self, worker_id: int) -> None:
        logger.debug(f"Worker {worker_id} started")
        while self._running:
            for hook in self.before_pull_hooks:
                try:
                    hook(self)
                except Exception as e:
                    logger.warning(f"Before-pull hook failed: {e}")

            job = await self.queue.fetch_next_request()
            job.time_measures.push(TimingEvent.RUN_TASK)
            try:
                await self._process(job)
            except Exception as e:
                logger.exception(f"Unexpected error while processing {job.unique_key}")
                await self._fail_unexpectedly(job, e)

    async def _process(self, job: CrawlJob) -> None:
        context = CrawlingContext(job=job)
        if self.proxy_pool:
            context.proxy = await self.proxy_pool.get_proxy(job.url)

        try:
            await self.lifecycle.run(context)
        except StageError as error:
            await self._handle_error(context, error)
        else:
            await self._handle_success(context)
        finally:
            if context.page is not None:
                await self.engine.release_page(context.page)

    async def _handle_error(self, context: CrawlingContext, error: StageError) -> None:
        job = context.job
        job.record_error(str(error))
        if context.proxy:
            await self.proxy_pool.record_result(context.proxy, success=False)

        if job.retry_count < self.options.max_request_retries:
            job.retry_count += 1
            job.transition(CrawlState.QUEUED)
            self._retried += 1
            logger.warning(
                f"Retrying {job.unique_key} ({job.retry_count}/{self.options.max_request_retries}) "
                f"after error in {error.stage.value}: {error}"
            )
            await self.queue.reclaim_request(job)
            return

        job.transition(CrawlState.FAILED)
        self._failed += 1
        failure = TerminalFailure(job.unique_key, error)
        logger.error(f"Request {job.unique_key} failed and reached maximum retries: {failure}")

        # Forget the key before responding so the caller may re-submit it
        await self.queue.mark_request_as_handled(job)
        status_code, payload = await build_failure_response(context, failure)
        self._record(job, payload, is_error=True)
        self._responses.dispatch(job.unique_key, payload, status_code)

    async def _handle_success(self, context: CrawlingContext) -> None:
        job = context.job
        self._finished += 1
        if context.proxy:
            await self.proxy_pool.record_result(context.proxy, success=True)

        await self.queue.mark_request_as_handled(job)
        status_code = resolve_status_code(job, upstream_status(context), DEFAULT_SUCCESS_STATUS_CODE)
        self._record(job, job.result, is_error=False)
        self._responses.dispatch(job.unique_key, job.result, status_code)

    async def _fail_unexpectedly(self, job: CrawlJob, error: Exception) -> None:
        """Answer a job whose processing broke outside the lifecycle stages."""
        message = str(error) or type(error).__name__
        await self.queue.mark_request_as_handled(job)
        try:
            job.record_error(message)
            if not job.state.is_terminal:
                job.transition(CrawlState.FAILED)
            self._failed += 1
            status_code, payload = await build_failure_response(CrawlingContext(job=job), error)
            self._record(job, payload, is_error=True)
        except Exception:
            logger.exception(f"Could not build failure response for {job.unique_key}")
            status_code, payload = DEFAULT_ERROR_STATUS_CODE, {"errorMessage": message}
        self._responses.dispatch(job.unique_key, payload, status_code)

    def _record(self, job: CrawlJob, result: Any, is_error: bool) -> None:
        self._diagnostics.record(
            job.time_measures,
            {
                "inputtedUrl": job.inputted_url,
                "parsedParams": job.parsed_params,
                "result": result,
                "errors": [e.to_dict() for e in job.errors],
            },
            is_error,
        )


PoolFactory = Callable[[CrawlerOptions], WorkerPool]


class PoolRegistry:
    """
    Worker pools keyed by configuration fingerprint.

    ``get_or_create`` is single-flight: concurrent callers asking for the
    same fingerprint share one in-flight creation.
    """

    def __init__(self, pool_factory: PoolFactory):
        self._pool_factory = pool_factory
        self._pools: Dict[str, WorkerPool] = {}
        self._starting: Dict[str, "asyncio.Future[WorkerPool]"] = {}

    async def get_or_create(self, options: CrawlerOptions) -> WorkerPool:
        key = options.fingerprint()
        logger.info(f"Looking for crawler with options matching: {key}")

        pool = self._pools.get(key)
        if pool is not None:
            return pool

        # No await between the lookup and the insert
        starting = self._starting.get(key)
        if starting is None:
            starting = asyncio.ensure_future(self._create(key, options))
            self._starting[key] = starting
        return await asyncio.shield(starting)

    async def _create(self, key: str, options: CrawlerOptions) -> WorkerPool:
        logger.info(f"Creating and starting crawler with options: {key}")
        try:
            pool = self._pool_factory(options)
            try:
                await pool.start()
            except Exception:
                await pool.stop()
                raise
            self._pools[key] = pool
            return pool
        finally:
            self._starting.pop(key, None)

    def get(self, options: CrawlerOptions) -> Optional[WorkerPool]:
        return self._pools.get(options.fingerprint())

    @property
    def pools(self) -> List[WorkerPool]:
        return list(self._pools.values())

    async def stop_all(self) -> None:
        pools = list(self._pools.values())
        self._pools.clear()
        for pool in pools:
            await pool.stop()

    def __len__(self) -> int:
        return len(self._pools)
