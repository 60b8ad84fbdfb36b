"""
Crawl job lifecycle.

Drives one attempt of a job through its stages:

    QUEUED -> PRE_NAVIGATION -> NAVIGATING -> HANDLING -> SUCCEEDED

Any exception raised inside a stage is wrapped in ``StageError`` and
re-raised to the worker pool, which records it and decides between a retry
and a terminal failure.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from .browser import block_requests
from .constants import DEFAULT_NAVIGATION_TIMEOUT_MS, DEFAULT_REQUEST_HANDLER_TIMEOUT_SECS
from .exceptions import StageError
from .models import CrawlJob, CrawlState, Label, XhrCapture
from .proxy import ProxyEntry
from .timing import TimingEvent

logger = logging.getLogger(__name__)


@dataclass
class CrawlingContext:
    """Everything a hook or request handler needs for one attempt."""
    job: CrawlJob
    proxy: Optional[ProxyEntry] = None
    page: Any = None
    response: Any = None


PreNavigationHook = Callable[[CrawlingContext], Awaitable[None]]
RequestHandler = Callable[[CrawlingContext], Awaitable[None]]


async def log_responses(context: CrawlingContext) -> None:
    """Debug-log every response the page receives."""
    def _log(resp):
        logger.debug(f"{resp.url} ({resp.request.resource_type}) : {resp.status}")

    context.page.on("response", _log)


async def prepare_page(context: CrawlingContext) -> None:
    """Size the viewport and install blocking and capture hooks."""
    job = context.job
    page = context.page

    if context.proxy:
        logger.info(f"Proxy for {job.unique_key}: {context.proxy.config.host}:{context.proxy.config.port}")

    await page.set_viewport_size({"width": job.width, "height": job.height})

    if job.label != Label.BROWSER:
        return

    if job.block_resources:
        await block_requests(page, job.block_resource_patterns)

    if job.json_response:
        async def _capture(resp):
            try:
                req = resp.request
                if req.is_navigation_request() and req.frame == page.main_frame:
                    job.request_details.response_headers = dict(resp.headers)
                    return
                if req.resource_type != "xhr":
                    return

                body = await resp.body()
                job.request_details.xhr.append(XhrCapture(
                    url=req.url,
                    status_code=resp.status,
                    method=req.method,
                    request_headers=dict(req.headers),
                    headers=dict(resp.headers),
                    body=body.decode("utf-8", errors="replace"),
                ))
            except Exception as e:
                logger.warning(f"Could not capture response {resp.url}: {e}")

        page.on("response", _capture)


DEFAULT_PRE_NAVIGATION_HOOKS: List[PreNavigationHook] = [log_responses, prepare_page]


class Lifecycle:
    """Runs the stages of a single attempt."""

    def __init__(
        self,
        engine: Any,
        request_handler: RequestHandler,
        pre_navigation_hooks: Optional[Sequence[PreNavigationHook]] = None,
        navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
        request_handler_timeout_secs: float = DEFAULT_REQUEST_HANDLER_TIMEOUT_SECS,
    ):
        self._engine = engine
        self._request_handler = request_handler
        self.pre_navigation_hooks = list(
            DEFAULT_PRE_NAVIGATION_HOOKS if pre_navigation_hooks is None else pre_navigation_hooks
        )
        self.navigation_timeout_ms = navigation_timeout_ms
        self.request_handler_timeout_secs = request_handler_timeout_secs

    @asynccontextmanager
    async def _stage(self, job: CrawlJob, state: CrawlState):
        job.transition(state)
        try:
            yield
        except Exception as e:
            logger.debug(f"{job.unique_key} failed in {state.value}: {e}")
            raise StageError(state, e) from e

    async def run(self, context: CrawlingContext) -> None:
        """
        Run one attempt of ``context.job``.

        Raises:
            StageError: If any stage throws
        """
        job = context.job
        job.result = None

        async with self._stage(job, CrawlState.PRE_NAVIGATION):
            job.time_measures.push(TimingEvent.PRE_NAVIGATION)
            context.page = await self._engine.new_page(context.proxy)
            for hook in self.pre_navigation_hooks:
                await hook(context)

        async with self._stage(job, CrawlState.NAVIGATING):
            if not job.skip_navigation:
                context.response = await context.page.goto(job.url, timeout=self.navigation_timeout_ms)

        async with self._stage(job, CrawlState.HANDLING):
            job.time_measures.push(TimingEvent.REQUEST_HANDLER)
            try:
                await asyncio.wait_for(
                    self._request_handler(context),
                    timeout=self.request_handler_timeout_secs,
                )
            except asyncio.TimeoutError:
                raise asyncio.TimeoutError(
                    f"Request handler timed out after {self.request_handler_timeout_secs} seconds"
                ) from None
            if job.result is None:
                raise RuntimeError("Request handler finished without producing a result")

        job.transition(CrawlState.SUCCEEDED)
