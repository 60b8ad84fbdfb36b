"""
Request handlers, routed by job label.

A handler must set ``context.job.result`` before returning; the worker pool
sends that value to the caller. The DIRECT handler is also responsible for
``job.non_browser_request_status``, which the failure policy reads when a
DIRECT job fails after the upstream server has answered.
"""

import base64
import logging
from typing import Dict, Optional

import httpx

from .lifecycle import CrawlingContext, RequestHandler
from .models import Label, VerboseResult

logger = logging.getLogger(__name__)


class Router:
    """Dispatches a crawling context to the handler registered for its label."""

    def __init__(self) -> None:
        self._handlers: Dict[Label, RequestHandler] = {}

    def add_handler(self, label: Label, handler: RequestHandler) -> None:
        self._handlers[Label(label)] = handler

    def handler(self, label: Label):
        """Decorator form of ``add_handler``."""
        def decorator(func: RequestHandler) -> RequestHandler:
            self.add_handler(label, func)
            return func
        return decorator

    async def __call__(self, context: CrawlingContext) -> None:
        handler = self._handlers.get(context.job.label)
        if handler is None:
            raise LookupError(f"No request handler registered for label {context.job.label.value}")
        await handler(context)


async def handle_browser(context: CrawlingContext) -> None:
    """Return the rendered page."""
    job = context.job
    page = context.page
    response = context.response

    html = await page.content()
    if not job.json_response:
        job.result = html
        return

    evaluate_results = []
    for script in job.evaluate:
        evaluate_results.append(await page.evaluate(script))

    screenshot = None
    if job.screenshot:
        screenshot = base64.b64encode(await page.screenshot(full_page=True)).decode("ascii")

    if response is not None and not job.request_details.response_headers:
        job.request_details.response_headers = dict(response.headers)

    job.result = VerboseResult(
        body=html,
        cookies=await page.context.cookies(job.url),
        evaluate_results=evaluate_results,
        headers=job.request_details.response_headers,
        type="html",
        xhr=job.request_details.xhr,
        initial_status_code=response.status if response is not None else None,
        resolved_url=page.url,
        screenshot=screenshot,
    ).to_dict()


async def handle_direct(context: CrawlingContext, timeout: Optional[float] = 30.0) -> None:
    """Fetch the URL over plain HTTP without rendering it."""
    job = context.job
    proxy_url = context.proxy.url if context.proxy else None

    async with httpx.AsyncClient(proxy=proxy_url, follow_redirects=True, timeout=timeout) as client:
        resp = await client.get(job.url)

    job.non_browser_request_status = resp.status_code
    job.request_details.response_headers = dict(resp.headers)

    if not job.json_response:
        job.result = resp.text
        return

    is_json = "application/json" in resp.headers.get("content-type", "")
    job.result = VerboseResult(
        body=resp.json() if is_json else resp.text,
        cookies=[{"name": name, "value": value} for name, value in resp.cookies.items()],
        headers=job.request_details.response_headers,
        type="json" if is_json else "html",
        initial_status_code=resp.status_code,
        resolved_url=str(resp.url),
    ).to_dict()


def create_default_router() -> Router:
    router = Router()
    router.add_handler(Label.BROWSER, handle_browser)
    router.add_handler(Label.DIRECT, handle_direct)
    return router
