"""
Failure policy.

Turns a job that exhausted its retries into the status code and body sent
to the caller.
"""

import logging
from typing import Any, Optional, Tuple

from .constants import DEFAULT_ERROR_STATUS_CODE
from .lifecycle import CrawlingContext
from .models import CrawlJob, Label, VerboseResult

logger = logging.getLogger(__name__)


def upstream_status(context: CrawlingContext) -> Optional[int]:
    """Status returned by the crawled server, if one is known."""
    if context.job.label == Label.DIRECT:
        return context.job.non_browser_request_status
    if context.response is not None:
        return context.response.status
    return None


def resolve_status_code(job: CrawlJob, upstream: Optional[int], default: int) -> int:
    """Forward the upstream status when the job asked for it, else ``default``."""
    if job.transparent_status_code and upstream:
        return upstream
    return default


async def _page_cookies(context: CrawlingContext):
    if context.page is None:
        return []
    try:
        return await context.page.context.cookies(context.job.url) or []
    except Exception as e:
        logger.warning(f"Could not read cookies for {context.job.unique_key}: {e}")
        return []


async def build_failure_response(context: CrawlingContext, error: BaseException) -> Tuple[int, Any]:
    """
    Build the response for a failed job.

    Returns:
        Tuple of (status code, JSON-serializable payload)
    """
    job = context.job
    error_response = {"errorMessage": str(error)}
    status = upstream_status(context)
    status_code = resolve_status_code(job, status, DEFAULT_ERROR_STATUS_CODE)

    if not job.json_response:
        return status_code, error_response

    # Same shape as a successful verbose result
    verbose = VerboseResult(
        body=error_response,
        cookies=await _page_cookies(context),
        headers=job.request_details.response_headers or {},
        type="json",
        xhr=[],
        initial_status_code=status,
        resolved_url="",
        screenshot=None,
    )
    return status_code, verbose.to_dict()
