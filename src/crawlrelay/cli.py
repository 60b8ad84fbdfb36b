"""Command-line interface for crawl-relay."""

import asyncio
import sys
import uuid
from typing import List, Optional

from crawlrelay.config import settings
from crawlrelay.crawlers import CrawlerService
from crawlrelay.diagnostics import DiagnosticsSink
from crawlrelay.logging_config import setup_logging
from crawlrelay.models import CrawlJob, Label, ResultMode
from crawlrelay.options import CrawlerOptions, ProxyConfigurationOptions
from crawlrelay.responses import FutureResponseChannel


async def _crawl_once(job: CrawlJob, options: CrawlerOptions, timeout: Optional[float]):
    """Admit one job and wait for its response.

    Returns:
        Tuple of (status code, body)
    """
    service = CrawlerService(diagnostics=DiagnosticsSink(settings.DIAGNOSTICS_LOG_PATH))
    try:
        channel = FutureResponseChannel()
        await service.add_request(job, channel, options)
        return await channel.wait(timeout)
    finally:
        await service.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="crawl-relay - Crawl a URL through a worker pool and print the response"
    )
    parser.add_argument("url", help="URL to crawl")
    parser.add_argument(
        "--label",
        choices=[label.value for label in Label],
        default=Label.BROWSER.value,
        help="BROWSER renders the page, DIRECT fetches it over plain HTTP",
    )
    parser.add_argument("--json", action="store_true", help="Return the structured JSON envelope")
    parser.add_argument(
        "--transparent-status",
        action="store_true",
        help="Forward the crawled page's HTTP status instead of 200/500",
    )
    parser.add_argument(
        "--proxy",
        action="append",
        default=None,
        help="Proxy URL (repeatable). Defaults to PROXY_URLS from the environment",
    )
    parser.add_argument("--block-resources", action="store_true", help="Block images, fonts and styles")
    parser.add_argument("--retries", type=int, default=1, help="Retries after the first failure")
    parser.add_argument("--concurrency", type=int, default=1, help="Jobs processed in parallel")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds to wait for the response")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="Log level")

    args = parser.parse_args(argv)
    setup_logging(args.log_level, settings.LOG_FILE)

    job = CrawlJob(
        unique_key=str(uuid.uuid4()),
        url=args.url,
        label=Label(args.label),
        result_mode=ResultMode.JSON if args.json else ResultMode.RAW,
        transparent_status_code=args.transparent_status,
        block_resources=args.block_resources,
        width=settings.DEFAULT_VIEWPORT_WIDTH,
        height=settings.DEFAULT_VIEWPORT_HEIGHT,
    )
    options = CrawlerOptions(
        proxy_configuration_options=ProxyConfigurationOptions(
            proxy_urls=args.proxy if args.proxy is not None else settings.PROXY_URLS,
        ),
        max_concurrency=args.concurrency,
        max_request_retries=args.retries,
        headless=settings.HEADLESS and not args.headed,
    )

    status, body = asyncio.run(_crawl_once(job, options, args.timeout))
    print(f"Status: {status}", file=sys.stderr)
    print(body)
    return 0 if status is not None and status < 400 else 1


if __name__ == "__main__":
    sys.exit(main())
