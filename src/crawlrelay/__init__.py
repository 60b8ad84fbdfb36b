"""Correlates asynchronous, pooled browser crawls with the HTTP callers that requested them."""

__version__ = "0.1.0"

from crawlrelay.crawlers import CrawlerService
from crawlrelay.diagnostics import DiagnosticsSink
from crawlrelay.exceptions import (
    AdmissionError,
    CrawlRelayError,
    DuplicateKeyError,
    InvalidTransitionError,
    StageError,
    TerminalFailure,
)
from crawlrelay.lifecycle import CrawlingContext, Lifecycle
from crawlrelay.models import (
    CrawlJob,
    CrawlState,
    Label,
    RequestDetails,
    RequestError,
    ResultMode,
    VerboseResult,
    XhrCapture,
)
from crawlrelay.options import (
    DEFAULT_CRAWLER_OPTIONS,
    CrawlerOptions,
    ProxyConfigurationOptions,
)
from crawlrelay.pool import PoolRegistry, PoolStatus, WorkerPool
from crawlrelay.responses import (
    FutureResponseChannel,
    PendingResponseRegistry,
    ResponseChannel,
)
from crawlrelay.router import Router, create_default_router
from crawlrelay.timing import TimeMeasure, TimingEvent, TimingLedger
