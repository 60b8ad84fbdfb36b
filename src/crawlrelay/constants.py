# src/crawlrelay/constants.py
"""Centralized constants for crawl-relay.

Per-pool settings that callers may override live in options.py
(``CrawlerOptions``); process-wide settings live in config.py.
"""

# =============================================================================
# Worker Pool Policy
# =============================================================================

# Jobs processed in parallel by one worker pool
DEFAULT_MAX_CONCURRENCY = 1

# Retries after the first attempt (1 retry => 2 attempts in total)
DEFAULT_MAX_REQUEST_RETRIES = 1

# Upper bound for a single request handler invocation
DEFAULT_REQUEST_HANDLER_TIMEOUT_SECS = 3600

# Page navigation timeout
DEFAULT_NAVIGATION_TIMEOUT_MS = 60000


# =============================================================================
# Response Policy
# =============================================================================

# Status returned when a job exhausts its retries
DEFAULT_ERROR_STATUS_CODE = 500

# Status returned for a successful job without transparent status
DEFAULT_SUCCESS_STATUS_CODE = 200


# =============================================================================
# Page Setup
# =============================================================================

DEFAULT_VIEWPORT_WIDTH = 1920
DEFAULT_VIEWPORT_HEIGHT = 1080

# URL fragments aborted when resource blocking is enabled
DEFAULT_BLOCKED_URL_PATTERNS = [
    ".css",
    ".jpg",
    ".jpeg",
    ".png",
    ".svg",
    ".gif",
    ".woff",
    ".pdf",
    ".zip",
]

# Page kept open so the browser process is never left without pages
KEEP_ALIVE_URL = "about:blank"
