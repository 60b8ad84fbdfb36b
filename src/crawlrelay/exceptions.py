"""Exception hierarchy for crawl-relay.

Admission errors are raised synchronously to the caller of ``add_request``.
Stage errors are raised inside a worker pool and never escape it: they are
recorded on the job and either retried or turned into a terminal failure
that is delivered through the response registry.
"""

from typing import Any, Optional


class CrawlRelayError(Exception):
    """Base class for all crawl-relay errors."""


class AdmissionError(CrawlRelayError):
    """A job could not be admitted (caller bug, e.g. missing unique key)."""


class DuplicateKeyError(AdmissionError):
    """A response channel is already registered under this unique key."""

    def __init__(self, key: str):
        super().__init__(f"A pending response is already registered for unique key {key!r}")
        self.key = key


class StageError(CrawlRelayError):
    """Wraps an exception thrown by a lifecycle stage.

    The message is the message of the wrapped exception so that it can be
    shown to the caller verbatim.
    """

    def __init__(self, stage: Any, cause: BaseException):
        message = str(cause) or type(cause).__name__
        super().__init__(message)
        self.stage = stage
        self.cause = cause


class TerminalFailure(CrawlRelayError):
    """A job exhausted its retries."""

    def __init__(self, unique_key: str, cause: Optional[BaseException] = None):
        message = str(cause) if cause else "Request failed"
        super().__init__(message)
        self.unique_key = unique_key
        self.cause = cause


class InvalidTransitionError(CrawlRelayError):
    """A job was moved between lifecycle states that are not connected."""
