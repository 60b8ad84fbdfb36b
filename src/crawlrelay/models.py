"""Data models for crawl jobs and their results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .constants import DEFAULT_VIEWPORT_HEIGHT, DEFAULT_VIEWPORT_WIDTH
from .exceptions import InvalidTransitionError
from .timing import TimingEvent, TimingLedger


class Label(str, Enum):
    """Which lifecycle variant a job takes."""
    BROWSER = "BROWSER"  # Rendered in the browser
    DIRECT = "DIRECT"  # Plain HTTP fetch, navigation skipped


class ResultMode(str, Enum):
    """Shape of the body returned to the caller."""
    RAW = "raw"
    JSON = "json"


class CrawlState(str, Enum):
    """Lifecycle states of a crawl job."""
    QUEUED = "queued"
    PRE_NAVIGATION = "pre_navigation"
    NAVIGATING = "navigating"
    HANDLING = "handling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CrawlState.SUCCEEDED, CrawlState.FAILED)


_ALLOWED_TRANSITIONS = {
    CrawlState.QUEUED: {CrawlState.PRE_NAVIGATION, CrawlState.FAILED},
    CrawlState.PRE_NAVIGATION: {CrawlState.NAVIGATING, CrawlState.QUEUED, CrawlState.FAILED},
    CrawlState.NAVIGATING: {CrawlState.HANDLING, CrawlState.QUEUED, CrawlState.FAILED},
    CrawlState.HANDLING: {CrawlState.SUCCEEDED, CrawlState.QUEUED, CrawlState.FAILED},
    CrawlState.SUCCEEDED: set(),
    CrawlState.FAILED: set(),
}


@dataclass
class RequestError:
    """One failed attempt."""
    attempt: int
    error_message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"attempt": self.attempt, "errorMessage": self.error_message}


@dataclass
class XhrCapture:
    """An XHR response observed while a browser job was rendering."""
    url: str
    status_code: int
    method: str
    request_headers: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "statusCode": self.status_code,
            "method": self.method,
            "requestHeaders": self.request_headers,
            "headers": self.headers,
            "body": self.body,
        }


@dataclass
class RequestDetails:
    """Details collected across the attempts of one job."""
    request_errors: List[RequestError] = field(default_factory=list)
    response_headers: Dict[str, str] = field(default_factory=dict)
    xhr: List[XhrCapture] = field(default_factory=list)


@dataclass
class VerboseResult:
    """Structured response envelope.

    Successful and failed json-mode jobs both return this shape so callers
    can branch on a single schema.
    """
    body: Any
    cookies: List[Dict[str, Any]] = field(default_factory=list)
    evaluate_results: List[Any] = field(default_factory=list)
    js_scenario_report: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    type: str = "html"
    iframes: List[Dict[str, Any]] = field(default_factory=list)
    xhr: List[XhrCapture] = field(default_factory=list)
    initial_status_code: Optional[int] = None
    resolved_url: str = ""
    screenshot: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "body": self.body,
            "cookies": self.cookies,
            "evaluateResults": self.evaluate_results,
            "jsScenarioReport": self.js_scenario_report,
            "headers": self.headers,
            "type": self.type,
            "iframes": self.iframes,
            "xhr": [x.to_dict() for x in self.xhr],
            "initialStatusCode": self.initial_status_code,
            "resolvedUrl": self.resolved_url,
            "screenshot": self.screenshot,
        }


@dataclass
class CrawlJob:
    """One crawl unit, from admission to terminal delivery."""

    unique_key: str
    url: str
    label: Label = Label.BROWSER
    result_mode: ResultMode = ResultMode.RAW

    # Caller-supplied parameters
    inputted_url: Optional[str] = None
    parsed_params: Dict[str, Any] = field(default_factory=dict)
    transparent_status_code: bool = False
    block_resources: bool = False
    block_resource_patterns: List[str] = field(default_factory=list)
    width: int = DEFAULT_VIEWPORT_WIDTH
    height: int = DEFAULT_VIEWPORT_HEIGHT
    screenshot: bool = False
    evaluate: List[str] = field(default_factory=list)

    # Populated by the pipeline
    time_measures: TimingLedger = field(default_factory=TimingLedger)
    request_details: RequestDetails = field(default_factory=RequestDetails)
    retry_count: int = 0
    # Set by the DIRECT handler; read by the failure policy
    non_browser_request_status: Optional[int] = None
    result: Any = None
    state: CrawlState = CrawlState.QUEUED

    def __post_init__(self):
        self.label = Label(self.label)
        self.result_mode = ResultMode(self.result_mode)
        if self.inputted_url is None:
            self.inputted_url = self.url

    @property
    def json_response(self) -> bool:
        return self.result_mode == ResultMode.JSON

    @property
    def skip_navigation(self) -> bool:
        return self.label == Label.DIRECT

    @property
    def errors(self) -> List[RequestError]:
        return self.request_details.request_errors

    def transition(self, state: CrawlState) -> None:
        """Move to ``state``, enforcing the lifecycle graph."""
        state = CrawlState(state)
        if state not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Job {self.unique_key!r} cannot move from {self.state.value} to {state.value}"
            )
        self.state = state

    def record_error(self, message: str) -> RequestError:
        """Append a failed attempt to the error log and the timing ledger."""
        error = RequestError(attempt=self.retry_count + 1, error_message=message)
        self.request_details.request_errors.append(error)
        self.time_measures.push(TimingEvent.ERROR)
        return error

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any]) -> "CrawlJob":
        """Build a job from the outer HTTP layer's job specification.

        Expected keys: ``uniqueKey``, ``targetUrl`` (or ``url``), ``label``,
        ``resultMode`` and an optional ``userData`` mapping.
        """
        user_data = dict(spec.get("userData") or {})
        return cls(
            unique_key=spec.get("uniqueKey") or "",
            url=spec.get("targetUrl") or spec.get("url") or "",
            label=spec.get("label", Label.BROWSER),
            result_mode=spec.get("resultMode", ResultMode.RAW),
            inputted_url=user_data.get("inputtedUrl"),
            parsed_params=user_data.get("parsedInputtedParams") or {},
            transparent_status_code=bool(user_data.get("transparentStatusCode", False)),
            block_resources=bool(user_data.get("blockResources", False)),
            block_resource_patterns=list(user_data.get("blockResourcePatterns") or []),
            width=int(user_data.get("width", DEFAULT_VIEWPORT_WIDTH)),
            height=int(user_data.get("height", DEFAULT_VIEWPORT_HEIGHT)),
            screenshot=bool(user_data.get("screenshot", False)),
            evaluate=list(user_data.get("evaluate") or []),
        )
