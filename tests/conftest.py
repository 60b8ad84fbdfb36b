"""Shared fakes for the Playwright objects a worker pool talks to."""

import pytest

from crawlrelay.crawlers import CrawlerService
from crawlrelay.diagnostics import DiagnosticsSink


class FakeResponse:
    def __init__(self, status=200, headers=None, url="https://example.com/"):
        self.status = status
        self.headers = headers or {"content-type": "text/html"}
        self.url = url


class FakeBrowserContext:
    def __init__(self, cookies=None):
        self._cookies = cookies or []
        self.closed = False

    async def cookies(self, url=None):
        return list(self._cookies)

    async def close(self):
        self.closed = True


class FakePage:
    def __init__(self, engine, proxy=None):
        self.engine = engine
        self.proxy = proxy
        self.context = FakeBrowserContext(engine.cookies)
        self.main_frame = object()
        self.viewport = None
        self.routes = []
        self.listeners = {}
        self.url = "about:blank"

    async def set_viewport_size(self, size):
        self.viewport = size

    async def route(self, pattern, handler):
        self.routes.append((pattern, handler))

    def on(self, event, callback):
        self.listeners.setdefault(event, []).append(callback)

    async def goto(self, url, timeout=None, **kwargs):
        self.engine.goto_calls.append(url)
        error = self.engine.navigation_error
        if callable(error) and not isinstance(error, BaseException):
            error = error(len(self.engine.goto_calls))
        if error is not None:
            raise error
        self.url = url
        return FakeResponse(status=self.engine.status, url=url)

    async def content(self):
        return self.engine.html

    async def evaluate(self, script):
        return f"evaluated: {script}"

    async def screenshot(self, full_page=False):
        return b"png-bytes"


class FakeEngine:
    """Stands in for PlaywrightEngine."""

    def __init__(self, html="<html><body>ok</body></html>", status=200, cookies=None):
        self.html = html
        self.status = status
        self.cookies = cookies or []
        # Exception, callable(attempt_number) -> Exception | None, or None
        self.navigation_error = None
        self.goto_calls = []
        self.pages = []
        self.released = []
        self.started = False
        self.stopped = False

    async def start(self):
        self.started = True

    async def new_page(self, proxy=None):
        page = FakePage(self, proxy)
        self.pages.append(page)
        return page

    async def release_page(self, page):
        self.released.append(page)

    @property
    def active_pages(self):
        return len(self.pages) - len(self.released)

    async def stop(self):
        self.stopped = True


class FakeEngineFactory:
    """Builds one FakeEngine per worker pool and remembers them."""

    def __init__(self, configure=None):
        self.configure = configure
        self.engines = []
        self.options = []

    def __call__(self, options):
        engine = FakeEngine()
        if self.configure:
            self.configure(engine, options)
        self.engines.append(engine)
        self.options.append(options)
        return engine


@pytest.fixture
def engine_factory():
    return FakeEngineFactory()


@pytest.fixture
def make_service():
    """Build a CrawlerService wired to fake browser engines."""
    def _make(engine_factory=None, **kwargs):
        return CrawlerService(
            diagnostics=kwargs.pop("diagnostics", DiagnosticsSink()),
            engine_factory=engine_factory or FakeEngineFactory(),
            **kwargs,
        )
    return _make


@pytest.fixture
def fake_engine():
    return FakeEngine()
