"""Unit tests for the Playwright engine helpers."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from crawlrelay.browser import PlaywrightEngine, block_requests, blocked_patterns
from crawlrelay.constants import DEFAULT_BLOCKED_URL_PATTERNS
from crawlrelay.proxy import ProxyConfig, ProxyEntry


class TestBlockRequests:
    """Tests for block_requests."""

    def test_patterns_include_extras(self):
        """Test extra patterns are appended to the defaults."""
        patterns = blocked_patterns([".mp4"])
        assert patterns[:len(DEFAULT_BLOCKED_URL_PATTERNS)] == DEFAULT_BLOCKED_URL_PATTERNS
        assert patterns[-1] == ".mp4"

    @pytest.mark.asyncio
    async def test_route_aborts_blocked_urls(self):
        """Test matching requests are aborted and others continue."""
        page = MagicMock()
        page.route = AsyncMock()
        await block_requests(page, ["tracker.js"])

        pattern, handler = page.route.call_args[0]
        assert pattern == "**/*"

        blocked = MagicMock()
        blocked.request.url = "https://cdn.example.com/logo.png"
        blocked.abort = AsyncMock()
        blocked.continue_ = AsyncMock()
        await handler(blocked)
        blocked.abort.assert_awaited_once()
        blocked.continue_.assert_not_awaited()

        extra = MagicMock()
        extra.request.url = "https://example.com/tracker.js"
        extra.abort = AsyncMock()
        await handler(extra)
        extra.abort.assert_awaited_once()

        allowed = MagicMock()
        allowed.request.url = "https://example.com/"
        allowed.abort = AsyncMock()
        allowed.continue_ = AsyncMock()
        await handler(allowed)
        allowed.continue_.assert_awaited_once()
        allowed.abort.assert_not_awaited()


class TestPlaywrightEngine:
    """Tests for PlaywrightEngine with a mocked browser."""

    def test_initial_state(self):
        """Test engine defaults."""
        engine = PlaywrightEngine()
        assert engine.headless is True
        assert engine.is_started is False
        assert engine.active_pages == 0

    @pytest.mark.asyncio
    async def test_new_page_requires_start(self):
        """Test pages cannot be opened before start."""
        with pytest.raises(RuntimeError):
            await PlaywrightEngine().new_page()

    @pytest.mark.asyncio
    async def test_new_page_applies_proxy(self):
        """Test each page gets its own context with the job's proxy."""
        engine = PlaywrightEngine()
        context = MagicMock()
        context.new_page = AsyncMock(return_value=MagicMock())
        context.close = AsyncMock()
        engine._browser = MagicMock()
        engine._browser.new_context = AsyncMock(return_value=context)

        proxy = ProxyEntry(config=ProxyConfig(host="proxy", port=8000))
        page = await engine.new_page(proxy)

        kwargs = engine._browser.new_context.call_args.kwargs
        assert kwargs["proxy"] == {"server": "http://proxy:8000"}
        assert engine.active_pages == 1

        page.context.close = AsyncMock()
        await engine.release_page(page)
        assert engine.active_pages == 0
        page.context.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_release_tolerates_closed_context(self):
        """Test closing an already closed context is only logged."""
        engine = PlaywrightEngine()
        page = MagicMock()
        page.context.close = AsyncMock(side_effect=RuntimeError("Target closed"))
        await engine.release_page(page)

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        """Test stop is safe on an engine that never started."""
        engine = PlaywrightEngine()
        await engine.stop()
        assert engine.is_started is False
