"""Unit tests for worker pools and the pool registry."""

import asyncio
import json
from unittest.mock import MagicMock, patch

import pytest

from crawlrelay.diagnostics import DiagnosticsSink
from crawlrelay.models import CrawlJob, CrawlState, ResultMode
from crawlrelay.options import CrawlerOptions
from crawlrelay.pool import PoolRegistry, WorkerPool
from crawlrelay.responses import FutureResponseChannel, PendingResponseRegistry
from crawlrelay.timing import TimingEvent

from conftest import FakeEngine


class SlowStartEngine(FakeEngine):
    async def start(self):
        await asyncio.sleep(0.01)
        self.started = True


class BrokenEngine(FakeEngine):
    async def start(self):
        raise RuntimeError("browser failed to launch")


class TestPoolRegistry:
    """Tests for PoolRegistry."""

    @pytest.mark.asyncio
    async def test_single_flight_creation(self):
        """Test concurrent callers share one in-flight creation."""
        created = []

        def factory(options):
            pool = WorkerPool(options, PendingResponseRegistry(), engine=SlowStartEngine())
            created.append(pool)
            return pool

        registry = PoolRegistry(factory)
        try:
            pools = await asyncio.gather(*[registry.get_or_create(CrawlerOptions()) for _ in range(10)])
            assert len(created) == 1
            assert all(pool is created[0] for pool in pools)
            assert created[0].engine.started
        finally:
            await registry.stop_all()

    @pytest.mark.asyncio
    async def test_failed_creation_is_not_cached(self):
        """Test a pool that fails to start is retried on the next call."""
        engines = [BrokenEngine(), FakeEngine()]

        def factory(options):
            return WorkerPool(options, PendingResponseRegistry(), engine=engines.pop(0))

        registry = PoolRegistry(factory)
        try:
            with pytest.raises(RuntimeError, match="failed to launch"):
                await registry.get_or_create(CrawlerOptions())
            assert len(registry) == 0

            pool = await registry.get_or_create(CrawlerOptions())
            assert pool.is_running
            assert len(registry) == 1
        finally:
            await registry.stop_all()

    @pytest.mark.asyncio
    async def test_get_returns_existing_pool(self):
        """Test lookups by equivalent options."""
        registry = PoolRegistry(lambda o: WorkerPool(o, PendingResponseRegistry(), engine=FakeEngine()))
        try:
            assert registry.get(CrawlerOptions()) is None
            pool = await registry.get_or_create(CrawlerOptions())
            assert registry.get(CrawlerOptions(max_request_retries=1)) is pool
            assert registry.pools == [pool]
        finally:
            await registry.stop_all()


class TestWorkerPool:
    """Tests for WorkerPool."""

    @pytest.mark.asyncio
    async def test_starts_one_worker_per_concurrency_slot(self):
        """Test the number of worker tasks follows max_concurrency."""
        pool = WorkerPool(CrawlerOptions(max_concurrency=3), PendingResponseRegistry(), engine=FakeEngine())
        await pool.start()
        try:
            assert len(pool._workers) == 3
            await pool.start()
            assert len(pool._workers) == 3
        finally:
            await pool.stop()
        assert pool.engine.stopped

    @pytest.mark.asyncio
    async def test_before_pull_hook_runs_before_dequeue(self):
        """Test before-pull hooks are called by idle workers."""
        calls = []
        pool = WorkerPool(
            CrawlerOptions(),
            PendingResponseRegistry(),
            engine=FakeEngine(),
            before_pull_hooks=[lambda p: calls.append(p.queue.pending_count)],
        )
        await pool.start()
        try:
            await asyncio.sleep(0)
            assert calls == [0]
        finally:
            await pool.stop()

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_stop_worker(self):
        """Test a broken before-pull hook is logged and ignored."""
        responses = PendingResponseRegistry()

        def broken(pool):
            raise ValueError("hook bug")

        pool = WorkerPool(CrawlerOptions(), responses, engine=FakeEngine(), before_pull_hooks=[broken])
        await pool.start()
        try:
            channel = FutureResponseChannel()
            job = CrawlJob("k", "https://example.com")
            responses.register("k", channel)
            await pool.add_request(job)

            status, _ = await channel.wait(5)
            assert status == 200
        finally:
            await pool.stop()

    @pytest.mark.asyncio
    async def test_status_counters(self):
        """Test finished, failed and retried counters."""
        responses = PendingResponseRegistry()
        engine = FakeEngine()
        engine.navigation_error = lambda attempt: RuntimeError("boom") if attempt <= 2 else None
        pool = WorkerPool(CrawlerOptions(), responses, engine=engine)
        await pool.start()
        try:
            failed, ok = FutureResponseChannel(), FutureResponseChannel()
            responses.register("fail", failed)
            await pool.add_request(CrawlJob("fail", "https://example.com/fail"))
            await failed.wait(5)

            responses.register("ok", ok)
            await pool.add_request(CrawlJob("ok", "https://example.com/ok"))
            await ok.wait(5)

            status = pool.get_status()
            assert status.requests_failed == 1
            assert status.requests_retried == 1
            assert status.requests_finished == 1
            assert status.pending == 0
        finally:
            await pool.stop()

    @pytest.mark.asyncio
    async def test_unexpected_error_still_responds(self):
        """Test an internal error outside the lifecycle still answers the caller."""
        responses = PendingResponseRegistry()
        pool = WorkerPool(CrawlerOptions(), responses, engine=FakeEngine())
        pool.lifecycle.run = MagicMock(side_effect=KeyError("internal"))
        await pool.start()
        try:
            channel = FutureResponseChannel()
            responses.register("k", channel)
            await pool.add_request(CrawlJob("k", "https://example.com"))

            status, _ = await channel.wait(5)
            assert status == 500
            assert "k" not in pool.queue
        finally:
            await pool.stop()

    @pytest.mark.asyncio
    async def test_unexpected_error_uses_failure_envelope(self):
        """Test a json job broken outside the lifecycle still gets the envelope."""
        responses = PendingResponseRegistry()
        diagnostics = MagicMock(spec=DiagnosticsSink)
        pool = WorkerPool(CrawlerOptions(), responses, diagnostics=diagnostics, engine=FakeEngine())
        pool.lifecycle.run = MagicMock(side_effect=KeyError("internal"))
        await pool.start()
        try:
            channel = FutureResponseChannel()
            job = CrawlJob("k", "https://example.com", result_mode=ResultMode.JSON)
            responses.register("k", channel)
            await pool.add_request(job)

            status, body = await channel.wait(5)
            payload = json.loads(body)
            assert status == 500
            assert payload["body"] == {"errorMessage": "'internal'"}
            assert payload["evaluateResults"] == []
            assert payload["type"] == "json"

            assert job.state == CrawlState.FAILED
            assert [e.attempt for e in job.errors] == [1]
            diagnostics.record.assert_called_once()
            assert diagnostics.record.call_args.args[2] is True
            assert pool.get_status().requests_failed == 1
        finally:
            await pool.stop()

    @pytest.mark.asyncio
    async def test_broken_failure_policy_falls_back_to_plain_500(self):
        """Test a second error while answering still reaches the caller."""
        responses = PendingResponseRegistry()
        pool = WorkerPool(CrawlerOptions(), responses, engine=FakeEngine())
        pool.lifecycle.run = MagicMock(side_effect=KeyError("internal"))
        await pool.start()
        try:
            channel = FutureResponseChannel()
            responses.register("k", channel)
            with patch("crawlrelay.pool.build_failure_response", side_effect=ValueError("policy bug")):
                await pool.add_request(CrawlJob("k", "https://example.com", result_mode=ResultMode.JSON))
                status, body = await channel.wait(5)

            assert status == 500
            assert json.loads(body) == {"errorMessage": "'internal'"}
        finally:
            await pool.stop()

    @pytest.mark.asyncio
    async def test_run_task_event_on_every_attempt(self):
        """Test each dequeue stamps the ledger."""
        responses = PendingResponseRegistry()
        engine = FakeEngine()
        engine.navigation_error = RuntimeError("down")
        pool = WorkerPool(CrawlerOptions(), responses, engine=engine)
        await pool.start()
        try:
            channel = FutureResponseChannel()
            job = CrawlJob("k", "https://example.com")
            responses.register("k", channel)
            await pool.add_request(job)
            await channel.wait(5)

            assert job.time_measures.events == [
                TimingEvent.RUN_TASK,
                TimingEvent.PRE_NAVIGATION,
                TimingEvent.ERROR,
                TimingEvent.RUN_TASK,
                TimingEvent.PRE_NAVIGATION,
                TimingEvent.ERROR,
            ]
        finally:
            await pool.stop()
