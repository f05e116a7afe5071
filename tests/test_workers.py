"""Tests for worker-thread isolation of cascade runs."""

import asyncio
import threading

import pytest

from src.scraper.base.models import HTTP_TIERS, RetailerOutcome
from src.scraper.workers import WorkerPool

from conftest import FakeRunner, succeeded


class ThreadRecordingRunner(FakeRunner):
    """Records which thread each run executes on."""

    instances: list["ThreadRecordingRunner"] = []

    def __init__(self, script):
        super().__init__(script)
        self.threads: set[str] = set()
        ThreadRecordingRunner.instances.append(self)

    async def run(self, retailer_key, query, tiers=HTTP_TIERS):
        self.threads.add(threading.current_thread().name)
        return await super().run(retailer_key, query, tiers)


def crash(_tiers):
    raise RuntimeError("page hung")


@pytest.fixture
def runner_factory():
    ThreadRecordingRunner.instances = []
    script = {"alpha": succeeded("alpha", 2), "beta": crash}
    return lambda: ThreadRecordingRunner(script)


class TestWorkerPool:
    """Test task dispatch, error conversion and shutdown."""

    @pytest.mark.unit
    def test_rejects_empty_pool(self, runner_factory):
        with pytest.raises(ValueError):
            WorkerPool(0, runner_factory)

    @pytest.mark.asyncio
    async def test_runs_on_worker_thread(self, runner_factory, search_query):
        pool = WorkerPool(2, runner_factory)
        try:
            outcome = await pool.run("alpha", search_query, HTTP_TIERS)
        finally:
            await pool.close()

        assert outcome.succeeded
        assert len(outcome.products) == 2
        runners = ThreadRecordingRunner.instances
        assert len(runners) == 2
        used = set().union(*(r.threads for r in runners))
        assert used and all(name.startswith("CascadeWorker-") for name in used)
        assert all(r.closed for r in runners)

    @pytest.mark.asyncio
    async def test_worker_exception_becomes_failed_outcome(self, runner_factory, search_query):
        pool = WorkerPool(1, runner_factory)
        try:
            outcome = await pool.run("beta", search_query)
        finally:
            await pool.close()

        assert isinstance(outcome, RetailerOutcome)
        assert not outcome.succeeded
        assert outcome.error == "page hung"

    @pytest.mark.asyncio
    async def test_submit_returns_worker_result(self, runner_factory, search_query):
        pool = WorkerPool(1, runner_factory)
        try:
            future = pool.submit("beta", search_query)
            result = future.result(timeout=10)
        finally:
            await pool.close()

        assert not result.success
        assert result.retailer_key == "beta"
        assert result.outcome is None

    @pytest.mark.asyncio
    async def test_close_is_idempotent_and_final(self, runner_factory, search_query):
        pool = WorkerPool(1, runner_factory)
        pool.start()
        assert pool.started

        await pool.close()
        await pool.close()

        assert not pool.started
        with pytest.raises(RuntimeError):
            pool.submit("alpha", search_query)

    @pytest.mark.asyncio
    async def test_cascade_build_failure_fails_tasks(self, search_query):
        """Test a worker whose cascade cannot be built still answers every task."""

        def broken_factory():
            raise RuntimeError("browser settings rejected")

        pool = WorkerPool(1, broken_factory)
        try:
            first = await asyncio.wait_for(pool.run("alpha", search_query), 5)
            second = await asyncio.wait_for(pool.run("beta", search_query), 5)
        finally:
            await pool.close()

        for outcome, key in ((first, "alpha"), (second, "beta")):
            assert not outcome.succeeded
            assert outcome.retailer_key == key
            assert "browser settings rejected" in outcome.error
