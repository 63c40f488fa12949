"""
Tests for the bounded analyzer task pool.
"""

import asyncio

import pytest

from boltgraph.config import AnalyzerConfig
from boltgraph.core.scheduler import TaskScheduler
from boltgraph.utils.exceptions import AnalysisUnavailableError


@pytest.fixture
def scheduler() -> TaskScheduler:
    return TaskScheduler(max_concurrency=2, max_retries=3, backoff_base=0.001, backoff_max=0.004)


class Flaky:
    """Async callable failing a fixed number of times."""

    def __init__(self, failures: int, result="ok"):
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise AnalysisUnavailableError("analyzer down")
        return self.result


@pytest.mark.unit
@pytest.mark.asyncio
class TestRun:
    """Tests for single-task execution."""

    async def test_success(self, scheduler):
        operation = Flaky(0)
        assert await scheduler.run(operation, "op") == "ok"
        assert operation.calls == 1

    async def test_retries_capability_errors(self, scheduler):
        operation = Flaky(2)
        assert await scheduler.run(operation, "op") == "ok"
        assert operation.calls == 3

    async def test_exhausted_retries(self, scheduler):
        operation = Flaky(10)
        with pytest.raises(AnalysisUnavailableError):
            await scheduler.run(operation, "op")
        assert operation.calls == 3

    async def test_other_errors_not_retried(self, scheduler):
        calls = 0

        async def broken():
            nonlocal calls
            calls += 1
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await scheduler.run(broken, "op")
        assert calls == 1

    async def test_concurrency_bound(self, scheduler):
        active = 0
        peak = 0

        async def tracked():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return True

        await asyncio.gather(*(scheduler.run(tracked, f"op{i}") for i in range(6)))
        assert peak == 2


class TestBackoff:
    """Tests for backoff delays."""

    def test_exponential_and_capped(self):
        scheduler = TaskScheduler(backoff_base=0.5, backoff_max=8.0)
        assert [scheduler.backoff_delay(a) for a in range(6)] == [0.5, 1.0, 2.0, 4.0, 8.0, 8.0]

    def test_from_config(self):
        scheduler = TaskScheduler.from_config(
            AnalyzerConfig(max_concurrency=3, max_retries=5, backoff_base=0.1)
        )
        assert scheduler.max_concurrency == 3
        assert scheduler.max_retries == 5
        assert scheduler.backoff_base == 0.1

    def test_at_least_one_attempt(self):
        assert TaskScheduler(max_retries=0).max_retries == 1


@pytest.mark.unit
@pytest.mark.asyncio
class TestRunLevel:
    """Tests for dependency levels."""

    async def test_results_keyed(self, scheduler):
        results = await scheduler.run_level({"a": Flaky(0, 1), "b": Flaky(1, 2)})
        assert results == {"a": 1, "b": 2}

    async def test_empty_level(self, scheduler):
        assert await scheduler.run_level({}) == {}

    async def test_failure_cancels_level(self, scheduler):
        finished = False

        async def slow():
            nonlocal finished
            await asyncio.sleep(5)
            finished = True

        with pytest.raises(AnalysisUnavailableError):
            await scheduler.run_level({"slow": slow, "down": Flaky(10)})
        assert finished is False
