"""
Task Scheduler - bounded concurrency pool for analyzer work.

Every suspension point of an update is an analyzer call; this scheduler
caps how many run at once and retries capability failures with
exponential backoff.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from boltgraph.config import AnalyzerConfig
from boltgraph.utils.exceptions import AnalysisUnavailableError
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class TaskScheduler:
    """
    Bounded pool for analyzer tasks.

    Responsibilities:
    - Cap in-flight analyzer calls with a semaphore
    - Retry AnalysisUnavailableError with exponential backoff
    - Run one dependency level at a time; a failed task fails the level
    """

    def __init__(
        self,
        max_concurrency: int = 8,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
    ):
        """
        Initialize scheduler.

        Args:
            max_concurrency: Maximum in-flight tasks
            max_retries: Attempts per task, including the first
            backoff_base: Delay before the first retry in seconds
            backoff_max: Upper bound on a single delay
        """
        self.max_concurrency = max_concurrency
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._semaphore = asyncio.Semaphore(max_concurrency)

    @classmethod
    def from_config(cls, config: AnalyzerConfig) -> "TaskScheduler":
        return cls(
            max_concurrency=config.max_concurrency,
            max_retries=config.max_retries,
            backoff_base=config.backoff_base,
            backoff_max=config.backoff_max,
        )

    def backoff_delay(self, attempt: int) -> float:
        return min(self.backoff_base * (2**attempt), self.backoff_max)

    async def run(self, operation: Callable[[], Awaitable[T]], operation_name: str) -> T:
        """
        Run one task under the concurrency bound, retrying capability errors.

        Args:
            operation: Async callable producing the result
            operation_name: Name for logging

        Returns:
            Result of operation

        Raises:
            AnalysisUnavailableError: If every attempt fails
        """
        last_error: AnalysisUnavailableError | None = None

        for attempt in range(self.max_retries):
            try:
                async with self._semaphore:
                    return await operation()
            except AnalysisUnavailableError as e:
                last_error = e
                if attempt < self.max_retries - 1:
                    delay = self.backoff_delay(attempt)
                    logger.warning(
                        f"{operation_name} failed (attempt {attempt + 1}/{self.max_retries}). "
                        f"Retrying in {delay}s...",
                        extra={
                            "operation": operation_name,
                            "attempt": attempt + 1,
                            "error_type": type(e).__name__,
                            "error": str(e),
                        },
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.error(
                        f"{operation_name} failed after {self.max_retries} attempts",
                        extra={
                            "operation": operation_name,
                            "error": str(e),
                            "error_type": type(e).__name__,
                        },
                    )

        raise last_error

    async def run_level(
        self, operations: dict[str, Callable[[], Awaitable[T]]]
    ) -> dict[str, T]:
        """
        Run a batch of independent tasks concurrently.

        Args:
            operations: Task key -> async callable

        Returns:
            Task key -> result

        Raises:
            AnalysisUnavailableError: If any task exhausts its retries; the
                remaining tasks of the level are cancelled
        """
        if not operations:
            return {}

        keys = list(operations)
        tasks = [
            asyncio.ensure_future(self.run(operations[key], f"analyze({key})")) for key in keys
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return dict(zip(keys, results, strict=True))
