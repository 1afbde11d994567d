"""Rate-limited batch executor for calls to the inference service.

Runs opaque async task factories in fixed-size concurrent groups, sleeps
between groups, and retries each task independently on transient failures.
A task that fails for good yields a caller-supplied fallback value instead of
raising, so one bad page never aborts its batch.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from takeoff.config.settings import PipelineSettings
from takeoff.core.exceptions import InferenceError, RateLimitError, TransientInferenceError
from takeoff.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

TaskFactory = Callable[[], Awaitable[T]]
ProgressCallback = Callable[[int, int], None]


@dataclass
class BatchRunReport:
    """What happened during the most recent ``run``."""
    label: str = ""
    total_tasks: int = 0
    batches_executed: int = 0
    retries: Dict[int, int] = field(default_factory=dict)
    fallbacks: List[int] = field(default_factory=list)


def create_batches(items: Sequence[T], batch_size: int) -> List[List[T]]:
    """Create batches from a list of items.

    Example:
        >>> create_batches([1, 2, 3, 4, 5], 2)
        [[1, 2], [3, 4], [5]]
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    return [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]


class RateLimitedBatchExecutor:
    """Bounded-concurrency task runner with cooldown and per-task retry.

    Attributes:
        batch_size: Tasks run concurrently per group
        cooldown_ms: Pause between groups (not after the last one)
        max_retries: Retries per task after the first attempt
        base_delay_ms: Backoff unit; attempt ``n`` waits ``n * base_delay_ms``
        rate_limit_multiplier: Extra backoff factor for HTTP 429
    """

    def __init__(
        self,
        batch_size: int,
        cooldown_ms: int = 0,
        max_retries: int = 3,
        base_delay_ms: int = 2000,
        rate_limit_multiplier: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_progress: Optional[ProgressCallback] = None,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        self.batch_size = batch_size
        self.cooldown_ms = cooldown_ms
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.rate_limit_multiplier = rate_limit_multiplier
        self._sleep = sleep
        self.on_progress = on_progress
        self.last_run = BatchRunReport()

    @classmethod
    def from_settings(
        cls,
        pipeline_settings: PipelineSettings,
        batch_size: int,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_progress: Optional[ProgressCallback] = None,
    ) -> "RateLimitedBatchExecutor":
        return cls(
            batch_size=batch_size,
            cooldown_ms=pipeline_settings.cooldown_ms,
            max_retries=pipeline_settings.max_retries,
            base_delay_ms=pipeline_settings.retry_base_delay_ms,
            rate_limit_multiplier=pipeline_settings.rate_limit_backoff_multiplier,
            sleep=sleep,
            on_progress=on_progress,
        )

    async def run(
        self,
        tasks: Sequence[TaskFactory[T]],
        fallback: Callable[[int], T],
        label: str = "batch",
    ) -> List[T]:
        """Run all tasks and return their results in submission order.

        Args:
            tasks: Zero-argument callables returning a fresh awaitable per
                attempt
            fallback: Called with the task index when the task fails for good
            label: Name used in log lines

        Returns:
            One result per task; failed tasks hold their fallback value
        """
        report = BatchRunReport(label=label, total_tasks=len(tasks))
        self.last_run = report
        if not tasks:
            return []

        indexed = list(enumerate(tasks))
        batches = create_batches(indexed, self.batch_size)
        results: List[T] = []
        completed = 0

        LOGGER.info(
            f"[{label}] Processing {len(tasks)} tasks in {len(batches)} batches of {self.batch_size}",
            extra={"label": label, "total_tasks": len(tasks), "batches": len(batches)},
        )

        for batch_number, batch in enumerate(batches, start=1):
            LOGGER.debug(f"[{label}] Batch {batch_number}/{len(batches)} started")

            batch_results = await asyncio.gather(
                *(self._run_task(index, task, fallback, report) for index, task in batch)
            )
            results.extend(batch_results)
            report.batches_executed += 1

            completed += len(batch)
            if self.on_progress:
                self.on_progress(completed, len(tasks))
            LOGGER.info(f"[{label}] Progress: {completed}/{len(tasks)} tasks complete")

            if batch_number < len(batches) and self.cooldown_ms > 0:
                LOGGER.debug(f"[{label}] Cooling down for {self.cooldown_ms}ms before next batch")
                await self._sleep(self.cooldown_ms / 1000)

        if report.fallbacks:
            LOGGER.warning(
                f"[{label}] {len(report.fallbacks)} of {len(tasks)} tasks fell back",
                extra={"failed_indexes": report.fallbacks},
            )
        return results

    async def _run_task(
        self,
        index: int,
        task: TaskFactory[T],
        fallback: Callable[[int], T],
        report: BatchRunReport,
    ) -> T:
        attempt = 0
        while True:
            try:
                return await task()
            except TransientInferenceError as e:
                if attempt >= self.max_retries:
                    LOGGER.warning(
                        f"[{report.label}] Task {index} exhausted {self.max_retries} retries: {e}"
                    )
                    report.fallbacks.append(index)
                    return fallback(index)

                attempt += 1
                report.retries[index] = attempt
                delay_ms = attempt * self.base_delay_ms
                if isinstance(e, RateLimitError):
                    delay_ms *= self.rate_limit_multiplier
                LOGGER.warning(
                    f"[{report.label}] {'Rate limit' if isinstance(e, RateLimitError) else 'Transient error'} "
                    f"on task {index}, retrying in {delay_ms / 1000:.1f}s "
                    f"(attempt {attempt}/{self.max_retries})"
                )
                await self._sleep(delay_ms / 1000)
            except Exception as e:
                # Fatal for this task only
                LOGGER.warning(
                    f"[{report.label}] Task {index} failed without retry: {type(e).__name__}: {e}",
                    exc_info=not isinstance(e, InferenceError),
                )
                report.fallbacks.append(index)
                return fallback(index)
