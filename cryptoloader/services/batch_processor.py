"""Bounded-concurrency batch processing with per-item fault attribution."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, List, Sequence, Tuple, TypeVar

from cryptoloader.core.errors import BatchProcessingError
from cryptoloader.core.logging import get_logger

log = get_logger("batch_processor")

T = TypeVar("T")
O = TypeVar("O")


@dataclass
class BatchConfig:
    batch_size: int = 100
    max_concurrent_batches: int = 5
    continue_on_error: bool = True
    # Pause between consecutive batches; 0 disables it.
    batch_delay_ms: int = 100


@dataclass
class BatchResult(Generic[O]):
    """Index-tagged outcome of a process_batches run."""

    success: List[Tuple[int, O]] = field(default_factory=list)
    failures: List[Tuple[int, Exception]] = field(default_factory=list)
    total_processed: int = 0

    @property
    def success_count(self) -> int:
        return len(self.success)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def success_rate(self) -> float:
        if self.total_processed == 0:
            return 0.0
        return self.success_count / self.total_processed

    def values(self) -> List[O]:
        """Successful outputs in input order."""
        return [value for _, value in sorted(self.success, key=lambda pair: pair[0])]


def create_batches(items: Sequence[T], size: int) -> List[List[T]]:
    if size <= 0:
        raise ValueError("batch size must be positive")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class BatchProcessor:
    """Runs an async per-item function over a list in fixed-size batches.

    Items inside a batch run concurrently, capped by a semaphore of
    ``max_concurrent_batches`` permits owned by this processor. Every input
    index lands in exactly one of ``success`` or ``failures``.
    """

    def __init__(self, config: BatchConfig | None = None):
        self.config = config or BatchConfig()
        self._semaphore = asyncio.Semaphore(self.config.max_concurrent_batches)

    async def process_batches(
        self,
        items: Sequence[T],
        processor: Callable[[T], Awaitable[O]],
    ) -> BatchResult[O]:
        result: BatchResult[O] = BatchResult(total_processed=len(items))
        batches = create_batches(items, self.config.batch_size)

        log.debug(f"Processing {len(items)} items in {len(batches)} batches of {self.config.batch_size}")

        offset = 0
        for batch_no, batch in enumerate(batches, start=1):
            log.debug(f"Processing batch {batch_no} of {len(batches)}")
            outcomes = await asyncio.gather(
                *(self._run_item(processor, item) for item in batch),
                return_exceptions=True,
            )

            for local_idx, outcome in enumerate(outcomes):
                global_idx = offset + local_idx
                if isinstance(outcome, Exception):
                    log.warning(f"Failed to process item {global_idx}: {outcome}")
                    result.failures.append((global_idx, outcome))
                    if not self.config.continue_on_error:
                        raise BatchProcessingError(f"Batch processing failed at item {global_idx}") from outcome
                else:
                    result.success.append((global_idx, outcome))

            offset += len(batch)
            if self.config.batch_delay_ms and batch_no < len(batches):
                await asyncio.sleep(self.config.batch_delay_ms / 1000)

        log.debug(
            f"Batch processing complete: {result.success_count} successes, {result.failure_count} failures"
        )
        return result

    async def _run_item(self, processor: Callable[[T], Awaitable[O]], item: T) -> O:
        async with self._semaphore:
            return await processor(item)
