"""Batch processing completeness and fault attribution"""

import asyncio

import pytest

from cryptoloader.core.errors import BatchProcessingError
from cryptoloader.services.batch_processor import BatchConfig, BatchProcessor, BatchResult, create_batches


async def fail_on_multiples_of_three(value: int) -> int:
    if value % 3 == 0:
        raise ValueError(f"bad item {value}")
    return value * 10


class TestBatchProcessor:
    """process_batches"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("items,batch_size", [(0, 4), (1, 1), (10, 3), (10, 10), (7, 100), (25, 4)])
    async def test_every_item_accounted_for(self, items, batch_size):
        processor = BatchProcessor(BatchConfig(batch_size=batch_size, batch_delay_ms=0))
        result = await processor.process_batches(list(range(1, items + 1)), fail_on_multiples_of_three)
        assert result.success_count + result.failure_count == items == result.total_processed

    @pytest.mark.asyncio
    async def test_results_are_index_tagged(self):
        processor = BatchProcessor(BatchConfig(batch_size=2, batch_delay_ms=0))
        result = await processor.process_batches([1, 2, 3, 4, 6], fail_on_multiples_of_three)

        assert sorted(result.success) == [(0, 10), (1, 20), (3, 40)]
        assert [idx for idx, _ in result.failures] == [2, 4]
        assert all(isinstance(err, ValueError) for _, err in result.failures)
        assert result.values() == [10, 20, 40]
        assert result.success_rate == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_stop_on_first_failure(self):
        processor = BatchProcessor(BatchConfig(batch_size=2, continue_on_error=False, batch_delay_ms=0))
        with pytest.raises(BatchProcessingError, match="item 2"):
            await processor.process_batches([1, 2, 3, 4], fail_on_multiples_of_three)

    @pytest.mark.asyncio
    async def test_concurrency_cap(self):
        in_flight = 0
        peak = 0

        async def slow(value):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return value

        processor = BatchProcessor(BatchConfig(batch_size=10, max_concurrent_batches=3, batch_delay_ms=0))
        result = await processor.process_batches(list(range(10)), slow)

        assert peak == 3
        assert result.success_count == 10

    def test_empty_success_rate(self):
        assert BatchResult().success_rate == 0.0


class TestCreateBatches:
    def test_chunks(self):
        assert create_batches([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]

    def test_empty(self):
        assert create_batches([], 3) == []

    def test_rejects_zero(self):
        with pytest.raises(ValueError):
            create_batches([1], 0)
