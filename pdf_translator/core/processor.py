"""
Concurrency-bounded batch execution.

A fixed pool of worker tasks drains a shared asyncio.Queue of batches.
Each worker processes one batch at a time and pauses between batches, so
at most ``concurrency`` batches are ever in flight. A batch whose worker
function raises is recorded as failed; the other batches keep going.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

from pdf_translator.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

B = TypeVar('B')


@dataclass
class BatchOutcome(Generic[B]):
    """Result of one batch: exactly one of result/error is meaningful."""
    batch: B
    result: Any = None
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class BoundedBatchProcessor:
    """Runs an async worker over batches with a fixed-size worker pool."""

    def __init__(self, concurrency: int = 3, inter_batch_delay: float = 0.1):
        """
        Args:
            concurrency: Maximum batches in flight (>= 1)
            inter_batch_delay: Seconds a worker waits before its next batch

        Raises:
            ConfigurationError: If concurrency < 1 or the delay is negative
        """
        if concurrency < 1:
            raise ConfigurationError(f"concurrency must be >= 1, got {concurrency}")
        if inter_batch_delay < 0:
            raise ConfigurationError(
                f"inter_batch_delay must be >= 0, got {inter_batch_delay}"
            )
        self.concurrency = concurrency
        self.inter_batch_delay = inter_batch_delay

    async def process(
        self,
        batches: List[B],
        worker: Callable[[B], Awaitable[Any]]
    ) -> List[BatchOutcome[B]]:
        """
        Process every batch and return the outcomes in completion order.

        Returns only after all batches have finished. If the caller is
        cancelled, every worker task is cancelled as well.

        After each batch, success or failure, a worker waits
        ``inter_batch_delay`` before taking another one. The wait is skipped
        when the queue is already empty, so there is no trailing pause after
        the last batches.
        """
        if not batches:
            return []

        queue: asyncio.Queue = asyncio.Queue()
        for batch in batches:
            queue.put_nowait(batch)

        outcomes: List[BatchOutcome[B]] = []
        pool_size = min(self.concurrency, len(batches))

        async def worker_loop(slot: int) -> None:
            while True:
                try:
                    batch = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return

                try:
                    result = await worker(batch)
                    outcomes.append(BatchOutcome(batch=batch, result=result))
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.warning("Worker %d: batch failed: %s", slot, e)
                    outcomes.append(BatchOutcome(batch=batch, error=e))
                finally:
                    queue.task_done()

                if self.inter_batch_delay > 0 and not queue.empty():
                    await asyncio.sleep(self.inter_batch_delay)

        tasks = [asyncio.create_task(worker_loop(slot)) for slot in range(pool_size)]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        logger.debug(
            "Processed %d batches with %d workers (%d failed)",
            len(outcomes), pool_size, sum(1 for o in outcomes if not o.succeeded)
        )
        return outcomes


async def process_batches_with_concurrency(
    batches: List[B],
    worker: Callable[[B], Awaitable[Any]],
    concurrency: int = 3,
    inter_batch_delay: float = 0.1
) -> List[BatchOutcome[B]]:
    """Function form of BoundedBatchProcessor.process."""
    processor = BoundedBatchProcessor(concurrency, inter_batch_delay)
    return await processor.process(batches, worker)
