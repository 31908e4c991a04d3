"""
Background Indexing Dispatcher

Bounded asyncio worker pool that runs reconciler attempts for entries
submitted by the write path. Writers never wait on it:
- ``submit`` is non-blocking; a full queue drops the key with a warning
  and the periodic drain job picks the entry up later
- a key already waiting in the queue is coalesced with new submissions
- TransientIndexingError is retried with exponential backoff

Uses the same start/stop lifecycle as the other asyncio loop services.
"""

import asyncio
import logging
from typing import Optional

from ..config import settings
from ..exceptions import TransientIndexingError
from .queue_store import QueueKey
from .reconciler import ReconcileOutcome, Reconciler, reconciler as default_reconciler

logger = logging.getLogger(__name__)


class IndexingDispatcher:
    """
    Fire-and-forget indexing with a fixed number of workers.

    The attempt itself always re-reads the entry, so dropping or coalescing
    a submission never loses an update: the entry stays pending.
    """

    def __init__(
        self,
        reconciler: Optional[Reconciler] = None,
        workers: Optional[int] = None,
        queue_size: Optional[int] = None,
        max_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
    ) -> None:
        self._reconciler = reconciler or default_reconciler
        self._worker_count = workers or settings.indexing_workers
        self._queue_size = queue_size or settings.indexing_queue_size
        self._max_attempts = max_attempts or settings.indexing_max_attempts
        self._retry_base_delay = (
            settings.indexing_retry_base_delay if retry_base_delay is None else retry_base_delay
        )
        self._queue: Optional[asyncio.Queue] = None
        self._queued: set[QueueKey] = set()
        self._workers: list[asyncio.Task] = []
        self._running = False
        self._dropped = 0
        self._completed = 0
        self._failed = 0

    async def start(self) -> None:
        """Start the worker tasks."""
        if self._running:
            return
        self._queue = asyncio.Queue(maxsize=self._queue_size)
        self._running = True
        self._workers = [
            asyncio.create_task(self._worker_loop(n)) for n in range(self._worker_count)
        ]
        logger.info(f"Indexing dispatcher started ({self._worker_count} workers)")

    async def stop(self) -> None:
        """Stop the workers; keys still queued stay pending in the ledger."""
        self._running = False
        for task in self._workers:
            task.cancel()
        for task in self._workers:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._workers = []
        self._queued.clear()
        self._queue = None
        logger.info("Indexing dispatcher stopped")

    @property
    def is_running(self) -> bool:
        """Check if dispatcher is running."""
        return self._running

    @property
    def stats(self) -> dict[str, int]:
        return {
            "workers": len(self._workers),
            "queued": self._queue.qsize() if self._queue else 0,
            "completed": self._completed,
            "failed": self._failed,
            "dropped": self._dropped,
        }

    def submit(self, key: QueueKey) -> bool:
        """
        Schedule an indexing attempt without blocking.

        Returns:
            True if the key is queued (or already was), False if dropped
        """
        if not self._running or self._queue is None:
            logger.debug(f"Dispatcher not running, {key} left for the periodic pass")
            return False
        if key in self._queued:
            return True
        try:
            self._queue.put_nowait(key)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning(f"Indexing queue full, {key} left for the periodic pass")
            return False
        self._queued.add(key)
        return True

    async def join(self) -> None:
        """Wait until every queued key has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def _worker_loop(self, worker_id: int) -> None:
        while self._running:
            try:
                key = await self._queue.get()
            except asyncio.CancelledError:
                break
            # Submissions from here on must enqueue a fresh attempt
            self._queued.discard(key)
            try:
                await self.process(key)
            except asyncio.CancelledError:
                self._queue.task_done()
                break
            self._queue.task_done()

    async def process(self, key: QueueKey) -> Optional[ReconcileOutcome]:
        """Run attempts for one key, retrying transient failures."""
        for attempt in range(1, self._max_attempts + 1):
            try:
                outcome = await self._reconciler.reconcile_entry(key)
                self._completed += 1
                return outcome
            except TransientIndexingError as e:
                if attempt == self._max_attempts:
                    self._failed += 1
                    logger.error(f"Giving up on {key} after {attempt} attempts: {e}")
                    return None
                delay = self._retry_base_delay * (2 ** (attempt - 1))
                logger.warning(f"Transient failure indexing {key} (attempt {attempt}), retrying in {delay}s: {e}")
                await asyncio.sleep(delay)
            except Exception as e:
                self._failed += 1
                logger.error(f"Failed to index {key}: {e}", exc_info=True)
                return None
        return None


# Global singleton instance
indexing_dispatcher = IndexingDispatcher()


async def get_indexing_dispatcher() -> IndexingDispatcher:
    """FastAPI dependency for the indexing dispatcher."""
    return indexing_dispatcher
