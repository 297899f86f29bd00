"""
Queue worker for background grading.

A worker leases the next pending submission, loads its grading request,
grades it, and stores the result. Failed submissions go back to the
queue until their attempts run out.

    queue = InMemoryQueue()
    queue.enqueue("submission-1", priority=5)
    worker = GradingWorker(queue, service, loader=load_request, sink=save_result)
    await worker.run()
"""

import threading
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Protocol

from pydantic import BaseModel

from mathgrader.config.constants import LOCK_TIMEOUT_SECONDS, MAX_QUEUE_ATTEMPTS
from mathgrader.config.logging_config import get_logger
from mathgrader.core.exceptions import QueueError
from mathgrader.core.models import GradingRequest, GradingResult, QueueItem, QueueStatus, generate_id
from mathgrader.grading.service import EnhancedGradingService

logger = get_logger(__name__)

RequestLoader = Callable[[QueueItem], Awaitable[GradingRequest]]
ResultSink = Callable[[QueueItem, GradingResult], Awaitable[str]]


class QueueBackend(Protocol):
    """Storage for queue items. Leasing must be atomic per item."""

    async def get_next_pending_item(self, worker_id: str) -> Optional[QueueItem]:
        ...

    async def mark_completed(self, item_id: str, result_id: str) -> bool:
        ...

    async def mark_failed(self, item_id: str, reason: str) -> bool:
        ...

    async def release_stale_items(self) -> int:
        ...


class InMemoryQueue:
    """
    Process-local queue backend.

    Ordering is highest priority first, then oldest first. Leasing an item
    increments its attempt count; items that reached MAX_QUEUE_ATTEMPTS
    are never leased again.
    """

    def __init__(
        self,
        max_attempts: int = MAX_QUEUE_ATTEMPTS,
        lock_timeout: float = LOCK_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.max_attempts = max_attempts
        self.lock_timeout = lock_timeout
        self.clock = clock
        self._items: Dict[str, QueueItem] = {}
        self._lock = threading.Lock()

    def enqueue(self, submission_id: str, project_id: Optional[str] = None, priority: int = 0) -> str:
        """Add a submission; returns the queue item id."""
        item = QueueItem(
            id=generate_id(),
            submission_id=submission_id,
            project_id=project_id,
            priority=priority,
            created_at=self.clock(),
        )
        with self._lock:
            self._items[item.id] = item
        return item.id

    def enqueue_many(self, submission_ids: List[str], project_id: Optional[str] = None, priority: int = 0) -> int:
        for submission_id in submission_ids:
            self.enqueue(submission_id, project_id, priority)
        return len(submission_ids)

    def get(self, item_id: str) -> QueueItem:
        with self._lock:
            item = self._items.get(item_id)
        if item is None:
            raise QueueError(f"Queue item not found: {item_id}")
        return item

    async def get_next_pending_item(self, worker_id: str) -> Optional[QueueItem]:
        with self._lock:
            candidates = [
                item for item in self._items.values()
                if item.status == QueueStatus.PENDING and item.attempts < self.max_attempts
            ]
            if not candidates:
                return None

            # Priority descending, then FIFO
            chosen = min(candidates, key=lambda item: (-item.priority, item.created_at))
            leased = chosen.model_copy(update={
                "status": QueueStatus.PROCESSING,
                "locked_at": self.clock(),
                "locked_by": worker_id,
                "attempts": chosen.attempts + 1,
            })
            self._items[leased.id] = leased
            return leased

    async def mark_completed(self, item_id: str, result_id: str) -> bool:
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return False
            self._items[item_id] = item.model_copy(update={
                "status": QueueStatus.COMPLETED,
                "result_id": result_id,
                "locked_at": None,
                "locked_by": None,
            })
            return True

    async def mark_failed(self, item_id: str, reason: str) -> bool:
        """Back to pending while attempts remain, otherwise failed for good."""
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return False
            retry = item.attempts < self.max_attempts
            self._items[item_id] = item.model_copy(update={
                "status": QueueStatus.PENDING if retry else QueueStatus.FAILED,
                "error_message": reason,
                "locked_at": None,
                "locked_by": None,
            })
            return True

    async def release_stale_items(self) -> int:
        """Return leases older than lock_timeout to pending."""
        threshold = self.clock() - timedelta(seconds=self.lock_timeout)
        released = 0
        with self._lock:
            for item_id, item in list(self._items.items()):
                if item.status == QueueStatus.PROCESSING and item.locked_at and item.locked_at < threshold:
                    self._items[item_id] = item.model_copy(update={
                        "status": QueueStatus.PENDING,
                        "locked_at": None,
                        "locked_by": None,
                    })
                    released += 1
        if released:
            logger.warning(f"Released {released} stale queue item(s)")
        return released

    def get_queue_stats(self) -> Dict[str, int]:
        with self._lock:
            items = list(self._items.values())
        stats = {status.value: 0 for status in QueueStatus}
        for item in items:
            stats[item.status.value] += 1
        stats["total"] = len(items)
        return stats

    def get_project_queue_items(self, project_id: str) -> List[QueueItem]:
        """Items of one project, newest first."""
        with self._lock:
            items = [item for item in self._items.values() if item.project_id == project_id]
        return sorted(items, key=lambda item: item.created_at, reverse=True)


class WorkerOutcome(BaseModel):
    """What happened to one leased item."""
    item: QueueItem
    result: Optional[GradingResult] = None
    result_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class GradingWorker:
    """
    Drains a queue through the grading service.

    The loader turns a queue item into a GradingRequest (fetching the image,
    answer key, options). The sink persists a successful result and returns
    its id.
    """

    def __init__(
        self,
        queue: QueueBackend,
        service: EnhancedGradingService,
        loader: RequestLoader,
        sink: ResultSink,
        worker_id: Optional[str] = None,
    ):
        self.queue = queue
        self.service = service
        self.loader = loader
        self.sink = sink
        self.worker_id = worker_id or f"worker-{generate_id()[:8]}"

    async def process_next(self) -> Optional[WorkerOutcome]:
        """
        Lease and process one item.

        Returns:
            WorkerOutcome, or None when nothing is pending. Never raises
            on a failed submission; the item is marked failed instead.
        """
        item = await self.queue.get_next_pending_item(self.worker_id)
        if item is None:
            return None

        logger.info(f"{self.worker_id} processing {item.submission_id} (attempt {item.attempts})")

        try:
            request = await self.loader(item)
            result = await self.service.grade_submission_enhanced(request)
            if not result.success:
                return await self._fail(item, result.error or "Grading failed", result)

            result_id = await self.sink(item, result)
        except Exception as e:
            logger.exception(f"{self.worker_id} failed on {item.submission_id}")
            return await self._fail(item, str(e) or type(e).__name__)

        await self.queue.mark_completed(item.id, result_id)
        logger.info(f"{self.worker_id} completed {item.submission_id} -> {result_id}")
        return WorkerOutcome(item=item, result=result, result_id=result_id)

    async def _fail(self, item: QueueItem, reason: str, result: Optional[GradingResult] = None) -> WorkerOutcome:
        logger.warning(f"{self.worker_id} failed {item.submission_id}: {reason}")
        await self.queue.mark_failed(item.id, reason)
        return WorkerOutcome(item=item, result=result, error=reason)

    async def run(self, max_items: Optional[int] = None) -> List[WorkerOutcome]:
        """Process items until the queue is empty or max_items were handled."""
        await self.queue.release_stale_items()

        outcomes: List[WorkerOutcome] = []
        while max_items is None or len(outcomes) < max_items:
            outcome = await self.process_next()
            if outcome is None:
                break
            outcomes.append(outcome)

        failed = sum(1 for o in outcomes if not o.succeeded)
        logger.info(f"{self.worker_id} processed {len(outcomes)} item(s), {failed} failed")
        return outcomes
