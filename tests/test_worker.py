"""
Tests for the in-memory queue and the grading worker.
"""

from datetime import datetime, timedelta

import pytest

from mathgrader.core.exceptions import QueueError
from mathgrader.core.models import GradingRequest, GradingResult, ImageInput, QueueStatus
from mathgrader.services.worker import GradingWorker, InMemoryQueue


class TickingClock:
    """Each call returns a time one second later than the last."""

    def __init__(self):
        self.now = datetime(2024, 9, 1, 8, 0, 0)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeService:
    """Grades every submission successfully except those listed in `failing`."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.graded = []

    async def grade_submission_enhanced(self, request):
        self.graded.append(request.submission_id)
        if request.submission_id in self.failing:
            return GradingResult(submission_id=request.submission_id, success=False, error="All providers failed")
        return GradingResult(submission_id=request.submission_id, success=True, score=1, max_score=1, percentage=100)


async def load_request(item):
    return GradingRequest(submission_id=item.submission_id, image=ImageInput(data="aGVsbG8="))


def make_worker(queue, service, stored=None):
    stored = stored if stored is not None else {}

    async def sink(item, result):
        stored[item.submission_id] = result
        return f"result-{item.submission_id}"

    return GradingWorker(queue, service, loader=load_request, sink=sink, worker_id="w1")


# ==================== QUEUE ====================

@pytest.mark.asyncio
async def test_priority_then_fifo_order():
    queue = InMemoryQueue(clock=TickingClock())
    queue.enqueue("old-low")
    queue.enqueue("urgent", priority=5)
    queue.enqueue("new-low")

    order = []
    for _ in range(3):
        item = await queue.get_next_pending_item("w1")
        order.append(item.submission_id)

    assert order == ["urgent", "old-low", "new-low"]


@pytest.mark.asyncio
async def test_lease_marks_item_processing():
    queue = InMemoryQueue(clock=TickingClock())
    item_id = queue.enqueue("sub-1")

    leased = await queue.get_next_pending_item("w1")

    assert leased.id == item_id
    assert leased.status == QueueStatus.PROCESSING
    assert leased.locked_by == "w1"
    assert leased.attempts == 1
    assert await queue.get_next_pending_item("w2") is None


@pytest.mark.asyncio
async def test_failed_items_retry_until_attempts_run_out():
    queue = InMemoryQueue(max_attempts=2, clock=TickingClock())
    item_id = queue.enqueue("sub-1")

    await queue.get_next_pending_item("w1")
    await queue.mark_failed(item_id, "timeout")
    assert queue.get(item_id).status == QueueStatus.PENDING

    await queue.get_next_pending_item("w1")
    await queue.mark_failed(item_id, "timeout again")
    item = queue.get(item_id)
    assert item.status == QueueStatus.FAILED
    assert item.error_message == "timeout again"
    assert await queue.get_next_pending_item("w1") is None


@pytest.mark.asyncio
async def test_stale_leases_are_released():
    clock = TickingClock()
    queue = InMemoryQueue(lock_timeout=300, clock=clock)
    item_id = queue.enqueue("sub-1")
    await queue.get_next_pending_item("crashed-worker")

    assert await queue.release_stale_items() == 0

    clock.advance(301)
    assert await queue.release_stale_items() == 1
    item = queue.get(item_id)
    assert item.status == QueueStatus.PENDING
    assert item.locked_by is None


@pytest.mark.asyncio
async def test_stats_and_project_listing():
    queue = InMemoryQueue(clock=TickingClock())
    queue.enqueue_many(["a", "b"], project_id="class-3b")
    queue.enqueue("c", project_id="class-4a")
    first = await queue.get_next_pending_item("w1")
    await queue.mark_completed(first.id, "result-a")

    assert queue.get_queue_stats() == {"pending": 2, "processing": 0, "completed": 1, "failed": 0, "total": 3}
    assert [i.submission_id for i in queue.get_project_queue_items("class-3b")] == ["b", "a"]


def test_unknown_item():
    with pytest.raises(QueueError):
        InMemoryQueue().get("missing")


@pytest.mark.asyncio
async def test_marking_unknown_items_returns_false():
    queue = InMemoryQueue()
    assert not await queue.mark_completed("missing", "r")
    assert not await queue.mark_failed("missing", "boom")


# ==================== WORKER ====================

@pytest.mark.asyncio
async def test_worker_completes_item():
    queue = InMemoryQueue(clock=TickingClock())
    item_id = queue.enqueue("sub-1")
    stored = {}
    worker = make_worker(queue, FakeService(), stored)

    outcome = await worker.process_next()

    assert outcome.succeeded
    assert outcome.result_id == "result-sub-1"
    assert stored["sub-1"].percentage == 100
    item = queue.get(item_id)
    assert item.status == QueueStatus.COMPLETED
    assert item.result_id == "result-sub-1"


@pytest.mark.asyncio
async def test_worker_on_empty_queue():
    worker = make_worker(InMemoryQueue(), FakeService())
    assert await worker.process_next() is None


@pytest.mark.asyncio
async def test_unsuccessful_grade_is_not_stored():
    queue = InMemoryQueue(clock=TickingClock())
    item_id = queue.enqueue("sub-1")
    stored = {}
    worker = make_worker(queue, FakeService(failing={"sub-1"}), stored)

    outcome = await worker.process_next()

    assert not outcome.succeeded
    assert outcome.error == "All providers failed"
    assert stored == {}
    assert queue.get(item_id).status == QueueStatus.PENDING


@pytest.mark.asyncio
async def test_loader_exception_marks_item_failed():
    queue = InMemoryQueue(max_attempts=1, clock=TickingClock())
    item_id = queue.enqueue("sub-1")

    async def broken_loader(item):
        raise FileNotFoundError("image missing")

    async def sink(item, result):
        return "unused"

    worker = GradingWorker(queue, FakeService(), loader=broken_loader, sink=sink)
    outcome = await worker.process_next()

    assert outcome.error == "image missing"
    assert queue.get(item_id).status == QueueStatus.FAILED


@pytest.mark.asyncio
async def test_run_drains_queue_with_retries():
    queue = InMemoryQueue(max_attempts=3, clock=TickingClock())
    queue.enqueue("good-1")
    queue.enqueue("bad")
    queue.enqueue("good-2")
    service = FakeService(failing={"bad"})
    worker = make_worker(queue, service)

    outcomes = await worker.run()

    assert service.graded.count("bad") == 3
    assert sum(1 for o in outcomes if o.succeeded) == 2
    assert queue.get_queue_stats()["failed"] == 1
    assert queue.get_queue_stats()["completed"] == 2


@pytest.mark.asyncio
async def test_run_respects_max_items():
    queue = InMemoryQueue(clock=TickingClock())
    queue.enqueue_many(["a", "b", "c"])
    worker = make_worker(queue, FakeService())

    outcomes = await worker.run(max_items=2)

    assert len(outcomes) == 2
    assert queue.get_queue_stats()["pending"] == 1
