from datetime import datetime, timedelta

import pytest

from qbwc.queue import InMemoryWorkQueue, WorkItemStatus


@pytest.fixture
def queue() -> InMemoryWorkQueue:
    return InMemoryWorkQueue()


@pytest.mark.asyncio
async def test_enqueue_dedups_pending_reference(queue):
    first = await queue.enqueue("time_entry", "add", "exp-1", "qbPendingTimeExport")
    again = await queue.enqueue("time_entry", "add", "exp-1", "qbPendingTimeExport")
    other = await queue.enqueue("time_entry", "add", "exp-2", "qbPendingTimeExport")

    assert again.id == first.id
    assert other.id != first.id
    assert (await queue.counts())["pending"] == 2


@pytest.mark.asyncio
async def test_completed_reference_can_be_enqueued_again(queue):
    first = await queue.enqueue("time_entry", "add", "exp-1", "qbPendingTimeExport")
    await queue.mark_processing(first.id)
    await queue.mark_completed(first.id, "<QBXML/>")

    second = await queue.enqueue("time_entry", "add", "exp-1", "qbPendingTimeExport")
    assert second.id != first.id


@pytest.mark.asyncio
async def test_peek_orders_by_priority_then_age(queue):
    low = await queue.enqueue("time_entry", "add", "exp-1", "qbPendingTimeExport", priority=20)
    older = await queue.enqueue("time_entry", "add", "exp-2", "qbPendingTimeExport", priority=5)
    newer = await queue.enqueue("time_entry", "add", "exp-3", "qbPendingTimeExport", priority=5)

    items = await queue.peek_next(limit=3)
    assert [item.id for item in items] == [older.id, newer.id, low.id]

    # Peeking never changes status
    assert (await queue.get(older.id)).status == WorkItemStatus.PENDING


@pytest.mark.asyncio
async def test_item_lifecycle(queue):
    item = await queue.enqueue("time_entry", "add", "exp-1", "qbPendingTimeExport")

    processing = await queue.mark_processing(item.id)
    assert processing.status == WorkItemStatus.PROCESSING
    assert processing.attempts == 1
    assert await queue.peek_next() == []

    failed = await queue.mark_failed(item.id, "3120: Object not found")
    assert failed.status == WorkItemStatus.FAILED
    assert failed.error_message == "3120: Object not found"
    assert failed.attempts == 1


@pytest.mark.asyncio
async def test_item_is_claimed_only_once(queue):
    item = await queue.enqueue("time_entry", "add", "exp-1", "qbPendingTimeExport")

    assert await queue.mark_processing(item.id) is not None
    assert await queue.mark_processing(item.id) is None
    assert (await queue.get(item.id)).attempts == 1

    await queue.mark_completed(item.id, "<QBXML/>")
    assert await queue.mark_processing(item.id) is None


@pytest.mark.asyncio
async def test_unknown_item_marks_return_none(queue):
    assert await queue.mark_processing("missing") is None
    assert await queue.mark_completed("missing", None) is None
    assert await queue.mark_failed("missing", None) is None


@pytest.mark.asyncio
async def test_reclaim_returns_stale_items_to_pending(queue):
    item = await queue.enqueue("time_entry", "add", "exp-1", "qbPendingTimeExport")
    await queue.mark_processing(item.id)

    assert await queue.reclaim_stale(datetime.utcnow() - timedelta(hours=1)) == 0
    assert await queue.reclaim_stale(datetime.utcnow() + timedelta(seconds=1)) == 1

    reclaimed = await queue.get(item.id)
    assert reclaimed.status == WorkItemStatus.PENDING
    assert reclaimed.attempts == 1


@pytest.mark.asyncio
async def test_reclaim_fails_exhausted_items(queue):
    item = await queue.enqueue("time_entry", "add", "exp-1", "qbPendingTimeExport")
    for _ in range(item.max_attempts):
        assert await queue.mark_processing(item.id) is not None
        await queue.reclaim_stale(datetime.utcnow() + timedelta(seconds=1))

    exhausted = await queue.get(item.id)
    assert exhausted.status == WorkItemStatus.FAILED
    assert "attempts exhausted" in exhausted.error_message


@pytest.mark.asyncio
async def test_counts_cover_every_status(queue):
    await queue.enqueue("time_entry", "add", "exp-1", "qbPendingTimeExport")
    counts = await queue.counts()
    assert counts == {"pending": 1, "processing": 0, "completed": 0, "failed": 0}
