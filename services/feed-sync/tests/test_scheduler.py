"""Tests for the priority work queue."""

import threading

from feedsync.models import Priority, SyncType, TriggerSource, WorkUnit
from feedsync.scheduler import RecentIds, WorkQueue

from conftest import FakeClock


def unit(trigger=TriggerSource.MANUAL, sync_type=SyncType.INCREMENTAL, tenant_id="shop-1"):
    return WorkUnit(tenant_id=tenant_id, sync_type=sync_type, trigger=trigger)


class TestOrdering:
    """Priority and FIFO ordering."""

    def test_priority_order(self):
        queue = WorkQueue()
        reprocess = queue.enqueue(unit(TriggerSource.REPROCESS))
        schedule = queue.enqueue(unit(TriggerSource.SCHEDULE))
        webhook = queue.enqueue(unit(TriggerSource.WEBHOOK))
        manual = queue.enqueue(unit(TriggerSource.MANUAL))

        order = [queue.dequeue(timeout=0).id for _ in range(4)]

        assert order == [webhook.id, manual.id, schedule.id, reprocess.id]

    def test_fifo_within_priority(self):
        queue = WorkQueue()
        first = queue.enqueue(unit(tenant_id="a"))
        second = queue.enqueue(unit(tenant_id="b"))
        assert queue.dequeue(timeout=0).id == first.id
        assert queue.dequeue(timeout=0).id == second.id

    def test_explicit_priority(self):
        queue = WorkQueue()
        queue.enqueue(unit(TriggerSource.MANUAL))
        urgent = queue.enqueue(unit(TriggerSource.REPROCESS), priority=Priority.WEBHOOK)
        assert queue.dequeue(timeout=0).id == urgent.id

    def test_empty_queue(self):
        assert WorkQueue().dequeue(timeout=0) is None


class TestDelays:
    """Delayed availability."""

    def test_delayed_unit_waits(self):
        clock = FakeClock()
        queue = WorkQueue(clock=clock.monotonic)
        delayed = queue.enqueue(unit(), delay=5.0)

        assert queue.dequeue(timeout=0) is None
        assert queue.next_available_in() == 5.0

        clock.advance(5.0)
        assert queue.dequeue(timeout=0).id == delayed.id

    def test_retry_keeps_priority(self):
        clock = FakeClock()
        queue = WorkQueue(clock=clock.monotonic)
        webhook = queue.enqueue(unit(TriggerSource.WEBHOOK))
        taken = queue.dequeue(timeout=0)
        queue.retry(taken, delay=1.0)
        manual = queue.enqueue(unit(TriggerSource.MANUAL))

        clock.advance(1.0)
        assert queue.dequeue(timeout=0).id == webhook.id
        assert queue.dequeue(timeout=0).id == manual.id


class TestChaining:
    """Dependent units."""

    def test_child_released_on_completion(self):
        queue = WorkQueue()
        parent = queue.enqueue(unit())
        child = unit(sync_type=SyncType.FEED_PUBLICATION)
        assert queue.enqueue_after(parent, child)

        taken = queue.dequeue(timeout=0)
        assert queue.dequeue(timeout=0) is None
        assert queue.in_flight_count() == 1

        assert queue.complete(taken) == [child]
        assert queue.in_flight_count() == 0
        assert queue.dequeue(timeout=0).id == child.id

    def test_child_discarded_on_failure(self):
        queue = WorkQueue()
        parent = queue.enqueue(unit())
        child = unit(sync_type=SyncType.FEED_PUBLICATION)
        queue.enqueue_after(parent, child)

        taken = queue.dequeue(timeout=0)
        assert queue.fail(taken, "boom") == [child]

        assert queue.dequeue(timeout=0) is None
        assert len(queue.parked) == 1
        assert queue.parked[0].error == "boom"
        assert not queue.enqueue_after(parent, unit())

    def test_enqueue_after_completed_parent_runs_now(self):
        queue = WorkQueue()
        parent = queue.enqueue(unit())
        queue.complete(queue.dequeue(timeout=0))

        child = unit(sync_type=SyncType.FEED_PUBLICATION)
        assert queue.enqueue_after(parent, child)
        assert queue.dequeue(timeout=0).id == child.id

    def test_cancel_does_not_park(self):
        queue = WorkQueue()
        parent = queue.enqueue(unit())
        queue.enqueue_after(parent, unit(sync_type=SyncType.FEED_PUBLICATION))
        queue.cancel(queue.dequeue(timeout=0))

        assert queue.parked == []
        assert queue.pending_count() == 0


class TestOutcomeHistory:
    """Completed and failed ids are remembered within a bound."""

    def test_recent_ids_forget_oldest(self):
        ids = RecentIds(maxsize=2)
        for item in ("a", "b", "c"):
            ids.add(item)

        assert "a" not in ids
        assert "b" in ids and "c" in ids
        assert len(ids) == 2

    def test_history_stays_bounded(self):
        queue = WorkQueue(history_size=10)
        units = []
        for _ in range(100):
            units.append(queue.enqueue(unit()))
            queue.complete(queue.dequeue(timeout=0))
        for _ in range(100):
            queue.enqueue(unit())
            queue.fail(queue.dequeue(timeout=0), "boom")

        assert len(queue._completed) == 10
        assert len(queue._failed) == 10

        child = unit(sync_type=SyncType.FEED_PUBLICATION)
        assert queue.enqueue_after(units[-1], child)
        assert queue.dequeue(timeout=0).id == child.id


class TestConcurrency:
    """Concurrent producers and consumers."""

    def test_every_unit_dequeued_once(self):
        queue = WorkQueue()
        taken = []
        lock = threading.Lock()

        def produce(offset):
            for i in range(50):
                queue.enqueue(unit(tenant_id=f"t{offset}-{i}"))

        def consume():
            while True:
                item = queue.dequeue(timeout=1.0)
                if item is None:
                    return
                with lock:
                    taken.append(item.id)

        producers = [threading.Thread(target=produce, args=(n,)) for n in range(4)]
        consumers = [threading.Thread(target=consume) for _ in range(4)]
        for thread in producers + consumers:
            thread.start()
        for thread in producers + consumers:
            thread.join()

        assert len(taken) == 200
        assert len(set(taken)) == 200

    def test_close_wakes_blocked_consumer(self):
        queue = WorkQueue()
        result = []
        consumer = threading.Thread(target=lambda: result.append(queue.dequeue()))
        consumer.start()
        queue.close()
        consumer.join(timeout=2)

        assert result == [None]
