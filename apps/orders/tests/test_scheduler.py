import threading
from decimal import Decimal

from apps.orders.domain import LineRequest, OrderStatus
from apps.orders.scheduler import PromotionScheduler


class StubManager:
    def __init__(self, result=0, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    def promote_pending_to_processing(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class BlockingManager:
    """Holds the promotion open until released, like a slow bulk update."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def promote_pending_to_processing(self):
        self.calls += 1
        self.entered.set()
        self.release.wait(5)
        return 7


def test_tick_promotes_pending_orders(manager):
    kept = manager.create("cust-1", [LineRequest("A", 1, Decimal("1.00"))])
    canceled = manager.create("cust-1", [LineRequest("B", 1, Decimal("1.00"))])
    manager.cancel(canceled.id)

    scheduler = PromotionScheduler(manager, interval_seconds=60)
    assert scheduler.tick() == 1
    assert manager.get_by_id(kept.id).status == OrderStatus.PROCESSING
    assert manager.get_by_id(canceled.id).status == OrderStatus.PENDING
    assert scheduler.tick() == 0


def test_tick_failure_is_contained():
    stub = StubManager(error=RuntimeError("db down"))
    scheduler = PromotionScheduler(stub)
    assert scheduler.tick() is None
    # lock released, the next tick runs again
    stub.error = None
    stub.result = 2
    assert scheduler.tick() == 2
    assert stub.calls == 2


def test_overlapping_tick_is_skipped():
    slow = BlockingManager()
    scheduler = PromotionScheduler(slow)
    results = []
    t = threading.Thread(target=lambda: results.append(scheduler.tick()))
    t.start()
    assert slow.entered.wait(5)

    assert scheduler.tick() is None
    assert slow.calls == 1

    slow.release.set()
    t.join(5)
    assert results == [7]


def test_start_runs_ticks_until_stopped():
    stub = StubManager(result=0)
    scheduler = PromotionScheduler(stub, interval_seconds=0.01)
    assert not scheduler.running
    scheduler.start()
    try:
        assert scheduler.running
        deadline = threading.Event()
        for _ in range(200):
            if stub.calls >= 2:
                break
            deadline.wait(0.01)
    finally:
        scheduler.stop()
    assert stub.calls >= 2
    assert not scheduler.running


def test_start_is_idempotent():
    scheduler = PromotionScheduler(StubManager(), interval_seconds=30)
    scheduler.start()
    first = scheduler._thread
    scheduler.start()
    assert scheduler._thread is first
    scheduler.stop()
