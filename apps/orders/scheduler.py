"""Periodic promotion of PENDING orders.

The scheduler owns no business logic: each tick calls
``OrderLifecycleManager.promote_pending_to_processing`` once and logs the
result. Ticks never overlap; a tick that fires while the previous one is
still running is skipped.
"""

import logging
import threading
from typing import Optional

from .lifecycle import OrderLifecycleManager

logger = logging.getLogger(__name__)


class PromotionScheduler:
    """Run the bulk PENDING -> PROCESSING promotion at a fixed interval.

    Args:
        manager: Lifecycle manager whose promotion entry point is invoked.
        interval_seconds: Delay between ticks (default five minutes).
    """

    def __init__(self, manager: OrderLifecycleManager, interval_seconds: float = 300.0):
        self.manager = manager
        self.interval_seconds = interval_seconds
        self._tick_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def tick(self) -> Optional[int]:
        """Run one promotion unless another one is in flight.

        Returns:
            The number of promoted orders, or None when the tick was skipped
            or failed.
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.info("Promotion tick skipped: previous tick still running")
            return None
        try:
            updated = self.manager.promote_pending_to_processing()
        except Exception:
            logger.exception("Promotion tick failed")
            return None
        finally:
            self._tick_lock.release()
        if updated > 0:
            logger.info("Scheduler updated %s orders from PENDING to PROCESSING", updated)
            logger.info("Cache cleared after bulk status update")
        else:
            logger.debug("Scheduler found no PENDING orders to promote")
        return updated

    def _run(self):
        while not self._stop.wait(self.interval_seconds):
            self.tick()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="order-promotion", daemon=True)
        self._thread.start()
        logger.info("Promotion scheduler started (interval=%ss)", self.interval_seconds)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Promotion scheduler stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
