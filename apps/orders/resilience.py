"""Circuit breaking and rate limiting composed around the lifecycle manager.

``ResilientOrderService`` exposes the same operations as
``OrderLifecycleManager`` and wraps each call:

- a named ``RateLimiter`` permit is taken first (``orderCreate``,
  ``orderUpdate``, ``orderQuery``, ``orderList``);
- the call then runs under a shared ``CircuitBreaker``.

Domain errors (``OrderError`` subclasses such as ``NotFound`` or
``Conflict``) are business outcomes and never trip the breaker; anything
else (database outages, driver errors) counts as a failure. The manager
itself knows nothing about this wrapping.
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional, Sequence, Tuple, TypeVar
from uuid import UUID

from .domain import LineRequest, Order, OrderStatus, Page
from .exceptions import OrderError, RateLimitExceeded, ServiceUnavailable
from .lifecycle import OrderLifecycleManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNAVAILABLE_MESSAGE = "Order service is temporarily unavailable. Please try again later."


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when consecutive failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe; only one probe may be in
      flight; a failed probe re-opens the circuit.

    Thread-safe via an internal lock.
    """

    def __init__(
        self,
        name: str,
        fail_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._half_open_probe_in_flight = False

    @property
    def state(self) -> str:
        """Current breaker state with time-based transition handling."""
        with self._lock:
            if self._state == "OPEN" and (self._clock() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._half_open_probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check and update state before a protected call.

        Raises:
            ServiceUnavailable: If the circuit is OPEN or a HALF_OPEN probe
                is already in flight.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise ServiceUnavailable(UNAVAILABLE_MESSAGE)
            if st == "HALF_OPEN":
                if self._half_open_probe_in_flight:
                    raise ServiceUnavailable(UNAVAILABLE_MESSAGE)
                self._half_open_probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._half_open_probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (
                self._failures >= self.fail_threshold and self._state != "OPEN"
            ):
                self._state = "OPEN"
                self._opened_at = self._clock()
                self._half_open_probe_in_flight = False
                logger.warning("Circuit '%s' opened after %s failures", self.name, self._failures)

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._half_open_probe_in_flight = False

    def call(self, fn: Callable[[], T]) -> T:
        """Run ``fn`` under the breaker."""
        self.before_call()
        try:
            result = fn()
        except OrderError:
            # business outcome, not a circuit failure
            self.on_success()
            raise
        except Exception as e:
            logger.error("Circuit breaker '%s' recorded failure: %s", self.name, e)
            self.on_failure()
            raise
        else:
            self.on_success()
            return result
        finally:
            self.on_finish()


# ---------------- Rate Limiter ---------------- #

class RateLimiter:
    """Fixed-window rate limiter.

    Hands out ``limit_for_period`` permits per ``refresh_period`` seconds.
    A caller finding the window exhausted waits for the next window if it
    starts within ``timeout`` seconds, and is rejected otherwise.
    """

    def __init__(
        self,
        name: str,
        limit_for_period: int,
        refresh_period: float = 1.0,
        timeout: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.name = name
        self.limit_for_period = limit_for_period
        self.refresh_period = refresh_period
        self.timeout = timeout
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._window_start = clock()
        self._used = 0

    def _roll(self, now: float) -> None:
        if now - self._window_start >= self.refresh_period:
            elapsed = int((now - self._window_start) // self.refresh_period)
            self._window_start += elapsed * self.refresh_period
            self._used = 0

    def acquire(self) -> None:
        """Take one permit.

        Raises:
            RateLimitExceeded: If no permit is available within ``timeout``.
        """
        deadline = self._clock() + self.timeout
        while True:
            with self._lock:
                now = self._clock()
                self._roll(now)
                if self._used < self.limit_for_period:
                    self._used += 1
                    return
                wait = self._window_start + self.refresh_period - now
            if now + wait > deadline:
                logger.warning("Rate limiter '%s' rejected call", self.name)
                raise RateLimitExceeded(f"Too many requests for {self.name}")
            self._sleep(wait)


# ---------------- Decorated service ---------------- #

class ResilientOrderService:
    """Lifecycle manager wrapped with rate limiting and circuit breaking.

    Args:
        manager: The undecorated lifecycle manager.
        breaker: Circuit breaker shared by all operations.
        limiters: Rate limiters by name; operations whose limiter is absent
            run without one.
    """

    def __init__(
        self,
        manager: OrderLifecycleManager,
        breaker: CircuitBreaker,
        limiters: Optional[Dict[str, RateLimiter]] = None,
    ):
        self.manager = manager
        self.breaker = breaker
        self.limiters = limiters or {}

    def _guard(self, limiter_name: str, fn: Callable[[], T]) -> T:
        limiter = self.limiters.get(limiter_name)
        if limiter is not None:
            limiter.acquire()
        return self.breaker.call(fn)

    def create(self, customer_id: str, lines: Sequence[LineRequest], idempotency_key: Optional[str] = None) -> Order:
        return self._guard("orderCreate", lambda: self.manager.create(customer_id, lines, idempotency_key))

    def create_or_replay(
        self, customer_id: str, lines: Sequence[LineRequest], idempotency_key: Optional[str] = None
    ) -> Tuple[Order, bool]:
        return self._guard(
            "orderCreate", lambda: self.manager.create_or_replay(customer_id, lines, idempotency_key)
        )

    def get_by_id(self, order_id: UUID) -> Order:
        return self._guard("orderQuery", lambda: self.manager.get_by_id(order_id))

    def list(self, status: Optional[OrderStatus] = None, page: int = 0, page_size: int = 20) -> Page:
        return self._guard("orderList", lambda: self.manager.list(status, page, page_size))

    def list_by_customer(self, customer_id: str, page: int = 0, page_size: int = 20) -> Page:
        return self._guard("orderQuery", lambda: self.manager.list_by_customer(customer_id, page, page_size))

    def update_status(self, order_id: UUID, new_status: OrderStatus) -> Order:
        return self._guard("orderUpdate", lambda: self.manager.update_status(order_id, new_status))

    def cancel(self, order_id: UUID) -> Order:
        return self._guard("orderUpdate", lambda: self.manager.cancel(order_id))

    def promote_pending_to_processing(self) -> int:
        return self.manager.promote_pending_to_processing()
