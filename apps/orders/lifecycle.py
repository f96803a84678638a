"""Order lifecycle manager.

The manager is the only writer of orders. It owns the status state machine,
computes line and order totals, collapses duplicate creations through the
idempotency resolver, and keeps the order caches coherent with the ledger
store:

- reads are cache-aside;
- single-order writes replace the ``orders`` entry and evict both list
  caches;
- the bulk promotion evicts every cache.

Status-dependent writes go to the store as guarded updates. When the guard
matches nothing (another writer got there first) the order is re-read and
the rules are re-applied so the caller sees the reason that applies to the
current state.
"""

import dataclasses
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional, Sequence, Tuple
from uuid import UUID

from .cache import OrderCache
from .domain import MAX_AMOUNT, MAX_QUANTITY, MONEY_SCALE, LedgerStore, LineRequest, Order, OrderLine, OrderStatus, Page
from .exceptions import Conflict, DuplicateIdempotencyKey, NotFound, ValidationError
from .idempotency import IdempotencyResolver

logger = logging.getLogger(__name__)

# The one manual transition allowed out of each non-terminal state.
NEXT_STATUS = {
    OrderStatus.PROCESSING: OrderStatus.SHIPPED,
    OrderStatus.SHIPPED: OrderStatus.DELIVERED,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_lines(customer_id: str, lines: Sequence[LineRequest]) -> None:
    """Check a creation request, collecting every problem found.

    Quantities and amounts are bounded so every accepted order fits the
    ledger columns.

    Raises:
        ValidationError: With one detail per violated rule.
    """
    if not isinstance(customer_id, str) or not customer_id.strip():
        raise ValidationError("Validation failed", ["customerId must not be blank"])
    if not lines:
        raise ValidationError("Order must contain at least one item", ["items must not be empty"])

    details = []
    total = Decimal("0")
    for i, ln in enumerate(lines):
        if not isinstance(ln.product_id, str) or not ln.product_id.strip():
            details.append(f"items[{i}].productId must not be blank")
        quantity_ok = (
            not isinstance(ln.quantity, bool)
            and isinstance(ln.quantity, int)
            and 0 < ln.quantity <= MAX_QUANTITY
        )
        if not quantity_ok:
            details.append(f"items[{i}].quantity must be an integer between 1 and {MAX_QUANTITY}")
        price = ln.unit_price
        if isinstance(price, bool) or not isinstance(price, (Decimal, int)):
            details.append(f"items[{i}].unitPrice must be a decimal amount")
            continue
        price = Decimal(price)
        if not price.is_finite() or price < 0:
            details.append(f"items[{i}].unitPrice must be zero or positive")
            continue
        if price > MAX_AMOUNT:
            details.append(f"items[{i}].unitPrice must not exceed {MAX_AMOUNT}")
            continue
        try:
            if price != price.quantize(MONEY_SCALE):
                details.append(f"items[{i}].unitPrice must have at most 2 decimal places")
                continue
        except InvalidOperation:
            details.append(f"items[{i}].unitPrice is not a valid amount")
            continue
        if quantity_ok:
            line_total = price * ln.quantity
            if line_total > MAX_AMOUNT:
                details.append(f"items[{i}] line total must not exceed {MAX_AMOUNT}")
            total += line_total
    if not details and total > MAX_AMOUNT:
        details.append(f"order total must not exceed {MAX_AMOUNT}")
    if details:
        raise ValidationError("Validation failed", details)


def check_transition(order: Order, new_status: OrderStatus) -> None:
    """Raise ``Conflict`` unless ``order`` may move to ``new_status`` manually."""
    if order.canceled:
        raise Conflict("Order has been canceled")
    if order.status == OrderStatus.PENDING:
        raise Conflict("Cannot manually update status from PENDING")
    if order.status == OrderStatus.DELIVERED:
        raise Conflict("Order already delivered")
    allowed = NEXT_STATUS[order.status]
    if new_status != allowed:
        raise Conflict(f"Only allowed transition from {order.status.value} is to {allowed.value}")


def check_cancel(order: Order) -> None:
    """Raise ``Conflict`` unless ``order`` may be canceled."""
    if order.canceled:
        raise Conflict("Order already canceled")
    if order.status != OrderStatus.PENDING:
        raise Conflict("Can only cancel orders in PENDING status")


class OrderLifecycleManager:
    """Domain service that creates, reads, advances and cancels orders.

    Dependencies are injected so tests can pass fakes:

    Args:
        store: LedgerStore holding the authoritative orders.
        cache: OrderCache in front of the store.
        resolver: IdempotencyResolver deriving creation keys.
        clock: Returns the current aware UTC datetime.
    """

    def __init__(
        self,
        store: LedgerStore,
        cache: OrderCache,
        resolver: IdempotencyResolver | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.cache = cache
        self.resolver = resolver or IdempotencyResolver()
        self.clock = clock

    # ---- create ----

    def create(
        self,
        customer_id: str,
        lines: Sequence[LineRequest],
        idempotency_key: Optional[str] = None,
    ) -> Order:
        """Create an order, or return the one already created for the same key.

        A request whose key matches an existing order is a success that
        returns the prior order unchanged, even if its lines differ.

        Args:
            customer_id: Ordering customer.
            lines: Requested lines, in order.
            idempotency_key: Optional client-supplied key.

        Returns:
            The new or pre-existing order.

        Raises:
            ValidationError: If the request is malformed.
            KeyGenerationFailed: If no key could be derived.
        """
        order, _ = self.create_or_replay(customer_id, lines, idempotency_key)
        return order

    def create_or_replay(
        self,
        customer_id: str,
        lines: Sequence[LineRequest],
        idempotency_key: Optional[str] = None,
    ) -> Tuple[Order, bool]:
        """Same as ``create`` but also reports whether a new order was stored.

        Returns:
            ``(order, created)``; ``created`` is False for a replay.
        """
        logger.info("Creating order for customer: %s", customer_id)
        validate_lines(customer_id, lines)

        key = self.resolver.resolve(customer_id, lines, idempotency_key)
        existing = self.store.get_by_idempotency_key(key)
        if existing is not None:
            return self._replay(existing, lines), False

        order_lines = tuple(OrderLine.from_request(ln) for ln in lines)
        order = Order.new(customer_id, order_lines, self.clock(), idempotency_key=key)
        try:
            saved = self.store.insert(order)
        except DuplicateIdempotencyKey:
            # lost the race to a concurrent create with the same key
            winner = self.store.get_by_idempotency_key(key)
            if winner is None:
                raise
            return self._replay(winner, lines), False

        self.cache.put_order(saved)
        self.cache.evict_lists()
        logger.info(
            "Order created successfully: %s for customer: %s total: %s",
            saved.id, saved.customer_id, saved.total_amount,
        )
        return saved, True

    def _replay(self, existing: Order, lines: Sequence[LineRequest]) -> Order:
        logger.info(
            "Order already exists with idempotency key: %s, returning existing order: %s",
            existing.idempotency_key, existing.id,
        )
        requested = tuple(OrderLine.from_request(ln) for ln in lines)
        if requested != existing.lines:
            logger.warning(
                "Idempotency key %s reused with different lines; returning order %s unchanged",
                existing.idempotency_key, existing.id,
            )
        self.cache.put_order(existing)
        return existing

    # ---- reads ----

    def get_by_id(self, order_id: UUID) -> Order:
        """Return an order, from cache when possible.

        Raises:
            NotFound: If no such order exists.
        """
        cached = self.cache.get_order(order_id)
        if cached is not None:
            return cached
        order = self._load(order_id)
        self.cache.put_order(order)
        return order

    def list(self, status: Optional[OrderStatus] = None, page: int = 0, page_size: int = 20) -> Page:
        """Return one page of orders, optionally filtered by status.

        ``status=None`` means no filter.
        """
        _check_paging(page, page_size)
        cached = self.cache.get_order_list(status, page, page_size)
        if cached is not None:
            return cached
        result = self.store.scan(status, page, page_size)
        self.cache.put_order_list(status, page, page_size, result)
        logger.debug("Orders listed - total: %s, returned: %s", result.total, len(result.items))
        return result

    def list_by_customer(self, customer_id: str, page: int = 0, page_size: int = 20) -> Page:
        _check_paging(page, page_size)
        cached = self.cache.get_customer_orders(customer_id, page, page_size)
        if cached is not None:
            return cached
        result = self.store.scan_by_customer(customer_id, page, page_size)
        self.cache.put_customer_orders(customer_id, page, page_size, result)
        return result

    # ---- transitions ----

    def update_status(self, order_id: UUID, new_status: OrderStatus) -> Order:
        """Advance an order along PROCESSING -> SHIPPED -> DELIVERED.

        Raises:
            NotFound: If no such order exists.
            Conflict: If the order is canceled, still PENDING, already
                DELIVERED, or ``new_status`` is not the next state.
        """
        logger.info("Updating order status: %s to %s", order_id, new_status.value)
        order = self._load(order_id)
        check_transition(order, new_status)
        updated = dataclasses.replace(order, status=new_status, updated_at=self._touch(order))
        saved = self._guarded_write(updated, order.status, lambda cur: check_transition(cur, new_status))
        logger.info(
            "Order status updated successfully: %s from %s to %s",
            order_id, order.status.value, new_status.value,
        )
        return saved

    def cancel(self, order_id: UUID) -> Order:
        """Cancel a PENDING order. The status stays PENDING.

        Raises:
            NotFound: If no such order exists.
            Conflict: If already canceled or no longer PENDING.
        """
        logger.info("Cancelling order: %s", order_id)
        order = self._load(order_id)
        check_cancel(order)
        now = self._touch(order)
        updated = dataclasses.replace(order, canceled_at=now, updated_at=now)
        saved = self._guarded_write(updated, order.status, check_cancel)
        logger.info("Order cancelled successfully: %s", order_id)
        return saved

    def promote_pending_to_processing(self) -> int:
        """Move every non-canceled PENDING order to PROCESSING.

        The bulk statement touches an unknown set of rows, so all three
        caches are cleared afterwards.

        Returns:
            Number of orders promoted.
        """
        updated = self.store.bulk_conditional_update(
            OrderStatus.PENDING, OrderStatus.PROCESSING, self.clock(), exclude_canceled=True
        )
        self.cache.evict_all()
        if updated > 0:
            logger.info("Promoted %s orders from PENDING to PROCESSING", updated)
        return updated

    # ---- helpers ----

    def _load(self, order_id: UUID) -> Order:
        order = self.store.get_by_id(order_id)
        if order is None:
            logger.warning("Order not found: %s", order_id)
            raise NotFound(f"Order {order_id} not found")
        return order

    def _touch(self, order: Order) -> datetime:
        return max(self.clock(), order.updated_at)

    def _guarded_write(
        self,
        updated: Order,
        expected: OrderStatus,
        recheck: Callable[[Order], None],
    ) -> Order:
        saved = self.store.update(updated, expected)
        if saved is None:
            current = self._load(updated.id)
            self.cache.put_order(current)
            # the fresh state usually explains the miss
            recheck(current)
            raise Conflict("Order was modified concurrently")
        self.cache.put_order(saved)
        self.cache.evict_lists()
        return saved


def _check_paging(page: int, page_size: int) -> None:
    if page < 0 or page_size < 1:
        raise ValidationError("Validation failed", ["page must be >= 0 and size must be >= 1"])
