"""Domain models and ports for orders.

This module contains the immutable dataclasses that describe an order and
its lines, the status enumeration that drives the lifecycle state machine,
and the protocol definition (port) for the durable ledger store. The
lifecycle manager in ``lifecycle.py`` orchestrates these pieces.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Protocol, Optional, Tuple
from uuid import UUID, uuid4

# Fixed scale for monetary amounts (two decimal places).
MONEY_SCALE = Decimal("0.01")

# Storage limits: quantities are 32-bit integers, amounts are 64-bit cents.
# Any price, line total or order total above MAX_AMOUNT is rejected.
MAX_QUANTITY = 2**31 - 1
MAX_AMOUNT = Decimal("9999999999999.99")


# ---- Enums ----
class OrderStatus(str, Enum):
    """Enumeration of the order lifecycle states.

    The only progression is PENDING -> PROCESSING -> SHIPPED -> DELIVERED.
    Cancellation is not a state: it is recorded in ``Order.canceled_at``.
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class LineRequest:
    """A single line of a creation request, as supplied by the caller."""

    product_id: str
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True)
class OrderLine:
    """A single line item in an order.

    Attributes:
        product_id: Identifier of the ordered product.
        quantity: Number of units, always > 0.
        unit_price: Non-negative price per unit with scale 2.
        line_total: ``quantity * unit_price``.

    The dataclass is frozen because lines are immutable once the order is
    created.
    """

    product_id: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    @classmethod
    def from_request(cls, line: LineRequest) -> "OrderLine":
        price = Decimal(line.unit_price)
        return cls(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price=price,
            line_total=(price * line.quantity).quantize(MONEY_SCALE),
        )


@dataclass(frozen=True)
class Order:
    """Container for order data.

    Attributes:
        id: Opaque unique identifier.
        customer_id: Identifier of the ordering customer.
        status: Current OrderStatus.
        lines: Ordered, non-empty tuple of OrderLine.
        total_amount: Exact decimal sum of all line totals.
        idempotency_key: Key used to collapse duplicate creations, if any.
        created_at: Creation timestamp (UTC).
        updated_at: Timestamp of the last mutation (UTC).
        canceled_at: Set once when the order is canceled, never cleared.

    Orders are frozen so copies held by the cache cannot be mutated by
    callers; mutations go through ``dataclasses.replace``.
    """

    id: UUID
    customer_id: str
    status: OrderStatus
    lines: Tuple[OrderLine, ...]
    total_amount: Decimal
    created_at: datetime
    updated_at: datetime
    idempotency_key: Optional[str] = None
    canceled_at: Optional[datetime] = None

    @property
    def canceled(self) -> bool:
        return self.canceled_at is not None

    @classmethod
    def new(
        cls,
        customer_id: str,
        lines: Tuple[OrderLine, ...],
        now: datetime,
        idempotency_key: Optional[str] = None,
    ) -> "Order":
        """Build a fresh PENDING order, deriving its total from the lines."""
        total = sum((ln.line_total for ln in lines), Decimal("0.00"))
        return cls(
            id=uuid4(),
            customer_id=customer_id,
            status=OrderStatus.PENDING,
            lines=tuple(lines),
            total_amount=total.quantize(MONEY_SCALE),
            created_at=now,
            updated_at=now,
            idempotency_key=idempotency_key,
        )


@dataclass(frozen=True)
class Page:
    """One page of a filtered scan.

    Attributes:
        items: Orders on this page.
        page: Zero-based page index.
        page_size: Requested page size.
        total: Number of orders matching the filter across all pages.
    """

    items: Tuple[Order, ...] = field(default_factory=tuple)
    page: int = 0
    page_size: int = 20
    total: int = 0

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size


# ---- Ports (DIP) ----
class LedgerStore(Protocol):
    """Port describing the durable order storage used by the domain.

    Implementations must make ``insert`` fail with
    ``DuplicateIdempotencyKey`` when the key is already taken, and must
    express ``update`` and ``bulk_conditional_update`` as status-guarded
    writes so lost updates are detectable.
    """

    def get_by_id(self, order_id: UUID) -> Optional[Order]:
        raise NotImplementedError()

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        raise NotImplementedError()

    def insert(self, order: Order) -> Order:
        raise NotImplementedError()

    def update(self, order: Order, expected_status: OrderStatus) -> Optional[Order]:
        """Persist the mutable fields of ``order`` if the row still matches.

        The write applies only when the stored row has ``expected_status``
        and has not been canceled.

        Returns:
            The stored order, or None when no row matched the guard.
        """
        raise NotImplementedError()

    def scan(self, status: Optional[OrderStatus], page: int, page_size: int) -> Page:
        raise NotImplementedError()

    def scan_by_customer(self, customer_id: str, page: int, page_size: int) -> Page:
        raise NotImplementedError()

    def bulk_conditional_update(
        self,
        from_status: OrderStatus,
        to_status: OrderStatus,
        updated_at: datetime,
        exclude_canceled: bool = True,
    ) -> int:
        """Move every order in ``from_status`` to ``to_status`` in one statement.

        With ``exclude_canceled`` only rows whose ``canceled_at`` is null are
        touched. Every changed row gets ``updated_at``.

        Returns:
            Number of rows changed.
        """
        raise NotImplementedError()
