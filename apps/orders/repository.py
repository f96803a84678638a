"""SQLAlchemy-backed ledger store for orders.

This module implements the ``LedgerStore`` port on top of the models in
``models.py``. Point reads eagerly load order lines so a single lookup never
needs a second round trip. Writes that depend on the current status are
expressed as conditional ``UPDATE ... WHERE status = :expected`` statements;
a concurrent writer that changed the row first makes the guard match zero
rows, which the caller observes as ``None``.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .domain import Order, OrderLine, OrderStatus, Page
from .exceptions import DuplicateIdempotencyKey
from .models import OrderLineModel, OrderModel

logger = logging.getLogger(__name__)


def _to_domain(row: OrderModel) -> Order:
    return Order(
        id=row.id,
        customer_id=row.customer_id,
        status=OrderStatus(row.status),
        lines=tuple(
            OrderLine(
                product_id=ln.product_id,
                quantity=ln.quantity,
                unit_price=ln.unit_price,
                line_total=ln.line_total,
            )
            for ln in row.lines
        ),
        total_amount=row.total_amount,
        idempotency_key=row.idempotency_key,
        created_at=row.created_at,
        updated_at=row.updated_at,
        canceled_at=row.canceled_at,
    )


def _to_row(order: Order) -> OrderModel:
    return OrderModel(
        id=order.id,
        customer_id=order.customer_id,
        status=order.status.value,
        total_amount=order.total_amount,
        idempotency_key=order.idempotency_key,
        created_at=order.created_at,
        updated_at=order.updated_at,
        canceled_at=order.canceled_at,
        lines=[
            OrderLineModel(
                position=pos,
                product_id=ln.product_id,
                quantity=ln.quantity,
                unit_price=ln.unit_price,
                line_total=ln.line_total,
            )
            for pos, ln in enumerate(order.lines)
        ],
    )


class SqlAlchemyLedgerStore:
    """Repository that persists Order domain objects using SQLAlchemy.

    The repository returns frozen domain ``Order`` values so callers are
    never coupled to ORM rows or session state.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    @contextmanager
    def _session(self):
        """Yield a session bound to the configured engine.

        The session is closed on context exit.
        """
        with Session(self.engine, expire_on_commit=False) as s:
            yield s

    # ---- reads ----

    def get_by_id(self, order_id: UUID) -> Optional[Order]:
        """Load an order and its lines by primary key.

        Args:
            order_id: Order identifier.

        Returns:
            The order, or None when no row exists.
        """
        with self._session() as s:
            row = s.execute(
                select(OrderModel)
                .options(selectinload(OrderModel.lines))
                .where(OrderModel.id == order_id)
            ).scalars().first()
            return _to_domain(row) if row else None

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        with self._session() as s:
            row = s.execute(
                select(OrderModel)
                .options(selectinload(OrderModel.lines))
                .where(OrderModel.idempotency_key == key)
            ).scalars().first()
            return _to_domain(row) if row else None

    def scan(self, status: Optional[OrderStatus], page: int, page_size: int) -> Page:
        """Return one page of orders, newest first, optionally by status."""
        criteria = []
        if status is not None:
            criteria.append(OrderModel.status == status.value)
        return self._page(criteria, page, page_size)

    def scan_by_customer(self, customer_id: str, page: int, page_size: int) -> Page:
        return self._page([OrderModel.customer_id == customer_id], page, page_size)

    def _page(self, criteria, page: int, page_size: int) -> Page:
        with self._session() as s:
            total = s.execute(
                select(func.count()).select_from(OrderModel).where(*criteria)
            ).scalar_one()
            rows = s.execute(
                select(OrderModel)
                .options(selectinload(OrderModel.lines))
                .where(*criteria)
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
                .offset(page * page_size)
                .limit(page_size)
            ).scalars().all()
            return Page(
                items=tuple(_to_domain(r) for r in rows),
                page=page,
                page_size=page_size,
                total=total,
            )

    # ---- writes ----

    def insert(self, order: Order) -> Order:
        """Persist a new order with its lines.

        Args:
            order: Fully built domain order.

        Returns:
            The stored order.

        Raises:
            DuplicateIdempotencyKey: When another order already holds
                ``order.idempotency_key``.
        """
        with self._session() as s:
            try:
                s.add(_to_row(order))
                s.commit()
            except IntegrityError:
                s.rollback()
                if order.idempotency_key and self.get_by_idempotency_key(order.idempotency_key):
                    raise DuplicateIdempotencyKey(order.idempotency_key)
                raise
        return order

    def update(self, order: Order, expected_status: OrderStatus) -> Optional[Order]:
        """Write status and timestamps if the row still has ``expected_status``.

        The guard also requires the stored row not to be canceled, so a
        cancel that landed first makes this write a no-op.

        Returns:
            ``order`` when the row was written, None when the guard matched
            no row.
        """
        stmt = (
            update(OrderModel)
            .where(
                OrderModel.id == order.id,
                OrderModel.status == expected_status.value,
                OrderModel.canceled_at.is_(None),
            )
            .values(
                status=order.status.value,
                updated_at=order.updated_at,
                canceled_at=order.canceled_at,
            )
            .execution_options(synchronize_session=False)
        )
        with self._session() as s:
            res = s.execute(stmt)
            s.commit()
        if res.rowcount == 0:
            logger.info("Guarded update matched no row", extra={"order_id": str(order.id)})
            return None
        return order

    def bulk_conditional_update(
        self,
        from_status: OrderStatus,
        to_status: OrderStatus,
        updated_at: datetime,
        exclude_canceled: bool = True,
    ) -> int:
        criteria = [OrderModel.status == from_status.value]
        if exclude_canceled:
            criteria.append(OrderModel.canceled_at.is_(None))
        stmt = (
            update(OrderModel)
            .where(*criteria)
            .values(status=to_status.value, updated_at=updated_at)
            .execution_options(synchronize_session=False)
        )
        with self._session() as s:
            res = s.execute(stmt)
            s.commit()
            return res.rowcount
