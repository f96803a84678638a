"""SQLAlchemy models for the order ledger.

The schema has two tables: ``orders`` and ``order_lines``. Monetary amounts
are stored in integer minor units (cents) so the database never rounds a
decimal value; ``Cents`` converts to and from ``Decimal`` at the boundary.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator


class Cents(TypeDecorator):
    """Store a scale-2 ``Decimal`` as an integer number of cents."""

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return int(Decimal(value).scaleb(2).to_integral_exact())

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value)).scaleb(-2)


class UtcDateTime(TypeDecorator):
    """Timezone-aware datetime that always comes back as UTC.

    SQLite drops tzinfo on the way out; Postgres keeps it. Both are
    normalised to aware UTC values.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class OrderModel(Base):
    """Row representing an order.

    Attributes:
        id: Public UUID primary key.
        customer_id: Ordering customer.
        status: Lifecycle status name.
        total_amount: Order total (cents in the database).
        idempotency_key: Unique key collapsing duplicate creations.
        created_at / updated_at / canceled_at: Lifecycle timestamps.
    """

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Cents, nullable=False)
    idempotency_key: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    canceled_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)

    lines: Mapped[list["OrderLineModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLineModel.position",
    )

    __table_args__ = (
        Index("idx_order_customer_id", "customer_id"),
        Index("idx_order_status", "status"),
        Index("idx_order_created_at", "created_at"),
        Index("idx_order_status_canceled", "status", "canceled_at"),
    )


class OrderLineModel(Base):
    """Row representing one line of an order, kept in request order."""

    __tablename__ = "order_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Cents, nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Cents, nullable=False)

    order: Mapped[OrderModel] = relationship(back_populates="lines")

    __table_args__ = (Index("idx_order_line_order_id", "order_id"),)


def make_engine(url: str) -> Engine:
    """Create an engine for ``url``.

    In-memory SQLite gets a single shared connection so every session and
    thread sees the same database.
    """
    in_memory = url.startswith("sqlite") and (":memory:" in url or url.endswith("://"))
    if in_memory:
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, pool_pre_ping=True)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)
