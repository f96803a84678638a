"""Pydantic schemas for the orders API.

Request schemas validate and normalise incoming JSON before it reaches the
lifecycle manager; response schemas render domain values. Field names are
camelCase on the wire (``customerId``, ``unitPrice``...) and snake_case in
Python.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .domain import MAX_AMOUNT, MAX_QUANTITY, LineRequest, Order, OrderStatus, Page


class _Camel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderLineIn(_Camel):
    """Input schema for a single order line.

    Attributes:
        product_id: Product identifier; surrounding whitespace is stripped.
        quantity: Units requested, 1 to ``MAX_QUANTITY``.
        unit_price: Price between 0 and ``MAX_AMOUNT`` with at most two
            decimal places.
    """

    product_id: str = Field(min_length=1, max_length=255)
    quantity: int = Field(gt=0, le=MAX_QUANTITY)
    unit_price: Decimal = Field(ge=0, le=MAX_AMOUNT, decimal_places=2)

    @field_validator("product_id")
    @classmethod
    def strip_product_id(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("productId must not be blank")
        return v2

    def to_domain(self) -> LineRequest:
        return LineRequest(product_id=self.product_id, quantity=self.quantity, unit_price=self.unit_price)


class CreateOrderDTO(_Camel):
    """Schema for creating an order.

    Attributes:
        customer_id: Ordering customer.
        items: Non-empty list of ``OrderLineIn``.
        idempotency_key: Optional key; when absent a hash of the content is
            used. An ``Idempotency-Key`` header takes precedence.
    """

    customer_id: str = Field(min_length=1, max_length=255)
    items: List[OrderLineIn] = Field(min_length=1)
    idempotency_key: Optional[str] = Field(default=None, max_length=255)

    @field_validator("customer_id")
    @classmethod
    def validate_customer_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("customerId must not be blank")
        return v


class StatusUpdateDTO(_Camel):
    status: OrderStatus


class OrderLineOut(_Camel):
    product_id: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class OrderReadDTO(_Camel):
    """Order as returned by the API. ``canceled`` mirrors ``canceledAt``."""

    id: UUID
    customer_id: str
    status: OrderStatus
    total_amount: Decimal
    items: List[OrderLineOut]
    canceled: bool
    created_at: datetime
    updated_at: datetime
    canceled_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, order: Order) -> "OrderReadDTO":
        return cls(
            id=order.id,
            customer_id=order.customer_id,
            status=order.status,
            total_amount=order.total_amount,
            items=[
                OrderLineOut(
                    product_id=ln.product_id,
                    quantity=ln.quantity,
                    unit_price=ln.unit_price,
                    line_total=ln.line_total,
                )
                for ln in order.lines
            ],
            canceled=order.canceled,
            created_at=order.created_at,
            updated_at=order.updated_at,
            canceled_at=order.canceled_at,
        )


class OrderPageDTO(_Camel):
    """One page of orders with paging metadata."""

    results: List[OrderReadDTO]
    page: int
    size: int
    total_elements: int
    total_pages: int

    @classmethod
    def from_domain(cls, page: Page) -> "OrderPageDTO":
        return cls(
            results=[OrderReadDTO.from_domain(o) for o in page.items],
            page=page.page,
            size=page.page_size,
            total_elements=page.total,
            total_pages=page.total_pages,
        )
