"""Integration tests for the SQLAlchemy ledger store (in-memory SQLite)."""

import dataclasses
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import text

from apps.orders.domain import Order, OrderLine, OrderStatus
from apps.orders.exceptions import DuplicateIdempotencyKey

T0 = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def _order(customer="cust-1", key=None, at=T0, price="10.99", qty=3):
    line = OrderLine("SKU-1", qty, Decimal(price), Decimal(price) * qty)
    return Order.new(customer, (line,), at, idempotency_key=key)


def test_insert_and_get_round_trip(store):
    order = _order(key="k-1")
    store.insert(order)
    loaded = store.get_by_id(order.id)
    assert loaded == order
    assert loaded.created_at.tzinfo is not None
    assert store.get_by_idempotency_key("k-1").id == order.id


def test_amounts_are_stored_as_integer_cents(store, engine):
    order = _order(price="10.99", qty=3)
    store.insert(order)
    with engine.connect() as conn:
        total = conn.execute(
            text("select total_amount from orders where id = :id"), {"id": order.id.hex}
        ).scalar_one()
    assert total == 3297


def test_missing_rows_return_none(store):
    assert store.get_by_id(uuid4()) is None
    assert store.get_by_idempotency_key("nope") is None


def test_duplicate_idempotency_key_is_signalled(store):
    store.insert(_order(key="dup"))
    with pytest.raises(DuplicateIdempotencyKey) as e:
        store.insert(_order(key="dup"))
    assert e.value.key == "dup"
    assert store.scan(None, 0, 10).total == 1


def test_orders_without_key_do_not_collide(store):
    store.insert(_order())
    store.insert(_order())
    assert store.scan(None, 0, 10).total == 2


def test_scan_is_newest_first_and_paged(store):
    ids = []
    for i in range(5):
        o = _order(customer=f"c{i % 2}", at=T0 + timedelta(minutes=i))
        store.insert(o)
        ids.append(o.id)
    first = store.scan(None, 0, 2)
    second = store.scan(None, 1, 2)
    last = store.scan(None, 2, 2)
    assert [o.id for o in first.items] == [ids[4], ids[3]]
    assert [o.id for o in second.items] == [ids[2], ids[1]]
    assert [o.id for o in last.items] == [ids[0]]
    assert first.total == 5 and first.total_pages == 3
    assert store.scan_by_customer("c0", 0, 10).total == 3


def test_guarded_update_applies_when_status_matches(store):
    order = _order()
    store.insert(order)
    canceled = dataclasses.replace(order, canceled_at=T0 + timedelta(hours=1), updated_at=T0 + timedelta(hours=1))
    assert store.update(canceled, OrderStatus.PENDING) is canceled
    assert store.get_by_id(order.id).canceled_at == T0 + timedelta(hours=1)


def test_guarded_update_misses_on_stale_status(store):
    order = _order()
    store.insert(order)
    store.bulk_conditional_update(OrderStatus.PENDING, OrderStatus.PROCESSING, T0 + timedelta(minutes=1))
    stale = dataclasses.replace(order, status=OrderStatus.SHIPPED)
    assert store.update(stale, OrderStatus.PENDING) is None
    assert store.get_by_id(order.id).status == OrderStatus.PROCESSING


def test_guarded_update_misses_on_canceled_row(store):
    order = _order()
    store.insert(order)
    store.update(dataclasses.replace(order, canceled_at=T0), OrderStatus.PENDING)
    assert store.update(dataclasses.replace(order, canceled_at=T0 + timedelta(seconds=5)), OrderStatus.PENDING) is None
    assert store.get_by_id(order.id).canceled_at == T0


def test_bulk_update_excludes_canceled_rows(store):
    live = _order()
    dead = _order()
    other = _order()
    for o in (live, dead, other):
        store.insert(o)
    store.update(dataclasses.replace(dead, canceled_at=T0), OrderStatus.PENDING)
    store.bulk_conditional_update(OrderStatus.PENDING, OrderStatus.PROCESSING, T0)
    store.update(dataclasses.replace(other, status=OrderStatus.SHIPPED), OrderStatus.PROCESSING)

    later = T0 + timedelta(minutes=5)
    assert store.bulk_conditional_update(OrderStatus.PENDING, OrderStatus.PROCESSING, later) == 0
    assert store.get_by_id(live.id).status == OrderStatus.PROCESSING
    assert store.get_by_id(live.id).updated_at == T0
    assert store.get_by_id(dead.id).status == OrderStatus.PENDING
    assert store.get_by_id(other.id).status == OrderStatus.SHIPPED


def test_bulk_update_can_include_canceled_rows(store):
    dead = _order()
    store.insert(dead)
    store.update(dataclasses.replace(dead, canceled_at=T0), OrderStatus.PENDING)
    assert store.bulk_conditional_update(
        OrderStatus.PENDING, OrderStatus.PROCESSING, T0, exclude_canceled=False
    ) == 1
