"""Unit tests for idempotency key derivation."""

import hashlib
from decimal import Decimal

import pytest

from apps.orders.domain import LineRequest
from apps.orders.exceptions import KeyGenerationFailed
from apps.orders.idempotency import IdempotencyResolver, canonical_hash, creation_payload


def test_canonical_hash_ignores_key_order():
    assert canonical_hash({"a": 1, "b": [1, 2]}) == canonical_hash({"b": [1, 2], "a": 1})


def test_canonical_hash_is_sha256_of_compact_json():
    expected = hashlib.sha256(b'{"a":1,"b":"x"}').hexdigest()
    assert canonical_hash({"b": "x", "a": 1}) == expected
    assert len(expected) == 64


def test_canonical_hash_rejects_unencodable_payload():
    with pytest.raises(KeyGenerationFailed):
        canonical_hash({"when": object()})


def test_explicit_key_is_used_verbatim():
    resolver = IdempotencyResolver()
    assert resolver.resolve("c", [LineRequest("A", 1, Decimal("1.00"))], "client-key-42") == "client-key-42"


def test_blank_explicit_key_falls_back_to_content_hash():
    resolver = IdempotencyResolver()
    lines = [LineRequest("A", 1, Decimal("1.00"))]
    assert resolver.resolve("c", lines, "   ") == resolver.resolve("c", lines)


def test_structurally_identical_requests_share_a_key():
    resolver = IdempotencyResolver()
    a = resolver.resolve("cust", [LineRequest("A", 2, Decimal("10.5")), LineRequest("B", 1, Decimal("3"))])
    b = resolver.resolve("cust", [LineRequest("A", 2, Decimal("10.50")), LineRequest("B", 1, Decimal("3.00"))])
    assert a == b


@pytest.mark.parametrize(
    "customer, lines",
    [
        ("other", [LineRequest("A", 2, Decimal("10.50"))]),
        ("cust", [LineRequest("A", 3, Decimal("10.50"))]),
        ("cust", [LineRequest("B", 2, Decimal("10.50"))]),
        ("cust", [LineRequest("A", 2, Decimal("10.51"))]),
        ("cust", [LineRequest("A", 2, Decimal("10.50")), LineRequest("A", 2, Decimal("10.50"))]),
    ],
)
def test_different_requests_get_different_keys(customer, lines):
    resolver = IdempotencyResolver()
    base = resolver.resolve("cust", [LineRequest("A", 2, Decimal("10.50"))])
    assert resolver.resolve(customer, lines) != base


def test_line_order_is_significant():
    resolver = IdempotencyResolver()
    a = LineRequest("A", 1, Decimal("1.00"))
    b = LineRequest("B", 1, Decimal("1.00"))
    assert resolver.resolve("c", [a, b]) != resolver.resolve("c", [b, a])


def test_creation_payload_renders_prices_as_fixed_strings():
    payload = creation_payload("c", [LineRequest("A", 1, Decimal("5"))])
    assert payload == {"customer_id": "c", "lines": [{"product_id": "A", "quantity": 1, "unit_price": "5.00"}]}


def test_integer_and_decimal_prices_share_a_key():
    resolver = IdempotencyResolver()
    as_int = resolver.resolve("cust", [LineRequest("A", 1, 10)])
    as_decimal = resolver.resolve("cust", [LineRequest("A", 1, Decimal("10.00"))])
    assert as_int == as_decimal
