"""Idempotency key derivation for order creation.

A creation request is identified either by the key the client supplied or,
when none was given, by a SHA-256 digest of a canonical JSON rendering of
the request content. Two structurally identical requests therefore always
resolve to the same key. The resolver only computes keys; checking for an
existing order is the lifecycle manager's job.
"""

import hashlib
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence

from .domain import MONEY_SCALE, LineRequest
from .exceptions import KeyGenerationFailed

logger = logging.getLogger(__name__)


def canonical_hash(payload: dict) -> str:
    """Compute a stable SHA-256 hash for a JSON-serializable payload.

    The payload is serialized with sorted keys and compact separators to
    ensure a deterministic representation before hashing.

    Args:
        payload: A JSON-serializable dictionary.

    Returns:
        str: Hex-encoded SHA-256 digest of the normalized payload.

    Raises:
        KeyGenerationFailed: If the payload cannot be serialized.
    """
    try:
        body = json.dumps(payload, sort_keys=True, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as e:
        logger.error("Failed to serialize request for idempotency key generation: %s", e)
        raise KeyGenerationFailed("Could not derive idempotency key from request") from e
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def _price(value):
    # 10, 10.5 and 10.50 hash by value, whatever their Python type
    if isinstance(value, (Decimal, int)) and not isinstance(value, bool):
        try:
            return str(Decimal(value).quantize(MONEY_SCALE))
        except InvalidOperation:
            return str(value)
    return value


def creation_payload(customer_id: str, lines: Sequence[LineRequest]) -> dict:
    """Build the canonical content of a creation request."""
    return {
        "customer_id": customer_id,
        "lines": [
            {
                "product_id": ln.product_id,
                "quantity": ln.quantity,
                "unit_price": _price(ln.unit_price),
            }
            for ln in lines
        ],
    }


class IdempotencyResolver:
    """Produce the key used to detect duplicate creation attempts."""

    def resolve(
        self,
        customer_id: str,
        lines: Sequence[LineRequest],
        explicit_key: Optional[str] = None,
    ) -> str:
        """Return the explicit key verbatim, or derive one from the content.

        A blank explicit key counts as absent.

        Raises:
            KeyGenerationFailed: If the request content cannot be serialized.
        """
        if explicit_key is not None and explicit_key.strip():
            logger.debug("Using provided idempotency key: %s", explicit_key)
            return explicit_key
        key = canonical_hash(creation_payload(customer_id, lines))
        logger.debug("Generated idempotency key: %s", key)
        return key
