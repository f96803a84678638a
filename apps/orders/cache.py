"""Cache layer in front of the ledger store.

Three named caches sit in front of the store, each with its own TTL:

- ``orders``: single orders keyed by id (write-through on every mutation).
- ``orderLists``: filtered pages keyed ``STATUS:page:size``.
- ``customerOrders``: per-customer pages keyed ``customer:page:size``.

List caches hold aggregates that cannot be patched from a single-record
change, so they are only ever evicted wholesale. Any failure of the backing
store is logged and treated as a miss or a no-op: a cache outage degrades
latency but never fails a request.
"""

import logging
import pickle
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Tuple
from uuid import UUID

import redis

from .domain import Order, OrderStatus, Page

logger = logging.getLogger(__name__)

ORDERS = "orders"
ORDER_LISTS = "orderLists"
CUSTOMER_ORDERS = "customerOrders"


# ---- Backends ----
class CacheBackend(Protocol):
    """Port describing the cache backing store.

    Any method may raise; ``OrderCache`` absorbs those failures.
    """

    def get(self, cache_name: str, key: str) -> Optional[Any]:
        raise NotImplementedError()

    def put(self, cache_name: str, key: str, value: Any, ttl: float) -> None:
        raise NotImplementedError()

    def evict_all(self, cache_name: str) -> None:
        raise NotImplementedError()


class InMemoryCacheBackend(CacheBackend):
    """Process-local cache with per-entry expiry and an LRU size cap.

    Entries are stored as ``(expires_at, value)`` per named cache in
    least-recently-used order. Expired entries are dropped on read and
    swept on write; once a named cache holds ``max_entries`` entries the
    least recently used one is evicted. Thread-safe via an internal lock.

    Only coherent within one process: use ``RedisCacheBackend`` when more
    than one worker serves the same store.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_entries: int = 10_000):
        self._clock = clock
        self.max_entries = max_entries
        self._lock = threading.Lock()
        self._caches: Dict[str, "OrderedDict[str, Tuple[float, Any]]"] = {}

    def get(self, cache_name: str, key: str) -> Optional[Any]:
        with self._lock:
            entries = self._caches.get(cache_name)
            if not entries or key not in entries:
                return None
            expires_at, value = entries[key]
            if self._clock() >= expires_at:
                del entries[key]
                return None
            entries.move_to_end(key)
            return value

    def put(self, cache_name: str, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            now = self._clock()
            entries = self._caches.setdefault(cache_name, OrderedDict())
            entries[key] = (now + ttl, value)
            entries.move_to_end(key)
            self._sweep(entries, now)

    def _sweep(self, entries: "OrderedDict[str, Tuple[float, Any]]", now: float) -> None:
        # least recently used entries sit at the front
        while entries:
            oldest = next(iter(entries))
            if entries[oldest][0] > now:
                break
            del entries[oldest]
        if len(entries) > self.max_entries:
            for k in [k for k, (exp, _) in entries.items() if exp <= now]:
                del entries[k]
        while len(entries) > self.max_entries:
            entries.popitem(last=False)

    def evict_all(self, cache_name: str) -> None:
        with self._lock:
            self._caches.pop(cache_name, None)

    def size(self, cache_name: str) -> int:
        with self._lock:
            return len(self._caches.get(cache_name, {}))


class RedisCacheBackend(CacheBackend):
    """Cache shared by every worker through a Redis server.

    Each entry lives under ``<prefix>:<cache name>:<key>`` with a
    millisecond expiry, so Redis handles TTLs and memory. Evicting a named
    cache deletes every key under its prefix. Values are pickled domain
    objects.

    Args:
        client: A ``redis.Redis`` instance (``decode_responses`` off).
        prefix: Namespace shared by all keys of this service.
    """

    def __init__(self, client: "redis.Redis", prefix: str = "orders"):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "orders") -> "RedisCacheBackend":
        client = redis.Redis.from_url(url, socket_timeout=5, socket_connect_timeout=5)
        return cls(client, prefix)

    def _key(self, cache_name: str, key: str) -> str:
        return f"{self.prefix}:{cache_name}:{key}"

    def get(self, cache_name: str, key: str) -> Optional[Any]:
        raw = self.client.get(self._key(cache_name, key))
        if raw is None:
            return None
        return pickle.loads(raw)

    def put(self, cache_name: str, key: str, value: Any, ttl: float) -> None:
        self.client.set(
            self._key(cache_name, key),
            pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL),
            px=max(1, int(ttl * 1000)),
        )

    def evict_all(self, cache_name: str) -> None:
        pattern = f"{self.prefix}:{cache_name}:*"
        batch = []
        for k in self.client.scan_iter(match=pattern, count=500):
            batch.append(k)
            if len(batch) >= 500:
                self.client.delete(*batch)
                batch = []
        if batch:
            self.client.delete(*batch)


class NullCacheBackend(CacheBackend):
    """Backend that stores nothing; every read is a miss."""

    def get(self, cache_name, key):
        return None

    def put(self, cache_name, key, value, ttl):
        pass

    def evict_all(self, cache_name):
        pass


# ---- Order cache ----
@dataclass(frozen=True)
class CacheTtls:
    """Time-to-live in seconds for each named cache."""

    orders: float = 15 * 60
    order_lists: float = 5 * 60
    customer_orders: float = 10 * 60


def order_list_key(status: Optional[OrderStatus], page: int, page_size: int) -> str:
    return f"{status.value if status is not None else 'ALL'}:{page}:{page_size}"


def customer_orders_key(customer_id: str, page: int, page_size: int) -> str:
    return f"{customer_id}:{page}:{page_size}"


class OrderCache:
    """Typed access to the three order caches over a ``CacheBackend``.

    Every backend call goes through ``_get``/``_put``/``_evict`` which catch
    and log failures, so none of the public methods ever raise.
    """

    def __init__(self, backend: CacheBackend, ttls: CacheTtls | None = None):
        self.backend = backend
        self.ttls = ttls or CacheTtls()

    def _get(self, cache_name: str, key: str) -> Optional[Any]:
        try:
            return self.backend.get(cache_name, key)
        except Exception as e:
            logger.warning("Cache 'get' error for cache=%s, key=%s, cause=%s", cache_name, key, e)
            return None

    def _put(self, cache_name: str, key: str, value: Any, ttl: float) -> None:
        try:
            self.backend.put(cache_name, key, value, ttl)
        except Exception as e:
            logger.warning("Cache 'put' error for cache=%s, key=%s, cause=%s", cache_name, key, e)

    def _evict(self, cache_name: str) -> None:
        try:
            self.backend.evict_all(cache_name)
        except Exception as e:
            logger.warning("Cache 'clear' error for cache=%s, cause=%s", cache_name, e)

    # single orders
    def get_order(self, order_id: UUID) -> Optional[Order]:
        return self._get(ORDERS, str(order_id))

    def put_order(self, order: Order) -> None:
        self._put(ORDERS, str(order.id), order, self.ttls.orders)

    # filtered lists
    def get_order_list(self, status: Optional[OrderStatus], page: int, page_size: int) -> Optional[Page]:
        return self._get(ORDER_LISTS, order_list_key(status, page, page_size))

    def put_order_list(self, status: Optional[OrderStatus], page: int, page_size: int, result: Page) -> None:
        self._put(ORDER_LISTS, order_list_key(status, page, page_size), result, self.ttls.order_lists)

    # customer lists
    def get_customer_orders(self, customer_id: str, page: int, page_size: int) -> Optional[Page]:
        return self._get(CUSTOMER_ORDERS, customer_orders_key(customer_id, page, page_size))

    def put_customer_orders(self, customer_id: str, page: int, page_size: int, result: Page) -> None:
        self._put(
            CUSTOMER_ORDERS,
            customer_orders_key(customer_id, page, page_size),
            result,
            self.ttls.customer_orders,
        )

    # invalidation
    def evict_lists(self) -> None:
        """Drop every cached page after a single-record write."""
        self._evict(ORDER_LISTS)
        self._evict(CUSTOMER_ORDERS)

    def evict_all(self) -> None:
        """Drop all three caches after a bulk write."""
        self._evict(ORDERS)
        self.evict_lists()
