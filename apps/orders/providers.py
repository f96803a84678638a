"""Service provider helpers for wiring the lifecycle manager.

``build_components`` assembles the ledger store, cache, resolver and
lifecycle manager from ``Settings``; ``build_order_service`` wraps the
manager with the resilience decorators used by the HTTP layer. Tests call
these with an in-memory SQLite URL, or construct the pieces directly.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from gateway.settings import Settings

from .cache import CacheBackend, CacheTtls, InMemoryCacheBackend, OrderCache, RedisCacheBackend
from .idempotency import IdempotencyResolver
from .lifecycle import OrderLifecycleManager
from .models import init_db, make_engine
from .repository import SqlAlchemyLedgerStore
from .resilience import CircuitBreaker, RateLimiter, ResilientOrderService
from .scheduler import PromotionScheduler


@dataclass
class Components:
    """Everything the application process needs, already wired."""

    engine: Engine
    manager: OrderLifecycleManager
    service: ResilientOrderService
    scheduler: PromotionScheduler


def build_cache_backend(settings: Settings) -> CacheBackend:
    """Shared Redis cache when ``REDIS_URL`` is set, else a per-process one."""
    if settings.redis_url:
        return RedisCacheBackend.from_url(settings.redis_url, prefix=settings.cache_key_prefix)
    return InMemoryCacheBackend(max_entries=settings.cache_max_entries)


def build_manager(engine: Engine, settings: Settings, backend: Optional[CacheBackend] = None) -> OrderLifecycleManager:
    ttls = CacheTtls(
        orders=settings.cache_orders_ttl,
        order_lists=settings.cache_order_lists_ttl,
        customer_orders=settings.cache_customer_orders_ttl,
    )
    return OrderLifecycleManager(
        store=SqlAlchemyLedgerStore(engine),
        cache=OrderCache(backend if backend is not None else build_cache_backend(settings), ttls),
        resolver=IdempotencyResolver(),
    )


def build_order_service(manager: OrderLifecycleManager, settings: Settings) -> ResilientOrderService:
    """Wrap ``manager`` with the circuit breaker and named rate limiters.

    Write operations share the strict limit, reads the lenient one.
    """
    breaker = CircuitBreaker(
        "orderService",
        settings.circuit_fail_threshold,
        settings.circuit_reset_timeout,
    )
    limiters = {
        "orderCreate": RateLimiter("orderCreate", settings.rate_limit_write, timeout=0.1),
        "orderUpdate": RateLimiter("orderUpdate", settings.rate_limit_write, timeout=0.1),
        "orderQuery": RateLimiter("orderQuery", settings.rate_limit_read, timeout=0.5),
        "orderList": RateLimiter("orderList", settings.rate_limit_read, timeout=0.5),
    }
    return ResilientOrderService(manager, breaker, limiters)


def build_components(settings: Settings, engine: Optional[Engine] = None) -> Components:
    """Create the engine (unless given), schema, manager, service and scheduler."""
    engine = engine or make_engine(settings.database_url)
    init_db(engine)
    manager = build_manager(engine, settings)
    return Components(
        engine=engine,
        manager=manager,
        service=build_order_service(manager, settings),
        scheduler=PromotionScheduler(manager, settings.promotion_interval_secs),
    )
