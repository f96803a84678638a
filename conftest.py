from datetime import datetime, timedelta, timezone

import pytest

from apps.orders.cache import InMemoryCacheBackend, OrderCache
from apps.orders.idempotency import IdempotencyResolver
from apps.orders.lifecycle import OrderLifecycleManager
from apps.orders.models import init_db, make_engine
from apps.orders.repository import SqlAlchemyLedgerStore
from gateway.settings import Settings


class FakeClock:
    """Deterministic UTC clock; every call moves one second forward."""

    def __init__(self, start=datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine):
    return SqlAlchemyLedgerStore(engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache_backend():
    return InMemoryCacheBackend()


@pytest.fixture
def manager(store, cache_backend, clock):
    return OrderLifecycleManager(store, OrderCache(cache_backend), IdempotencyResolver(), clock=clock)


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", promotion_enabled=False, log_level="WARNING")


@pytest.fixture
def client(engine, settings):
    from fastapi.testclient import TestClient

    from apps.orders.providers import build_components
    from gateway.app import create_app

    components = build_components(settings, engine=engine)
    app = create_app(settings, components)
    with TestClient(app) as c:
        yield c
