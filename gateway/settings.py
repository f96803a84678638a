"""Runtime configuration read from environment variables.

Values are read once into a frozen ``Settings`` instance by
``get_settings()``. ``DATABASE_URL`` wins when set; otherwise the URL is
assembled from the individual ``DB_*`` variables. ``REDIS_URL`` switches the
order caches from the per-process backend to a shared Redis server.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    host = os.getenv("DB_HOST", "orders-db")
    port = os.getenv("DB_PORT", "5432")
    name = os.getenv("DB_NAME", "orders")
    user = os.getenv("DB_USER", "orders")
    password = os.getenv("DB_PASSWORD", "orders")
    return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{name}"


@dataclass(frozen=True)
class Settings:
    database_url: str
    redis_url: Optional[str] = None
    cache_key_prefix: str = "orders"
    cache_max_entries: int = 10_000
    cache_orders_ttl: float = 900.0
    cache_order_lists_ttl: float = 300.0
    cache_customer_orders_ttl: float = 600.0
    promotion_enabled: bool = True
    promotion_interval_secs: float = 300.0
    circuit_fail_threshold: int = 5
    circuit_reset_timeout: float = 60.0
    rate_limit_write: int = 20
    rate_limit_read: int = 200
    api_max_bytes: int = 1 * 1024 * 1024
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=_database_url(),
            redis_url=os.getenv("REDIS_URL") or None,
            cache_key_prefix=os.getenv("CACHE_KEY_PREFIX", "orders"),
            cache_max_entries=int(os.getenv("CACHE_MAX_ENTRIES", "10000")),
            cache_orders_ttl=float(os.getenv("CACHE_ORDERS_TTL", "900")),
            cache_order_lists_ttl=float(os.getenv("CACHE_ORDER_LISTS_TTL", "300")),
            cache_customer_orders_ttl=float(os.getenv("CACHE_CUSTOMER_ORDERS_TTL", "600")),
            promotion_enabled=_bool("PROMOTION_ENABLED", True),
            promotion_interval_secs=float(os.getenv("PROMOTION_INTERVAL_SECS", "300")),
            circuit_fail_threshold=int(os.getenv("CIRCUIT_FAIL_THRESHOLD", "5")),
            circuit_reset_timeout=float(os.getenv("CIRCUIT_RESET_TIMEOUT", "60")),
            rate_limit_write=int(os.getenv("RATE_LIMIT_WRITE", "20")),
            rate_limit_read=int(os.getenv("RATE_LIMIT_READ", "200")),
            api_max_bytes=int(os.getenv("API_MAX_BYTES", str(1 * 1024 * 1024))),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
