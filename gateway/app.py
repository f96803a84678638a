"""FastAPI application factory for the order lifecycle service.

``create_app`` wires settings, logging, middleware, error handlers and
routers. Pass ``components`` to reuse an already wired store/manager (tests
do this with an in-memory SQLite engine); otherwise they are built from the
environment. The promotion scheduler is started on startup when enabled and
stopped on shutdown.
"""

import logging
import time
from typing import Optional

from fastapi import FastAPI
from sqlalchemy import text

from apps.monitoring.api import router as monitoring_router
from apps.orders.providers import Components, build_components
from apps.orders.routes import router as orders_router

from .errors import install_error_handlers
from .logging_config import configure_logging
from .middleware import ApiSizeLimitMiddleware, RequestIdMiddleware
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


def _wait_for_db(engine, timeout: float = 30.0):
    # short active wait until the database accepts connections
    deadline = time.time() + timeout
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            return
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)


def create_app(settings: Optional[Settings] = None, components: Optional[Components] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    components = components or build_components(settings)

    app = FastAPI(title="Order Lifecycle Service")
    app.state.settings = settings
    app.state.engine = components.engine
    app.state.manager = components.manager
    app.state.order_service = components.service
    app.state.scheduler = components.scheduler

    app.add_middleware(ApiSizeLimitMiddleware, max_bytes=settings.api_max_bytes)
    app.add_middleware(RequestIdMiddleware)
    install_error_handlers(app)

    app.include_router(orders_router)
    app.include_router(monitoring_router)

    @app.on_event("startup")
    def _startup():
        _wait_for_db(components.engine)
        if settings.promotion_enabled:
            components.scheduler.start()

    @app.on_event("shutdown")
    def _shutdown():
        components.scheduler.stop()

    return app
