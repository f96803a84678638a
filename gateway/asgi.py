"""ASGI entry point: ``uvicorn gateway.asgi:app``."""

from .app import create_app

app = create_app()
