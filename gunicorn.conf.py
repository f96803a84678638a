import os

# gunicorn -c gunicorn.conf.py gateway.asgi:app


def cpu():
    return max(1, (os.cpu_count() or 1))


bind = f"0.0.0.0:{os.getenv('PORT', '8000')}"

# Processes (workers); each runs its own promotion scheduler.
# Without REDIS_URL every worker would hold a private order cache, so a
# single worker is the default then.
_default_workers = min(max(2, cpu()), 4) if os.getenv("REDIS_URL") else 1
workers = int(os.getenv("GUNI_WORKERS", str(_default_workers)))
worker_class = "uvicorn.workers.UvicornWorker"

# Timeouts
timeout = int(os.getenv("GUNI_TIMEOUT", "60"))
graceful_timeout = int(os.getenv("GUNI_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNI_KEEPALIVE", "5"))

# Robustness
max_requests = int(os.getenv("GUNI_MAX_REQUESTS", "2000"))
max_requests_jitter = int(os.getenv("GUNI_MAX_REQUESTS_JITTER", "200"))

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNI_LOGLEVEL", "info")
