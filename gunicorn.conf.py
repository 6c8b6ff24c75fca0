"""
Gunicorn configuration for the Store Order Analytics API.

Bind address and log level come from the application settings; worker
count can be pinned with WORKERS.
"""

import multiprocessing
import os

from order_analytics.config import get_settings

_settings = get_settings()

bind = os.getenv("BIND", f"{_settings.api_host}:{_settings.api_port}")

workers = int(os.getenv("WORKERS", multiprocessing.cpu_count() + 1))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 5000
max_requests_jitter = 500
timeout = 300
graceful_timeout = 30
keepalive = 5

proc_name = _settings.app_name

# Application logs go through structlog; gunicorn only reports its own events
errorlog = "-"
loglevel = _settings.monitoring.log_level.lower()
accesslog = None
