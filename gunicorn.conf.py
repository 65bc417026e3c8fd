"""
Gunicorn configuration for the warehouse API (Uvicorn workers).
"""

import multiprocessing
import os

# Server socket
bind = os.getenv("BIND", "0.0.0.0:8000")
backlog = 512

# The API only reads summary tables; a few workers are plenty
workers = int(os.getenv("WORKERS", min(multiprocessing.cpu_count() + 1, 4)))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 5000
max_requests_jitter = 500
# A POST refresh can take as long as a full recompute
timeout = int(os.getenv("GUNICORN_TIMEOUT", 300))
keepalive = 5
graceful_timeout = 30

proc_name = "txn-warehouse-api"

# Logging
errorlog = "-"
accesslog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
