import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"
worker_class = "uvicorn.workers.UvicornWorker"

# story state lives in the worker process: keep a single worker
workers = 1
timeout = 600             # structure + illustrations for a 10-page book
graceful_timeout = 60
keepalive = 75

# stdout/stderr, picked up by the container runtime
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
