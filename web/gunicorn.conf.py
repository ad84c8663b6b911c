import os

wsgi_app = "config.wsgi:application"

def cpu():
    return max(1, (os.cpu_count() or 1))

# Procesos (workers)
workers = int(os.getenv("GUNI_WORKERS", str(min(max(2, cpu() * 2), 8))))

# Threads por worker (para IO bloqueante hacia identity/catalog/inventory)
worker_class = "gthread"
threads = int(os.getenv("GTHREADS", "4"))

# Timeouts: must exceed HTTP_TIMEOUT_SECS * HTTP_RETRY_MAX per downstream call
timeout = int(os.getenv("GUNI_TIMEOUT", "60"))
graceful_timeout = int(os.getenv("GUNI_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNI_KEEPALIVE", "5"))

# preload_app would start the event publisher thread in the master; workers
# must each own theirs.
preload_app = False
max_requests = int(os.getenv("GUNI_MAX_REQUESTS", "2000"))
max_requests_jitter = int(os.getenv("GUNI_MAX_REQUESTS_JITTER", "200"))

bind = os.getenv("GUNI_BIND", "0.0.0.0:8000")
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNI_LOGLEVEL", "info")


def worker_exit(server, worker):
    from apps.orders.providers import set_event_publisher

    set_event_publisher(None)
