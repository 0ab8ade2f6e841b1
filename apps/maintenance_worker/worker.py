import os
import time
import uuid
from celery import Celery
from structlog import get_logger
from structlog.contextvars import bind_contextvars, clear_contextvars
from prometheus_client import Counter, Histogram, make_wsgi_app
from wsgiref.simple_server import make_server
from threading import Thread

from shared.config.settings import settings
from shared.db.session import SessionLocal
from shared.db import models
from shared.orphans.service import cleanup_orphans
from shared.storage.s3 import Storage

log = get_logger()

CELERY_BROKER_URL = settings.celery_broker_url or settings.redis_url
CELERY_RESULT_BACKEND = settings.celery_result_backend or "redis://redis:6379/1"

celery_app = Celery("maintenance")
celery_app.conf.broker_url = CELERY_BROKER_URL
celery_app.conf.result_backend = CELERY_RESULT_BACKEND

# Optional Prometheus metrics server (disabled unless METRICS_PORT is set)
def _start_metrics_and_health_http(port: int):
    """Start a lightweight HTTP server exposing /metrics and /health on given port."""
    metrics_app = make_wsgi_app()

    def app(environ, start_response):
        path = environ.get('PATH_INFO') or '/'
        if path == '/metrics':
            return metrics_app(environ, start_response)
        if path == '/health':
            start_response('200 OK', [('Content-Type', 'text/plain; charset=utf-8')])
            return [b'ok']
        start_response('404 Not Found', [('Content-Type', 'text/plain; charset=utf-8')])
        return [b'not found']

    def _serve():
        with make_server('0.0.0.0', port, app) as httpd:
            log.info("worker_http_server_started", port=httpd.server_port)
            httpd.serve_forever()

    th = Thread(target=_serve, daemon=True)
    th.start()

try:
    _metrics_port = os.getenv("METRICS_PORT") or (str(settings.metrics_port) if settings.metrics_port else None)
    if _metrics_port:
        _start_metrics_and_health_http(int(_metrics_port))
except Exception:
    log.exception("worker_metrics_server_failed")

# Worker metrics
CLEANUP_DURATION_SECONDS = Histogram(
    "worker_orphan_cleanup_duration_seconds",
    "Time spent on one background orphan cleanup run",
)
CLEANUP_RUNS_TOTAL = Counter(
    "worker_orphan_cleanup_runs_total",
    "Background orphan cleanup runs",
    labelnames=["status"],
)
CLEANUP_FILES_DELETED_TOTAL = Counter(
    "worker_orphan_files_deleted_total",
    "Orphan files deleted by background runs",
    labelnames=["domain"],
)


def enqueue_orphan_cleanup(actor_id: str, ip: str | None = None, user_agent: str | None = None) -> str:
    res = run_orphan_cleanup.apply_async(args=[actor_id, ip, user_agent])
    return str(res.id)


@celery_app.task(name="run_orphan_cleanup", soft_time_limit=settings.orphan_cleanup_time_limit)
def run_orphan_cleanup(actor_id: str, ip: str | None = None, user_agent: str | None = None):
    db = SessionLocal()
    t0 = time.perf_counter()
    try:
        bind_contextvars(task="run_orphan_cleanup", actor_id=actor_id)
        actor = db.get(models.Profile, uuid.UUID(actor_id))
        out = cleanup_orphans(
            db,
            Storage,
            actor=actor,
            ip=ip,
            user_agent=user_agent,
            cleanup_type="background",
        )
        for domain, counts in out["results"].items():
            CLEANUP_FILES_DELETED_TOTAL.labels(domain=domain).inc(counts["deleted"])
        CLEANUP_RUNS_TOTAL.labels(status="succeeded").inc()
        log.info("background_cleanup_succeeded", results=out["results"])
        return out
    except Exception:
        CLEANUP_RUNS_TOTAL.labels(status="failed").inc()
        raise
    finally:
        CLEANUP_DURATION_SECONDS.observe(time.perf_counter() - t0)
        db.close()
        clear_contextvars()
