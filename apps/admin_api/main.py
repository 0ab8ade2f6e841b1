from fastapi import FastAPI, Request, Depends, Body
from fastapi.responses import JSONResponse, Response
from typing import Optional
import os
import subprocess

from shared.config.settings import settings
from shared.db.session import SessionLocal, get_db
from shared.db import models
from sqlalchemy import text as _sql_text
from sqlalchemy.exc import SQLAlchemyError
from shared.storage.s3 import Storage
from shared.auth.admin import require_admin
from shared.errors import BusinessError, error_response
from shared.ratelimit import RateLimiter, rate_limit_headers
from shared.audit.system_log import (
    create_system_log, list_system_logs, count_expired, cleanup_expired, delete_system_logs,
)
from shared.orphans.service import check_orphans, cleanup_orphans
from apps.maintenance_worker.worker import enqueue_orphan_cleanup
from structlog import get_logger
from structlog.contextvars import bind_contextvars, clear_contextvars
import time as _t
import redis as redis_lib
from starlette.middleware.base import BaseHTTPMiddleware
import secrets
import uuid
from prometheus_client import Counter, Histogram, CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
from pydantic import BaseModel, ConfigDict, Field

from contextlib import asynccontextmanager


@asynccontextmanager
async def _lifespan(app: FastAPI):
    # Skip external IO in test environments
    if not (os.getenv("FARMGUARD_SKIP_STARTUP_CHECKS") or os.getenv("PYTEST_CURRENT_TEST")):
        try:
            for bucket in (settings.visitor_photos_bucket, settings.profiles_bucket):
                Storage(bucket).ensure_bucket()
            db = SessionLocal()
            db.close()
        except Exception as e:
            # Don't crash startup; healthz will reflect degraded state
            log = get_logger()
            log.error("lifespan_start_failed", error=str(e))
    yield


app = FastAPI(title="FarmGuard Admin Maintenance API", version="0.1.0", lifespan=_lifespan)
log = get_logger()

# Prometheus metrics (API process only)
registry = CollectorRegistry()
ORPHAN_FILES_FOUND = Counter(
    "orphan_files_found_total",
    "Orphan files reported by checks",
    ["domain"],
    registry=registry,
)
ORPHAN_FILES_DELETED = Counter(
    "orphan_files_deleted_total",
    "Orphan files deleted by cleanup runs",
    ["domain"],
    registry=registry,
)
STORAGE_LIST_FAILURES = Counter(
    "storage_list_failures_total",
    "Storage folders whose listing failed during a walk",
    ["domain"],
    registry=registry,
)
RATE_LIMITED_TOTAL = Counter(
    "rate_limited_requests_total",
    "Requests rejected by the API rate limiter",
    registry=registry,
)
ORPHAN_CHECK_SECONDS = Histogram(
    "orphan_check_seconds",
    "Latency for the orphan-file check endpoint",
    registry=registry,
)

api_rate_limiter = RateLimiter(settings.rate_limit_max, settings.rate_limit_window_seconds)


def _client_ip(request: Request) -> str:
    fwd = request.headers.get("X-Forwarded-For")
    if fwd:
        return fwd.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith("/v0/") or request.url.path.startswith("/v0/version"):
            return await call_next(request)
        result = api_rate_limiter.check_limit(_client_ip(request))
        headers = rate_limit_headers(result)
        if not result.allowed:
            RATE_LIMITED_TOTAL.inc()
            log.warning("rate_limited", ip=_client_ip(request), path=request.url.path)
            return error_response("RATE_LIMIT_EXCEEDED", {"retry_after": result.retry_after}, headers=headers)
        response = await call_next(request)
        for k, v in headers.items():
            response.headers[k] = v
        return response


app.add_middleware(RateLimitMiddleware)

# Simple log throttle to avoid spamming identical warnings
_log_throttle: dict[str, float] = {}

def _should_log(key: str, window_sec: float = 60.0) -> bool:
    now = _t.monotonic()
    last = _log_throttle.get(key)
    if last is None or (now - last) >= window_sec:
        _log_throttle[key] = now
        return True
    return False


class HTTPAccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = _t.perf_counter()
        response = await call_next(request)
        dur_ms = int((_t.perf_counter() - start) * 1000)
        length = response.headers.get("content-length")
        log.info(
            "http_access",
            method=request.method,
            path=str(request.url.path),
            status_code=response.status_code,
            duration_ms=dur_ms,
            content_length=int(length) if str(length).isdigit() else None,
        )
        return response


app.add_middleware(HTTPAccessLogMiddleware)


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("X-Request-ID") or secrets.token_hex(8)
        try:
            bind_contextvars(request_id=rid, path=str(request.url.path))
            response = await call_next(request)
            response.headers["X-Request-ID"] = rid
            return response
        finally:
            clear_contextvars()


# Outermost: added last
app.add_middleware(RequestIDMiddleware)


@app.exception_handler(BusinessError)
async def _business_error_handler(request: Request, exc: BusinessError):
    return error_response(exc.code, exc.params)


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception):
    log.error("unhandled_error", path=str(request.url.path), error_type=type(exc).__name__, error=str(exc))
    return error_response("UNKNOWN_ERROR")


@app.get("/healthz")
def healthz():
    # DB check
    db_ok = False
    db = None
    try:
        db = SessionLocal()
        db.execute(_sql_text("SELECT 1"))
        db_ok = True
    except Exception as e:
        if _should_log("db_error"):
            log.error("health_db_error", error=str(e))
    finally:
        if db is not None:
            db.close()

    # Redis check (Celery broker)
    redis_ok = False
    try:
        r = redis_lib.from_url(settings.redis_url)
        redis_ok = bool(r.ping())
    except Exception as e:
        if _should_log("redis_error"):
            log.error("health_redis_error", error=str(e))

    # S3/MinIO check
    s3_ok = False
    try:
        s3_ok = all(
            s.client.bucket_exists(s.bucket)
            for s in (Storage(settings.visitor_photos_bucket), Storage(settings.profiles_bucket))
        )
    except Exception as e:
        if _should_log("s3_error"):
            log.error("health_s3_error", error=str(e))

    ok = db_ok and redis_ok and s3_ok
    payload = {
        "status": "ok" if ok else "degraded",
        "components": {"db": db_ok, "redis": redis_ok, "s3": s3_ok},
    }
    return JSONResponse(payload, status_code=200 if ok else 503)


@app.get("/metrics")
def metrics():
    data = generate_latest(registry)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


# Lightweight version surface for ops/debugging
@app.get("/v0/version")
def version_info():
    git = os.getenv("GIT_SHA")
    if not git:
        try:
            r = subprocess.run(["git", "rev-parse", "--short", "HEAD"], capture_output=True, text=True, timeout=1)
            if r.returncode == 0:
                git = (r.stdout or "").strip() or None
        except (OSError, subprocess.SubprocessError):
            git = None
    return {"version": app.version, "git": git}


# --- Orphan files (admin) ---

@app.get("/v0/admin/orphan-files/check")
def orphan_files_check(user=Depends(require_admin), db=Depends(get_db)):
    """
    Report storage objects no DB row references, and DB references whose
    object is missing. Read-only; storage listing failures degrade to partial
    data with debug.*.storageErrors populated.
    """
    with ORPHAN_CHECK_SECONDS.time():
        try:
            report = check_orphans(db, lambda bucket: Storage(bucket))
        except BusinessError:
            raise
        except Exception as e:
            log.error("orphan_check_error", error_type=type(e).__name__, error=str(e))
            raise BusinessError("ORPHAN_FILES_CHECK_FAILED")
    for domain in ("visitor", "profile"):
        ORPHAN_FILES_FOUND.labels(domain=domain).inc(report[f"{domain}OrphanCount"])
        STORAGE_LIST_FAILURES.labels(domain=domain).inc(len(report["debug"][domain]["storageErrors"]))
    return report


@app.post("/v0/admin/orphan-files/cleanup")
def orphan_files_cleanup(
    request: Request,
    background: bool = False,
    user=Depends(require_admin),
    db=Depends(get_db),
):
    """
    Delete orphan files from both buckets and write one audit row.
    With background=true the run is queued on the maintenance worker.
    """
    ip = _client_ip(request)
    user_agent = request.headers.get("User-Agent")
    if background:
        try:
            task_id = enqueue_orphan_cleanup(str(user.id), ip, user_agent)
        except Exception as e:
            log.error("orphan_cleanup_enqueue_failed", error_type=type(e).__name__, error=str(e))
            raise BusinessError("BACKGROUND_TASK_ENQUEUE_FAILED")
        log.info("orphan_cleanup_enqueued", task_id=task_id, user_id=str(user.id))
        return JSONResponse({"success": True, "task_id": task_id}, status_code=202)

    try:
        out = cleanup_orphans(
            db,
            lambda bucket: Storage(bucket),
            actor=user,
            ip=ip,
            user_agent=user_agent,
        )
    except BusinessError:
        raise
    except Exception:
        raise BusinessError("ORPHAN_FILES_CLEANUP_FAILED")
    for domain, counts in out["results"].items():
        ORPHAN_FILES_DELETED.labels(domain=domain).inc(counts["deleted"])
    return out


# --- System logs (admin) ---

@app.get("/v0/admin/logs")
def system_logs(
    level: Optional[models.LogLevel] = None,
    action: Optional[str] = None,
    limit: int = 50,
    user=Depends(require_admin),
    db=Depends(get_db),
):
    try:
        items = list_system_logs(db, level=level.value if level else None, action=action, limit=limit)
    except SQLAlchemyError as e:
        log.error("system_logs_fetch_error", error=str(e))
        raise BusinessError("LOG_FETCH_FAILED")
    return {"items": items}


@app.get("/v0/admin/logs/cleanup")
def system_logs_cleanup_status(user=Depends(require_admin), db=Depends(get_db)):
    """Expired row counts and cutoff dates under the configured retention."""
    try:
        return count_expired(db)
    except SQLAlchemyError as e:
        log.error("log_cleanup_status_error", error=str(e))
        raise BusinessError("LOG_FETCH_FAILED")


class LogCleanupRequest(BaseModel):
    type: str = "system_logs"


@app.post("/v0/admin/logs/cleanup")
def system_logs_cleanup(
    request: Request,
    payload: Optional[LogCleanupRequest] = Body(None),
    user=Depends(require_admin),
    db=Depends(get_db),
):
    payload = payload or LogCleanupRequest()
    if payload.type not in {"system_logs", "all"}:
        raise BusinessError("INVALID_CLEANUP_TYPE", {"type": payload.type})
    ip = _client_ip(request)
    user_agent = request.headers.get("User-Agent")
    try:
        results = cleanup_expired(db, include_visitors=payload.type == "all")
    except SQLAlchemyError as e:
        log.error("log_cleanup_error", cleanup_type=payload.type, error=str(e))
        create_system_log(
            db,
            "LOG_CLEANUP_ERROR",
            "Expired data cleanup failed",
            level="error",
            user=user,
            resource_type="system",
            metadata={"cleanup_type": payload.type, "error_type": type(e).__name__},
            ip=ip,
            user_agent=user_agent,
        )
        raise BusinessError("LOG_CLEANUP_FAILED")
    create_system_log(
        db,
        "LOG_CLEANUP",
        f"Expired data cleanup completed ({payload.type})",
        level="info",
        user=user,
        resource_type="system",
        metadata={"cleanup_type": payload.type, **results},
        ip=ip,
        user_agent=user_agent,
    )
    return {"success": True, "message": "Cleanup completed.", "results": results}


class LogDeleteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str
    log_id: Optional[uuid.UUID] = Field(None, alias="logId")


_DELETE_MESSAGES = {
    "delete_single": lambda r: "The log was deleted.",
    "delete_all": lambda r: f"{r['count']} logs were deleted.",
    "delete_old": lambda r: (
        f"{r['count']} old logs were deleted." if r["count"] else "There are no old logs to delete."
    ),
}


@app.post("/v0/admin/logs/delete")
def system_logs_delete(
    request: Request,
    payload: LogDeleteRequest,
    user=Depends(require_admin),
    db=Depends(get_db),
):
    ip = _client_ip(request)
    user_agent = request.headers.get("User-Agent")
    try:
        result = delete_system_logs(db, payload.action, log_id=payload.log_id)
    except BusinessError:
        raise
    except SQLAlchemyError as e:
        log.error("log_delete_error", delete_action=payload.action, error=str(e))
        create_system_log(
            db,
            "LOG_CLEANUP_ERROR",
            "System log deletion failed",
            level="error",
            user=user,
            resource_type="system",
            resource_id="logs_cleanup",
            metadata={"action": payload.action, "error_type": type(e).__name__},
            ip=ip,
            user_agent=user_agent,
        )
        raise BusinessError("LOG_DELETE_FAILED")
    create_system_log(
        db,
        "LOG_CLEANUP",
        f"System logs deleted ({payload.action}): {result['count']}",
        level="info",
        user=user,
        resource_type="system",
        resource_id="logs_cleanup",
        metadata={"action": payload.action, "count": result["count"]},
        ip=ip,
        user_agent=user_agent,
    )
    return {"success": True, "message": _DELETE_MESSAGES[payload.action](result), "result": result}
