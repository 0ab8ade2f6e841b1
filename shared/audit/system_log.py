"""
Audit trail stored in the ``system_logs`` table.

Admin actions (orphan cleanup, log retention runs) record one row each. Writes
are committed before the caller responds; a failed insert is rolled back and
logged but never raised, so auditing cannot break the action it describes.
"""

import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from structlog import get_logger

from shared.config.settings import settings
from shared.db import models
from shared.errors import BusinessError

log = get_logger()

SYSTEM_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000000")
SYSTEM_USER_EMAIL = "system@farmguard.local"

LOG_LEVEL_PRIORITY = {"debug": 0, "info": 1, "warn": 2, "error": 3}

# Recorded regardless of the configured level
ALWAYS_LOGGED_ACTIONS = {"LOGIN_SUCCESS", "PASSWORD_CHANGED", "USER_CREATED"}


def should_log_message(level: str, action: Optional[str] = None, min_level: Optional[str] = None) -> bool:
    if action in ALWAYS_LOGGED_ACTIONS:
        return True
    effective = (min_level or settings.system_log_level or "info").lower()
    return LOG_LEVEL_PRIORITY.get(level, 1) >= LOG_LEVEL_PRIORITY.get(effective, 1)


def create_system_log(
    db,
    action: str,
    message: str,
    level: str = "info",
    user: Optional[Any] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    metadata: Optional[dict] = None,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Optional[models.SystemLog]:
    """Insert one system log row; returns it, or None if filtered or failed.

    ``user`` is any object with ``id`` and ``email`` (a Profile in practice).
    """
    if not should_log_message(level, action):
        log.debug("system_log_filtered", action=action, level=level)
        return None

    user_id = getattr(user, "id", None) or SYSTEM_USER_ID
    user_email = getattr(user, "email", None) or SYSTEM_USER_EMAIL
    row = models.SystemLog(
        id=uuid.uuid4(),
        level=models.LogLevel(level),
        action=action,
        message=message,
        user_id=user_id,
        user_email=user_email,
        user_ip=ip or "server-unknown",
        user_agent=user_agent or "Server",
        resource_type=resource_type,
        resource_id=resource_id,
        log_metadata={**(metadata or {}), "user_email": user_email, "resource_id": resource_id},
    )
    try:
        db.add(row)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.error("system_log_insert_failed", action=action, error=str(e))
        return None
    return row


def list_system_logs(db, level: Optional[str] = None, action: Optional[str] = None, limit: int = 50):
    q = db.query(models.SystemLog)
    if level:
        q = q.filter(models.SystemLog.level == models.LogLevel(level))
    if action:
        q = q.filter(models.SystemLog.action == action)
    rows = q.order_by(models.SystemLog.created_at.desc()).limit(max(1, min(limit, 500))).all()
    return [
        {
            "id": str(r.id),
            "level": r.level.value if isinstance(r.level, models.LogLevel) else r.level,
            "action": r.action,
            "message": r.message,
            "user_id": str(r.user_id) if r.user_id else None,
            "user_email": r.user_email,
            "user_ip": r.user_ip,
            "resource_type": r.resource_type,
            "resource_id": r.resource_id,
            "metadata": r.log_metadata or {},
            "created_at": r.created_at.isoformat() if r.created_at else None,
        }
        for r in rows
    ]


def retention_cutoff(days: int, now: Optional[datetime] = None) -> datetime:
    return (now or datetime.utcnow()) - timedelta(days=days)


def count_expired(db, now: Optional[datetime] = None) -> dict:
    log_cutoff = retention_cutoff(settings.log_retention_days, now)
    visitor_cutoff = retention_cutoff(settings.visitor_data_retention_days, now)
    logs = db.query(models.SystemLog).filter(models.SystemLog.created_at < log_cutoff).count()
    visitors = (
        db.query(models.VisitorEntry)
        .filter(models.VisitorEntry.visit_datetime < visitor_cutoff)
        .count()
    )
    return {
        "settings": {
            "logRetentionDays": settings.log_retention_days,
            "visitorDataRetentionDays": settings.visitor_data_retention_days,
        },
        "expiredData": {
            "systemLogs": {"count": int(logs or 0), "cutoffDate": log_cutoff.isoformat()},
            "visitorEntries": {"count": int(visitors or 0), "cutoffDate": visitor_cutoff.isoformat()},
        },
    }


def cleanup_expired(db, include_visitors: bool = False, now: Optional[datetime] = None) -> dict:
    """Delete system logs (and optionally visitor entries) past retention.

    Raises SQLAlchemyError after rolling back; the caller maps it.
    """
    out = {}
    try:
        log_cutoff = retention_cutoff(settings.log_retention_days, now)
        out["system_logs"] = (
            db.query(models.SystemLog)
            .filter(models.SystemLog.created_at < log_cutoff)
            .delete(synchronize_session=False)
        )
        if include_visitors:
            visitor_cutoff = retention_cutoff(settings.visitor_data_retention_days, now)
            out["visitor_entries"] = (
                db.query(models.VisitorEntry)
                .filter(models.VisitorEntry.visit_datetime < visitor_cutoff)
                .delete(synchronize_session=False)
            )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    log.info("expired_data_cleaned", **out)
    return out


DELETE_ACTIONS = ("delete_single", "delete_all", "delete_old")
OLD_LOG_DAYS = 30


def delete_system_logs(db, action: str, log_id: Optional[uuid.UUID] = None, now: Optional[datetime] = None) -> dict:
    """Admin log deletion: one row by id, every row, or rows older than 30 days.

    Returns ``{"deleted": bool, "count": n}`` (plus ``logId`` for single
    deletes). Unknown actions and missing rows raise ``BusinessError``;
    database errors are rolled back and re-raised.
    """
    if action not in DELETE_ACTIONS:
        raise BusinessError("UNSUPPORTED_DELETE_OPERATION", {"action": action})
    if action == "delete_single" and log_id is None:
        raise BusinessError("LOG_ID_REQUIRED")

    q = db.query(models.SystemLog)
    if action == "delete_single":
        q = q.filter(models.SystemLog.id == log_id)
    elif action == "delete_old":
        q = q.filter(models.SystemLog.created_at < retention_cutoff(OLD_LOG_DAYS, now))
    try:
        count = q.delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    if action == "delete_single":
        if not count:
            raise BusinessError("LOG_NOT_FOUND", {"log_id": str(log_id)})
        return {"deleted": True, "count": 1, "logId": str(log_id)}
    log.info("system_logs_deleted", action=action, count=count)
    return {"deleted": bool(count), "count": int(count or 0)}
