import uuid
from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from shared.audit import system_log
from shared.audit.system_log import (
    SYSTEM_USER_EMAIL,
    SYSTEM_USER_ID,
    cleanup_expired,
    count_expired,
    create_system_log,
    delete_system_logs,
    retention_cutoff,
    should_log_message,
)
from shared.db import models
from shared.errors import BusinessError


def test_level_filter():
    assert should_log_message("error", min_level="warn")
    assert should_log_message("warn", min_level="warn")
    assert not should_log_message("info", min_level="warn")
    assert not should_log_message("debug", min_level="info")
    # security-relevant actions bypass the filter
    assert should_log_message("debug", action="LOGIN_SUCCESS", min_level="error")


def test_defaults_for_server_side_writes(fake_db):
    db = fake_db()
    row = create_system_log(db, "ORPHAN_FILE_CLEANUP", "done", metadata={"total_deleted": 0})
    assert row is db.added[0]
    assert row.user_id == SYSTEM_USER_ID
    assert row.user_email == SYSTEM_USER_EMAIL
    assert row.user_ip == "server-unknown"
    assert row.user_agent == "Server"
    assert row.level == models.LogLevel.info
    assert row.log_metadata["total_deleted"] == 0
    assert row.log_metadata["user_email"] == SYSTEM_USER_EMAIL
    assert db.commits == 1


def test_filtered_level_writes_nothing(fake_db, monkeypatch):
    monkeypatch.setattr(system_log.settings, "system_log_level", "error")
    db = fake_db()
    assert create_system_log(db, "SOMETHING", "x", level="info") is None
    assert db.added == []


def test_insert_failure_is_swallowed(fake_db, recording_log, monkeypatch):
    monkeypatch.setattr(system_log, "log", recording_log)
    db = fake_db(commit_error=OperationalError("INSERT", {}, Exception("down")))
    assert create_system_log(db, "ORPHAN_FILE_CLEANUP", "done") is None
    assert db.rollbacks == 1
    assert recording_log.named("system_log_insert_failed")


def test_retention_cutoff():
    now = datetime(2026, 4, 1, 12, 0, 0)
    assert retention_cutoff(90, now) == datetime(2026, 1, 1, 12, 0, 0)


def test_count_expired_shape(fake_db):
    now = datetime(2026, 4, 1)
    db = fake_db(rows={models.SystemLog: [object(), object()], models.VisitorEntry: [object()]})
    out = count_expired(db, now=now)
    assert out["expiredData"]["systemLogs"]["count"] == 2
    assert out["expiredData"]["visitorEntries"]["count"] == 1
    assert out["settings"]["logRetentionDays"] == system_log.settings.log_retention_days


def test_cleanup_expired_logs_only(fake_db):
    db = fake_db(rows={models.SystemLog: [object()] * 3, models.VisitorEntry: [object()]})
    assert cleanup_expired(db) == {"system_logs": 3}
    assert db.commits == 1


def test_cleanup_expired_all(fake_db):
    db = fake_db(rows={models.SystemLog: [object()] * 3, models.VisitorEntry: [object()]})
    assert cleanup_expired(db, include_visitors=True) == {"system_logs": 3, "visitor_entries": 1}


def test_cleanup_expired_rolls_back(fake_db):
    db = fake_db(query_error=OperationalError("DELETE", {}, Exception("locked")))
    with pytest.raises(OperationalError):
        cleanup_expired(db)
    assert db.rollbacks == 1
    assert db.commits == 0


def test_delete_all_logs(fake_db):
    db = fake_db(rows={models.SystemLog: [object()] * 5})
    assert delete_system_logs(db, "delete_all") == {"deleted": True, "count": 5}
    assert db.commits == 1


def test_delete_old_with_nothing_to_delete(fake_db):
    db = fake_db()
    assert delete_system_logs(db, "delete_old", now=datetime(2026, 4, 1)) == {"deleted": False, "count": 0}


def test_delete_single_log(fake_db):
    log_id = uuid.uuid4()
    db = fake_db(rows={models.SystemLog: [object()]})
    out = delete_system_logs(db, "delete_single", log_id=log_id)
    assert out == {"deleted": True, "count": 1, "logId": str(log_id)}


def test_delete_single_missing_log(fake_db):
    with pytest.raises(BusinessError) as ei:
        delete_system_logs(fake_db(), "delete_single", log_id=uuid.uuid4())
    assert ei.value.code == "LOG_NOT_FOUND"
    assert ei.value.status == 404


def test_delete_single_requires_id(fake_db):
    with pytest.raises(BusinessError) as ei:
        delete_system_logs(fake_db(), "delete_single")
    assert ei.value.code == "LOG_ID_REQUIRED"


def test_delete_unknown_action(fake_db):
    db = fake_db(rows={models.SystemLog: [object()]})
    with pytest.raises(BusinessError) as ei:
        delete_system_logs(db, "truncate")
    assert ei.value.code == "UNSUPPORTED_DELETE_OPERATION"
    assert "truncate" in ei.value.message
    assert db.commits == 0


def test_delete_rolls_back_on_db_error(fake_db):
    db = fake_db(query_error=OperationalError("DELETE", {}, Exception("locked")))
    with pytest.raises(OperationalError):
        delete_system_logs(db, "delete_all")
    assert db.rollbacks == 1
    assert db.aborted is False
