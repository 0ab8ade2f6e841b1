import uuid
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import InternalError

from shared.storage.s3 import StorageObject


class InMemoryStore:
    """Bucket stand-in with one-level listings like ``Storage.list``."""

    def __init__(self, bucket, paths=(), failing_prefixes=(), failing_removes=()):
        self.bucket = bucket
        self.objects = set(paths)
        self.failing_prefixes = set(failing_prefixes)
        self.failing_removes = set(failing_removes)
        self.list_calls = []
        self.removed = []

    def list(self, prefix="", limit=1000):
        self.list_calls.append(prefix)
        if prefix in self.failing_prefixes:
            raise RuntimeError(f"listing failed for {prefix!r}")
        base = f"{prefix}/" if prefix else ""
        entries = {}
        for path in sorted(self.objects):
            if not path.startswith(base):
                continue
            head, sep, _ = path[len(base):].partition("/")
            entries.setdefault(head, not sep)
        return [StorageObject(name=n, is_file=f) for n, f in sorted(entries.items())][:limit]

    def remove_object(self, key):
        if key in self.failing_removes:
            raise RuntimeError(f"delete failed for {key!r}")
        self.objects.discard(key)
        self.removed.append(key)


class RecordingLog:
    def __init__(self):
        self.events = []

    def _record(self, level):
        def _log(event, **kw):
            self.events.append((level, event, kw))
        return _log

    def __getattr__(self, level):
        return self._record(level)

    def named(self, event):
        return [kw for _, e, kw in self.events if e == event]


class _Query:
    def __init__(self, items, error=None, on_error=None):
        self._items = items
        self._error = error
        self._on_error = on_error

    def _fail(self):
        if self._on_error is not None:
            self._on_error()
        raise self._error

    def filter(self, *args, **kwargs):
        return self

    def order_by(self, *args):
        return self

    def limit(self, n):
        return self

    def all(self):
        if self._error is not None:
            self._fail()
        return list(self._items)

    def count(self):
        return len(self._items)

    def delete(self, synchronize_session=None):
        if self._error is not None:
            self._fail()
        return len(self._items)


class FakeDB:
    """Session stand-in: ``query(pk, column)`` returns the rows given per model."""

    def __init__(self, rows=None, profiles=None, query_error=None, commit_error=None):
        self.rows = rows or {}
        self.profiles = profiles or {}
        self.query_error = query_error
        self.commit_error = commit_error
        self.added = []
        self.calls = []
        self.commits = 0
        self.rollbacks = 0
        self.aborted = False

    def query(self, *cols):
        model = getattr(cols[0], "class_", cols[0])
        return _Query(self.rows.get(model, []), self.query_error, self._abort)

    def _abort(self):
        # like PostgreSQL: after a failed statement nothing commits until rollback
        self.aborted = True

    def get(self, model, key):
        return self.profiles.get(key)

    def add(self, row):
        self.calls.append("add")
        self.added.append(row)

    def commit(self):
        if self.commit_error is not None:
            raise self.commit_error
        if self.aborted:
            raise InternalError("COMMIT", {}, Exception("current transaction is aborted"))
        self.commits += 1

    def rollback(self):
        self.calls.append("rollback")
        self.rollbacks += 1
        self.aborted = False

    def close(self):
        return None


@pytest.fixture
def memory_store():
    return InMemoryStore


@pytest.fixture
def fake_db():
    return FakeDB


@pytest.fixture
def recording_log():
    return RecordingLog()


@pytest.fixture
def admin_user():
    return SimpleNamespace(id=uuid.uuid4(), email="admin@farm.test", account_type="admin")


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    import apps.admin_api.main as api
    api.api_rate_limiter.clear()
    yield
    api.api_rate_limiter.clear()
    api.app.dependency_overrides.clear()
