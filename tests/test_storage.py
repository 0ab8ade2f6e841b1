from types import SimpleNamespace

import pytest
from minio.error import S3Error

from shared.storage.s3 import Storage


def _obj(name, is_dir=False, size=None):
    return SimpleNamespace(object_name=name, is_dir=is_dir, size=size, last_modified=None)


class DummyClient:
    def __init__(self, objects=(), remove_error=None):
        self._objects = list(objects)
        self._remove_error = remove_error
        self.list_calls = []
        self.removed = []

    def list_objects(self, bucket, prefix=None, recursive=False):
        self.list_calls.append((bucket, prefix, recursive))
        return iter(self._objects)

    def remove_object(self, bucket, key):
        if self._remove_error is not None:
            raise self._remove_error
        self.removed.append((bucket, key))


def _s3_error(code):
    return S3Error(
        response=None,
        code=code,
        message="failed",
        resource="/visitor-photos/x.jpg",
        request_id="req",
        host_id="host",
    )


def _storage(client, bucket="visitor-photos"):
    s = Storage(bucket)
    s.client = client
    return s


def test_list_root_level():
    client = DummyClient([_obj("a.jpg", size=3), _obj("farm1/", is_dir=True)])
    out = _storage(client).list()
    assert client.list_calls == [("visitor-photos", "", False)]
    assert [(o.name, o.is_file) for o in out] == [("a.jpg", True), ("farm1", False)]
    assert out[0].size == 3


def test_list_strips_prefix_and_skips_folder_marker():
    client = DummyClient([
        _obj("farm1/"),
        _obj("farm1/x.jpg"),
        _obj("farm1/2024/", is_dir=True),
    ])
    out = _storage(client).list("farm1/")
    assert client.list_calls[0][1] == "farm1/"
    assert [(o.name, o.is_file) for o in out] == [("x.jpg", True), ("2024", False)]


def test_list_caps_at_limit():
    client = DummyClient([_obj(f"f{i}.jpg") for i in range(10)])
    assert len(_storage(client).list(limit=4)) == 4


def test_remove_object():
    client = DummyClient()
    _storage(client, "profiles").remove_object("u1/avatar.png")
    assert client.removed == [("profiles", "u1/avatar.png")]


def test_remove_missing_object_is_not_an_error():
    client = DummyClient(remove_error=_s3_error("NoSuchKey"))
    _storage(client).remove_object("gone.jpg")


def test_remove_other_s3_errors_propagate():
    client = DummyClient(remove_error=_s3_error("AccessDenied"))
    with pytest.raises(S3Error):
        _storage(client).remove_object("x.jpg")
