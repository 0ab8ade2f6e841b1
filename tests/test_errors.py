import json

from shared.errors import ERROR_MAP, BusinessError, error_message, error_response


def test_unknown_code_falls_back():
    err = BusinessError("NOT_A_CODE")
    assert err.code == "UNKNOWN_ERROR"
    assert err.status == 500


def test_parameterised_messages():
    assert "42" in error_message("RATE_LIMIT_EXCEEDED", {"retry_after": 42})
    assert "profile" in error_message("ORPHAN_REFERENCE_QUERY_FAILED", {"domain": "profile"})
    assert "bogus" in BusinessError("INVALID_CLEANUP_TYPE", {"type": "bogus"}).message


def test_envelope():
    r = error_response("ADMIN_ACCESS_REQUIRED", headers={"X-Test": "1"})
    assert r.status_code == 403
    assert r.headers["X-Test"] == "1"
    assert json.loads(r.body) == {
        "success": False,
        "error": "ADMIN_ACCESS_REQUIRED",
        "message": ERROR_MAP["ADMIN_ACCESS_REQUIRED"].message,
    }
