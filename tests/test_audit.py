"""Tests for the audit side channel -- redaction, the recorder and the HTTP hook.

Covers:
- summarize_body(): nested JSON redaction, plain-text masking, size cap
- AuditRecorder: write failures are logged and swallowed, a full queue drops
  instead of blocking, records are written in submission order
- client_ip(): first X-Forwarded-For hop wins over the socket peer
- Middleware: one record per request with identity, reason and status;
  health checks are not recorded; GET /audit is admin only
"""

from __future__ import annotations

import json
import logging
import uuid
from unittest.mock import MagicMock

import pytest

from audit.recorder import AuditRecorder, build_record, client_ip, outcome_reason
from audit.redaction import REDACTED, TRUNCATED_SUFFIX, summarize_body
from audit.store import AuditStore
from conftest import STRONG_PASSWORD, bearer, memory_db_url, new_admin, new_user, unique_email

# ---------------------------------------------------------------------------
# Redaction
# ---------------------------------------------------------------------------


def test_json_password_fields_redacted_at_any_depth():
    raw = json.dumps(
        {
            "email": "a@b.co",
            "password": "Str0ng!Pw",
            "profile": {"hashed_password": "$2b$12$abc", "tokens": [{"access_token": "eyJ..."}]},
        }
    ).encode()
    summary = summarize_body(raw)
    assert "Str0ng!Pw" not in summary
    assert "$2b$12$abc" not in summary
    assert "eyJ..." not in summary
    parsed = json.loads(summary)
    assert parsed["password"] == REDACTED
    assert parsed["profile"]["hashed_password"] == REDACTED
    assert parsed["profile"]["tokens"][0]["access_token"] == REDACTED
    assert parsed["email"] == "a@b.co"


def test_redaction_is_case_insensitive_on_keys():
    assert json.loads(summarize_body('{"Password": "x"}'))["Password"] == REDACTED


def test_non_json_body_is_masked():
    summary = summarize_body(b"email=a%40b.co&password=hunter2&remember=1")
    assert "hunter2" not in summary
    assert f"password={REDACTED}" in summary
    assert "remember=1" in summary


def test_truncated_json_is_masked_as_text():
    summary = summarize_body('{"email": "a@b.co", "password": "hunter2", "bio": "')
    assert "hunter2" not in summary


def test_long_body_capped_with_marker():
    summary = summarize_body("x" * 5000, limit=1000)
    assert len(summary) == 1000
    assert summary.endswith(TRUNCATED_SUFFIX)


def test_short_body_untouched():
    assert summarize_body("hello", limit=1000) == "hello"


@pytest.mark.parametrize("raw", [None, b"", ""])
def test_empty_body_is_none(raw):
    assert summarize_body(raw) is None


# ---------------------------------------------------------------------------
# Record helpers
# ---------------------------------------------------------------------------


def test_client_ip_prefers_forwarded_for():
    assert client_ip("203.0.113.9, 10.0.0.1", "127.0.0.1") == "203.0.113.9"
    assert client_ip(None, "127.0.0.1") == "127.0.0.1"
    assert client_ip(" , ", "127.0.0.1") == "127.0.0.1"


def test_outcome_reason():
    assert outcome_reason(200, None) == "success"
    assert outcome_reason(401, "bad_credentials") == "bad_credentials"
    assert outcome_reason(500, None) == "failed_request"


def test_build_record_success_flag():
    assert build_record(method="GET", path="/", status_code=204).success is True
    assert build_record(method="GET", path="/", status_code=403, error_code="access_denied").success is False


# ---------------------------------------------------------------------------
# Recorder
# ---------------------------------------------------------------------------


def _record(path: str = "/x"):
    return build_record(method="POST", path=path, status_code=200)


def test_write_failure_is_swallowed_and_logged(caplog):
    store = MagicMock()
    store.append.side_effect = [RuntimeError("disk full"), 1]
    recorder = AuditRecorder(store)
    recorder.start()
    try:
        with caplog.at_level(logging.ERROR, logger="tasktrack.audit"):
            recorder.submit(_record("/first"))
            recorder.submit(_record("/second"))
            recorder.flush()
    finally:
        recorder.stop()
    assert store.append.call_count == 2
    assert "Audit write failed" in caplog.text


def test_full_queue_drops_without_blocking(caplog):
    recorder = AuditRecorder(MagicMock(), max_queue=1)
    with caplog.at_level(logging.WARNING, logger="tasktrack.audit"):
        recorder.submit(_record())
        recorder.submit(_record())
    assert "dropping record" in caplog.text


def test_records_written_in_submission_order():
    store = AuditStore(memory_db_url("audit"))
    recorder = AuditRecorder(store)
    recorder.start()
    try:
        for path in ("/a", "/b", "/c"):
            recorder.submit(_record(path))
        recorder.flush()
        assert [r.path for r in store.list_recent()] == ["/c", "/b", "/a"]
    finally:
        recorder.stop()
        store.close()


def test_stop_without_start_is_noop():
    AuditRecorder(MagicMock()).stop()


# ---------------------------------------------------------------------------
# HTTP hook
# ---------------------------------------------------------------------------


def _records_for(api, user_agent: str):
    api.flush_audit()
    return [r for r in api.app.state.audit_store.list_recent(limit=500) if r.user_agent == user_agent]


def test_failed_login_recorded_without_password(api):
    ua = f"pytest-{uuid.uuid4().hex}"
    api.client.post(
        "/api/v1/users/login",
        json={"email": unique_email("ghost"), "password": "Wr0ng!Pw"},
        headers={"User-Agent": ua, "X-Forwarded-For": "203.0.113.7"},
    )
    [record] = _records_for(api, ua)
    assert record.event_type == "login"
    assert record.status_code == 401
    assert record.success is False
    assert record.reason == "bad_credentials"
    assert record.ip_address == "203.0.113.7"
    assert record.user_id is None
    assert "Wr0ng!Pw" not in (record.body or "")


def test_successful_login_records_identity(api):
    email, _ = new_user(api)
    ua = f"pytest-{uuid.uuid4().hex}"
    api.client.post(
        "/api/v1/users/login",
        json={"email": email, "password": STRONG_PASSWORD},
        headers={"User-Agent": ua},
    )
    api.client.cookies.clear()
    [record] = _records_for(api, ua)
    assert record.success is True
    assert record.reason == "success"
    assert record.user_id == api.user_store.get_by_email(email).id
    assert "Login successful" in record.body


def test_authorization_failure_recorded(api):
    _, token = new_user(api)
    ua = f"pytest-{uuid.uuid4().hex}"
    api.client.get("/api/v1/users/admin/users", headers={**bearer(token), "User-Agent": ua})
    [record] = _records_for(api, ua)
    assert record.status_code == 403
    assert record.reason == "access_denied"
    assert record.username is not None


def test_missing_credential_recorded(api):
    ua = f"pytest-{uuid.uuid4().hex}"
    api.client.get("/api/v1/users/me", headers={"User-Agent": ua})
    [record] = _records_for(api, ua)
    assert record.reason == "no_credential"


def test_health_not_recorded(api):
    ua = f"pytest-{uuid.uuid4().hex}"
    api.client.get("/api/v1/health", headers={"User-Agent": ua})
    assert _records_for(api, ua) == []


def test_audit_endpoint_admin_only(api):
    _, user_token = new_user(api)
    assert api.client.get("/api/v1/audit", headers=bearer(user_token)).status_code == 403

    admin, admin_token = new_admin(api)
    api.flush_audit()
    resp = api.client.get("/api/v1/audit", params={"user_id": admin.id}, headers=bearer(admin_token))
    assert resp.status_code == 200
    records = resp.json()
    assert records, "admin login should have been recorded"
    assert all(r["user_id"] == admin.id for r in records)
    assert "$2b$" not in resp.text


def test_audit_filter_on_out_of_range_user_is_empty(api):
    _, admin_token = new_admin(api)
    resp = api.client.get("/api/v1/audit", params={"user_id": 10**20}, headers=bearer(admin_token))
    assert resp.status_code == 200
    assert resp.json() == []
