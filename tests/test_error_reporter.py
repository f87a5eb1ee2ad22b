from __future__ import annotations

import asyncio
import json

from plantops.core.error_reporter import ErrorReporter
from plantops.core.errors import InvalidCredentials
from plantops.core.trace import current_trace_id, trace_context


def test_unknown_exception_normalized_and_redacted(tmp_path):
    p = tmp_path / "errors.jsonl"
    r = ErrorReporter(path=str(p))
    try:
        raise RuntimeError("boom")
    except Exception as e:  # noqa: BLE001
        err = r.report_exception(e, trace_id="t1", subsystem="auth", context={"token": "SECRET", "x": 1})
        assert err.code == "internal_error"
        assert err.user_message == "Something went wrong."
    obj = json.loads(p.read_text(encoding="utf-8").splitlines()[-1])
    assert obj["trace_id"] == "t1"
    assert obj["subsystem"] == "auth"
    assert "SECRET" not in json.dumps(obj)
    assert "***REDACTED***" in json.dumps(obj)


def test_domain_error_keeps_its_code(tmp_path):
    r = ErrorReporter(path=str(tmp_path / "errors.jsonl"))
    err = r.report_exception(InvalidCredentials(), trace_id="t2", subsystem="auth")
    assert err.code == "invalid_credentials"
    assert err.user_message == "Invalid credentials or backend unavailable."


def test_timeout_maps_to_remote_unavailable(tmp_path):
    r = ErrorReporter(path=str(tmp_path / "errors.jsonl"))
    err = r.report_exception(asyncio.TimeoutError(), trace_id="t3", subsystem="auth")
    assert err.code == "remote_unavailable"


def test_trace_context_binds_and_resets():
    assert current_trace_id() is None
    with trace_context("abc") as tid:
        assert tid == "abc"
        assert current_trace_id() == "abc"
        with trace_context(None) as inner:
            assert inner == "abc"
    assert current_trace_id() is None
