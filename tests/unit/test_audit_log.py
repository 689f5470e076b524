from __future__ import annotations

import json
import re
from pathlib import Path
from unittest.mock import patch

import pytest

from vaultsync.logging.audit_log import AuditBuffer, AuditLog, console_snippet, utc_timestamp

"""Unit tests for the per-job audit trail."""

TS_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def _json_lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_utc_timestamp_format():
    assert TS_RE.match(utc_timestamp())


def test_stream_file_names(tmp_path: Path):
    reg = AuditLog(tmp_path, "registration")
    upd = AuditLog(tmp_path, "update")
    assert reg.text_path.name == "vault-registration.log"
    assert reg.json_path.name == "vault-registration-log.jsonl"
    assert upd.text_path.name == "vault-update.log"
    assert upd.json_path.name == "vault-update-log.jsonl"


def test_unknown_stream_rejected(tmp_path: Path):
    with pytest.raises(ValueError):
        AuditLog(tmp_path, "delete")


def test_text_line_format(tmp_path: Path):
    audit = AuditLog(tmp_path, "registration")
    audit.info("Override map ready: 0 item(s)")
    line = audit.text_path.read_text(encoding="utf-8").splitlines()[0]
    ts, _, message = line.partition("] ")
    assert TS_RE.match(ts.lstrip("["))
    assert message == "Override map ready: 0 item(s)"


def test_json_line_starts_with_time_and_event(tmp_path: Path):
    audit = AuditLog(tmp_path, "update")
    audit.event("row_complete", index=3, cardNo="123", success=True)
    record = _json_lines(audit.json_path)[0]
    assert list(record)[:2] == ["time", "event"]
    assert record["event"] == "row_complete"
    assert record["index"] == 3
    assert record["success"] is True


def test_appends(tmp_path: Path):
    AuditLog(tmp_path, "update").event("start")
    AuditLog(tmp_path, "update").event("complete")
    assert [r["event"] for r in _json_lines(tmp_path / "vault-update-log.jsonl")] == ["start", "complete"]


def test_non_json_values_stringified(tmp_path: Path):
    audit = AuditLog(tmp_path, "update")
    audit.event("start", path=tmp_path)
    assert _json_lines(audit.json_path)[0]["path"] == str(tmp_path)


def test_console_only_mode(tmp_path: Path):
    audit = AuditLog(None, "update")
    with patch("vaultsync.logging.audit_log.logger") as mock_logger:
        audit.info("Row 0: SUCCESS")
        audit.event("row_complete", index=0)
    mock_logger.info.assert_called_once_with("Row 0: SUCCESS")
    assert audit.text_path is None
    assert list(tmp_path.iterdir()) == []


def test_write_failure_is_a_warning(tmp_path: Path):
    audit = AuditLog(tmp_path / "gone", "update")
    with patch("vaultsync.logging.audit_log.logger") as mock_logger:
        audit.event("start")
    mock_logger.warning.assert_called_once()
    assert "audit log write failed" in mock_logger.warning.call_args[0][0]


class TestAuditBuffer:
    def test_flush_keeps_order_and_timestamps(self, tmp_path: Path):
        audit = AuditLog(tmp_path, "registration")
        buf = AuditBuffer()
        buf.info("first")
        buf.event("row_mapped", index=1)
        buf.info("second")
        assert len(buf) == 3

        buf.flush(audit)
        assert len(buf) == 0
        text = audit.text_path.read_text(encoding="utf-8").splitlines()
        assert [t.partition("] ")[2] for t in text] == ["first", "second"]
        assert _json_lines(audit.json_path)[0]["index"] == 1

    def test_buffers_flushed_in_row_order(self, tmp_path: Path):
        audit = AuditLog(tmp_path, "registration")
        buffers = [AuditBuffer() for _ in range(3)]
        # rows finish out of order
        for i in (2, 0, 1):
            buffers[i].event("row_complete", index=i)
        for buf in buffers:
            buf.flush(audit)
        assert [r["index"] for r in _json_lines(audit.json_path)] == [0, 1, 2]


class TestConsoleSnippet:
    def test_collapses_whitespace(self):
        assert console_snippet("<a>\n   <b>1</b>\n</a>") == "<a> <b>1</b> </a>"

    def test_truncates(self):
        out = console_snippet("x" * 700, limit=600)
        assert out == "x" * 600 + " … (truncated)"

    def test_empty(self):
        assert console_snippet(None) == ""
        assert console_snippet("") == ""
