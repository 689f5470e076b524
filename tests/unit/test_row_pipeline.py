from __future__ import annotations

import threading
from pathlib import Path

import pytest

from vaultsync.logging.audit_log import AuditBuffer, AuditLog
from vaultsync.models.config_models import MappingVariant
from vaultsync.models.error_record import CARD_NO_MISSING, REQUEST_FAILED, VAULT_ERROR
from vaultsync.models.override import Override, OverrideSet
from vaultsync.models.processing_result import Operation
from vaultsync.services.row_pipeline import RowContext, process_row, run_rows, summarize
from vaultsync.soap.transport import CREATE_IDENTIFIER_TAGS, UPDATE_IDENTIFIER_TAGS, TransportError

"""Unit tests for the per-row pipeline."""


def _events(buf: AuditBuffer) -> list[str]:
    return [payload[0] for kind, _, payload in buf._entries if kind == "json"]


@pytest.fixture()
def create_ctx(settings, fake_transport, tmp_path):
    return RowContext(Operation.CREATE, MappingVariant.CREATE, settings, tmp_path, fake_transport)


@pytest.fixture()
def update_ctx(settings, fake_transport, tmp_path):
    return RowContext(Operation.UPDATE, MappingVariant.UPDATE, settings, tmp_path, fake_transport)


class TestProcessRow:
    def test_create_success(self, create_ctx, fake_transport, settings):
        buf = AuditBuffer()
        out = process_row(create_ctx, 0, {"Card No": "0012", "Name": "Alice"}, buf)

        assert out.result.success is True
        assert out.error is None
        assert out.result.card_no == "0012"
        assert out.photo_checked is True
        url, envelope, version, action, tags = fake_transport.send.call_args[0]
        assert url == settings.endpoint.url
        assert "<AddCard " in envelope
        assert (version, action, tags) == ("1.1", "WebAPI/AddCard", CREATE_IDENTIFIER_TAGS)
        assert _events(buf) == [
            "row_mapped", "row_access_level_resolved", "photo_attach_result",
            "soap_request", "soap_response", "row_complete",
        ]

    def test_update_uses_update_action(self, update_ctx, fake_transport):
        process_row(update_ctx, 0, {"CARD NO": "5"}, AuditBuffer())
        _, envelope, _, action, tags = fake_transport.send.call_args[0]
        assert "<UpdateCard " in envelope
        assert action == "WebAPI/UpdateCard"
        assert tags == UPDATE_IDENTIFIER_TAGS

    def test_missing_card_no_skips_call(self, create_ctx, fake_transport):
        buf = AuditBuffer()
        out = process_row(create_ctx, 3, {"Name": "Nobody", "Staff No": "S9"}, buf)

        fake_transport.send.assert_not_called()
        assert out.result.success is False
        assert out.error.code == CARD_NO_MISSING
        assert out.error.row_index == 3
        assert out.photo_checked is False
        assert "card_no_missing" in _events(buf)

    def test_photo_attached(self, create_ctx, fake_transport, tmp_path: Path):
        (tmp_path / "S1.png").write_bytes(b"png")
        out = process_row(create_ctx, 0, {"Card No": "0012", "Staff No": "S1"}, AuditBuffer())
        envelope = fake_transport.send.call_args[0][1]
        assert "<Photo>cG5n</Photo>" in envelope
        assert out.result.has_photo is True
        assert out.profile.photo is None

    def test_no_photo_lookup_without_directory(self, settings, fake_transport, tmp_path: Path):
        (tmp_path / "0012.jpg").write_bytes(b"jpg")
        ctx = RowContext(Operation.CREATE, MappingVariant.CREATE, settings, None, fake_transport)
        assert process_row(ctx, 0, {"Card No": "0012"}, AuditBuffer()).result.has_photo is False

    def test_transport_failure(self, create_ctx, fake_transport):
        fake_transport.send.side_effect = TransportError("connection refused")
        out = process_row(create_ctx, 1, {"Card No": "7"}, AuditBuffer())
        assert out.error.code == REQUEST_FAILED
        assert out.error.message == "connection refused"
        assert out.result.success is False

    def test_vendor_error(self, create_ctx, fake_transport, soap_reply):
        fake_transport.send.return_value = soap_reply("2", "Card exists in other company")
        out = process_row(create_ctx, 0, {"Card No": "7"}, AuditBuffer())
        assert out.error.code == VAULT_ERROR
        assert out.error.vendor_code == "2"
        assert out.result.response_message == "Card exists in other company"

    def test_truncation_logs_field_lengths(self, update_ctx, fake_transport, soap_reply):
        fake_transport.send.return_value = soap_reply("1", "String or binary data would be truncated.")
        buf = AuditBuffer()
        out = process_row(update_ctx, 0, {"CARD NO": "7", "KTP/PASPORT NO": "N" * 80}, buf)
        assert out.error.is_truncation
        assert "field_length_summary" in _events(buf)

    def test_explicit_override(self, create_ctx, fake_transport):
        out = process_row(create_ctx, 0, {"Card No": "1"}, AuditBuffer(),
                          override=Override(card_no="9999999999", download=False))
        envelope = fake_transport.send.call_args[0][1]
        assert "<CardNo>9999999999</CardNo>" in envelope
        assert "<Download>false</Download>" in envelope
        assert out.result.card_no == "9999999999"

    def test_override_by_card_no(self, create_ctx, fake_transport):
        overrides = OverrideSet.from_payload([{"matchCardNo": "0012", "Department": "Ops"}])
        process_row(create_ctx, 4, {"Card No": "0012"}, AuditBuffer(), overrides=overrides)
        assert "<Department>Ops</Department>" in fake_transport.send.call_args[0][1]

    def test_request_id_in_labels(self, settings, fake_transport, tmp_path):
        ctx = RowContext(Operation.UPDATE, MappingVariant.UPDATE, settings, tmp_path, fake_transport, "rid-1")
        buf = AuditBuffer()
        process_row(ctx, 2, {"CARD NO": "7"}, buf)
        texts = [payload for kind, _, payload in buf._entries if kind == "text"]
        assert all(t.startswith("Row 2 [rid-1]:") for t in texts)
        assert any("SOAP request envelope" in t for t in texts)


class TestRunRows:
    def _rows(self, n: int):
        return [(i, {"Card No": str(100 + i)}) for i in range(n)]

    def test_parallel_keeps_order(self, create_ctx, tmp_path: Path):
        audit = AuditLog(tmp_path, "registration")
        outcomes, cancelled = run_rows(create_ctx, self._rows(6), OverrideSet(), audit, max_workers=3)
        assert cancelled is False
        assert [o.result.row_index for o in outcomes] == list(range(6))
        assert [o.result.card_no for o in outcomes] == [str(100 + i) for i in range(6)]

    def test_cancel_before_start(self, create_ctx, fake_transport, tmp_path: Path):
        cancel = threading.Event()
        cancel.set()
        outcomes, cancelled = run_rows(create_ctx, self._rows(3), OverrideSet(), AuditLog(tmp_path, "registration"),
                                       cancel=cancel)
        assert outcomes == []
        assert cancelled is True
        fake_transport.send.assert_not_called()

    def test_cancel_midway(self, create_ctx, fake_transport, soap_reply, tmp_path: Path):
        cancel = threading.Event()

        def reply(*args):
            cancel.set()
            return soap_reply()

        fake_transport.send.side_effect = reply
        outcomes, cancelled = run_rows(create_ctx, self._rows(3), OverrideSet(), AuditLog(tmp_path, "registration"),
                                       cancel=cancel)
        assert len(outcomes) == 1
        assert cancelled is True


def test_summarize_counts_photos_of_checked_rows(create_ctx, tmp_path: Path):
    (tmp_path / "2.jpg").write_bytes(b"x")
    rows = [{"Name": "no card"}, {"Card No": "1"}, {"Card No": "2"}]
    outcomes = [process_row(create_ctx, i, r, AuditBuffer()) for i, r in enumerate(rows)]
    s = summarize(Operation.CREATE, outcomes, job_id="j")
    assert (s.attempted, s.succeeded) == (3, 2)
    assert (s.with_photo, s.without_photo) == (1, 1)
    assert [e.code for e in s.errors] == [CARD_NO_MISSING]
