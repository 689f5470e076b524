from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

from vaultsync.models.error_record import VAULT_ERROR, ErrorRecord
from vaultsync.models.override import Override
from vaultsync.models.processing_result import BatchSummary, Operation
from vaultsync.services.retry import retry_overrides, retry_truncated

"""Unit tests for the truncation retry."""

ROW = {"CARD NO": "7", "NAME": "N" * 45, "KTP/PASPORT NO": "K" * 70, "MESSHALL": "Labota"}


def test_retry_override_clips_unbounded_fields(settings):
    ov = retry_overrides(0, ROW, settings, None)
    assert ov.index == 0
    assert ov.fields["nric"] == "K" * 50
    assert ov.fields["name"] == "N" * 40
    assert ov.download is True
    assert "card_no" not in ov.fields


def test_caller_override_wins(settings):
    original = Override(index=0, card_no="8888", download=False, fields={"department": "Legal"})
    ov = retry_overrides(0, ROW, settings, original)
    assert ov.card_no == "8888"
    assert ov.fields["department"] == "Legal"
    assert ov.download is False


def test_nothing_to_retry_returns_same_summary(settings, tmp_path: Path):
    summary = BatchSummary(Operation.UPDATE, attempted=1, succeeded=0,
                           errors=[ErrorRecord.create(VAULT_ERROR, "Card not found", "7", 0)])
    transport = MagicMock()
    assert retry_truncated(summary, [ROW], tmp_path, settings, transport=transport) is summary
    transport.send.assert_not_called()
