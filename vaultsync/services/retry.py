from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import replace
from pathlib import Path
from typing import Any

from ..logging.audit_log import AuditLog
from ..mapping.normalize import clip_profile
from ..mapping.profile_mapper import apply_override, map_row
from ..models.card_profile import STRING_ATTRS
from ..models.config_models import MappingVariant, SyncSettings
from ..models.error_record import ErrorRecord
from ..models.override import Override, OverrideSet
from ..models.processing_result import BatchSummary, Operation
from ..soap.transport import TransportClient
from .row_pipeline import RowContext, RowOutcome, process_row

"""Truncation retry for batch updates.

After a full pass, every row whose error message mentions "truncated" is
re-mapped from its source row, every string field is clipped to the retry
bounds (``rules.retry_max_lengths``, ``rules.retry_default_max`` for fields
not listed), and the row is resubmitted once as a single-row update. The
caller's own override for the row is kept on top of the clipped fields, and the
Download flag resolved in the first pass is carried over.
"""

__all__ = [
    "retry_overrides",
    "retry_truncated",
]

logger = logging.getLogger(__name__)


def retry_overrides(
    index: int,
    row: Mapping[str, Any],
    settings: SyncSettings,
    original: Override | None,
) -> Override:
    """Override used to resubmit one truncated row."""
    rules = settings.rules
    base = map_row(row, MappingVariant.UPDATE, rules)
    resolved = apply_override(base, original, rules)
    clipped = clip_profile(base, rules.retry_max_lengths, rules.retry_default_max)
    patch = Override(
        index=index,
        fields={a: getattr(clipped, a) for a in STRING_ATTRS if a not in ("card_no", "download")},
    )
    merged = patch.merged(original) if original is not None else patch
    # clip the caller's values with the retry bounds too
    fields = {
        a: v[: rules.retry_max_lengths.get(a, rules.retry_default_max)]
        for a, v in merged.fields.items()
    }
    return replace(merged, index=index, fields=fields, download=resolved.download == "true")


def retry_truncated(
    summary: BatchSummary,
    rows: Sequence[Mapping[str, Any]],
    directory: Path,
    settings: SyncSettings,
    overrides: OverrideSet | None = None,
    *,
    transport: TransportClient | None = None,
    audit: AuditLog | None = None,
) -> BatchSummary:
    """Retry truncation failures once; returns a new summary.

    Retried rows that succeed leave the error list and count as succeeded;
    rows that fail again keep only their latest error. Errors stay ordered by
    row index.
    """
    targets = sorted(
        {e.row_index for e in summary.errors if e.is_truncation and 0 <= e.row_index < len(rows)}
    )
    if not targets:
        return summary

    audit = audit or AuditLog(directory, "update")
    overrides = overrides or OverrideSet()
    client = transport or TransportClient(settings.endpoint.timeout_seconds)
    ctx = RowContext(Operation.UPDATE, MappingVariant.UPDATE, settings, directory, client)
    audit.info(f"Auto-retry: trimming long fields for {len(targets)} row(s) and retrying...")
    audit.event("retry_start", indexes=targets)

    retried: dict[int, RowOutcome] = {}
    try:
        for index in targets:
            row = rows[index]
            card_hint = map_row(row, MappingVariant.UPDATE, settings.rules).card_no
            ov = retry_overrides(index, row, settings, overrides.lookup(index, card_hint))
            outcome = process_row(ctx, index, row, audit, override=ov)
            retried[index] = outcome
            status = "SUCCESS" if outcome.result.success else "FAILED"
            audit.info(f"Retry row {index}: {status} cardNo={outcome.result.card_no} "
                       f"message={(outcome.result.response_message or '-').strip()}")
    finally:
        if transport is None:
            client.close()

    errors: list[ErrorRecord] = []
    for e in summary.errors:
        if e.row_index in retried:
            continue
        errors.append(e)
    errors.extend(o.error for o in retried.values() if o.error is not None)
    errors.sort(key=lambda e: e.row_index)

    results = [retried[r.row_index].result if r.row_index in retried else r for r in summary.results]
    recovered = sum(1 for o in retried.values() if o.result.success)
    audit.event("retry_complete", retried=len(retried), recovered=recovered)
    logger.debug(f"retry recovered {recovered}/{len(retried)} row(s)")
    return replace(summary, succeeded=summary.succeeded + recovered, errors=errors, results=results)
