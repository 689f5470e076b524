from __future__ import annotations

import threading
import time
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from ..logging.audit_log import AuditBuffer, AuditLog, console_snippet
from ..mapping.profile_mapper import access_level_source, apply_override, map_row
from ..models.card_profile import CardProfile
from ..models.config_models import MappingVariant, SyncSettings
from ..models.error_record import CARD_NO_MISSING, REQUEST_FAILED, ErrorRecord
from ..models.override import Override, OverrideSet
from ..models.processing_result import BatchSummary, Operation, OperationResult
from ..photos.resolver import photo_candidates, resolve_photo
from ..soap.envelope import CreateCardRequest, UpdateCardRequest, build_envelope, redact_envelope
from ..soap.transport import (
    CREATE_IDENTIFIER_TAGS,
    UPDATE_IDENTIFIER_TAGS,
    TransportClient,
    TransportError,
)
from .classifier import classify
from .progress import RowProgress

"""Per-row pipeline shared by the batch orchestrator and the retry pass.

    map -> override -> validate -> photo -> envelope -> send -> classify -> record

A row never raises for data or network problems; every outcome is an
OperationResult plus an optional ErrorRecord. Each row records its audit
entries into its own AuditBuffer; run_rows() flushes the buffers in row order
whether rows ran sequentially or on a thread pool.
"""

__all__ = [
    "AuditSink",
    "RowContext",
    "RowOutcome",
    "process_row",
    "run_rows",
    "summarize",
]

FIELD_SUMMARY_TOP = 8


class AuditSink(Protocol):
    def info(self, message: str) -> None: ...

    def event(self, event: str, **fields: Any) -> None: ...


@dataclass(frozen=True)
class RowContext:
    """Run-wide constants handed to every row."""
    operation: Operation
    variant: MappingVariant
    settings: SyncSettings
    directory: Path | None  # photo lookup, None = no photos
    transport: TransportClient
    request_id: str | None = None

    @property
    def action(self) -> str:
        ep = self.settings.endpoint
        return ep.create_action if self.operation is Operation.CREATE else ep.update_action

    @property
    def identifier_tags(self) -> tuple[str, ...]:
        return CREATE_IDENTIFIER_TAGS if self.operation is Operation.CREATE else UPDATE_IDENTIFIER_TAGS

    @property
    def op_name(self) -> str:
        return "AddCard" if self.operation is Operation.CREATE else "UpdateCard"

    def label(self, index: int) -> str:
        return f"Row {index} [{self.request_id}]" if self.request_id else f"Row {index}"


@dataclass(frozen=True)
class RowOutcome:
    result: OperationResult
    error: ErrorRecord | None
    profile: CardProfile  # as submitted, photo stripped
    photo_checked: bool  # False when the row stopped before the photo lookup


def _build_request(ctx: RowContext, profile: CardProfile) -> CreateCardRequest | UpdateCardRequest:
    if ctx.operation is Operation.CREATE:
        return CreateCardRequest(profile)
    return UpdateCardRequest(profile.card_no, profile)


def process_row(
    ctx: RowContext,
    index: int,
    row: Mapping[str, Any],
    audit: AuditSink,
    override: Override | None = None,
    overrides: OverrideSet | None = None,
) -> RowOutcome:
    """Run one row through the pipeline.

    An explicit ``override`` wins; otherwise ``overrides`` is consulted by row
    index, then by the mapped card number.
    """
    rules = ctx.settings.rules
    label = ctx.label(index)
    started = time.monotonic()

    profile = map_row(row, ctx.variant, rules)
    audit.event("row_mapped", index=index, requestId=ctx.request_id, cardNo=profile.card_no,
                staffNo=profile.staff_no, name=profile.name)
    source, mess_raw = access_level_source(row, ctx.variant, rules)
    audit.event("row_access_level_resolved", index=index, cardNo=profile.card_no,
                accessLevel=profile.access_level, faceAccessLevel=profile.face_access_level,
                liftAccessLevel=profile.lift_access_level, source=source, messRaw=mess_raw)
    mess_note = f" mess='{mess_raw}'" if mess_raw else ""
    audit.info(f"{label}: AccessLevel={profile.access_level} Face={profile.face_access_level} "
               f"Lift={profile.lift_access_level} source={source}{mess_note}")

    if override is None and overrides is not None:
        override = overrides.lookup(index, profile.card_no)
    if override is not None:
        profile = apply_override(profile, override, rules)
        audit.event("override_applied", index=index, cardNo=profile.card_no, download=profile.download)
        audit.info(f"{label}: override applied, CardNo={profile.card_no}, Download={profile.download}")

    if not profile.card_no:
        message = "Card No is required"
        audit.event("card_no_missing", index=index, name=profile.name)
        audit.info(f"{label}: Card No missing for name='{profile.name}'")
        return RowOutcome(
            result=OperationResult(index, "", profile.name, False, CARD_NO_MISSING, message, False),
            error=ErrorRecord.create(CARD_NO_MISSING, message, row_index=index),
            profile=profile,
            photo_checked=False,
        )

    candidates = photo_candidates(profile.card_no, profile.staff_no)
    photo = resolve_photo(ctx.directory, profile.card_no, profile.staff_no) if ctx.directory else None
    profile = profile.with_values(photo=photo)
    audit.event("photo_attach_result", index=index, candidates=candidates, hasPhoto=profile.has_photo,
                photoSize=len(photo) if photo else 0)

    envelope = build_envelope(_build_request(ctx, profile), ctx.settings.endpoint.namespace,
                              ctx.settings.endpoint.soap_version)
    submitted = profile.with_values(photo=None)
    audit.info(f"{label}: POST {ctx.op_name} cardNo={profile.card_no} name='{profile.name}'")
    audit.event("soap_request", index=index, cardNo=profile.card_no, name=profile.name,
                envelope=redact_envelope(envelope))
    if ctx.request_id:
        audit.info(f"{label}: SOAP request envelope: {console_snippet(redact_envelope(envelope), 1200)}")

    try:
        resp = ctx.transport.send(ctx.settings.endpoint.url, envelope, ctx.settings.endpoint.soap_version,
                                  ctx.action, ctx.identifier_tags)
    except TransportError as e:
        audit.event("error", index=index, cardNo=profile.card_no, message=str(e))
        audit.info(f"{label}: REQUEST_FAILED for cardNo={profile.card_no} message={e}")
        return RowOutcome(
            result=OperationResult(index, profile.card_no, profile.name, profile.has_photo,
                                   REQUEST_FAILED, str(e), False),
            error=ErrorRecord.create(REQUEST_FAILED, str(e), profile.card_no, index),
            profile=submitted,
            photo_checked=True,
        )

    audit.event("soap_response", index=index, httpStatus=resp.http_status, errCode=resp.vendor_code,
                errMessage=resp.vendor_message, identifier=resp.identifier, raw=resp.raw_body)
    audit.info(f"{label}: Resp HTTP={resp.http_status} ErrCode={resp.vendor_code or '-'} "
               f"ErrMessage={resp.vendor_message or '-'} ID={resp.identifier or '-'}")
    snippet = console_snippet(resp.raw_body)
    if snippet:
        audit.info(f"{label}: SOAP raw: {snippet}")

    verdict = classify(ctx.operation, resp)
    error = None
    if not verdict.success:
        error = ErrorRecord.create(verdict.code or "", verdict.message, profile.card_no, index, resp.vendor_code)
        if error.is_truncation:
            lengths = submitted.field_lengths()
            top = " ".join(f"{tag}={n}" for tag, n in lengths[:FIELD_SUMMARY_TOP])
            audit.event("field_length_summary", index=index, cardNo=profile.card_no, summary=lengths[:20])
            audit.info(f"{label}: Field length summary (top): {top}")

    duration_ms = int((time.monotonic() - started) * 1000)
    audit.event("row_complete", index=index, cardNo=profile.card_no, accessLevel=profile.access_level,
                success=verdict.success, durationMs=duration_ms)
    audit.info(f"{label}: {'SUCCESS' if verdict.success else 'FAILED'} cardNo={profile.card_no} "
               f"code={resp.vendor_code or '-'} msg={verdict.message} ({duration_ms}ms)")
    return RowOutcome(
        result=OperationResult(index, profile.card_no, profile.name, profile.has_photo, resp.vendor_code,
                               resp.vendor_message, verdict.success, resp.identifier, resp.http_status),
        error=error,
        profile=submitted,
        photo_checked=True,
    )


def run_rows(
    ctx: RowContext,
    rows: Sequence[tuple[int, Mapping[str, Any]]],
    overrides: OverrideSet,
    audit: AuditLog,
    *,
    max_workers: int = 1,
    cancel: threading.Event | None = None,
    progress: RowProgress | None = None,
) -> tuple[list[RowOutcome], bool]:
    """Process ``(index, row)`` pairs; outcomes come back in input order.

    Returns the outcomes of completed rows and whether the run was cancelled
    before every row started.
    """

    def task(index: int, row: Mapping[str, Any]) -> tuple[RowOutcome, AuditBuffer] | None:
        if cancel is not None and cancel.is_set():
            return None
        buf = AuditBuffer()
        outcome = process_row(ctx, index, row, buf, overrides=overrides)
        if progress is not None:
            progress.row_done(outcome.result.success)
        return outcome, buf

    outcomes: list[RowOutcome] = []
    skipped = False
    if max_workers <= 1 or len(rows) <= 1:
        for index, row in rows:
            done = task(index, row)
            if done is None:
                skipped = True
                break
            done[1].flush(audit)
            outcomes.append(done[0])
        return outcomes, skipped

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="vaultsync-row") as pool:
        futures = [pool.submit(task, index, row) for index, row in rows]
        for fut in futures:
            done = fut.result()
            if done is None:
                skipped = True
                continue
            done[1].flush(audit)
            outcomes.append(done[0])
    return outcomes, skipped


def summarize(
    operation: Operation,
    outcomes: Sequence[RowOutcome],
    *,
    job_id: str | None = None,
    endpoint: str | None = None,
    request_id: str | None = None,
    cancelled: bool = False,
) -> BatchSummary:
    checked = [o for o in outcomes if o.photo_checked]
    with_photo = sum(1 for o in checked if o.result.has_photo)
    return BatchSummary(
        operation=operation,
        attempted=len(outcomes),
        succeeded=sum(1 for o in outcomes if o.result.success),
        with_photo=with_photo,
        without_photo=len(checked) - with_photo,
        errors=[o.error for o in outcomes if o.error is not None],
        results=[o.result for o in outcomes],
        job_id=job_id,
        endpoint=endpoint,
        request_id=request_id,
        cancelled=cancelled,
    )
