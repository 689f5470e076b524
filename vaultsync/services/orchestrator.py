from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..db.record_source import fetch_card_record
from ..excel.reader import SourceReadError, find_source_file, read_rows
from ..logging.audit_log import AuditLog
from ..mapping.profile_mapper import map_row
from ..models.config_models import MappingVariant, SyncSettings
from ..models.error_record import (
    CSV_NOT_FOUND,
    INDEX_OUT_OF_RANGE,
    NO_ROWS,
    OUTPUT_NOT_FOUND,
    RECORD_NOT_FOUND,
    ErrorRecord,
)
from ..models.job import JobRegistry
from ..models.override import Override, OverrideSet
from ..models.processing_result import BatchSummary, Operation, PreviewResult, PreviewRow
from ..photos.resolver import photo_exists
from ..soap.transport import TransportClient
from .progress import RowProgress
from .retry import retry_truncated
from .row_pipeline import RowContext, process_row, run_rows, summarize
from .summary import render_completion_message

logger = logging.getLogger(__name__)

"""Batch orchestration for card registration and update runs.

Public operations return a BatchSummary (or PreviewResult) and never raise for
data problems: missing directories, missing files, empty inputs and bad row
indexes become a summary carrying exactly one fatal error. Per-row failures are
collected and the run continues; a run succeeds only when the error list is
empty.

Overrides are accepted as an OverrideSet, or as the raw payload list
(``[{index, cardNo, downloadCard, ...}]``) the dashboard sends.
"""

__all__ = [
    "ProcessingError",
    "register_job",
    "register_file",
    "update_file",
    "update_row",
    "update_record",
    "preview_job",
    "preview_file",
]

OverridesArg = OverrideSet | Iterable[Mapping[str, Any]] | None


class ProcessingError(Exception):
    """Run-level fatal condition (converted to a one-error summary)."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def to_record(self) -> ErrorRecord:
        return ErrorRecord.create(self.code, self.message)


def _override_set(overrides: OverridesArg) -> OverrideSet:
    if isinstance(overrides, OverrideSet):
        return overrides
    return OverrideSet.from_payload(overrides)


def _load_rows(path: Path) -> list[dict[str, Any]]:
    try:
        rows = read_rows(path)
    except SourceReadError as e:
        raise ProcessingError(NO_ROWS, str(e)) from e
    if not rows:
        raise ProcessingError(NO_ROWS, "No rows found in Excel/CSV outputs.")
    return rows


def _rows_from_file(path: Path) -> list[dict[str, Any]]:
    if not path.parent.is_dir():
        raise ProcessingError(OUTPUT_NOT_FOUND, f"Output directory not found: {path.parent}")
    if not path.is_file():
        raise ProcessingError(CSV_NOT_FOUND, f"Input file not found: {path}")
    return _load_rows(path)


def _rows_from_directory(directory: Path, settings: SyncSettings) -> tuple[Path, list[dict[str, Any]]]:
    if not directory.is_dir():
        raise ProcessingError(OUTPUT_NOT_FOUND, f"Output directory not found: {directory}")
    source = find_source_file(directory, settings.sources.patterns)
    if source is None:
        raise ProcessingError(NO_ROWS, "No rows found in Excel/CSV outputs.")
    return source, _load_rows(source)


def _fatal(operation: Operation, e: ProcessingError, audit: AuditLog | None, **kw: Any) -> BatchSummary:
    logger.error(f"{e.code}: {e.message}")
    if audit is not None:
        audit.event("fatal", code=e.code, message=e.message)
    return BatchSummary.fatal(operation, e.to_record(), **kw)


def _safe_audit(directory: Path, stream: str) -> AuditLog | None:
    return AuditLog(directory, stream) if directory.is_dir() else None


@contextmanager
def _transport_scope(settings: SyncSettings, transport: TransportClient | None) -> Iterator[TransportClient]:
    """Yield the caller's transport, or a new one that is closed afterwards."""
    if transport is not None:
        yield transport
        return
    client = TransportClient(settings.endpoint.timeout_seconds)
    try:
        yield client
    finally:
        client.close()


def _run_batch(
    operation: Operation,
    variant: MappingVariant,
    rows: list[dict[str, Any]],
    directory: Path,
    settings: SyncSettings,
    overrides: OverrideSet,
    audit: AuditLog,
    *,
    label: str,
    job_id: str | None,
    transport: TransportClient,
    cancel: threading.Event | None,
) -> BatchSummary:
    ctx = RowContext(operation, variant, settings, directory, transport)
    audit.event("override_map_ready", count=len(overrides))
    audit.info(f"Override map ready: {len(overrides)} item(s)")
    with RowProgress(len(rows), description=label) as progress:
        outcomes, cancelled = run_rows(
            ctx,
            list(enumerate(rows)),
            overrides,
            audit,
            max_workers=settings.max_workers,
            cancel=cancel,
            progress=progress,
        )
    if cancelled:
        audit.event("cancelled", completed=len(outcomes), rows=len(rows))
        audit.info(f"{label} cancelled after {len(outcomes)} of {len(rows)} row(s)")
    summary = summarize(operation, outcomes, job_id=job_id, endpoint=settings.endpoint.url, cancelled=cancelled)
    audit.info(render_completion_message(summary, label))
    audit.event("complete", summary=summary.counters())
    return summary


def _start_lines(audit: AuditLog, settings: SyncSettings, action: str, **fields: Any) -> None:
    ep = settings.endpoint
    rules = settings.rules
    audit.info(f"Start endpoint={ep.url} soapVersion={ep.soap_version} soapAction={action} namespace={ep.namespace}")
    audit.info(f"Defaults: AccessLevel={rules.default_access_level} "
               f"FaceAccessLevel={rules.default_face_access_level} LiftAccessLevel={rules.default_lift_access_level}")
    audit.event("start", endpoint=ep.url, **fields)


def register_job(
    registry: JobRegistry,
    job_id: str,
    settings: SyncSettings,
    overrides: OverridesArg = None,
    *,
    transport: TransportClient | None = None,
    cancel: threading.Event | None = None,
) -> BatchSummary:
    """Register (AddCard) every row of a job's output directory."""
    job = registry.get_job(job_id)
    directory = Path(job.output_directory)
    ov = _override_set(overrides)
    if not directory.is_dir():
        e = ProcessingError(OUTPUT_NOT_FOUND, f"Output directory not found: {directory}")
        return _fatal(Operation.CREATE, e, None, job_id=job_id, endpoint=settings.endpoint.url)
    audit = AuditLog(directory, "registration")
    _start_lines(audit, settings, settings.endpoint.create_action, jobId=job_id, overridesCount=len(ov))
    try:
        source, rows = _rows_from_directory(directory, settings)
    except ProcessingError as e:
        return _fatal(Operation.CREATE, e, audit, job_id=job_id, endpoint=settings.endpoint.url)
    audit.info(f"Source file: {source.name} rows={len(rows)}")
    with _transport_scope(settings, transport) as client:
        return _run_batch(Operation.CREATE, MappingVariant.CREATE, rows, directory, settings, ov, audit,
                          label=f"Job {job_id}", job_id=job_id, transport=client, cancel=cancel)


def register_file(
    path: Path,
    settings: SyncSettings,
    overrides: OverridesArg = None,
    *,
    transport: TransportClient | None = None,
    cancel: threading.Event | None = None,
) -> BatchSummary:
    """Register every row of a spreadsheet; photos are looked up beside it."""
    path = Path(path)
    directory = path.parent
    job_id = directory.name
    ov = _override_set(overrides)
    try:
        rows = _rows_from_file(path)
    except ProcessingError as e:
        return _fatal(Operation.CREATE, e, _safe_audit(directory, "registration"),
                      job_id=job_id, endpoint=settings.endpoint.url)
    audit = AuditLog(directory, "registration")
    _start_lines(audit, settings, settings.endpoint.create_action, path=str(path), rows=len(rows),
                 overridesCount=len(ov))
    with _transport_scope(settings, transport) as client:
        return _run_batch(Operation.CREATE, MappingVariant.CREATE, rows, directory, settings, ov, audit,
                          label="CSV registration", job_id=job_id, transport=client, cancel=cancel)


def update_file(
    path: Path,
    settings: SyncSettings,
    overrides: OverridesArg = None,
    retry: bool = True,
    *,
    transport: TransportClient | None = None,
    cancel: threading.Event | None = None,
) -> BatchSummary:
    """Batch UpdateCard from a spreadsheet, then retry truncation failures once."""
    path = Path(path)
    directory = path.parent
    ov = _override_set(overrides)
    try:
        rows = _rows_from_file(path)
    except ProcessingError as e:
        return _fatal(Operation.UPDATE, e, _safe_audit(directory, "update"),
                      job_id=directory.name, endpoint=settings.endpoint.url)
    audit = AuditLog(directory, "update")
    _start_lines(audit, settings, settings.endpoint.update_action, path=str(path), rows=len(rows),
                 overridesCount=len(ov))
    with _transport_scope(settings, transport) as client:
        summary = _run_batch(Operation.UPDATE, MappingVariant.UPDATE, rows, directory, settings, ov, audit,
                             label="Update batch", job_id=directory.name, transport=client, cancel=cancel)
        if retry and summary.errors and not summary.cancelled:
            summary = retry_truncated(summary, rows, directory, settings, ov, transport=client, audit=audit)
    return summary


def update_row(
    path: Path,
    index: int,
    settings: SyncSettings,
    override: Override | Mapping[str, Any] | None = None,
    *,
    transport: TransportClient | None = None,
) -> BatchSummary:
    """UpdateCard for one zero-based row of a spreadsheet."""
    path = Path(path)
    directory = path.parent
    request_id = str(uuid.uuid4())
    kw: dict[str, Any] = {"job_id": directory.name, "endpoint": settings.endpoint.url}
    try:
        rows = _rows_from_file(path)
        if not 0 <= index < len(rows):
            raise ProcessingError(INDEX_OUT_OF_RANGE, f"Index out of range. index={index}, rows={len(rows)}")
    except ProcessingError as e:
        return _fatal(Operation.UPDATE, e, _safe_audit(directory, "update"), **kw)
    audit = AuditLog(directory, "update")
    if isinstance(override, Mapping):
        override = Override.from_dict(override)
    with _transport_scope(settings, transport) as client:
        ctx = RowContext(Operation.UPDATE, MappingVariant.UPDATE, settings, directory, client, request_id)
        outcome = process_row(ctx, index, rows[index], audit, override=override)
    summary = summarize(Operation.UPDATE, [outcome], request_id=request_id, **kw)
    audit.event("single_update_complete", requestId=request_id, index=index, summary=summary.counters())
    return summary


def update_record(
    cursor: Any,
    card_no: str,
    settings: SyncSettings,
    override: Override | Mapping[str, Any] | None = None,
    output_dir: Path | None = None,
    *,
    transport: TransportClient | None = None,
) -> BatchSummary:
    """UpdateCard for one card read from the card database.

    ``output_dir`` (optional) receives the update audit log and is searched for
    the card's photo.
    """
    card_no = (card_no or "").strip()
    request_id = str(uuid.uuid4())
    audit = AuditLog(output_dir if output_dir is not None and Path(output_dir).is_dir() else None, "update")
    kw: dict[str, Any] = {"endpoint": settings.endpoint.url}
    record = fetch_card_record(cursor, card_no, settings.database.table)
    if record is None:
        e = ProcessingError(RECORD_NOT_FOUND, f"Card not found in {settings.database.table}: {card_no}")
        return _fatal(Operation.UPDATE, e, audit, **kw)
    if isinstance(override, Mapping):
        override = Override.from_dict(override)
    # the looked-up card number stands in for a blank CardNo column
    if not map_row(record, MappingVariant.RECORD, settings.rules).card_no:
        override = Override(card_no=card_no).merged(override) if override else Override(card_no=card_no)
    directory = Path(output_dir) if output_dir is not None else None
    with _transport_scope(settings, transport) as client:
        ctx = RowContext(Operation.UPDATE, MappingVariant.RECORD, settings, directory, client, request_id)
        outcome = process_row(ctx, 0, record, audit, override=override)
    summary = summarize(Operation.UPDATE, [outcome], request_id=request_id, **kw)
    audit.event("single_update_complete", requestId=request_id, cardNo=card_no, summary=summary.counters())
    return summary


def _preview(rows: list[dict[str, Any]], directory: Path, variant: MappingVariant, settings: SyncSettings) -> PreviewResult:
    previews: list[PreviewRow] = []
    for i, row in enumerate(rows):
        profile = map_row(row, variant, settings.rules)
        previews.append(
            PreviewRow(
                row_index=i,
                card_no=profile.card_no,
                staff_no=profile.staff_no,
                name=profile.name,
                has_photo=photo_exists(directory, profile.card_no, profile.staff_no),
                profile={k: v for k, v in profile.to_log_dict().items() if k != "PhotoSize"},
            )
        )
    return PreviewResult(rows=previews)


def preview_job(registry: JobRegistry, job_id: str, settings: SyncSettings) -> PreviewResult:
    """Map a job's rows and check photo presence without calling Vault."""
    directory = Path(registry.get_job(job_id).output_directory)
    try:
        _, rows = _rows_from_directory(directory, settings)
    except ProcessingError as e:
        return PreviewResult(errors=[e.to_record()])
    return _preview(rows, directory, MappingVariant.CREATE, settings)


def preview_file(path: Path, variant: MappingVariant, settings: SyncSettings) -> PreviewResult:
    path = Path(path)
    try:
        rows = _rows_from_file(path)
    except ProcessingError as e:
        return PreviewResult(errors=[e.to_record()])
    return _preview(rows, path.parent, variant, settings)

