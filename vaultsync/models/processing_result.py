from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .error_record import ErrorRecord

"""Processing result models for the card sync engine.

OperationResult is the per-row outcome, BatchSummary the terminal artifact of a
run. Both are built once and never mutated; the retry pass produces a new
BatchSummary.
"""

__all__ = [
    "Operation",
    "OperationResult",
    "BatchSummary",
    "PreviewRow",
    "PreviewResult",
]


class Operation(Enum):
    """Remote operation driven by a run.

    CREATE registers new cards (AddCard), UPDATE rewrites existing ones
    (UpdateCard). The two differ in envelope shape and success rule.
    """
    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class OperationResult:
    """Outcome of one row."""
    row_index: int
    card_no: str
    name: str
    has_photo: bool
    response_code: str | None  # vendor ErrCode, or the error code when no call was made
    response_message: str | None
    success: bool
    identifier: str | None = None  # CardID / MediaID echoed by Vault
    http_status: int | None = None


@dataclass(frozen=True)
class BatchSummary:
    """Aggregated results of a run (create, update, single row or single record).

    A run is successful only when ``errors`` is empty; some rows succeeding does
    not make a run successful.
    """
    operation: Operation
    attempted: int = 0
    succeeded: int = 0
    with_photo: int = 0
    without_photo: int = 0
    errors: list[ErrorRecord] = field(default_factory=list)
    results: list[OperationResult] = field(default_factory=list)
    job_id: str | None = None
    endpoint: str | None = None
    request_id: str | None = None
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def failed(self) -> int:
        return len(self.errors)

    @staticmethod
    def fatal(
        operation: Operation,
        error: ErrorRecord,
        *,
        job_id: str | None = None,
        endpoint: str | None = None,
    ) -> BatchSummary:
        """Zero-attempt summary carrying a single run-level error."""
        return BatchSummary(
            operation=operation,
            errors=[error],
            job_id=job_id,
            endpoint=endpoint,
        )

    def counters(self) -> dict[str, int]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "withPhoto": self.with_photo,
            "withoutPhoto": self.without_photo,
            "errors": len(self.errors),
        }


@dataclass(frozen=True)
class PreviewRow:
    """Mapped row shown before submission (no network call made)."""
    row_index: int
    card_no: str
    staff_no: str
    name: str
    has_photo: bool
    profile: dict[str, str] = field(default_factory=dict)  # tag-keyed, photo excluded


@dataclass(frozen=True)
class PreviewResult:
    rows: list[PreviewRow] = field(default_factory=list)
    errors: list[ErrorRecord] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors
