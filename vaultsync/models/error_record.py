from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model and error taxonomy.

Run-level errors (missing directory / file, empty input, bad index) carry
row_index=-1 as a sentinel since no specific row can be blamed. Per-row errors
carry the zero-based index of the source row.
"""

__all__ = [
    "ErrorRecord",
    "OUTPUT_NOT_FOUND",
    "CSV_NOT_FOUND",
    "NO_ROWS",
    "CARD_NO_MISSING",
    "HTTP_ERROR",
    "VAULT_ERROR",
    "REQUEST_FAILED",
    "INDEX_OUT_OF_RANGE",
    "RECORD_NOT_FOUND",
    "FATAL_CODES",
]

# Fatal for the run
OUTPUT_NOT_FOUND = "OUTPUT_NOT_FOUND"
CSV_NOT_FOUND = "CSV_NOT_FOUND"
NO_ROWS = "NO_ROWS"
INDEX_OUT_OF_RANGE = "INDEX_OUT_OF_RANGE"
RECORD_NOT_FOUND = "RECORD_NOT_FOUND"  # single-record update: card absent from the database

# Per row
CARD_NO_MISSING = "CARD_NO_MISSING"
HTTP_ERROR = "HTTP_ERROR"
VAULT_ERROR = "VAULT_ERROR"
REQUEST_FAILED = "REQUEST_FAILED"

FATAL_CODES = frozenset({OUTPUT_NOT_FOUND, CSV_NOT_FOUND, NO_ROWS, INDEX_OUT_OF_RANGE, RECORD_NOT_FOUND})


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record.

    Attributes:
        code: Error classification in UPPER_SNAKE_CASE (see module constants)
        message: Human readable message (vendor message for VAULT_ERROR)
        card_no: Card number of the failing row, "" when unknown
        row_index: Zero-based source row index, -1 for run-level errors
        vendor_code: Vendor ErrCode when the remote side answered
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
    """
    code: str
    message: str
    card_no: str = ""
    row_index: int = -1
    vendor_code: str | None = None
    timestamp: str = ""

    @staticmethod
    def create(
        code: str,
        message: str,
        card_no: str = "",
        row_index: int = -1,
        vendor_code: str | None = None,
    ) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            code=code,
            message=message,
            card_no=card_no,
            row_index=row_index,
            vendor_code=vendor_code,
            timestamp=ts,
        )

    @property
    def is_fatal(self) -> bool:
        return self.code in FATAL_CODES

    @property
    def is_truncation(self) -> bool:
        """True when the remote side rejected the row for an over-long column."""
        return "truncated" in (self.message or "").lower()

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
