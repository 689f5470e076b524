from __future__ import annotations

from ..models.processing_result import BatchSummary

"""SUMMARY line rendering.

Format:
    SUMMARY rows=<attempted> succeeded=<n> failed=<n> with_photo=<n> without_photo=<n> errors=<n>

``failed`` counts rows that were attempted and did not succeed; ``errors``
counts every error record (run-level errors included).
"""

__all__ = [
    "render_summary_line",
    "render_completion_message",
]


def render_summary_line(summary: BatchSummary) -> str:
    """Render the SUMMARY line for a finished run.

    Examples:
        >>> from vaultsync.models.processing_result import BatchSummary, Operation
        >>> render_summary_line(BatchSummary(Operation.CREATE, attempted=3, succeeded=2, with_photo=1, without_photo=2))
        'SUMMARY rows=3 succeeded=2 failed=1 with_photo=1 without_photo=2 errors=0'
    """
    failed = max(summary.attempted - summary.succeeded, 0)
    return (
        f"SUMMARY rows={summary.attempted} "
        f"succeeded={summary.succeeded} "
        f"failed={failed} "
        f"with_photo={summary.with_photo} "
        f"without_photo={summary.without_photo} "
        f"errors={len(summary.errors)}"
    )


def render_completion_message(summary: BatchSummary, label: str) -> str:
    """Audit text line written when a run finishes."""
    verb = "Registered" if summary.operation.value == "create" else "Updated"
    return (
        f"{label} complete: Attempted={summary.attempted}, {verb}={summary.succeeded}, "
        f"WithPhoto={summary.with_photo}, WithoutPhoto={summary.without_photo}, "
        f"Errors={len(summary.errors)}"
    )
