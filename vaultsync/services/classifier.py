from __future__ import annotations

from dataclasses import dataclass

from ..models.error_record import HTTP_ERROR, VAULT_ERROR
from ..models.processing_result import Operation
from ..soap.transport import SoapResponse

"""Vendor response classification.

Create and update use different success rules and that asymmetry is part of
the remote contract:

    create: HTTP 2xx and ErrCode numerically 0 or 1 (1 = card already present)
    update: HTTP 2xx and ErrCode absent/empty or exactly "0"
"""

__all__ = [
    "Classification",
    "classify",
]


@dataclass(frozen=True)
class Classification:
    success: bool
    code: str | None  # None on success, else HTTP_ERROR / VAULT_ERROR
    message: str


def _numeric(code: str | None) -> float | None:
    if code is None or not code.strip():
        return None
    try:
        return float(code)
    except ValueError:
        return None


def _vendor_success(operation: Operation, code: str | None) -> bool:
    if operation is Operation.CREATE:
        return _numeric(code) in (0.0, 1.0)
    return code is None or code.strip() in ("", "0")


def classify(operation: Operation, response: SoapResponse) -> Classification:
    if not response.http_ok:
        return Classification(False, HTTP_ERROR, f"HTTP {response.http_status}")
    if _vendor_success(operation, response.vendor_code):
        return Classification(True, None, response.vendor_message or "OK")
    return Classification(False, VAULT_ERROR, response.vendor_message or "Unknown error")
