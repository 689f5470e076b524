from __future__ import annotations

import math
import re
from collections.abc import Mapping
from datetime import date, datetime, timedelta
from typing import Any

import pandas as pd

from ..models.card_profile import STRING_ATTRS, CardProfile

"""Cell and field normalization helpers used by the profile mapper.

All helpers are pure and never raise on odd input; unparseable values pass
through as their stripped text.
"""

__all__ = [
    "cell_text",
    "clip",
    "clip_profile",
    "format_display_date",
    "normalize_serial_date",
    "classify_mess_hall",
    "vehicle_from_mess_hall",
    "normalize_vehicle_no",
]

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# Spreadsheet serial day 25569 is 1970-01-01 (day 0 is 1899-12-30)
UNIX_EPOCH_SERIAL = 25569
_EPOCH = datetime(1970, 1, 1)
_SERIAL_RE = re.compile(r"^\d+(\.\d+)?$")

# Mess hall categories
BOTH = "both"
MAKARTI = "makarti"
LABOTA = "labota"
NO_ACCESS = "no_access"


def format_display_date(value: date) -> str:
    """``D Mon YYYY`` without zero padding (``4 Apr 1997``)."""
    return f"{value.day} {MONTHS[value.month - 1]} {value.year}"


def cell_text(value: Any) -> str:
    """Render a raw cell as stripped text.

    None / NaN / NaT -> "", integral floats -> integer text (Excel hands card
    numbers back as 2349317840.0), datetimes -> display date.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if pd.api.types.is_scalar(value) and pd.isna(value):
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date)):
        return format_display_date(value)
    return str(value).strip()


def clip(value: str | None, max_len: int | None) -> str:
    text = (value or "").strip()
    if max_len is not None and len(text) > max_len:
        return text[:max_len]
    return text


def clip_profile(
    profile: CardProfile,
    max_lengths: Mapping[str, int],
    default_max: int | None = None,
) -> CardProfile:
    """Clip string fields of ``profile``.

    Fields listed in ``max_lengths`` use their bound; when ``default_max`` is
    given every other string field is bounded by it too.
    """
    changes: dict[str, str] = {}
    for attr in STRING_ATTRS:
        bound = max_lengths.get(attr, default_max)
        if bound is None:
            continue
        current = getattr(profile, attr)
        clipped = clip(current, bound)
        if clipped != current:
            changes[attr] = clipped
    return profile.with_values(**changes) if changes else profile


def normalize_serial_date(text: str) -> str:
    """Convert a spreadsheet serial (``35524``) to ``4 Apr 1997``.

    Non-numeric text is returned stripped and unchanged.
    """
    text = (text or "").strip()
    if not _SERIAL_RE.match(text):
        return text
    try:
        converted = _EPOCH + timedelta(days=float(text) - UNIX_EPOCH_SERIAL)
    except OverflowError:
        return text
    return format_display_date(converted)


def classify_mess_hall(text: str, exact: bool = False) -> str | None:
    """Map a mess hall cell to ``both`` / ``makarti`` / ``labota`` / ``no_access``.

    Accepts site names (substring match) or the two-digit codes 11/10/01/00.
    With ``exact`` only the bare site names are recognised. Blank or
    unrecognised text returns None.
    """
    raw = (text or "").strip()
    if not raw:
        return None
    lower = raw.lower()
    if exact:
        if lower == LABOTA:
            return LABOTA
        if lower == MAKARTI:
            return MAKARTI
        return None
    digits = re.sub(r"[^01]", "", raw)
    if digits == "11" or (MAKARTI in lower and LABOTA in lower):
        return BOTH
    if digits == "10" or MAKARTI in lower:
        return MAKARTI
    if digits == "01" or LABOTA in lower:
        return LABOTA
    if digits == "00" or "no access" in lower or "local hire" in lower:
        return NO_ACCESS
    return None


def vehicle_from_mess_hall(text: str) -> str:
    """Display value historically stored in VehicleNo for a mess hall cell."""
    lower = (text or "").lower()
    if MAKARTI in lower:
        return "Makarti MessHall"
    if LABOTA in lower:
        return "Labota Messhall"
    return "Local Hire / No Access!!"


def normalize_vehicle_no(value: str, max_len: int | None = 15) -> str:
    text = (value or "").strip()
    if not text:
        return ""
    lower = text.lower()
    if MAKARTI in lower:
        text = "Makarti"
    elif LABOTA in lower:
        text = "Labota"
    elif "local" in lower or "no access" in lower:
        text = "NoAccess"
    return clip(text, max_len)
