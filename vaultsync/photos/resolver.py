from __future__ import annotations

import base64
import logging
from pathlib import Path

"""Photo lookup inside a job output directory.

Candidates are tried in order: ``{card}.jpg``, ``{card}.jpeg``, ``{card}.png``,
then the same three names for the staff number. Blank keys are skipped.
"""

__all__ = [
    "PHOTO_EXTENSIONS",
    "photo_candidates",
    "find_photo",
    "resolve_photo",
    "photo_exists",
]

logger = logging.getLogger(__name__)

PHOTO_EXTENSIONS = (".jpg", ".jpeg", ".png")


def photo_candidates(card_no: str, staff_no: str) -> list[str]:
    names: list[str] = []
    for key in (card_no, staff_no):
        key = (key or "").strip()
        if key:
            names.extend(f"{key}{ext}" for ext in PHOTO_EXTENSIONS)
    return names


def find_photo(directory: Path, card_no: str, staff_no: str) -> Path | None:
    for name in photo_candidates(card_no, staff_no):
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def photo_exists(directory: Path, card_no: str, staff_no: str) -> bool:
    return find_photo(directory, card_no, staff_no) is not None


def resolve_photo(directory: Path, card_no: str, staff_no: str) -> str | None:
    """Base64 text of the first matching photo, or None.

    An unreadable file is treated as a missing photo (logged as a warning).
    """
    path = find_photo(directory, card_no, staff_no)
    if path is None:
        return None
    try:
        data = path.read_bytes()
    except OSError as e:
        logger.warning(f"photo unreadable: {path.name} ({e})")
        return None
    return base64.b64encode(data).decode("ascii")
