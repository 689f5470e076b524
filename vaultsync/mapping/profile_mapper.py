from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from ..models.card_profile import CardProfile
from ..models.config_models import MappingVariant, SyncRules
from ..models.override import Override
from .normalize import (
    cell_text,
    classify_mess_hall,
    clip,
    clip_profile,
    normalize_serial_date,
    normalize_vehicle_no,
    vehicle_from_mess_hall,
)

"""Row -> CardProfile mapping.

Each logical field is looked up through the variant's header synonyms (first
non-blank wins, exact header names before case-insensitive ones), normalized,
then every bounded field is clipped. The card number is only ever read from card
number columns; staff numbers are a different identifier.
"""

__all__ = [
    "CARD_NO_MAX",
    "map_row",
    "access_level_source",
    "apply_override",
]

CARD_NO_MAX = 10
DATE_ATTRS = ("dob", "joining_date", "resign_date", "expired_date")
ACCESS_ATTRS = ("access_level", "face_access_level", "lift_access_level")
# synonym keys that feed derivations instead of profile attributes
DERIVED_KEYS = ("mess_hall", "card_status")


def _lookup(row: Mapping[str, Any], names: Iterable[str]) -> str:
    names = tuple(names)
    for name in names:
        if name in row:
            text = cell_text(row[name])
            if text:
                return text
    folded: dict[str, Any] = {}
    for key, value in row.items():
        folded.setdefault(str(key).strip().lower(), value)
    for name in names:
        key = name.strip().lower()
        if key in folded:
            text = cell_text(folded[key])
            if text:
                return text
    return ""


def _access_defaults(rules: SyncRules) -> dict[str, str]:
    return {
        "access_level": rules.default_access_level,
        "face_access_level": rules.default_face_access_level,
        "lift_access_level": rules.default_lift_access_level,
    }


def map_row(row: Mapping[str, Any], variant: MappingVariant, rules: SyncRules) -> CardProfile:
    """Map one spreadsheet (or database) row to a clipped CardProfile."""
    vr = rules.variant(variant)
    values = {key: _lookup(row, names) for key, names in vr.synonyms.items()}
    mess_raw = values.pop("mess_hall", "")
    card_status = values.pop("card_status", "")

    for attr in DATE_ATTRS:
        if attr in values:
            values[attr] = normalize_serial_date(values[attr])

    # explicit AccessLevel column wins over the mess hall code
    if not values.get("access_level"):
        category = classify_mess_hall(mess_raw, exact=vr.exact_mess_hall_match)
        values["access_level"] = vr.access_level_codes.get(category or "", "")
    for attr, default in _access_defaults(rules).items():
        if not values.get(attr):
            values[attr] = default

    vehicle = values.get("vehicle_no", "")
    if not vehicle and vr.derive_vehicle_from_mess_hall:
        vehicle = vehicle_from_mess_hall(mess_raw)
    values["vehicle_no"] = normalize_vehicle_no(vehicle, rules.max_lengths.get("vehicle_no"))

    if vr.read_card_status:
        values["active_status"] = "false" if "inactive" in card_status.lower() else "true"
    if not values.get("company") and vr.default_company:
        values["company"] = vr.default_company
    values["card_no"] = clip(values.get("card_no", ""), CARD_NO_MAX)

    return clip_profile(CardProfile(**values), rules.max_lengths)


def access_level_source(row: Mapping[str, Any], variant: MappingVariant, rules: SyncRules) -> tuple[str, str]:
    """Where map_row took AccessLevel from, plus the raw mess hall text (for the audit log)."""
    vr = rules.variant(variant)
    mess_raw = _lookup(row, vr.synonyms.get("mess_hall", ()))
    if _lookup(row, vr.synonyms.get("access_level", ())):
        return "explicit_column", mess_raw
    if classify_mess_hall(mess_raw, exact=vr.exact_mess_hall_match) in vr.access_level_codes:
        return "derived_from_messhall", mess_raw
    return "default", mess_raw


def apply_override(profile: CardProfile, override: Override | None, rules: SyncRules) -> CardProfile:
    """Patch a mapped profile with a caller override, keeping mapper invariants.

    The card number is stripped and clipped, access levels fall back to their
    defaults when blanked, and every bounded field is clipped again.
    """
    if override is None:
        return profile
    changes: dict[str, str] = {attr: str(value).strip() for attr, value in override.fields.items()}
    if override.card_no is not None:
        changes["card_no"] = clip(override.card_no, CARD_NO_MAX)
    if override.download is not None:
        changes["download"] = "true" if override.download else "false"
    if "vehicle_no" in changes:
        changes["vehicle_no"] = normalize_vehicle_no(changes["vehicle_no"], rules.max_lengths.get("vehicle_no"))
    for attr, default in _access_defaults(rules).items():
        if attr in changes and not changes[attr]:
            changes[attr] = default
    if not changes:
        return profile
    return clip_profile(profile.with_values(**changes), rules.max_lengths)
