from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any

"""CardProfile model for the Vault card sync engine.

A CardProfile is the canonical record of one access card and its holder. Each
attribute is bound to exactly one tag of the remote CardProfile schema; the
binding and the tag order live in PROFILE_TAGS so that every envelope variant
renders fields in the same order.
"""

__all__ = [
    "CardProfile",
    "PROFILE_TAGS",
    "TAG_TO_ATTR",
    "STRING_ATTRS",
]


@dataclass(frozen=True)
class CardProfile:
    """Canonical card profile (one row ↔ one card).

    All values are strings as sent on the wire, except ``photo`` which holds the
    base64 text of the attached image or None when no photo was found.
    """
    card_no: str = ""  # CardNo, max 10, never derived from staff_no
    name: str = ""
    card_pin_no: str = ""
    card_type: str = ""
    department: str = ""
    company: str = ""
    gender: str = ""
    access_level: str = ""
    face_access_level: str = ""
    lift_access_level: str = ""
    bypass_ap: str = "false"
    active_status: str = "true"
    non_expired: str = "true"
    expired_date: str = ""
    vehicle_no: str = ""
    floor_no: str = ""
    unit_no: str = ""
    parking_no: str = ""
    staff_no: str = ""
    title: str = ""
    position: str = ""
    nric: str = ""
    passport: str = ""
    race: str = ""
    dob: str = ""
    joining_date: str = ""
    resign_date: str = ""
    address1: str = ""
    address2: str = ""
    postal_code: str = ""
    city: str = ""
    state: str = ""
    email: str = ""
    mobile_no: str = ""
    photo: str | None = None
    download: str = "true"

    @property
    def has_photo(self) -> bool:
        return bool(self.photo)

    def with_values(self, **values: Any) -> CardProfile:
        """Return a copy with the given attributes replaced."""
        return replace(self, **values)

    def field_lengths(self) -> list[tuple[str, int]]:
        """Lengths of every string field except the photo, longest first.

        Used to point at the offending columns when Vault reports truncation.
        """
        lengths = [
            (tag, len(getattr(self, attr) or ""))
            for tag, attr in PROFILE_TAGS
            if attr != "photo"
        ]
        lengths.sort(key=lambda item: item[1], reverse=True)
        return lengths

    def to_log_dict(self) -> dict[str, Any]:
        """Tag-keyed view for the structured audit log (photo replaced by its size)."""
        data: dict[str, Any] = {tag: getattr(self, attr) for tag, attr in PROFILE_TAGS if attr != "photo"}
        data["PhotoSize"] = len(self.photo) if self.photo else 0
        return data


# Remote schema order. Do not reorder: the service rejects out-of-order tags.
PROFILE_TAGS: tuple[tuple[str, str], ...] = (
    ("CardNo", "card_no"),
    ("Name", "name"),
    ("CardPinNo", "card_pin_no"),
    ("CardType", "card_type"),
    ("Department", "department"),
    ("Company", "company"),
    ("Gender", "gender"),
    ("AccessLevel", "access_level"),
    ("FaceAccessLevel", "face_access_level"),
    ("LiftAccessLevel", "lift_access_level"),
    ("BypassAP", "bypass_ap"),
    ("ActiveStatus", "active_status"),
    ("NonExpired", "non_expired"),
    ("ExpiredDate", "expired_date"),
    ("VehicleNo", "vehicle_no"),
    ("FloorNo", "floor_no"),
    ("UnitNo", "unit_no"),
    ("ParkingNo", "parking_no"),
    ("StaffNo", "staff_no"),
    ("Title", "title"),
    ("Position", "position"),
    ("NRIC", "nric"),
    ("Passport", "passport"),
    ("Race", "race"),
    ("DOB", "dob"),
    ("JoiningDate", "joining_date"),
    ("ResignDate", "resign_date"),
    ("Address1", "address1"),
    ("Address2", "address2"),
    ("PostalCode", "postal_code"),
    ("City", "city"),
    ("State", "state"),
    ("Email", "email"),
    ("MobileNo", "mobile_no"),
    ("Photo", "photo"),
    ("Download", "download"),
)

TAG_TO_ATTR: dict[str, str] = dict(PROFILE_TAGS)

# Every attribute that carries text (photo excluded)
STRING_ATTRS: tuple[str, ...] = tuple(f.name for f in fields(CardProfile) if f.name != "photo")
