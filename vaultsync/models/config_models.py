from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path

"""Config dataclasses for the Vault card sync engine.

SyncRules replaces the process-wide defaults of the old registrar (fallback
access levels, max-length tables, header synonyms): it is an immutable value
handed to the mapper so tests can run alternate rule sets side by side.
"""


class MappingVariant(Enum):
    """Header synonym table used by the mapper.

    CREATE: dashboard / machine exports used for AddCard
    UPDATE: UpdateCard template (upper-case headers)
    RECORD: columns of the card database table
    """
    CREATE = "create"
    UPDATE = "update"
    RECORD = "record"


# Vault DB column widths. Exceeding them produces "String or binary data would be truncated".
DEFAULT_MAX_LENGTHS: dict[str, int] = {
    "card_no": 10,
    "name": 40,
    "department": 30,
    "company": 30,
    "title": 25,
    "position": 25,
    "address1": 50,
    "address2": 50,
    "email": 50,
    "mobile_no": 20,
    "vehicle_no": 15,
    "staff_no": 15,
}

# Second pass bounds used by the truncation retry
DEFAULT_RETRY_MAX_LENGTHS: dict[str, int] = {
    "card_no": 10,
    "name": 50,
    "department": 50,
    "company": 50,
    "title": 50,
    "position": 50,
    "address1": 50,
    "address2": 50,
    "email": 50,
    "mobile_no": 20,
    "vehicle_no": 50,
    "staff_no": 15,
}

CREATE_SYNONYMS: dict[str, tuple[str, ...]] = {
    "card_no": ("Card No #[Max 10]", "Card No [Max 10]", "Card No", "CardNo", "Card Number", "CARD NO"),
    "name": ("Card Name [Max 50]", "Card Name", "Name", "Employee Name", "Employee", "Nama"),
    "staff_no": ("Staff No [Max 15]", "Staff No. [Max 10]", "Emp. No", "Employee ID", "ID", "NIK", "Staff No"),
    "department": ("Department [Max 50]", "Department", "Departement", "Dept"),
    "company": ("Company [Max 50]", "Company"),
    "email": ("Email [Max 50]", "Email", "Email Address"),
    "mobile_no": ("Mobile No. [Max 20]", "Mobile No", "Phone"),
    "access_level": ("Access Level [Max 3]", "Access Level", "AccessLevel"),
    "face_access_level": ("Face Access Level [Max 3]", "Face Access Level", "FaceAccessLevel"),
    "lift_access_level": ("Lift Access Level [Max 3]", "Lift Access Level", "LiftAccessLevel"),
    "vehicle_no": ("Vehicle No", "VehicleNo"),
    "mess_hall": ("MessHall", "Mess Hall"),
    "gender": ("Gender",),
    "title": ("Title",),
    "position": ("Position",),
}

UPDATE_SYNONYMS: dict[str, tuple[str, ...]] = {
    "card_no": ("CARD NO", "Card No", "CardNo", "Card Number"),
    "name": ("NAME", "Name", "Card Name", "Employee Name"),
    "company": ("COMPANY", "Company"),
    "staff_no": ("STAFF ID", "Staff No", "Employee ID", "ID"),
    "department": ("DEPARTMENT", "Department"),
    "title": ("TITLE", "Title"),
    "position": ("POSITION", "Position"),
    "gender": ("GENDER", "Gender", "Gentle"),
    "nric": ("KTP/PASPORT NO", "KTP/PASSPORT NO", "NRIC/Passport", "NRIC"),
    "passport": ("PASSPORT", "Passport"),
    "dob": ("DATE OF BIRTH", "DOB"),
    "address1": ("ADDRESS", "Address"),
    "address2": ("ADDRESS 2", "Address2"),
    "email": ("EMAIL", "Email"),
    "mobile_no": ("PHONE NO", "Mobile No", "Phone"),
    "joining_date": ("DATE OF HIRE", "Joining Date"),
    "resign_date": ("WORK PERIOD END", "Resign Date"),
    "expired_date": ("EXPIRED DATE", "Expired Date"),
    "race": ("RACE", "Race"),
    "card_status": ("CARD STATUS", "Status", "STATUS"),
    "vehicle_no": ("VEHICLE NO", "Vehicle No", "VehicleNo"),
    "mess_hall": ("MESSHALL", "MessHall", "Mess Hall"),
    "access_level": ("ACCESS LEVEL", "Access Level", "AccessLevel"),
    "face_access_level": ("FACE ACCESS LEVEL", "Face Access Level", "FaceAccessLevel"),
    "lift_access_level": ("LIFT ACCESS LEVEL", "Lift Access Level", "LiftAccessLevel"),
}

RECORD_SYNONYMS: dict[str, tuple[str, ...]] = {
    "card_no": ("CardNo", "cardno", "CARDNO"),
    "name": ("Name", "NAME"),
    "department": ("Department", "DEPT", "DepartmentName"),
    "company": ("Company", "COMPANY"),
    "title": ("Title", "TITLE"),
    "position": ("Position", "POSITION"),
    "gender": ("Gentle", "Gender", "SEX"),
    "nric": ("NRIC", "IdNo"),
    "passport": ("Passport",),
    "race": ("Race",),
    "dob": ("DOB", "BirthDate"),
    "joining_date": ("JoiningDate", "JoinDate"),
    "resign_date": ("ResignDate", "ExitDate"),
    "address1": ("Address1", "Address"),
    "address2": ("Address2",),
    "email": ("Email",),
    "mobile_no": ("MobileNo", "Phone", "Contact"),
    "expired_date": ("ExpiredDate",),
    "access_level": ("AccessLevel", "MESSHALL", "Access"),
    "face_access_level": ("FaceAccessLevel",),
    "lift_access_level": ("LiftAccessLevel",),
    "vehicle_no": ("VehicleNo", "Vehicle", "Remark"),
    "staff_no": ("StaffNo", "StaffID"),
}


@dataclass(frozen=True)
class VariantRules:
    """Per-variant mapping behaviour."""
    synonyms: dict[str, tuple[str, ...]]
    access_level_codes: dict[str, str]  # mess-hall category -> AccessLevel code
    exact_mess_hall_match: bool = False  # create exports carry the bare site name
    derive_vehicle_from_mess_hall: bool = False
    read_card_status: bool = False
    default_company: str = ""


@dataclass(frozen=True)
class SyncRules:
    """Immutable normalization rule set passed into the mapper.

    max_lengths bounds every mapped profile; retry_max_lengths (plus
    retry_default_max for unlisted fields) bounds the truncation retry.
    """
    max_lengths: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_MAX_LENGTHS))
    retry_max_lengths: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_RETRY_MAX_LENGTHS))
    retry_default_max: int = 50
    default_access_level: str = "00"
    default_face_access_level: str = "00"
    default_lift_access_level: str = "00"
    variants: dict[MappingVariant, VariantRules] = field(default_factory=lambda: default_variants())

    def variant(self, variant: MappingVariant) -> VariantRules:
        return self.variants[variant]

    def with_default_company(self, variant: MappingVariant, company: str) -> SyncRules:
        variants = dict(self.variants)
        variants[variant] = replace(variants[variant], default_company=company)
        return replace(self, variants=variants)


def default_variants() -> dict[MappingVariant, VariantRules]:
    return {
        MappingVariant.CREATE: VariantRules(
            synonyms=CREATE_SYNONYMS,
            access_level_codes={"labota": "1", "makarti": "2"},
            exact_mess_hall_match=True,
        ),
        MappingVariant.UPDATE: VariantRules(
            synonyms=UPDATE_SYNONYMS,
            access_level_codes={"no_access": "00", "labota": "01", "makarti": "10", "both": "11"},
            derive_vehicle_from_mess_hall=True,
            read_card_status=True,
        ),
        MappingVariant.RECORD: VariantRules(
            synonyms=RECORD_SYNONYMS,
            access_level_codes={},
        ),
    }


@dataclass(frozen=True)
class EndpointConfig:
    """Remote SOAP endpoint settings."""
    url: str
    soap_version: str = "1.1"  # "1.1" | "1.2"
    namespace: str = "http://tempuri.org/"
    create_action: str = "WebAPI/AddCard"
    update_action: str = "WebAPI/UpdateCard"
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class DatabaseConfig:
    """Card database connection (single-record update path).

    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None
    table: str = "carddb"


@dataclass(frozen=True)
class SourceConfig:
    """Where to find input spreadsheets inside a job output directory."""
    patterns: tuple[str, ...] = ("For_Machine_*.xlsx", "CardDatafileformat_*.csv")
    jobs_root: Path = Path("./output")


@dataclass(frozen=True)
class SyncSettings:
    """Root configuration object."""
    endpoint: EndpointConfig
    rules: SyncRules = field(default_factory=SyncRules)
    sources: SourceConfig = field(default_factory=SourceConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    max_workers: int = 1  # >1 processes disjoint rows on a thread pool
