from __future__ import annotations

from pathlib import Path

import pandas as pd
from openpyxl.utils import get_column_letter

from ..models.config_models import UPDATE_SYNONYMS

"""Blank update workbook: the UpdateCard header row plus one sample row.

Headers are the preferred (first) spelling of every update column, so a filled
template maps without relying on synonym fallbacks.
"""

__all__ = ["TEMPLATE_SHEET", "DEFAULT_TEMPLATE_NAME", "template_headers", "write_update_template"]

TEMPLATE_SHEET = "UpdateCardTemplate"
DEFAULT_TEMPLATE_NAME = "UpdateCardTemplate.xlsx"

SAMPLE_ROW: dict[str, str] = {
    "card_no": "2349317840",
    "name": "JOHN DOE",
    "company": "ACME LTD",
    "staff_no": "MT123456",
    "department": "HUMAN RESOURCE",
    "title": "STAFF",
    "position": "ASSISTANT",
    "gender": "Male",
    "nric": "3174xxxxxxxx",
    "dob": "1990-01-02",
    "address1": "Jl. Example 123",
    "mobile_no": "+62 812 0000 0000",
    "joining_date": "2020-05-01",
    "race": "ASIAN",
    "card_status": "Active",
    "mess_hall": "Makarti",
    "access_level": "10",
}


def template_headers() -> list[str]:
    return [names[0] for names in UPDATE_SYNONYMS.values()]


def write_update_template(path: Path) -> Path:
    """Write the template workbook to ``path`` (parent directories are created)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    headers = template_headers()
    sample = [SAMPLE_ROW.get(attr, "") for attr in UPDATE_SYNONYMS]
    df = pd.DataFrame([sample], columns=headers, dtype=str)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=TEMPLATE_SHEET, index=False)
        ws = writer.sheets[TEMPLATE_SHEET]
        ws.auto_filter.ref = f"A1:{get_column_letter(len(headers))}1"
        for i, header in enumerate(headers, start=1):
            ws.column_dimensions[get_column_letter(i)].width = max(14, len(header) + 2)
    return path
