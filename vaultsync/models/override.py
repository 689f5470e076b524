from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .card_profile import STRING_ATTRS, TAG_TO_ATTR

"""Override model: caller supplied patches applied to one row's mapped profile.

Overrides are correlated with rows by zero-based index. Index correlation is
kept for compatibility with the dashboard, but it breaks silently when rows are
reordered or filtered upstream, so OverrideSet also accepts card-number keyed
overrides (matched on the card number the mapper produced).
"""

__all__ = [
    "Override",
    "OverrideSet",
]


@dataclass(frozen=True)
class Override:
    """Patch for one row.

    index: zero-based row index (None for card-number keyed overrides)
    card_no: replacement card number (None = keep mapped value)
    download: Download flag (None = keep mapped value)
    fields: other profile attributes, keyed by attribute name or envelope tag
    match_card_no: source card number this override targets (keyed mode)
    """
    index: int | None = None
    card_no: str | None = None
    download: bool | None = None
    fields: Mapping[str, str] = field(default_factory=dict)
    match_card_no: str | None = None

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> Override:
        """Build an Override from a request payload.

        Accepts the dashboard shape ``{index, cardNo, downloadCard}`` plus any
        profile field keyed by envelope tag (``Department``) or attribute name
        (``department``). Unknown keys are ignored.
        """
        index = data.get("index")
        card_no = data.get("cardNo", data.get("card_no", data.get("CardNo")))
        download = data.get("downloadCard", data.get("download", data.get("Download")))
        patch: dict[str, str] = {}
        for key, value in data.items():
            attr = _resolve_attr(key)
            if attr is None or attr in ("card_no", "download") or value is None:
                continue
            patch[attr] = str(value)
        if isinstance(download, str):
            download = download.strip().lower() in ("true", "1", "yes")
        return Override(
            index=index if isinstance(index, int) and not isinstance(index, bool) else None,
            card_no=str(card_no) if card_no is not None else None,
            download=download if isinstance(download, bool) else None,
            fields=patch,
            match_card_no=data.get("matchCardNo"),
        )

    def merged(self, other: Override) -> Override:
        """Return a copy where values set on ``other`` win."""
        patch = dict(self.fields)
        patch.update(other.fields)
        return Override(
            index=self.index if self.index is not None else other.index,
            card_no=other.card_no if other.card_no is not None else self.card_no,
            download=other.download if other.download is not None else self.download,
            fields=patch,
            match_card_no=self.match_card_no or other.match_card_no,
        )


def _resolve_attr(key: str) -> str | None:
    if key in TAG_TO_ATTR:
        return TAG_TO_ATTR[key]
    if key in STRING_ATTRS:
        return key
    return None


class OverrideSet:
    """Lookup of overrides by row index, falling back to card number."""

    def __init__(self, overrides: Iterable[Override] | None = None) -> None:
        self._by_index: dict[int, Override] = {}
        self._by_card_no: dict[str, Override] = {}
        for o in overrides or ():
            if o.index is not None:
                self._by_index[o.index] = o
            elif o.match_card_no:
                self._by_card_no[str(o.match_card_no).strip()] = o

    @staticmethod
    def from_payload(items: Iterable[Mapping[str, Any]] | None) -> OverrideSet:
        return OverrideSet(Override.from_dict(i) for i in (items or ()) if isinstance(i, Mapping))

    def lookup(self, index: int, card_no: str = "") -> Override | None:
        found = self._by_index.get(index)
        if found is None and card_no:
            found = self._by_card_no.get(card_no)
        return found

    def __len__(self) -> int:
        return len(self._by_index) + len(self._by_card_no)
