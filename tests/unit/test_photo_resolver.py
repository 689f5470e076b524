from __future__ import annotations

import base64
from pathlib import Path
from unittest.mock import patch

from vaultsync.photos.resolver import find_photo, photo_candidates, photo_exists, resolve_photo

"""Unit tests for photo lookup."""


def test_candidates_order():
    assert photo_candidates("123", "S1") == [
        "123.jpg", "123.jpeg", "123.png", "S1.jpg", "S1.jpeg", "S1.png",
    ]


def test_candidates_skip_blank_keys():
    assert photo_candidates("", "S1") == ["S1.jpg", "S1.jpeg", "S1.png"]
    assert photo_candidates(" ", "") == []


def test_card_photo_preferred_over_staff_photo(tmp_path: Path):
    (tmp_path / "S1.jpg").write_bytes(b"staff")
    (tmp_path / "123.png").write_bytes(b"card")
    assert find_photo(tmp_path, "123", "S1") == tmp_path / "123.png"


def test_falls_back_to_staff_no(tmp_path: Path):
    (tmp_path / "S1.jpeg").write_bytes(b"staff")
    assert find_photo(tmp_path, "123", "S1") == tmp_path / "S1.jpeg"
    assert photo_exists(tmp_path, "123", "S1") is True


def test_missing_photo(tmp_path: Path):
    assert find_photo(tmp_path, "123", "S1") is None
    assert resolve_photo(tmp_path, "123", "S1") is None


def test_directory_named_like_photo_ignored(tmp_path: Path):
    (tmp_path / "123.jpg").mkdir()
    assert find_photo(tmp_path, "123", "") is None


def test_resolve_returns_base64(tmp_path: Path):
    (tmp_path / "123.jpg").write_bytes(b"\xff\xd8\xff\xe0jpeg")
    assert resolve_photo(tmp_path, "123", "") == base64.b64encode(b"\xff\xd8\xff\xe0jpeg").decode("ascii")


def test_unreadable_photo_treated_as_missing(tmp_path: Path):
    (tmp_path / "123.jpg").write_bytes(b"x")
    with patch.object(Path, "read_bytes", side_effect=PermissionError("denied")):
        assert resolve_photo(tmp_path, "123", "") is None
