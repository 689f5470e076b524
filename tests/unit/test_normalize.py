from __future__ import annotations

from datetime import date, datetime

import pytest

from vaultsync.mapping.normalize import (
    cell_text,
    classify_mess_hall,
    clip,
    clip_profile,
    format_display_date,
    normalize_serial_date,
    normalize_vehicle_no,
    vehicle_from_mess_hall,
)
from vaultsync.models.card_profile import CardProfile
from vaultsync.models.config_models import DEFAULT_MAX_LENGTHS

"""Unit tests for cell / field normalization helpers."""


class TestCellText:
    def test_none_and_nan_are_empty(self):
        assert cell_text(None) == ""
        assert cell_text(float("nan")) == ""

    def test_integral_float_loses_decimal_part(self):
        assert cell_text(2349317840.0) == "2349317840"

    def test_non_integral_float_kept(self):
        assert cell_text(1.5) == "1.5"

    def test_strings_are_stripped(self):
        assert cell_text("  Alice  ") == "Alice"

    def test_leading_zeros_survive(self):
        assert cell_text("0012345678") == "0012345678"

    def test_bool_lowercase(self):
        assert cell_text(True) == "true"
        assert cell_text(False) == "false"

    def test_datetime_rendered_as_display_date(self):
        assert cell_text(datetime(1997, 4, 4, 0, 0)) == "4 Apr 1997"
        assert cell_text(date(2024, 12, 25)) == "25 Dec 2024"

    def test_int_rendered_as_text(self):
        assert cell_text(42) == "42"


class TestSerialDate:
    def test_serial_converted(self):
        assert normalize_serial_date("35524") == "4 Apr 1997"
        assert normalize_serial_date("35537") == "17 Apr 1997"

    def test_unix_epoch_serial(self):
        assert normalize_serial_date("25569") == "1 Jan 1970"

    def test_fractional_serial_uses_day_part(self):
        assert normalize_serial_date("35524.75") == "4 Apr 1997"

    @pytest.mark.parametrize("text", ["1990-01-02", "4 Apr 1997", "N/A", ""])
    def test_non_numeric_unchanged(self, text):
        assert normalize_serial_date(text) == text

    def test_surrounding_whitespace_stripped(self):
        assert normalize_serial_date(" 35524 ") == "4 Apr 1997"

    def test_display_date_not_zero_padded(self):
        assert format_display_date(date(2001, 2, 3)) == "3 Feb 2001"


class TestClip:
    def test_clip_to_bound(self):
        assert clip("abcdef", 3) == "abc"

    def test_clip_without_bound(self):
        assert clip("  abc  ", None) == "abc"

    def test_clip_none(self):
        assert clip(None, 5) == ""

    def test_clip_profile_bounds_listed_fields(self):
        p = CardProfile(card_no="1", name="N" * 60, city="C" * 80)
        clipped = clip_profile(p, DEFAULT_MAX_LENGTHS)
        assert clipped.name == "N" * 40
        # unlisted field untouched without a default bound
        assert clipped.city == "C" * 80

    def test_clip_profile_default_bound(self):
        p = CardProfile(card_no="1", city="C" * 80)
        assert clip_profile(p, {}, default_max=50).city == "C" * 50

    def test_clip_profile_idempotent(self):
        p = CardProfile(card_no="1", name="N" * 60, department="D" * 45, email="e" * 70)
        once = clip_profile(p, DEFAULT_MAX_LENGTHS)
        assert clip_profile(once, DEFAULT_MAX_LENGTHS) == once

    def test_clip_profile_returns_same_object_when_unchanged(self):
        p = CardProfile(card_no="1", name="Short")
        assert clip_profile(p, DEFAULT_MAX_LENGTHS) is p

    def test_clip_profile_keeps_photo(self):
        p = CardProfile(card_no="1", name="N" * 60, photo="x" * 500)
        assert clip_profile(p, DEFAULT_MAX_LENGTHS, default_max=10).photo == "x" * 500


class TestMessHall:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Makarti & Labota", "both"),
            ("11", "both"),
            ("Makarti MessHall", "makarti"),
            ("10", "makarti"),
            ("Labota Messhall", "labota"),
            ("01", "labota"),
            ("00", "no_access"),
            ("Local Hire", "no_access"),
            ("No Access", "no_access"),
            ("", None),
            ("Canteen", None),
        ],
    )
    def test_classify(self, text, expected):
        assert classify_mess_hall(text) == expected

    def test_exact_match_only_bare_names(self):
        assert classify_mess_hall("Labota", exact=True) == "labota"
        assert classify_mess_hall(" makarti ", exact=True) == "makarti"
        assert classify_mess_hall("Labota MessHall", exact=True) is None
        assert classify_mess_hall("11", exact=True) is None

    def test_vehicle_from_mess_hall(self):
        assert vehicle_from_mess_hall("Makarti") == "Makarti MessHall"
        assert vehicle_from_mess_hall("labota") == "Labota Messhall"
        assert vehicle_from_mess_hall("") == "Local Hire / No Access!!"


class TestVehicleNo:
    def test_site_names_normalized(self):
        assert normalize_vehicle_no("Makarti MessHall") == "Makarti"
        assert normalize_vehicle_no("Labota Messhall") == "Labota"
        assert normalize_vehicle_no("Local Hire / No Access!!") == "NoAccess"

    def test_plate_kept(self):
        assert normalize_vehicle_no(" B 1234 XYZ ") == "B 1234 XYZ"

    def test_clipped_to_max(self):
        assert normalize_vehicle_no("X" * 30) == "X" * 15
        assert normalize_vehicle_no("X" * 30, max_len=None) == "X" * 30

    def test_blank(self):
        assert normalize_vehicle_no("") == ""
        assert normalize_vehicle_no("  ") == ""
