"""
Time helper tests: UTC normalization and inclusive report periods.
"""

from datetime import datetime

import pytest

from stockledger.time_utils import parse_iso_datetime, parse_period, to_utc_z, utc_day_bounds


class TestParseIsoDatetime:

    def test_offset_converted_to_utc_naive(self):
        assert parse_iso_datetime("2025-04-12T17:30:00+02:00") == datetime(2025, 4, 12, 15, 30)
        assert parse_iso_datetime("2025-04-12T15:30:00Z") == datetime(2025, 4, 12, 15, 30)

    def test_blank_is_none(self):
        assert parse_iso_datetime(None) is None
        assert parse_iso_datetime("  ") is None

    def test_bare_date_as_end_bound_covers_the_day(self):
        assert parse_iso_datetime("2025-04-12") == datetime(2025, 4, 12)
        assert parse_iso_datetime("2025-04-12", end_of_day=True) == datetime(2025, 4, 12, 23, 59, 59, 999999)

    def test_full_datetime_end_bound_unchanged(self):
        assert parse_iso_datetime("2025-04-12T10:00:00", end_of_day=True) == datetime(2025, 4, 12, 10)


class TestPeriods:

    def test_single_day_period(self):
        start, end = parse_period("2025-04-12", "2025-04-12")

        assert start == datetime(2025, 4, 12)
        assert end == datetime(2025, 4, 12, 23, 59, 59, 999999)

    @pytest.mark.parametrize("start, end", [("2025-04-13", "2025-04-12"), ("2025-02-30", None)])
    def test_reversed_or_malformed(self, start, end):
        with pytest.raises(ValueError):
            parse_period(start, end)

    def test_day_bounds(self):
        assert utc_day_bounds(datetime(2025, 4, 12, 15, 30, 12)) == (
            datetime(2025, 4, 12),
            datetime(2025, 4, 12, 23, 59, 59, 999999),
        )

    def test_to_utc_z(self):
        assert to_utc_z(datetime(2025, 4, 12, 15, 30, 12, 500)) == "2025-04-12T15:30:12Z"
        assert to_utc_z(None) is None
