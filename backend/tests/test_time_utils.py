# Overview: Pytest coverage for the naive-UTC time helpers.

from datetime import datetime, timedelta, timezone

from parkcore.time_utils import month_start, parse_iso_datetime, to_utc_z


class TestTimeHelpers:

    def test_offsets_are_converted_to_naive_utc(self):
        assert parse_iso_datetime("2026-10-19T12:00:00Z") == datetime(2026, 10, 19, 12, 0)
        assert parse_iso_datetime("2026-10-19T09:00:00-03:00") == datetime(2026, 10, 19, 12, 0)
        assert parse_iso_datetime("2026-10-19T12:00") == datetime(2026, 10, 19, 12, 0)

    def test_blank_is_none(self):
        assert parse_iso_datetime(None) is None
        assert parse_iso_datetime("  ") is None

    def test_to_utc_z(self):
        assert to_utc_z(datetime(2026, 10, 19, 12, 0, 5, 999)) == "2026-10-19T12:00:05Z"
        aware = datetime(2026, 10, 19, 9, 0, tzinfo=timezone(timedelta(hours=-3)))
        assert to_utc_z(aware) == "2026-10-19T12:00:00Z"
        assert to_utc_z(None) is None

    def test_month_start(self):
        assert month_start(datetime(2026, 10, 19, 15, 30, 1, 7)) == datetime(2026, 10, 1)
