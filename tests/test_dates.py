from datetime import datetime, timezone, timedelta

from dates import UNKNOWN_TIME, is_unknown_time, parse_atom_time, parse_rss_time


def test_parse_rss_date_without_weekday():
    parsed = parse_rss_time("17 Nov 2025 00:00:00 +0000")

    assert parsed == datetime(2025, 11, 17, tzinfo=timezone.utc)


def test_parse_rss_date_with_weekday_and_offset():
    parsed = parse_rss_time("Sat, 15 Nov 2025 16:00:00 +0100")

    assert parsed == datetime(2025, 11, 15, 15, 0, tzinfo=timezone.utc)
    assert parsed.utcoffset() == timedelta(hours=1)


def test_parse_rss_date_with_named_zone():
    parsed = parse_rss_time("Mon, 06 Oct 2025 12:30:00 GMT")

    assert parsed == datetime(2025, 10, 6, 12, 30, tzinfo=timezone.utc)


def test_parse_atom_date_with_z_suffix():
    parsed = parse_atom_time("2025-10-06T12:30:00Z")

    assert parsed == datetime(2025, 10, 6, 12, 30, tzinfo=timezone.utc)


def test_parse_atom_date_with_fraction_and_offset():
    parsed = parse_atom_time("2025-10-06T14:30:00.250+02:00")

    assert parsed == datetime(2025, 10, 6, 12, 30, 0, 250000, tzinfo=timezone.utc)


def test_naive_atom_date_is_treated_as_utc():
    parsed = parse_atom_time("2025-10-06T12:30:00")

    assert parsed.tzinfo is not None
    assert parsed == datetime(2025, 10, 6, 12, 30, tzinfo=timezone.utc)


def test_missing_and_garbage_dates_are_unknown():
    for value in (None, "", "   ", "not a date", "yesterday-ish"):
        assert parse_rss_time(value) == UNKNOWN_TIME
        assert parse_atom_time(value) == UNKNOWN_TIME


def test_is_unknown_time():
    assert is_unknown_time(UNKNOWN_TIME)
    assert is_unknown_time(None)
    assert not is_unknown_time(datetime(2025, 1, 1, tzinfo=timezone.utc))
