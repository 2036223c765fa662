from datetime import UTC, datetime, timedelta, timezone

from finwrk.app.core.time import ensure_utc, utc_now


def test_utc_now_is_timezone_aware_utc():
    value = utc_now()
    assert value.tzinfo is UTC


def test_ensure_utc_handles_naive_and_offset_values():
    assert ensure_utc(None) is None
    naive = datetime(2030, 1, 1, 10, 0, 0)
    assert ensure_utc(naive) == datetime(2030, 1, 1, 10, 0, 0, tzinfo=UTC)
    shifted = datetime(2030, 1, 1, 12, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    assert ensure_utc(shifted) == datetime(2030, 1, 1, 10, 0, 0, tzinfo=UTC)
    assert ensure_utc(shifted).tzinfo is UTC
