from datetime import datetime, timedelta, timezone

from MaruLog.clock import (
    FixedClock,
    from_local_datetime,
    resolve_timezone,
    start_of_local_day,
    to_local_datetime,
    uuid_generator,
)

T0 = 1_700_000_000_000  # 2023-11-14 22:13:20 UTC


def test_fixed_clock():
    clock = FixedClock(T0)
    assert clock.now_ms() == T0
    assert clock.advance(500) == T0 + 500
    clock.set(1)
    assert clock.now_ms() == 1


def test_uuid_generator_is_unique():
    ids = {uuid_generator() for _ in range(100)}
    assert len(ids) == 100


def test_start_of_local_day_utc():
    assert start_of_local_day(T0, timezone.utc) == 1_699_920_000_000


def test_start_of_local_day_follows_zone():
    tokyo = timezone(timedelta(hours=9))
    # 22:13 UTC is already 07:13 on the 15th in UTC+9.
    expected = int(datetime(2023, 11, 15, tzinfo=tokyo).timestamp() * 1000)
    assert start_of_local_day(T0, tokyo) == expected


def test_local_datetime_round_trip():
    tz = timezone(timedelta(hours=-5))
    local = to_local_datetime(T0, tz)
    assert local.hour == 17
    assert from_local_datetime(local.replace(tzinfo=None), tz) == T0


def test_resolve_timezone(caplog):
    assert resolve_timezone(None) is None
    assert resolve_timezone("") is None
    assert resolve_timezone("Not/AZone") is None
    assert "not found" in caplog.text
