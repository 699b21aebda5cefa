from datetime import datetime, timedelta, timezone

from datetime_utils import UTC, ensure_utc, from_ms, now_ms, to_rfc3339_utc


def test_now_ms_is_epoch_milliseconds():
    before = int(datetime.now(UTC).timestamp() * 1000)
    value = now_ms()
    after = int(datetime.now(UTC).timestamp() * 1000)
    assert before - 1 <= value <= after + 1


def test_from_ms_round_trips_to_utc():
    moment = from_ms(1_700_000_000_123)
    assert moment.tzinfo is UTC
    assert moment == datetime(2023, 11, 14, 22, 13, 20, 123000, tzinfo=UTC)
    assert from_ms(None) is None


def test_ensure_utc_handles_naive_and_offset():
    assert ensure_utc(datetime(2024, 1, 1, 12)).tzinfo is UTC
    shifted = datetime(2024, 1, 1, 15, tzinfo=timezone(timedelta(hours=3)))
    assert ensure_utc(shifted) == datetime(2024, 1, 1, 12, tzinfo=UTC)


def test_to_rfc3339_utc_uses_z_suffix():
    assert to_rfc3339_utc(from_ms(1_700_000_000_999)) == "2023-11-14T22:13:20Z"
    assert to_rfc3339_utc(None) is None
