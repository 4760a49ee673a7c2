from datetime import datetime, timedelta

import pytest
import pytz

from fieldcrm.services.quiet_hours import (
    is_hour_in_window,
    is_quiet_hours,
    local_time_to_utc_naive,
    next_allowed_send,
    next_allowed_send_naive,
    quiet_hours_debug_info,
    to_local,
)

CHICAGO = pytz.timezone("America/Chicago")


def utc(*args) -> datetime:
    return pytz.utc.localize(datetime(*args))


@pytest.mark.parametrize(
    "instant,expected",
    [
        (utc(2024, 7, 15, 13, 0, 0), False),  # 08:00:00 CDT
        (utc(2024, 7, 15, 12, 59, 59), True),  # 07:59:59 CDT
        (utc(2024, 7, 16, 2, 0, 0), True),  # 21:00:00 CDT
        (utc(2024, 7, 16, 1, 59, 59), False),  # 20:59:59 CDT
        (utc(2024, 1, 15, 14, 0, 0), False),  # 08:00:00 CST
        (utc(2024, 1, 15, 13, 59, 59), True),  # 07:59:59 CST
    ],
)
def test_window_boundaries(instant, expected):
    assert is_quiet_hours(instant) is expected


def test_naive_datetime_is_treated_as_utc():
    assert is_quiet_hours(datetime(2024, 7, 16, 2, 0, 0)) is True
    assert is_quiet_hours(datetime(2024, 7, 15, 18, 0, 0)) is False


def test_not_quiet_returns_now_unchanged():
    now = utc(2024, 7, 15, 18, 30, 0)
    assert next_allowed_send(now) == now


def test_evening_defers_to_next_morning():
    # 22:15 CDT on the 15th -> 08:00 CDT on the 16th
    assert next_allowed_send(utc(2024, 7, 16, 3, 15)) == utc(2024, 7, 16, 13, 0)


def test_early_morning_defers_to_same_day():
    # 03:00 CDT on the 15th -> 08:00 CDT the same day
    assert next_allowed_send(utc(2024, 7, 15, 8, 0)) == utc(2024, 7, 15, 13, 0)


def test_spring_forward_lands_on_eight_local():
    # 22:00 CST on March 9th; the clocks jump forward overnight
    result = next_allowed_send(utc(2024, 3, 10, 4, 0))
    assert result == utc(2024, 3, 10, 13, 0)
    local = result.astimezone(CHICAGO)
    assert (local.hour, local.minute) == (8, 0)


def test_fall_back_lands_on_eight_local():
    # 22:00 CDT on November 2nd; the clocks fall back overnight
    result = next_allowed_send(utc(2024, 11, 3, 3, 0))
    assert result == utc(2024, 11, 3, 14, 0)
    local = result.astimezone(CHICAGO)
    assert (local.hour, local.minute) == (8, 0)


def test_next_allowed_is_never_quiet_and_never_in_the_past():
    start = utc(2024, 3, 8, 0, 0)
    for step in range(0, 24 * 4 * 4):  # four days in 15 minute steps, across DST
        now = start + timedelta(minutes=15 * step)
        allowed = next_allowed_send(now)
        assert allowed >= now
        assert is_quiet_hours(allowed) is False
        if is_quiet_hours(now):
            assert allowed - now <= timedelta(hours=12)


def test_naive_variant_strips_timezone():
    result = next_allowed_send_naive(datetime(2024, 7, 16, 3, 15))
    assert result.tzinfo is None
    assert result == datetime(2024, 7, 16, 13, 0)


def test_hour_window_wraps_midnight():
    assert is_hour_in_window(23, 21, 8) is True
    assert is_hour_in_window(7, 21, 8) is True
    assert is_hour_in_window(8, 21, 8) is False
    assert is_hour_in_window(12, 9, 17) is True
    assert is_hour_in_window(5, 5, 5) is False


def test_local_time_to_utc_uses_target_date_offset():
    assert local_time_to_utc_naive(datetime(2024, 7, 15).date(), datetime(2000, 1, 1, 9).time()) == datetime(
        2024, 7, 15, 14, 0
    )
    assert local_time_to_utc_naive(datetime(2024, 1, 15).date(), datetime(2000, 1, 1, 9).time()) == datetime(
        2024, 1, 15, 15, 0
    )


def test_debug_info_reports_state():
    info = quiet_hours_debug_info(utc(2024, 7, 16, 3, 15))
    assert info["timezone"] == "America/Chicago"
    assert info["isQuietHours"] is True
    assert info["localHour"] == 22
    assert info["quietHoursStart"] == "21:00"
    assert info["quietHoursEnd"] == "08:00"
    assert info["nextAllowedSend"] == utc(2024, 7, 16, 13, 0).isoformat()

    daytime = quiet_hours_debug_info(utc(2024, 7, 15, 18, 0))
    assert daytime["isQuietHours"] is False
    assert daytime["nextAllowedSend"] is None


def test_to_local_converts_to_business_zone():
    assert to_local(utc(2024, 7, 15, 18, 0)).hour == 13
