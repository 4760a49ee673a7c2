"""
Quiet-hours send gate

Outbound customer communication is not sent between 21:00 and 08:00 in the
business time zone (America/Chicago by default). Callers defer work to
next_allowed_send() instead of dropping it.

All public functions take and return UTC datetimes. Naive datetimes are
treated as UTC, matching how timestamps are stored in the database.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional

import pytz

from ..config import QUIET_HOURS_END, QUIET_HOURS_START, QUIET_HOURS_TIMEZONE

BUSINESS_TZ = pytz.timezone(QUIET_HOURS_TIMEZONE)


def _as_utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(pytz.utc)
    if now.tzinfo is None:
        return pytz.utc.localize(now)
    return now.astimezone(pytz.utc)


def to_local(now: Optional[datetime] = None, tz=BUSINESS_TZ) -> datetime:
    """Convert a UTC instant to business-local wall-clock time"""
    return _as_utc(now).astimezone(tz)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Aware datetimes from request bodies, stored as naive UTC"""
    if value is None:
        return None
    return _as_utc(value).replace(tzinfo=None)


def is_hour_in_window(hour: int, start_hour: int = QUIET_HOURS_START, end_hour: int = QUIET_HOURS_END) -> bool:
    """Whether a local hour falls in [start_hour, end_hour), wrapping past midnight"""
    if start_hour == end_hour:
        return False
    if start_hour > end_hour:
        return hour >= start_hour or hour < end_hour
    return start_hour <= hour < end_hour


def is_quiet_hours(now: Optional[datetime] = None) -> bool:
    """True when the local time is within [21:00, 08:00)"""
    return is_hour_in_window(to_local(now).hour)


def _localize_wall_clock(tz, day: date, at: time) -> datetime:
    # localize() resolves the UTC offset for the target date, so the result
    # stays at the requested wall-clock time across DST changes
    return tz.normalize(tz.localize(datetime.combine(day, at)))


def next_allowed_send(now: Optional[datetime] = None) -> datetime:
    """
    Next instant outbound messages may be sent.

    Returns now unchanged when not in quiet hours, otherwise 08:00 local on the
    same calendar day (early morning) or the next day (evening), as a UTC
    datetime.
    """
    utc_now = _as_utc(now)
    if not is_quiet_hours(utc_now):
        return utc_now

    local_now = to_local(utc_now)
    target_day = local_now.date()
    if local_now.hour >= QUIET_HOURS_END:
        target_day = target_day + timedelta(days=1)

    target_local = _localize_wall_clock(BUSINESS_TZ, target_day, time(QUIET_HOURS_END, 0))
    return target_local.astimezone(pytz.utc)


def next_allowed_send_naive(now: Optional[datetime] = None) -> datetime:
    """next_allowed_send() as a naive UTC datetime, for storing in DateTime columns"""
    return next_allowed_send(now).replace(tzinfo=None)


def local_time_to_utc_naive(day: date, at: time, tz=BUSINESS_TZ) -> datetime:
    """Wall-clock time on a local date as a naive UTC datetime"""
    return _localize_wall_clock(tz, day, at).astimezone(pytz.utc).replace(tzinfo=None)


def quiet_hours_debug_info(now: Optional[datetime] = None) -> dict:
    """Snapshot of the gate state, included in cron summaries"""
    utc_now = _as_utc(now)
    local_now = to_local(utc_now)
    quiet = is_quiet_hours(utc_now)
    return {
        "timezone": QUIET_HOURS_TIMEZONE,
        "currentTimeUtc": utc_now.isoformat(),
        "currentTimeLocal": local_now.isoformat(),
        "localHour": local_now.hour,
        "isQuietHours": quiet,
        "quietHoursStart": f"{QUIET_HOURS_START:02d}:00",
        "quietHoursEnd": f"{QUIET_HOURS_END:02d}:00",
        "nextAllowedSend": next_allowed_send(utc_now).isoformat() if quiet else None,
    }
