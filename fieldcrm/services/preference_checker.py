"""
Communication preference checker

Every outbound customer message (email, SMS, call list, portal notification)
is checked here first. Blocked attempts are written to the audit log as
preference violations. Any error while reading preferences blocks the send.
"""

import logging
from datetime import datetime, time, timedelta
from typing import Optional

import pytz
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models_messaging import CommunicationLog, CommunicationPreference
from .audit import write_audit_log
from .quiet_hours import BUSINESS_TZ, local_time_to_utc_naive, to_local

logger = logging.getLogger(__name__)

CHANNELS = ("email", "sms", "phone", "portal")
MESSAGE_TYPES = ("marketing", "appointment", "service", "promotional", "billing", "survey")

CHANNEL_FLAGS = {
    "email": "email_enabled",
    "sms": "sms_enabled",
    "phone": "phone_enabled",
    "portal": "portal_enabled",
}

MESSAGE_TYPE_FLAGS = {
    "marketing": "marketing_emails",
    "appointment": "appointment_reminders",
    "service": "service_updates",
    "promotional": "promotional_messages",
    "billing": "billing_notifications",
    "survey": "survey_requests",
}


def get_preferences(db: Session, customer_id: int) -> Optional[CommunicationPreference]:
    return (
        db.query(CommunicationPreference)
        .filter(CommunicationPreference.customer_id == customer_id)
        .first()
    )


def _evaluate(prefs: Optional[CommunicationPreference], channel: str, message_type: Optional[str]):
    if prefs is None:
        return True, "No preferences set"

    if prefs.do_not_contact:
        return False, "Customer has opted out of all communications"

    channel_flag = CHANNEL_FLAGS.get(channel)
    if channel_flag is None:
        return False, f"Unknown channel: {channel}"
    if getattr(prefs, channel_flag) is False:
        return False, f"Customer has disabled {channel} communications"

    if message_type:
        type_flag = MESSAGE_TYPE_FLAGS.get(message_type)
        if type_flag and getattr(prefs, type_flag) is False:
            return False, f"Customer has opted out of {message_type} messages"

    return True, "Communication allowed"


def _violation_type(reason: str) -> str:
    if "all communications" in reason:
        return "do_not_contact"
    if "disabled" in reason:
        return "channel_disabled"
    if "opted out of" in reason:
        return "message_type_disabled"
    return "other"


def check_communication_allowed(
    db: Session,
    customer_id: int,
    channel: str,
    message_type: Optional[str] = None,
    staff_user_id: Optional[int] = None,
) -> tuple[bool, str]:
    """
    Returns (allowed, reason). Customers without a preferences row may be contacted.
    """
    try:
        prefs = get_preferences(db, customer_id)
    except SQLAlchemyError as e:
        logger.error(f"❌ Error checking communication preferences for customer {customer_id}: {e}")
        return False, "System error checking preferences"

    allowed, reason = _evaluate(prefs, channel, message_type)

    if not allowed:
        logger.info(f"🚫 Communication blocked for customer {customer_id} via {channel}: {reason}")
        try:
            write_audit_log(
                db,
                action="preference_violation",
                entity="customer",
                entity_id=customer_id,
                outcome="blocked",
                actor_user_id=staff_user_id,
                meta={
                    "violationType": _violation_type(reason),
                    "attemptedChannel": channel,
                    "attemptedMessageType": message_type,
                    "reason": reason,
                },
                commit=True,
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Failed to log preference violation: {e}")

    return allowed, reason


def get_allowed_channels(db: Session, customer_id: int, message_type: Optional[str] = None) -> list[str]:
    prefs = get_preferences(db, customer_id)
    return [c for c in CHANNELS if _evaluate(prefs, c, message_type)[0]]


def _hhmm(value: str) -> tuple[int, int]:
    hours, minutes = value.split(":")
    return int(hours), int(minutes)


def _customer_timezone(prefs: CommunicationPreference):
    if prefs.timezone:
        try:
            return pytz.timezone(prefs.timezone)
        except pytz.UnknownTimeZoneError:
            logger.warning(f"⚠️ Unknown timezone {prefs.timezone} for customer {prefs.customer_id}")
    return BUSINESS_TZ


def customer_quiet_hours_end(
    db: Session, customer_id: int, now: Optional[datetime] = None
) -> Optional[datetime]:
    """
    End of the customer's own quiet window as naive UTC, or None when outside it.

    The window is HH:MM [start, end) in the customer's time zone and may wrap
    past midnight.
    """
    prefs = get_preferences(db, customer_id)
    if not prefs or not prefs.quiet_hours_start or not prefs.quiet_hours_end:
        return None

    tz = _customer_timezone(prefs)
    local_now = to_local(now, tz)
    current = (local_now.hour, local_now.minute)
    start = _hhmm(prefs.quiet_hours_start)
    end = _hhmm(prefs.quiet_hours_end)

    if start > end:
        inside = current >= start or current < end
    else:
        inside = start <= current < end
    if not inside:
        return None

    end_day = local_now.date()
    if current >= end:
        end_day += timedelta(days=1)
    return local_time_to_utc_naive(end_day, time(*end), tz)


def is_within_customer_quiet_hours(
    db: Session, customer_id: int, now: Optional[datetime] = None
) -> bool:
    return customer_quiet_hours_end(db, customer_id, now) is not None


def has_hit_frequency_limit(db: Session, customer_id: int, now: Optional[datetime] = None) -> bool:
    """Whether the customer already received max_messages_per_week in the last 7 days"""
    prefs = get_preferences(db, customer_id)
    if not prefs or not prefs.max_messages_per_week:
        return False

    since = (now or datetime.utcnow()) - timedelta(days=7)
    sent_count = (
        db.query(CommunicationLog)
        .filter(
            CommunicationLog.customer_id == customer_id,
            CommunicationLog.direction == "outbound",
            CommunicationLog.status.in_(["sent", "delivered"]),
            CommunicationLog.created_at >= since,
        )
        .count()
    )
    return sent_count >= prefs.max_messages_per_week
