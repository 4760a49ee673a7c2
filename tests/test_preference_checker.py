from datetime import datetime, timedelta

from fieldcrm.models import AuditLog
from fieldcrm.models_messaging import CommunicationLog, CommunicationPreference
from fieldcrm.services.preference_checker import (
    check_communication_allowed,
    customer_quiet_hours_end,
    get_allowed_channels,
    has_hit_frequency_limit,
    is_within_customer_quiet_hours,
)


def set_preferences(db, customer, **values) -> CommunicationPreference:
    prefs = CommunicationPreference(customer_id=customer.id, **values)
    db.add(prefs)
    db.commit()
    return prefs


def test_no_preferences_allows_everything(db, customer):
    assert check_communication_allowed(db, customer.id, "sms", "appointment") == (True, "No preferences set")
    assert get_allowed_channels(db, customer.id) == ["email", "sms", "phone", "portal"]


def test_do_not_contact_blocks_and_audits(db, customer, staff_user):
    set_preferences(db, customer, do_not_contact=True)

    allowed, reason = check_communication_allowed(db, customer.id, "email", staff_user_id=staff_user.id)

    assert allowed is False
    assert reason == "Customer has opted out of all communications"
    violation = db.query(AuditLog).filter(AuditLog.action == "preference_violation").one()
    assert violation.outcome == "blocked"
    assert violation.actor_user_id == staff_user.id
    assert violation.meta["violationType"] == "do_not_contact"
    assert violation.meta["attemptedChannel"] == "email"


def test_disabled_channel_blocks(db, customer):
    set_preferences(db, customer, sms_enabled=False)

    allowed, reason = check_communication_allowed(db, customer.id, "sms")

    assert allowed is False
    assert "disabled sms" in reason
    assert check_communication_allowed(db, customer.id, "email")[0] is True
    assert get_allowed_channels(db, customer.id) == ["email", "phone", "portal"]


def test_disabled_message_type_blocks(db, customer):
    set_preferences(db, customer, survey_requests=False)

    allowed, reason = check_communication_allowed(db, customer.id, "email", "survey")

    assert allowed is False
    assert reason == "Customer has opted out of survey messages"
    assert check_communication_allowed(db, customer.id, "email", "appointment")[0] is True
    violation = db.query(AuditLog).filter(AuditLog.action == "preference_violation").one()
    assert violation.meta["violationType"] == "message_type_disabled"


def test_unknown_channel_is_blocked(db, customer):
    set_preferences(db, customer)
    allowed, reason = check_communication_allowed(db, customer.id, "fax")
    assert allowed is False
    assert reason == "Unknown channel: fax"


def test_customer_quiet_hours_wrap_midnight(db, customer):
    set_preferences(db, customer, quiet_hours_start="22:00", quiet_hours_end="07:30", timezone="America/New_York")

    # 23:00 EDT
    assert is_within_customer_quiet_hours(db, customer.id, datetime(2024, 7, 16, 3, 0)) is True
    # 07:29 EDT
    assert is_within_customer_quiet_hours(db, customer.id, datetime(2024, 7, 16, 11, 29)) is True
    # 07:30 EDT
    assert is_within_customer_quiet_hours(db, customer.id, datetime(2024, 7, 16, 11, 30)) is False
    # 21:59 EDT
    assert is_within_customer_quiet_hours(db, customer.id, datetime(2024, 7, 16, 1, 59)) is False


def test_customer_quiet_hours_unset(db, customer):
    assert is_within_customer_quiet_hours(db, customer.id, datetime(2024, 7, 16, 3, 0)) is False


def test_frequency_limit_counts_last_seven_days(db, customer):
    set_preferences(db, customer, max_messages_per_week=2)
    now = datetime.utcnow()
    for days_ago, status in ((1, "sent"), (3, "delivered"), (10, "sent"), (2, "failed")):
        db.add(
            CommunicationLog(
                direction="outbound",
                status=status,
                customer_id=customer.id,
                created_at=now - timedelta(days=days_ago),
            )
        )
    db.commit()

    assert has_hit_frequency_limit(db, customer.id, now) is True
    assert has_hit_frequency_limit(db, customer.id, now + timedelta(days=5)) is False


def test_customer_quiet_hours_end_is_next_window_close(db, customer):
    set_preferences(db, customer, quiet_hours_start="22:00", quiet_hours_end="07:30", timezone="America/New_York")

    # 23:00 EDT -> 07:30 EDT next morning
    assert customer_quiet_hours_end(db, customer.id, datetime(2024, 7, 16, 3, 0)) == datetime(2024, 7, 16, 11, 30)
    # 05:00 EDT -> 07:30 EDT the same morning
    assert customer_quiet_hours_end(db, customer.id, datetime(2024, 7, 16, 9, 0)) == datetime(2024, 7, 16, 11, 30)
    assert customer_quiet_hours_end(db, customer.id, datetime(2024, 7, 16, 16, 0)) is None
