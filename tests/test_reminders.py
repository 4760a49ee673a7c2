from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from fieldcrm.models import AuditLog, Customer, Job
from fieldcrm.models_messaging import CommunicationLog, CommunicationPreference, Reminder, SmsOptOut
from fieldcrm.services.reminder_service import (
    GENERIC_REMINDER_TEXT,
    build_reminder_message,
    select_due_reminders,
    send_due_reminders,
)

# 13:00 CDT, outside quiet hours
DAYTIME = datetime(2024, 7, 15, 18, 0)
# 22:15 CDT, inside quiet hours
NIGHT = datetime(2024, 7, 16, 3, 15)


def make_reminder(db, customer, **overrides) -> Reminder:
    values = {
        "customer_id": customer.id,
        "type": "custom",
        "title": "Carpet cleaning tomorrow",
        "scheduled_date": DAYTIME - timedelta(hours=1),
        "status": "pending",
    }
    values.update(overrides)
    reminder = Reminder(**values)
    db.add(reminder)
    db.commit()
    db.refresh(reminder)
    return reminder


@pytest.fixture
def sms_ok():
    with patch(
        "fieldcrm.services.reminder_service.send_sms",
        new=AsyncMock(return_value=(True, "SM123", None)),
    ) as mock:
        yield mock


async def test_no_due_reminders(db):
    summary = await send_due_reminders(db, now=DAYTIME)
    assert summary["ok"] is True
    assert summary["processed"] == 0
    assert summary["reason"] == "no_due_reminders"
    assert "debug" in summary


async def test_quiet_hours_snoozes_batch_without_sending(db, customer, sms_ok):
    reminder = make_reminder(db, customer, scheduled_date=NIGHT - timedelta(hours=1))

    summary = await send_due_reminders(db, now=NIGHT)

    assert summary["ok"] is True
    assert summary["snoozed"] == 1
    assert summary["reason"] == "quiet_hours"
    sms_ok.assert_not_awaited()

    db.refresh(reminder)
    assert reminder.status == "pending"
    assert reminder.snoozed_until == datetime(2024, 7, 16, 13, 0)
    assert reminder.attempt_count == 1
    assert reminder.locked_at is None


async def test_snoozed_reminder_is_not_selected_until_snooze_passes(db, customer):
    make_reminder(db, customer, snoozed_until=DAYTIME + timedelta(minutes=5))
    assert select_due_reminders(db, DAYTIME) == []
    assert len(select_due_reminders(db, DAYTIME + timedelta(minutes=5))) == 1


async def test_successful_send_completes_reminder_and_logs(db, customer, sms_ok):
    reminder = make_reminder(db, customer)

    summary = await send_due_reminders(db, now=DAYTIME)

    assert summary == {**summary, "ok": True, "processed": 1, "sent": 1, "skipped": 0, "failures": 0}
    sms_ok.assert_awaited_once()
    assert sms_ok.await_args.args[1] == "+15125550100"

    db.refresh(reminder)
    assert reminder.status == "completed"
    assert reminder.locked_at is None

    log = db.query(CommunicationLog).one()
    assert log.status == "sent"
    assert log.direction == "outbound"
    assert log.provider_message_id == f"reminder:{reminder.id}:1"
    assert log.twilio_sid == "SM123"

    actions = {a.action for a in db.query(AuditLog).all()}
    assert {"send_reminder", "cron_reminders"} <= actions


async def test_failed_send_leaves_reminder_pending(db, customer):
    reminder = make_reminder(db, customer)

    with patch(
        "fieldcrm.services.reminder_service.send_sms",
        new=AsyncMock(return_value=(False, None, "Twilio not configured")),
    ):
        summary = await send_due_reminders(db, now=DAYTIME)

    assert summary["failures"] == 1
    db.refresh(reminder)
    assert reminder.status == "pending"
    assert reminder.locked_at is None
    assert reminder.attempt_count == 1
    assert db.query(CommunicationLog).one().status == "failed"


async def test_attempt_cap_excludes_reminder(db, customer, sms_ok):
    make_reminder(db, customer, attempt_count=3)
    summary = await send_due_reminders(db, now=DAYTIME)
    assert summary["reason"] == "no_due_reminders"
    sms_ok.assert_not_awaited()


async def test_missing_phone_is_skipped_and_completed(db, sms_ok):
    no_phone = Customer(full_name="No Phone")
    db.add(no_phone)
    db.commit()
    reminder = make_reminder(db, no_phone)

    summary = await send_due_reminders(db, now=DAYTIME)

    assert summary["skipped"] == 1
    sms_ok.assert_not_awaited()
    db.refresh(reminder)
    assert reminder.status == "completed"


async def test_opted_out_phone_is_excluded(db, customer, sms_ok):
    make_reminder(db, customer)
    db.add(SmsOptOut(phone_e164=customer.phone_e164, reason="keyword:STOP"))
    db.commit()

    summary = await send_due_reminders(db, now=DAYTIME)

    assert summary["reason"] == "no_due_reminders"
    sms_ok.assert_not_awaited()


@pytest.mark.parametrize(
    "prefs,reason",
    [
        ({"do_not_contact": True}, "Customer has opted out of all communications"),
        ({"sms_enabled": False}, "Customer has disabled sms communications"),
        ({"appointment_reminders": False}, "Customer has opted out of appointment messages"),
    ],
)
async def test_customer_consent_blocks_reminder(db, customer, sms_ok, prefs, reason):
    db.add(CommunicationPreference(customer_id=customer.id, **prefs))
    db.commit()
    reminder = make_reminder(db, customer)

    summary = await send_due_reminders(db, now=DAYTIME)

    assert summary["skipped"] == 1
    assert summary["sent"] == 0
    sms_ok.assert_not_awaited()
    db.refresh(reminder)
    assert reminder.status == "completed"
    audit = db.query(AuditLog).filter(AuditLog.action == "send_reminder").one()
    assert audit.meta["error"] == reason
    assert db.query(AuditLog).filter(AuditLog.action == "preference_violation").count() == 1


async def test_customer_quiet_hours_snooze_single_reminder(db, customer, sms_ok):
    # 12:00-14:00 Chicago; DAYTIME is 13:00 CDT
    db.add(CommunicationPreference(customer_id=customer.id, quiet_hours_start="12:00", quiet_hours_end="14:00"))
    db.commit()
    reminder = make_reminder(db, customer)

    summary = await send_due_reminders(db, now=DAYTIME)

    assert summary["snoozed"] == 1
    assert summary["sent"] == 0
    sms_ok.assert_not_awaited()
    db.refresh(reminder)
    assert reminder.status == "pending"
    assert reminder.snoozed_until == datetime(2024, 7, 15, 19, 0)

    summary = await send_due_reminders(db, now=datetime(2024, 7, 15, 19, 0))
    assert summary["sent"] == 1
    sms_ok.assert_awaited_once()


@pytest.mark.parametrize("status", ["cancelled", "completed", "pending_approval"])
def test_reminders_for_inactive_jobs_are_held(db, customer, status):
    job = Job(customer_id=customer.id, scheduled_date=DAYTIME + timedelta(days=1), status=status)
    db.add(job)
    db.commit()
    make_reminder(db, customer, type="job_reminder", job_id=job.id)

    assert select_due_reminders(db, DAYTIME) == []

    job.status = "scheduled"
    db.commit()
    assert len(select_due_reminders(db, DAYTIME)) == 1


async def test_existing_sent_log_prevents_duplicate_send(db, customer, sms_ok):
    reminder = make_reminder(db, customer)
    db.add(
        CommunicationLog(
            direction="outbound",
            status="sent",
            to_e164=customer.phone_e164,
            provider_message_id=f"reminder:{reminder.id}:1",
        )
    )
    db.commit()

    summary = await send_due_reminders(db, now=DAYTIME)

    assert summary["sent"] == 1
    sms_ok.assert_not_awaited()
    db.refresh(reminder)
    assert reminder.status == "completed"


def test_message_body_precedence(db, customer):
    job = Job(
        customer_id=customer.id,
        scheduled_date=datetime(2024, 7, 16, 14, 0),
        scheduled_time_start="09:00",
        scheduled_time_end="11:00",
    )
    db.add(job)
    db.commit()

    explicit = make_reminder(db, customer, body="Custom text")
    assert build_reminder_message(explicit) == "Custom text"

    job_reminder = make_reminder(db, customer, type="job_reminder", job_id=job.id, title=None)
    db.refresh(job_reminder)
    text = build_reminder_message(job_reminder)
    assert "Casey Customer" in text
    assert "Tue Jul 16" in text
    assert "09:00-11:00" in text
    assert text.endswith("Reply STOP to opt out.")

    titled = make_reminder(db, customer)
    assert build_reminder_message(titled) == "Carpet cleaning tomorrow"

    bare = make_reminder(db, customer, title=None)
    assert build_reminder_message(bare) == GENERIC_REMINDER_TEXT


# ============================================================================
# HTTP
# ============================================================================


async def test_reminder_crud(client, customer):
    response = await client.post(
        "/reminders",
        json={"customerId": customer.id, "title": "Bring the pets inside", "scheduledDate": "2030-01-01T15:00:00Z"},
    )
    assert response.status_code == 201
    created = response.json()["data"]
    assert created["status"] == "pending"
    assert created["scheduledDate"].startswith("2030-01-01T15:00:00")

    response = await client.patch(f"/reminders/{created['id']}", json={"status": "cancelled"})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "cancelled"

    response = await client.get("/reminders", params={"customerId": customer.id})
    assert [r["id"] for r in response.json()["data"]] == [created["id"]]

    response = await client.delete(f"/reminders/{created['id']}")
    assert response.json()["data"] == {"deleted": True, "id": created["id"]}

    response = await client.get(f"/reminders/{created['id']}")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


async def test_create_reminder_for_unknown_customer(client):
    response = await client.post("/reminders", json={"customerId": 999, "scheduledDate": "2030-01-01T15:00:00"})
    assert response.status_code == 404


async def test_inbound_stop_and_start(client, db):
    response = await client.post("/reminders/sms-inbound", data={"From": "+15125550100", "Body": " stop "})
    assert response.status_code == 200
    assert "<Response>" in response.text
    assert db.query(SmsOptOut).filter(SmsOptOut.phone_e164 == "+15125550100").count() == 1

    await client.post("/reminders/sms-inbound", data={"From": "+15125550100", "Body": "START"})
    assert db.query(SmsOptOut).count() == 0

    logs = (await client.get("/reminders/sms-logs", params={"phone": "(512) 555-0100"})).json()["data"]
    assert {log["templateKey"] for log in logs} == {"opted_out", "opted_in"}


async def test_inbound_help_gets_a_reply(client, db):
    response = await client.post("/reminders/sms-inbound", data={"From": "+15125550100", "Body": "help"})

    assert response.status_code == 200
    assert "<Message>" in response.text
    assert "Reply STOP to opt out" in response.text
    assert "Msg&amp;data" in response.text
    assert db.query(SmsOptOut).count() == 0
    assert db.query(CommunicationLog).one().template_key == "help"

    response = await client.post("/reminders/sms-inbound", data={"From": "+15125550100", "Body": "thanks!"})
    assert "<Message>" not in response.text


async def test_cron_requires_secret(client):
    response = await client.post("/cron/send-reminders")
    assert response.status_code == 401
    assert response.json()["success"] is False

    response = await client.post("/cron/send-reminders", headers={"Authorization": "Bearer wrong"})
    assert response.status_code == 401


async def test_cron_send_reminders_with_secret(client):
    response = await client.post("/cron/send-reminders", headers={"Authorization": "Bearer test-cron-secret"})
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["reason"] == "no_due_reminders"
