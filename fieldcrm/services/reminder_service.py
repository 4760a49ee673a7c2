"""
Reminder dispatch
Sends due reminder SMS in batches, snoozing the whole batch during quiet hours
and checking each customer's consent and own quiet window before sending
"""

import logging
import time
from datetime import datetime
from typing import Optional

import pytz
from sqlalchemy import or_, select
from sqlalchemy.orm import Session, joinedload

from ..config import COMPANY_NAME, REMINDER_BATCH_SIZE, REMINDER_MAX_ATTEMPTS, TWILIO_PHONE_NUMBER
from ..models import Customer, Job
from ..models_messaging import CommunicationLog, Reminder, SmsOptOut
from .audit import write_audit_log
from .preference_checker import check_communication_allowed, customer_quiet_hours_end
from .quiet_hours import is_quiet_hours, next_allowed_send_naive, quiet_hours_debug_info, to_local
from .twilio_service import record_communication, send_sms

logger = logging.getLogger(__name__)

GENERIC_REMINDER_TEXT = "You have a scheduled appointment. Reply STOP to opt out."
# Reminders for these jobs are held; pending_approval resumes if the cancellation is refused
HELD_JOB_STATUSES = ("cancelled", "completed", "pending_approval")


def job_reminder_template(customer_name: str, company: str, job_date: str, arrival_window: str) -> str:
    return (
        f"Hi {customer_name}, this is {company} reminding you of your appointment on "
        f"{job_date}, arriving {arrival_window}. Reply STOP to opt out."
    )


def build_reminder_message(reminder: Reminder) -> str:
    """Explicit body wins, then the job reminder template, then the title, then generic text"""
    if reminder.body:
        return reminder.body

    if reminder.type == "job_reminder":
        customer = reminder.customer
        job = reminder.job
        when = job.scheduled_date if job and job.scheduled_date else reminder.scheduled_date
        job_date = to_local(when).strftime("%a %b %d")
        if job and job.scheduled_time_start and job.scheduled_time_end:
            arrival_window = f"{job.scheduled_time_start}-{job.scheduled_time_end}"
        else:
            arrival_window = "during your scheduled window"
        return job_reminder_template(
            customer.full_name if customer else "there", COMPANY_NAME, job_date, arrival_window
        )

    return reminder.title or GENERIC_REMINDER_TEXT


def select_due_reminders(db: Session, now: datetime, limit: int = REMINDER_BATCH_SIZE) -> list[Reminder]:
    """Pending, due, not snoozed, unlocked, under the attempt cap, phone not opted out, job still on"""
    opted_out = select(SmsOptOut.phone_e164)
    return (
        db.query(Reminder)
        .join(Customer, Reminder.customer_id == Customer.id)
        .options(joinedload(Reminder.customer), joinedload(Reminder.job))
        .filter(
            Reminder.status == "pending",
            Reminder.scheduled_date <= now,
            or_(Reminder.snoozed_until.is_(None), Reminder.snoozed_until <= now),
            Reminder.attempt_count < REMINDER_MAX_ATTEMPTS,
            Reminder.locked_at.is_(None),
            or_(Reminder.job_id.is_(None), ~Reminder.job.has(Job.status.in_(HELD_JOB_STATUSES))),
            or_(Customer.phone_e164.is_(None), Customer.phone_e164.not_in(opted_out)),
        )
        .order_by(Reminder.scheduled_date.asc(), Reminder.id.asc())
        .limit(limit)
        .all()
    )


def _lock(db: Session, reminders: list[Reminder], now: datetime) -> None:
    for reminder in reminders:
        reminder.locked_at = now
        reminder.last_attempt_at = now
        reminder.attempt_count = (reminder.attempt_count or 0) + 1
    db.commit()


async def process_reminder(db: Session, reminder: Reminder, now: Optional[datetime] = None) -> dict:
    """Send one locked reminder. Returns {"status": sent|skipped|snoozed|failed, ...}"""
    now = now or datetime.utcnow()
    customer = reminder.customer
    phone = customer.phone_e164 if customer else None

    if not phone:
        reminder.status = "completed"
        reminder.locked_at = None
        db.commit()
        return {"status": "skipped", "error": "No phone number"}

    allowed, reason = check_communication_allowed(db, reminder.customer_id, "sms", "appointment")
    if not allowed:
        reminder.status = "completed"
        reminder.locked_at = None
        db.commit()
        return {"status": "skipped", "error": reason}

    resume_at = customer_quiet_hours_end(db, reminder.customer_id, now)
    if resume_at:
        reminder.snoozed_until = resume_at
        reminder.locked_at = None
        db.commit()
        return {"status": "snoozed", "snoozedUntil": resume_at.isoformat()}

    message_body = build_reminder_message(reminder)
    # attempt_count was already incremented when the batch was locked
    provider_message_id = f"reminder:{reminder.id}:{reminder.attempt_count}"
    template_key = "job_reminder" if reminder.type == "job_reminder" else None

    existing = (
        db.query(CommunicationLog)
        .filter(CommunicationLog.provider_message_id == provider_message_id)
        .first()
    )
    if existing and existing.status in ("sent", "delivered"):
        reminder.status = "completed"
        reminder.locked_at = None
        db.commit()
        return {"status": "sent", "messageLength": len(message_body), "duplicate": True}

    log_body = {
        "text": message_body,
        "provider": "twilio",
        "reminder_id": reminder.id,
        "attempt_count": reminder.attempt_count,
    }

    success, message_sid, error = await send_sms(db, phone, message_body, "job_reminder")

    if success:
        reminder.status = "completed"
        reminder.locked_at = None
        record_communication(
            db,
            direction="outbound",
            status="sent",
            to_e164=phone,
            from_e164=TWILIO_PHONE_NUMBER,
            customer_id=reminder.customer_id,
            job_id=reminder.job_id,
            template_key=template_key,
            provider_message_id=provider_message_id,
            twilio_sid=message_sid,
            body=log_body,
        )
        db.commit()
        return {"status": "sent", "messageLength": len(message_body)}

    # Stays pending for a retry on the next run until the attempt cap is reached
    reminder.locked_at = None
    record_communication(
        db,
        direction="outbound",
        status="failed",
        to_e164=phone,
        from_e164=TWILIO_PHONE_NUMBER,
        customer_id=reminder.customer_id,
        job_id=reminder.job_id,
        template_key=template_key,
        provider_message_id=provider_message_id,
        body={**log_body, "error": error},
        error_message=error,
    )
    db.commit()
    return {"status": "failed", "error": error, "messageLength": len(message_body)}


async def send_due_reminders(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Run one reminder batch.

    Args:
        db: Database session
        now: Current time as naive UTC (defaults to utcnow)

    Returns:
        Summary dict: ok, processed, sent, skipped, failures and optionally
        snoozed/reason, plus a debug block with the quiet-hours state.
    """
    started = time.monotonic()
    now = now or datetime.utcnow()
    if now.tzinfo is not None:
        now = now.astimezone(pytz.utc).replace(tzinfo=None)

    summary = {"ok": False, "processed": 0, "sent": 0, "skipped": 0, "failures": 0}

    def _debug() -> dict:
        return {
            "quietHours": quiet_hours_debug_info(now),
            "batchSize": REMINDER_BATCH_SIZE,
            "durationMs": int((time.monotonic() - started) * 1000),
        }

    try:
        reminders = select_due_reminders(db, now)

        if not reminders:
            summary.update(ok=True, reason="no_due_reminders", debug=_debug())
            return summary

        logger.info(f"📨 Processing {len(reminders)} due reminders")

        if is_quiet_hours(now):
            snooze_until = next_allowed_send_naive(now)
            _lock(db, reminders, now)
            for reminder in reminders:
                reminder.snoozed_until = snooze_until
                reminder.locked_at = None
            db.commit()

            logger.info(f"🌙 Quiet hours - snoozed {len(reminders)} reminders until {snooze_until} UTC")
            summary.update(ok=True, snoozed=len(reminders), reason="quiet_hours", debug=_debug())
            _audit_run(db, summary)
            return summary

        _lock(db, reminders, now)

        for reminder in reminders:
            try:
                result = await process_reminder(db, reminder, now)
            except Exception as e:
                db.rollback()
                logger.error(f"❌ Failed to process reminder {reminder.id}: {e}")
                reminder.locked_at = None
                db.commit()
                result = {"status": "failed", "error": str(e)}
                audit_result = "processing_error"
            else:
                audit_result = result["status"]

            if result["status"] == "sent":
                summary["sent"] += 1
            elif result["status"] == "skipped":
                summary["skipped"] += 1
            elif result["status"] == "snoozed":
                summary["snoozed"] = summary.get("snoozed", 0) + 1
            else:
                summary["failures"] += 1

            write_audit_log(
                db,
                action="send_reminder",
                entity="reminder",
                entity_id=reminder.id,
                outcome="ok" if result["status"] != "failed" else "error",
                meta={
                    "result": audit_result,
                    "attempt_count": reminder.attempt_count,
                    "error": result.get("error"),
                    "phone_number_present": bool(reminder.customer and reminder.customer.phone_e164),
                    "message_length": result.get("messageLength"),
                },
                commit=True,
            )

        summary.update(ok=True, processed=len(reminders), debug=_debug())
        logger.info(
            f"📊 Reminder run complete: sent={summary['sent']}, skipped={summary['skipped']}, "
            f"failures={summary['failures']}"
        )
        _audit_run(db, summary)
        return summary

    except Exception as e:
        db.rollback()
        logger.error(f"❌ Reminder cron failed: {str(e)}")
        summary.update(ok=False, error=str(e), debug=_debug())
        try:
            _audit_run(db, summary, outcome="error")
        except Exception as audit_error:
            db.rollback()
            logger.error(f"❌ Failed to audit reminder cron error: {audit_error}")
        return summary


def _audit_run(db: Session, summary: dict, outcome: str = "ok") -> None:
    write_audit_log(
        db,
        action="cron_reminders",
        entity="reminder_cron",
        outcome=outcome,
        meta={k: v for k, v in summary.items() if k != "debug"},
        commit=True,
    )
