"""
Reminder management and SMS webhooks
Staff CRUD over scheduled reminders, the SMS log, and Twilio inbound STOP/START/HELP
"""

import logging
from datetime import datetime
from typing import Optional
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..auth import OFFICE_ROLES, get_current_user, require_roles
from ..database import get_db
from ..models import Customer, User
from ..models_messaging import CommunicationLog, Reminder
from ..services.audit import write_audit_log
from ..services.quiet_hours import to_naive_utc
from ..services.twilio_service import HELP_REPLY, handle_inbound_sms, verify_twilio_signature
from ..shared.responses import APIError, success_response
from ..shared.validators import validate_choice, validate_us_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reminders", tags=["Reminders"])

REMINDER_TYPES = ("job_reminder", "follow_up", "custom")
REMINDER_STATUSES = ("pending", "completed", "cancelled")


class ReminderCreate(BaseModel):
    customerId: int
    jobId: Optional[int] = None
    type: str = "custom"
    title: Optional[str] = None
    body: Optional[str] = None
    scheduledDate: datetime

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return validate_choice(v, REMINDER_TYPES, "reminder type")

    @field_validator("body")
    @classmethod
    def validate_body(cls, v):
        if v and len(v) > 1600:
            raise ValueError("SMS body must be 1600 characters or less")
        return v


class ReminderUpdate(BaseModel):
    title: Optional[str] = None
    body: Optional[str] = None
    scheduledDate: Optional[datetime] = None
    status: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return validate_choice(v, REMINDER_STATUSES, "status")


def serialize_reminder(r: Reminder) -> dict:
    return {
        "id": r.id,
        "customerId": r.customer_id,
        "jobId": r.job_id,
        "type": r.type,
        "title": r.title,
        "body": r.body,
        "scheduledDate": r.scheduled_date,
        "status": r.status,
        "attemptCount": r.attempt_count,
        "snoozedUntil": r.snoozed_until,
        "lastAttemptAt": r.last_attempt_at,
        "createdAt": r.created_at,
    }


def serialize_log(log: CommunicationLog) -> dict:
    return {
        "id": log.id,
        "direction": log.direction,
        "channel": log.channel,
        "to": log.to_e164,
        "from": log.from_e164,
        "customerId": log.customer_id,
        "jobId": log.job_id,
        "templateKey": log.template_key,
        "status": log.status,
        "twilioSid": log.twilio_sid,
        "body": log.body,
        "errorMessage": log.error_message,
        "createdAt": log.created_at,
    }


def _get_reminder(db: Session, reminder_id: int) -> Reminder:
    reminder = db.query(Reminder).filter(Reminder.id == reminder_id).first()
    if not reminder:
        raise APIError("not_found", "Reminder not found", 404)
    return reminder


# ============================================================================
# SMS LOG AND WEBHOOK (declared before /{reminder_id})
# ============================================================================


@router.get("/sms-logs")
async def list_sms_logs(
    phone: Optional[str] = Query(None),
    direction: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(CommunicationLog).filter(CommunicationLog.channel == "sms")
    if phone:
        try:
            phone = validate_us_phone(phone)
        except ValueError as e:
            raise APIError("validation_failed", str(e), 400) from e
        query = query.filter((CommunicationLog.to_e164 == phone) | (CommunicationLog.from_e164 == phone))
    if direction:
        query = query.filter(CommunicationLog.direction == direction)

    logs = query.order_by(CommunicationLog.created_at.desc(), CommunicationLog.id.desc()).limit(limit).all()
    return success_response([serialize_log(log) for log in logs])


@router.post("/sms-inbound")
async def sms_inbound(request: Request, db: Session = Depends(get_db)):
    """Twilio inbound message webhook; answers HELP with a TwiML message, anything else with empty TwiML"""
    form = await request.form()
    params = {key: str(value) for key, value in form.items()}

    if not verify_twilio_signature(str(request.url), params, request.headers.get("X-Twilio-Signature")):
        raise APIError("invalid_signature", "Invalid Twilio signature", 401)

    from_phone = params.get("From")
    if not from_phone:
        raise APIError("validation_failed", "From is required", 400)

    action = handle_inbound_sms(db, from_phone, params.get("Body", ""))
    logger.info(f"📥 Inbound SMS from {from_phone}: {action}")

    reply = f"<Message>{escape(HELP_REPLY)}</Message>" if action == "help" else ""
    return Response(
        content=f'<?xml version="1.0" encoding="UTF-8"?><Response>{reply}</Response>',
        media_type="application/xml",
    )


# ============================================================================
# REMINDER CRUD
# ============================================================================


@router.get("")
async def list_reminders(
    status: Optional[str] = Query(None),
    customerId: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Reminder)
    if status:
        query = query.filter(Reminder.status == status)
    if customerId:
        query = query.filter(Reminder.customer_id == customerId)
    reminders = query.order_by(Reminder.scheduled_date.asc()).limit(limit).all()
    return success_response([serialize_reminder(r) for r in reminders])


@router.post("")
async def create_reminder(
    data: ReminderCreate,
    current_user: User = Depends(require_roles(*OFFICE_ROLES)),
    db: Session = Depends(get_db),
):
    if not db.query(Customer).filter(Customer.id == data.customerId).first():
        raise APIError("not_found", "Customer not found", 404)

    reminder = Reminder(
        customer_id=data.customerId,
        job_id=data.jobId,
        type=data.type,
        title=data.title,
        body=data.body,
        scheduled_date=to_naive_utc(data.scheduledDate),
        status="pending",
        created_by_user_id=current_user.id,
    )
    db.add(reminder)
    db.flush()
    write_audit_log(db, "create_reminder", "reminder", reminder.id, actor_user_id=current_user.id, commit=True)
    db.refresh(reminder)
    return success_response(serialize_reminder(reminder), status_code=201)


@router.get("/{reminder_id}")
async def get_reminder(
    reminder_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return success_response(serialize_reminder(_get_reminder(db, reminder_id)))


@router.patch("/{reminder_id}")
async def update_reminder(
    reminder_id: int,
    data: ReminderUpdate,
    current_user: User = Depends(require_roles(*OFFICE_ROLES)),
    db: Session = Depends(get_db),
):
    reminder = _get_reminder(db, reminder_id)
    provided = data.model_dump(exclude_unset=True)

    if data.title is not None:
        reminder.title = data.title
    if data.body is not None:
        reminder.body = data.body
    if data.scheduledDate is not None:
        reminder.scheduled_date = to_naive_utc(data.scheduledDate)
        reminder.snoozed_until = None
    if data.status is not None:
        reminder.status = data.status
        if data.status == "pending":
            reminder.attempt_count = 0
            reminder.locked_at = None

    write_audit_log(
        db,
        "update_reminder",
        "reminder",
        reminder.id,
        actor_user_id=current_user.id,
        meta={"fields": sorted(provided.keys())},
        commit=True,
    )
    db.refresh(reminder)
    return success_response(serialize_reminder(reminder))


@router.delete("/{reminder_id}")
async def delete_reminder(
    reminder_id: int,
    current_user: User = Depends(require_roles(*OFFICE_ROLES)),
    db: Session = Depends(get_db),
):
    reminder = _get_reminder(db, reminder_id)
    db.delete(reminder)
    write_audit_log(db, "delete_reminder", "reminder", reminder_id, actor_user_id=current_user.id, commit=True)
    return success_response({"deleted": True, "id": reminder_id})


__all__ = ["router"]
