"""Customer portal schemas"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_choice, validate_email, validate_us_phone

CANCELLATION_TYPES = ("customer_request", "emergency", "other")
PREFERRED_TIMES = ("morning", "afternoon", "evening")


class PortalProfileUpdate(BaseModel):
    fullName: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    @field_validator("fullName")
    @classmethod
    def validate_name(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be empty")
        if len(v) > 255:
            raise ValueError("Name is too long")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_us_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)


class JobCancelRequest(BaseModel):
    reason: str
    cancellationType: str = "customer_request"

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Cancellation reason is required")
        if len(v) > 500:
            raise ValueError("Reason must be 500 characters or less")
        return v

    @field_validator("cancellationType")
    @classmethod
    def validate_type(cls, v):
        return validate_choice(v, CANCELLATION_TYPES, "cancellation type")


class JobRescheduleRequest(BaseModel):
    preferredDate: date
    preferredTime: str
    reason: Optional[str] = None

    @field_validator("preferredTime")
    @classmethod
    def validate_time(cls, v):
        return validate_choice(v, PREFERRED_TIMES, "preferred time")

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        if v and len(v) > 500:
            raise ValueError("Reason must be 500 characters or less")
        return v


def serialize_portal_customer(c) -> dict:
    return {
        "id": c.id,
        "publicId": c.public_id,
        "fullName": c.full_name,
        "email": c.email,
        "phone": c.phone_e164,
        "addressLine1": c.address_line1,
        "city": c.city,
        "state": c.state,
        "postalCode": c.postal_code,
        "lastServiceDate": c.last_service_date,
    }


def serialize_portal_job(job) -> dict:
    return {
        "id": job.id,
        "publicId": job.public_id,
        "serviceType": job.service_type,
        "description": job.description,
        "scheduledDate": job.scheduled_date,
        "scheduledTimeStart": job.scheduled_time_start,
        "scheduledTimeEnd": job.scheduled_time_end,
        "status": job.status,
        "totalAmount": job.total_amount,
        "completedAt": job.completed_at,
    }


def serialize_portal_offer(delivery, now) -> dict:
    promotion = delivery.promotion
    return {
        "deliveryId": delivery.id,
        "promotionId": promotion.id,
        "title": promotion.title,
        "description": promotion.description,
        "promotionType": promotion.promotion_type,
        "discountValue": promotion.discount_value,
        "claimCode": delivery.claim_code,
        "claimed": delivery.claimed_at is not None,
        "endDate": promotion.end_date,
        "daysUntilExpiration": max(0, (promotion.end_date - now).days),
    }
