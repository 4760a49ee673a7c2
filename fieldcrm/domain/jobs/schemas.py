"""Job domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_choice, validate_hhmm

JOB_STATUSES = ("scheduled", "in_progress", "completed", "cancelled", "pending_approval")


class JobCreate(BaseModel):
    customerId: int
    serviceType: Optional[str] = None
    description: Optional[str] = None
    scheduledDate: datetime
    scheduledTimeStart: Optional[str] = None
    scheduledTimeEnd: Optional[str] = None
    totalAmount: float = 0.0
    technicianId: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("scheduledTimeStart", "scheduledTimeEnd")
    @classmethod
    def validate_time(cls, v):
        return validate_hhmm(v)

    @field_validator("totalAmount")
    @classmethod
    def validate_amount(cls, v):
        if v < 0:
            raise ValueError("Total amount cannot be negative")
        return v


class JobUpdate(BaseModel):
    serviceType: Optional[str] = None
    description: Optional[str] = None
    scheduledDate: Optional[datetime] = None
    scheduledTimeStart: Optional[str] = None
    scheduledTimeEnd: Optional[str] = None
    status: Optional[str] = None
    totalAmount: Optional[float] = None
    technicianId: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("scheduledTimeStart", "scheduledTimeEnd")
    @classmethod
    def validate_time(cls, v):
        return validate_hhmm(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return validate_choice(v, JOB_STATUSES, "status")


class JobCompleteRequest(BaseModel):
    totalAmount: Optional[float] = None
    notes: Optional[str] = None


JOB_FIELDS = {
    "serviceType": "service_type",
    "description": "description",
    "scheduledDate": "scheduled_date",
    "scheduledTimeStart": "scheduled_time_start",
    "scheduledTimeEnd": "scheduled_time_end",
    "status": "status",
    "totalAmount": "total_amount",
    "technicianId": "technician_id",
    "notes": "notes",
}


def serialize_job(job) -> dict:
    data = {field: getattr(job, column) for field, column in JOB_FIELDS.items()}
    data.update(
        id=job.id,
        publicId=job.public_id,
        customerId=job.customer_id,
        completedAt=job.completed_at,
        createdAt=job.created_at,
    )
    return data
