"""Loyalty domain schemas"""

from typing import Optional

from pydantic import BaseModel, field_validator

MAX_POINTS_PER_TRANSACTION = 10000
MAX_REASON_LENGTH = 500


def _validate_points(v: int) -> int:
    if v <= 0:
        raise ValueError("Points must be greater than 0")
    if v > MAX_POINTS_PER_TRANSACTION:
        raise ValueError(f"Points cannot exceed {MAX_POINTS_PER_TRANSACTION} per transaction")
    return v


def _validate_reason(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Reason is required")
    if len(v) > MAX_REASON_LENGTH:
        raise ValueError(f"Reason must be {MAX_REASON_LENGTH} characters or fewer")
    return v


class PointsEarnRequest(BaseModel):
    customerId: int
    points: int
    reason: str
    jobId: Optional[int] = None

    @field_validator("points")
    @classmethod
    def validate_points(cls, v):
        return _validate_points(v)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        return _validate_reason(v)


class PointsRedeemRequest(BaseModel):
    customerId: int
    points: int
    reason: str

    @field_validator("points")
    @classmethod
    def validate_points(cls, v):
        return _validate_points(v)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        return _validate_reason(v)


class ReferralCompleteRequest(BaseModel):
    referrerCustomerId: int
    referredCustomerId: int
    jobId: Optional[int] = None

    @field_validator("referredCustomerId")
    @classmethod
    def validate_not_self(cls, v, info):
        if info.data.get("referrerCustomerId") == v:
            raise ValueError("A customer cannot refer themselves")
        return v


def serialize_transaction(t) -> dict:
    return {
        "id": t.id,
        "customerId": t.customer_id,
        "points": t.points,
        "transactionType": t.transaction_type,
        "reason": t.reason,
        "jobId": t.job_id,
        "createdAt": t.created_at,
    }
