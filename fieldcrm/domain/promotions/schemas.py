"""Promotion domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from ...shared.validators import validate_choice

PROMOTION_TYPES = ("percentage", "fixed_amount")
PROMOTION_STATUSES = ("draft", "active", "paused", "expired")
TARGET_AUDIENCES = ("all_customers", "new", "inactive", "vip", "specific")


class PromotionCreate(BaseModel):
    title: str
    description: Optional[str] = None
    code: Optional[str] = None
    promotionType: str = "percentage"
    discountValue: float
    status: str = "draft"
    startDate: datetime
    endDate: datetime
    targetAudience: str = "all_customers"
    targetCustomerIds: list[int] = []
    targetZones: list[str] = []
    targetServiceTypes: list[str] = []
    minJobValue: Optional[float] = None
    maxJobValue: Optional[float] = None
    maxRedemptions: Optional[int] = None
    redemptionsPerCustomer: int = 1

    @field_validator("promotionType")
    @classmethod
    def validate_type(cls, v):
        return validate_choice(v, PROMOTION_TYPES, "promotion type")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return validate_choice(v, PROMOTION_STATUSES, "status")

    @field_validator("targetAudience")
    @classmethod
    def validate_audience(cls, v):
        return validate_choice(v, TARGET_AUDIENCES, "target audience")

    @field_validator("discountValue")
    @classmethod
    def validate_discount(cls, v):
        if v <= 0:
            raise ValueError("Discount value must be greater than 0")
        return v

    @model_validator(mode="after")
    def validate_ranges(self):
        if self.endDate <= self.startDate:
            raise ValueError("End date must be after start date")
        if self.promotionType == "percentage" and self.discountValue > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        if self.minJobValue and self.maxJobValue and self.minJobValue > self.maxJobValue:
            raise ValueError("Minimum job value cannot exceed maximum job value")
        return self


class PromotionUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    discountValue: Optional[float] = None
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    targetAudience: Optional[str] = None
    targetCustomerIds: Optional[list[int]] = None
    targetZones: Optional[list[str]] = None
    targetServiceTypes: Optional[list[str]] = None
    minJobValue: Optional[float] = None
    maxJobValue: Optional[float] = None
    maxRedemptions: Optional[int] = None
    redemptionsPerCustomer: Optional[int] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return validate_choice(v, PROMOTION_STATUSES, "status")

    @field_validator("targetAudience")
    @classmethod
    def validate_audience(cls, v):
        return validate_choice(v, TARGET_AUDIENCES, "target audience")


class PromotionValidateRequest(BaseModel):
    customerId: Optional[int] = None
    jobValue: Optional[float] = None
    zone: Optional[str] = None
    serviceTypes: list[str] = []


class PromotionRedeemRequest(BaseModel):
    claimCode: str
    jobId: int
    jobValue: Optional[float] = None

    @field_validator("claimCode")
    @classmethod
    def normalize_code(cls, v):
        v = v.strip().upper()
        if not v:
            raise ValueError("Claim code is required")
        return v


class ClaimRequest(BaseModel):
    deliveryChannel: str = "portal"
    notes: Optional[str] = None


# camelCase request field -> Promotion column
PROMOTION_FIELDS = {
    "title": "title",
    "description": "description",
    "code": "code",
    "promotionType": "promotion_type",
    "discountValue": "discount_value",
    "status": "status",
    "startDate": "start_date",
    "endDate": "end_date",
    "targetAudience": "target_audience",
    "targetCustomerIds": "target_customer_ids",
    "targetZones": "target_zones",
    "targetServiceTypes": "target_service_types",
    "minJobValue": "min_job_value",
    "maxJobValue": "max_job_value",
    "maxRedemptions": "max_redemptions",
    "redemptionsPerCustomer": "redemptions_per_customer",
}


def serialize_promotion(p) -> dict:
    data = {field: getattr(p, column) for field, column in PROMOTION_FIELDS.items()}
    data.update(
        id=p.id,
        currentRedemptions=p.current_redemptions,
        createdFrom=p.created_from,
        createdAt=p.created_at,
    )
    return data


def serialize_delivery(d) -> dict:
    return {
        "id": d.id,
        "promotionId": d.promotion_id,
        "customerId": d.customer_id,
        "claimCode": d.claim_code,
        "deliveryChannel": d.delivery_channel,
        "deliveryStatus": d.delivery_status,
        "deliveredAt": d.delivered_at,
        "claimedAt": d.claimed_at,
        "redeemedAt": d.redeemed_at,
        "redeemedJobId": d.redeemed_job_id,
        "discountAmount": d.discount_amount,
    }
