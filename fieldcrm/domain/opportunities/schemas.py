"""Opportunity domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models_opportunities import FOLLOW_UP_METHODS, OPPORTUNITY_TYPES
from ...shared.validators import validate_choice

OPPORTUNITY_STATUSES = (
    "pending",
    "follow_up_scheduled",
    "contacted",
    "offer_sent",
    "converted",
    "declined",
    "expired",
)


def _validate_discount(v):
    if v is not None and not 0 <= v <= 100:
        raise ValueError("Discount percentage must be between 0 and 100")
    return v


class OpportunityCreate(BaseModel):
    customerId: int
    opportunityType: str
    originalJobId: Optional[int] = None
    declinedServices: list[str] = []
    estimatedValue: Optional[float] = None
    reason: Optional[str] = None
    followUpScheduledDate: Optional[datetime] = None
    followUpMethod: Optional[str] = None
    followUpAssignedTo: Optional[int] = None
    autoOfferEnabled: bool = False
    offerDiscountPercentage: Optional[float] = None
    notes: Optional[str] = None

    @field_validator("opportunityType")
    @classmethod
    def validate_type(cls, v):
        return validate_choice(v, OPPORTUNITY_TYPES, "opportunity type")

    @field_validator("followUpMethod")
    @classmethod
    def validate_method(cls, v):
        return validate_choice(v, FOLLOW_UP_METHODS, "follow-up method")

    @field_validator("estimatedValue")
    @classmethod
    def validate_value(cls, v):
        if v is not None and v < 0:
            raise ValueError("Estimated value cannot be negative")
        return v

    @field_validator("offerDiscountPercentage")
    @classmethod
    def validate_discount(cls, v):
        return _validate_discount(v)


class OpportunityUpdate(BaseModel):
    status: Optional[str] = None
    followUpScheduledDate: Optional[datetime] = None
    followUpMethod: Optional[str] = None
    followUpAssignedTo: Optional[int] = None
    estimatedValue: Optional[float] = None
    notes: Optional[str] = None
    interactionNotes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return validate_choice(v, OPPORTUNITY_STATUSES, "status")

    @field_validator("followUpMethod")
    @classmethod
    def validate_method(cls, v):
        return validate_choice(v, FOLLOW_UP_METHODS, "follow-up method")


class OpportunityConvertRequest(BaseModel):
    jobId: int
    conversionValue: float
    notes: Optional[str] = None
    successFactors: Optional[str] = None

    @field_validator("conversionValue")
    @classmethod
    def validate_value(cls, v):
        if v < 0:
            raise ValueError("Conversion value must be positive")
        return v


def serialize_interaction(i) -> dict:
    return {
        "id": i.id,
        "interactionType": i.interaction_type,
        "interactionMethod": i.interaction_method,
        "performedByUserId": i.performed_by_user_id,
        "notes": i.notes,
        "meta": i.meta,
        "createdAt": i.created_at,
    }


def serialize_opportunity(o, include_interactions: bool = False) -> dict:
    data = {
        "id": o.id,
        "customerId": o.customer_id,
        "customerName": o.customer.full_name if o.customer else None,
        "opportunityType": o.opportunity_type,
        "originalJobId": o.original_job_id,
        "declinedServices": o.declined_services or [],
        "estimatedValue": o.estimated_value,
        "reason": o.reason,
        "status": o.status,
        "followUpScheduledDate": o.follow_up_scheduled_date,
        "followUpMethod": o.follow_up_method,
        "followUpAssignedTo": o.follow_up_assigned_to,
        "autoOfferEnabled": o.auto_offer_enabled,
        "offerDiscountPercentage": o.offer_discount_percentage,
        "offerPromotionId": o.offer_promotion_id,
        "offerSentAt": o.offer_sent_at,
        "converted": o.converted,
        "conversionDate": o.conversion_date,
        "conversionJobId": o.conversion_job_id,
        "conversionValue": o.conversion_value,
        "notes": o.notes,
        "createdAt": o.created_at,
    }
    if include_interactions:
        data["interactions"] = [serialize_interaction(i) for i in o.interactions]
    return data
