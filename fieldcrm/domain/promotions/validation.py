"""
Promotion eligibility checks

validate_promotion runs the checks in order and returns the first failure:
active window, redemption limits, audience, job value, zone, service types.
Each result is {"valid": bool, "reason": str | None, "code": str | None}.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Customer
from ...models_promotions import Promotion, PromotionDelivery

INACTIVE_AFTER_DAYS = 90
VIP_LIFETIME_VALUE = 1000


def ok() -> dict:
    return {"valid": True, "reason": None, "code": None}


def fail(code: str, reason: str) -> dict:
    return {"valid": False, "reason": reason, "code": code}


def validate_promotion_active(promotion: Optional[Promotion], now: datetime) -> dict:
    if promotion is None:
        return fail("PROMOTION_NOT_FOUND", "Promotion not found")
    if promotion.status != "active":
        return fail("PROMOTION_NOT_ACTIVE", "Promotion is not active")
    if promotion.start_date and promotion.start_date > now:
        return fail("PROMOTION_NOT_STARTED", "Promotion has not started yet")
    if promotion.end_date and promotion.end_date < now:
        return fail("PROMOTION_EXPIRED", "Promotion has expired")
    return ok()


def count_customer_redemptions(db: Session, promotion_id: int, customer_id: int) -> int:
    return (
        db.query(PromotionDelivery)
        .filter(
            PromotionDelivery.promotion_id == promotion_id,
            PromotionDelivery.customer_id == customer_id,
            PromotionDelivery.redeemed_at.isnot(None),
        )
        .count()
    )


def validate_redemption_limits(db: Session, promotion: Promotion, customer_id: Optional[int]) -> dict:
    current = promotion.current_redemptions or 0
    if promotion.max_redemptions and current >= promotion.max_redemptions:
        return fail("MAX_REDEMPTIONS_REACHED", "Promotion has reached maximum redemptions")

    if customer_id is not None:
        per_customer = promotion.redemptions_per_customer or 1
        used = count_customer_redemptions(db, promotion.id, customer_id)
        if used >= per_customer:
            return fail(
                "CUSTOMER_REDEMPTION_LIMIT_REACHED",
                f"You have already redeemed this promotion {used} time(s). "
                f"Limit is {per_customer} per customer.",
            )
    return ok()


def validate_customer_eligibility(promotion: Promotion, customer: Optional[Customer], now: datetime) -> dict:
    audience = promotion.target_audience or "all_customers"
    if audience == "all_customers":
        return ok()

    if customer is None:
        return fail("CUSTOMER_NOT_FOUND", "Customer not found")

    if audience == "new":
        if customer.last_service_date:
            return fail("NOT_NEW_CUSTOMER", "This promotion is only for new customers")

    elif audience == "inactive":
        if customer.last_service_date:
            days_since = (now - customer.last_service_date).days
            if days_since < INACTIVE_AFTER_DAYS:
                return fail("NOT_INACTIVE_CUSTOMER", "This promotion is only for inactive customers")

    elif audience == "vip":
        if (customer.lifetime_value or 0) < VIP_LIFETIME_VALUE and customer.customer_type != "vip":
            return fail("NOT_VIP_CUSTOMER", "This promotion is only for VIP customers")

    elif audience == "specific":
        if customer.id not in (promotion.target_customer_ids or []):
            return fail("NOT_TARGETED_CUSTOMER", "This promotion is not available for this customer")

    return ok()


def validate_job_value(promotion: Promotion, job_value: float) -> dict:
    if promotion.min_job_value and job_value < promotion.min_job_value:
        return fail("JOB_VALUE_TOO_LOW", f"Job value must be at least ${promotion.min_job_value:.2f}")
    if promotion.max_job_value and job_value > promotion.max_job_value:
        return fail("JOB_VALUE_TOO_HIGH", f"Job value must not exceed ${promotion.max_job_value:.2f}")
    return ok()


def validate_zone(promotion: Promotion, zone: str) -> dict:
    target_zones = promotion.target_zones or []
    if target_zones and zone not in target_zones:
        return fail("ZONE_NOT_ELIGIBLE", "This promotion is not available in your area")
    return ok()


def validate_service_types(promotion: Promotion, service_types: list[str]) -> dict:
    targets = promotion.target_service_types or []
    if targets and not any(t in targets for t in service_types):
        return fail("SERVICE_TYPE_NOT_ELIGIBLE", "This promotion is not valid for the selected services")
    return ok()


def validate_promotion(
    db: Session,
    promotion: Optional[Promotion],
    customer: Optional[Customer] = None,
    job_value: Optional[float] = None,
    zone: Optional[str] = None,
    service_types: Optional[list[str]] = None,
    now: Optional[datetime] = None,
) -> dict:
    now = now or datetime.utcnow()

    result = validate_promotion_active(promotion, now)
    if not result["valid"]:
        return result

    result = validate_redemption_limits(db, promotion, customer.id if customer else None)
    if not result["valid"]:
        return result

    if customer is not None:
        result = validate_customer_eligibility(promotion, customer, now)
        if not result["valid"]:
            return result

    if job_value is not None:
        result = validate_job_value(promotion, job_value)
        if not result["valid"]:
            return result

    zone = zone or (customer.zone if customer else None)
    if zone:
        result = validate_zone(promotion, zone)
        if not result["valid"]:
            return result

    if service_types:
        result = validate_service_types(promotion, service_types)
        if not result["valid"]:
            return result

    return ok()


def validate_claim_code(db: Session, claim_code: str, now: Optional[datetime] = None) -> dict:
    """Result also carries "delivery" and "promotion" when the code is usable"""
    delivery = db.query(PromotionDelivery).filter(PromotionDelivery.claim_code == claim_code).first()
    if delivery is None:
        return fail("INVALID_CLAIM_CODE", "Invalid claim code")
    if delivery.redeemed_at:
        return fail("ALREADY_REDEEMED", "This promotion has already been redeemed")

    result = validate_promotion_active(delivery.promotion, now or datetime.utcnow())
    if not result["valid"]:
        return result

    return {**ok(), "delivery": delivery, "promotion": delivery.promotion}


def calculate_discount(promotion: Promotion, job_value: float) -> float:
    """Percentage of the job value, or a fixed amount capped at the job value"""
    if promotion.promotion_type == "percentage":
        return round(job_value * (promotion.discount_value or 0) / 100, 2)
    return round(min(promotion.discount_value or 0, job_value), 2)
