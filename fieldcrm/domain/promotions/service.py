"""Promotion service - CRUD, claiming, redemption and customer-specific offers"""

import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Customer, Job
from ...models_promotions import Promotion, PromotionDelivery
from ...services.audit import write_audit_log
from ...services.quiet_hours import to_naive_utc
from ...shared.responses import APIError
from .repository import PromotionRepository
from .schemas import PROMOTION_FIELDS, PromotionCreate, PromotionUpdate
from .validation import calculate_discount, validate_claim_code, validate_promotion

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CLAIM_CODE_LENGTH = 8

# status failures that block claiming, keyed by validation code
CLAIM_BLOCKING_CODES = {
    "PROMOTION_NOT_ACTIVE": "invalid_status",
    "PROMOTION_EXPIRED": "expired",
    "PROMOTION_NOT_STARTED": "not_started",
}


def random_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


class PromotionService:
    """Service layer for promotions"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = PromotionRepository()

    def _generate_unique_code(self, prefix: str, length: int = 6) -> str:
        while True:
            code = f"{prefix}{random_code(length)}"
            if not self.repo.code_exists(self.db, code):
                return code

    def _generate_claim_code(self) -> str:
        while True:
            code = random_code(CLAIM_CODE_LENGTH)
            if not self.repo.claim_code_exists(self.db, code):
                return code

    def _require_customer(self, customer_id: int) -> Customer:
        customer = self.db.query(Customer).filter(Customer.id == customer_id).first()
        if not customer:
            raise APIError("not_found", "Customer not found", 404)
        return customer

    # ==========================================================================
    # CRUD
    # ==========================================================================

    def list_promotions(self, status: Optional[str] = None) -> list[Promotion]:
        return self.repo.list_promotions(self.db, status)

    def get_promotion(self, promotion_id: int) -> Promotion:
        promotion = self.repo.get_by_id(self.db, promotion_id)
        if not promotion:
            raise APIError("not_found", "Promotion not found", 404)
        return promotion

    def create(self, data: PromotionCreate, actor_user_id: Optional[int] = None) -> Promotion:
        payload = data.model_dump()
        code = (payload.pop("code") or "").strip().upper() or None
        payload["startDate"] = to_naive_utc(payload["startDate"])
        payload["endDate"] = to_naive_utc(payload["endDate"])
        if code and self.repo.code_exists(self.db, code):
            raise APIError("duplicate", f"Promotion code {code} already exists", 409)

        promotion = Promotion(
            code=code,
            created_from="manual",
            created_by_user_id=actor_user_id,
            **{PROMOTION_FIELDS[k]: v for k, v in payload.items()},
        )
        self.db.add(promotion)
        self.db.flush()
        write_audit_log(
            self.db, "create_promotion", "promotion", promotion.id, actor_user_id=actor_user_id
        )
        self.db.commit()
        self.db.refresh(promotion)
        logger.info(f"🎟️ Promotion created: {promotion.id} ({promotion.title})")
        return promotion

    def update(self, promotion_id: int, data: PromotionUpdate, actor_user_id: Optional[int] = None) -> Promotion:
        promotion = self.get_promotion(promotion_id)
        changes = data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            if field in ("startDate", "endDate"):
                value = to_naive_utc(value)
            setattr(promotion, PROMOTION_FIELDS[field], value)

        if promotion.end_date <= promotion.start_date:
            raise APIError("validation_failed", "End date must be after start date", 400)

        write_audit_log(
            self.db,
            "update_promotion",
            "promotion",
            promotion_id,
            actor_user_id=actor_user_id,
            meta={"fields": sorted(changes.keys())},
        )
        self.db.commit()
        self.db.refresh(promotion)
        return promotion

    def delete(self, promotion_id: int, actor_user_id: Optional[int] = None) -> dict:
        """Delivered promotions are expired instead of removed"""
        promotion = self.get_promotion(promotion_id)
        if self.repo.count_deliveries(self.db, promotion_id):
            promotion.status = "expired"
            outcome = "expired"
        else:
            self.db.delete(promotion)
            outcome = "deleted"

        write_audit_log(
            self.db, "delete_promotion", "promotion", promotion_id, outcome=outcome, actor_user_id=actor_user_id
        )
        self.db.commit()
        return {"id": promotion_id, "result": outcome}

    # ==========================================================================
    # ELIGIBILITY
    # ==========================================================================

    def validate(
        self,
        promotion_id: int,
        customer_id: Optional[int] = None,
        job_value: Optional[float] = None,
        zone: Optional[str] = None,
        service_types: Optional[list[str]] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        promotion = self.repo.get_by_id(self.db, promotion_id)
        customer = self._require_customer(customer_id) if customer_id is not None else None
        result = validate_promotion(self.db, promotion, customer, job_value, zone, service_types, now)

        if result["valid"] and job_value is not None:
            result["discountAmount"] = calculate_discount(promotion, job_value)
        return result

    # ==========================================================================
    # DELIVERY AND CLAIMING
    # ==========================================================================

    def deliver(
        self,
        promotion: Promotion,
        customer_id: int,
        channel: str = "portal",
        meta: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> PromotionDelivery:
        """Hand a promotion to one customer with a fresh claim code"""
        now = now or datetime.utcnow()
        delivery = PromotionDelivery(
            promotion_id=promotion.id,
            customer_id=customer_id,
            claim_code=self._generate_claim_code(),
            delivery_channel=channel,
            delivery_status="delivered",
            delivered_at=now,
            meta=meta,
        )
        self.db.add(delivery)
        self.db.flush()
        return delivery

    def claim_for_customer(
        self,
        customer_id: int,
        promotion_id: int,
        channel: str = "portal",
        actor_user_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> tuple[dict, bool]:
        """
        Claim a promotion for a customer.

        Returns (data, created) where created is True only when a new
        delivery row was made.
        """
        now = now or datetime.utcnow()
        self._require_customer(customer_id)
        promotion = self.get_promotion(promotion_id)

        result = validate_promotion(self.db, promotion, now=now)
        if not result["valid"] and result["code"] in CLAIM_BLOCKING_CODES:
            raise APIError(CLAIM_BLOCKING_CODES[result["code"]], result["reason"], 400)

        delivery = self.repo.get_delivery(self.db, promotion_id, customer_id)
        if delivery and delivery.redeemed_at:
            raise APIError("already_redeemed", "This promotion has already been redeemed", 400)

        if delivery and delivery.claimed_at:
            return {
                "claimCode": delivery.claim_code,
                "alreadyClaimed": True,
                "delivery": delivery,
            }, False

        source = "staff_assisted" if actor_user_id else "portal"
        created = delivery is None
        if created:
            delivery = self.deliver(promotion, customer_id, channel, now=now)

        delivery.claimed_at = now
        delivery.meta = {**(delivery.meta or {}), "claim_source": source}
        write_audit_log(
            self.db,
            "claim_promotion",
            "promotion",
            promotion_id,
            actor_user_id=actor_user_id,
            meta={"customerId": customer_id, "deliveryId": delivery.id, "source": source},
        )
        self.db.commit()
        self.db.refresh(delivery)
        logger.info(f"🎟️ Promotion {promotion_id} claimed for customer {customer_id} ({source})")
        return {"claimCode": delivery.claim_code, "alreadyClaimed": False, "delivery": delivery}, created

    def create_customer_offer(
        self,
        customer_id: int,
        title: str,
        discount_percentage: float,
        valid_days: int,
        code_prefix: str,
        created_from: str,
        description: Optional[str] = None,
        actor_user_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> tuple[Promotion, PromotionDelivery]:
        """
        Create a single-customer percentage promotion and deliver it.

        Flushes but does not commit; callers commit with their own changes.
        """
        now = now or datetime.utcnow()
        promotion = Promotion(
            code=self._generate_unique_code(code_prefix),
            title=title,
            description=description,
            promotion_type="percentage",
            discount_value=discount_percentage,
            status="active",
            start_date=now,
            end_date=now + timedelta(days=valid_days),
            target_audience="specific",
            target_customer_ids=[customer_id],
            target_zones=[],
            target_service_types=[],
            max_redemptions=1,
            redemptions_per_customer=1,
            created_from=created_from,
            created_by_user_id=actor_user_id,
        )
        self.db.add(promotion)
        self.db.flush()
        delivery = self.deliver(promotion, customer_id, meta={"source": created_from}, now=now)
        return promotion, delivery

    def customer_deliveries(self, customer_id: int) -> list[PromotionDelivery]:
        return self.repo.customer_deliveries(self.db, customer_id)

    # ==========================================================================
    # REDEMPTION
    # ==========================================================================

    def redeem(
        self,
        claim_code: str,
        job_id: int,
        job_value: Optional[float] = None,
        actor_user_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        now = now or datetime.utcnow()
        result = validate_claim_code(self.db, claim_code, now)
        if not result["valid"]:
            raise APIError(result["code"].lower(), result["reason"], 400)

        delivery = result["delivery"]
        promotion = result["promotion"]

        job = self.db.query(Job).filter(Job.id == job_id).first()
        if not job:
            raise APIError("not_found", "Job not found", 404)
        if job.customer_id != delivery.customer_id:
            raise APIError("invalid_job", "Job does not belong to the promotion's customer", 400)

        value = job_value if job_value is not None else (job.total_amount or 0)
        eligibility = validate_promotion(
            self.db,
            promotion,
            delivery.customer,
            job_value=value,
            service_types=[job.service_type] if job.service_type else None,
            now=now,
        )
        if not eligibility["valid"]:
            raise APIError(eligibility["code"].lower(), eligibility["reason"], 400)

        discount = calculate_discount(promotion, value)
        delivery.redeemed_at = now
        delivery.redeemed_job_id = job_id
        delivery.discount_amount = discount
        delivery.delivery_status = "completed"
        promotion.current_redemptions = (promotion.current_redemptions or 0) + 1

        write_audit_log(
            self.db,
            "redeem_promotion",
            "promotion",
            promotion.id,
            actor_user_id=actor_user_id,
            meta={"deliveryId": delivery.id, "jobId": job_id, "discount": discount},
        )
        self.db.commit()
        logger.info(f"💸 Promotion {promotion.id} redeemed on job {job_id} (${discount:.2f} off)")
        return {
            "promotionId": promotion.id,
            "claimCode": delivery.claim_code,
            "jobId": job_id,
            "jobValue": value,
            "discountAmount": discount,
            "finalAmount": round(value - discount, 2),
        }


def expire_promotions(db: Session, now: Optional[datetime] = None) -> dict:
    """Mark active promotions past their end date as expired"""
    now = now or datetime.utcnow()
    expired = PromotionRepository.active_past_end(db, now)
    for promotion in expired:
        promotion.status = "expired"

    if expired:
        write_audit_log(db, "cron_promotions", "promotion", meta={"expired": len(expired)})
        logger.info(f"⏰ Expired {len(expired)} promotion(s)")
    db.commit()
    return {"ok": True, "expired": len(expired)}
