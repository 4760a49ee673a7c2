"""Opportunity service - capture, follow-up, auto-offers and conversion"""

import logging
import math
from datetime import datetime, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import OPPORTUNITY_EXPIRY_DAYS, OPPORTUNITY_OFFER_VALID_DAYS
from ...email_service import EmailDeliveryError, send_staff_alert_email
from ...models import Customer, Job, User
from ...models_opportunities import TERMINAL_OPPORTUNITY_STATUSES, MissedOpportunity
from ...services.audit import write_audit_log
from ...services.quiet_hours import local_time_to_utc_naive, to_local, to_naive_utc
from ...shared.responses import APIError
from ..promotions.service import PromotionService
from .repository import OpportunityRepository
from .schemas import OpportunityConvertRequest, OpportunityCreate, OpportunityUpdate

logger = logging.getLogger(__name__)

# converted is reached only through the convert endpoint
ALLOWED_TRANSITIONS = {
    "pending": ("follow_up_scheduled", "contacted", "offer_sent", "declined", "expired"),
    "follow_up_scheduled": ("contacted", "offer_sent", "declined", "expired"),
    "contacted": ("follow_up_scheduled", "offer_sent", "declined", "expired"),
    "offer_sent": ("follow_up_scheduled", "contacted", "declined", "expired"),
}

CONVERSION_BASE_POINTS = 100


def conversion_points(conversion_value: float) -> int:
    """Staff points for a conversion: 100 plus one per $10"""
    return CONVERSION_BASE_POINTS + math.floor(conversion_value / 10)


def can_transition(current: str, new: str) -> bool:
    return new == current or new in ALLOWED_TRANSITIONS.get(current, ())


class OpportunityService:
    """Service layer for the opportunity pipeline"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = OpportunityRepository()

    def get_opportunity(self, opportunity_id: int) -> MissedOpportunity:
        opportunity = self.repo.get_by_id(self.db, opportunity_id)
        if not opportunity:
            raise APIError("not_found", "Opportunity not found", 404)
        return opportunity

    def list_opportunities(
        self,
        customer_id: Optional[int],
        status: Optional[str],
        opportunity_type: Optional[str],
        assigned_to: Optional[int],
        converted: Optional[bool],
        page: int,
        limit: int,
    ) -> dict:
        opportunities, total = self.repo.list_opportunities(
            self.db,
            customer_id=customer_id,
            status=status,
            opportunity_type=opportunity_type,
            assigned_to=assigned_to,
            converted=converted,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return {
            "opportunities": opportunities,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit) if limit else 0,
            },
        }

    async def create_opportunity(
        self, data: OpportunityCreate, user: User, now: Optional[datetime] = None
    ) -> MissedOpportunity:
        now = now or datetime.utcnow()
        customer = self.db.query(Customer).filter(Customer.id == data.customerId).first()
        if not customer:
            raise APIError("not_found", "Customer not found", 404)

        follow_up_date = to_naive_utc(data.followUpScheduledDate)
        opportunity = self.repo.create(
            self.db,
            customer_id=customer.id,
            opportunity_type=data.opportunityType,
            original_job_id=data.originalJobId,
            declined_services=data.declinedServices,
            estimated_value=data.estimatedValue,
            reason=data.reason,
            follow_up_scheduled_date=follow_up_date,
            follow_up_method=data.followUpMethod,
            follow_up_assigned_to=data.followUpAssignedTo,
            auto_offer_enabled=data.autoOfferEnabled,
            offer_discount_percentage=data.offerDiscountPercentage,
            notes=data.notes,
            created_by_user_id=user.id,
            status="follow_up_scheduled" if follow_up_date else "pending",
        )
        self.repo.add_interaction(
            self.db,
            opportunity_id=opportunity.id,
            interaction_type="created",
            interaction_method="portal",
            performed_by_user_id=user.id,
            notes="Opportunity created",
            meta={"opportunityType": data.opportunityType},
        )

        if data.autoOfferEnabled and data.offerDiscountPercentage:
            self._create_auto_offer(opportunity, user, now)

        write_audit_log(
            self.db, "create_opportunity", "opportunity", opportunity.id, actor_user_id=user.id
        )
        self.db.commit()
        self.db.refresh(opportunity)
        logger.info(f"💼 Opportunity {opportunity.id} captured for customer {customer.id} ({opportunity.status})")

        if data.followUpAssignedTo and follow_up_date:
            await self._notify_assignee(opportunity, customer, data.followUpAssignedTo, follow_up_date)

        return opportunity

    def _create_auto_offer(self, opportunity: MissedOpportunity, user: User, now: datetime) -> None:
        discount = opportunity.offer_discount_percentage
        promotion, delivery = PromotionService(self.db).create_customer_offer(
            opportunity.customer_id,
            title="Opportunity Recovery Offer",
            description=f"Special {discount:g}% discount offer",
            discount_percentage=discount,
            valid_days=OPPORTUNITY_OFFER_VALID_DAYS,
            code_prefix="OPP",
            created_from="opportunity",
            actor_user_id=user.id,
            now=now,
        )
        opportunity.offer_promotion_id = promotion.id
        opportunity.offer_sent_at = now
        opportunity.status = "offer_sent"
        self.repo.add_interaction(
            self.db,
            opportunity_id=opportunity.id,
            interaction_type="offer_sent",
            interaction_method="portal_offer",
            performed_by_user_id=user.id,
            notes=f"Auto-offer {promotion.code} delivered",
            meta={"promotionId": promotion.id, "deliveryId": delivery.id},
        )

    async def _notify_assignee(
        self, opportunity: MissedOpportunity, customer: Customer, assignee_id: int, follow_up_date: datetime
    ) -> None:
        assignee = self.db.query(User).filter(User.id == assignee_id).first()
        if not assignee or not assignee.email:
            return
        try:
            await send_staff_alert_email(
                assignee.email,
                "New Opportunity Assigned",
                [
                    f"You have been assigned to follow up with {customer.full_name} "
                    f"on {to_local(follow_up_date):%b %d, %Y}.",
                    f"Opportunity #{opportunity.id}: {opportunity.opportunity_type.replace('_', ' ')}",
                ],
            )
        except EmailDeliveryError as e:
            logger.warning(f"⚠️ Assignment email for opportunity {opportunity.id} failed: {e}")

    def update_opportunity(self, opportunity_id: int, data: OpportunityUpdate, user: User) -> MissedOpportunity:
        opportunity = self.get_opportunity(opportunity_id)
        previous_status = opportunity.status

        if data.status and data.status != previous_status:
            if data.status == "converted":
                raise APIError("invalid_transition", "Use the convert endpoint to convert an opportunity", 400)
            if not can_transition(previous_status, data.status):
                raise APIError(
                    "invalid_transition",
                    f"Cannot move opportunity from {previous_status} to {data.status}",
                    400,
                )
            opportunity.status = data.status

        if data.followUpScheduledDate is not None:
            opportunity.follow_up_scheduled_date = to_naive_utc(data.followUpScheduledDate)
        if data.followUpMethod is not None:
            opportunity.follow_up_method = data.followUpMethod
        if data.followUpAssignedTo is not None:
            opportunity.follow_up_assigned_to = data.followUpAssignedTo
        if data.estimatedValue is not None:
            opportunity.estimated_value = data.estimatedValue
        if data.notes is not None:
            opportunity.notes = data.notes

        interaction_type = "status_changed" if opportunity.status != previous_status else "updated"
        if opportunity.status == "contacted" and previous_status != "contacted":
            interaction_type = "contacted"
        self.repo.add_interaction(
            self.db,
            opportunity_id=opportunity.id,
            interaction_type=interaction_type,
            interaction_method=data.followUpMethod or opportunity.follow_up_method,
            performed_by_user_id=user.id,
            notes=data.interactionNotes,
            meta={"from": previous_status, "to": opportunity.status},
        )
        write_audit_log(
            self.db,
            "update_opportunity",
            "opportunity",
            opportunity.id,
            actor_user_id=user.id,
            meta={"from": previous_status, "to": opportunity.status},
        )
        self.db.commit()
        self.db.refresh(opportunity)
        return opportunity

    def convert_opportunity(
        self, opportunity_id: int, data: OpportunityConvertRequest, user: User, now: Optional[datetime] = None
    ) -> dict:
        now = now or datetime.utcnow()
        opportunity = self.get_opportunity(opportunity_id)
        if opportunity.status in TERMINAL_OPPORTUNITY_STATUSES:
            raise APIError("invalid_status", f"Opportunity is already {opportunity.status}", 400)

        job = self.db.query(Job).filter(Job.id == data.jobId).first()
        if not job:
            raise APIError("not_found", "Job not found", 404)
        if job.customer_id != opportunity.customer_id:
            raise APIError("invalid_job", "Job does not belong to the same customer", 400)

        opportunity.converted = True
        opportunity.conversion_date = now
        opportunity.conversion_job_id = job.id
        opportunity.conversion_value = data.conversionValue
        opportunity.status = "converted"

        self.repo.add_interaction(
            self.db,
            opportunity_id=opportunity.id,
            interaction_type="converted",
            interaction_method="portal",
            performed_by_user_id=user.id,
            notes=data.notes or f"Converted to job {job.id}. {data.successFactors or ''}".strip(),
            meta={
                "jobId": job.id,
                "conversionValue": data.conversionValue,
                "successFactors": data.successFactors,
            },
        )

        closed_offers = 0
        if opportunity.offer_promotion_id:
            for delivery in self.repo.open_offer_deliveries(self.db, opportunity.offer_promotion_id):
                delivery.delivery_status = "completed"
                closed_offers += 1

        points = conversion_points(data.conversionValue)
        write_audit_log(
            self.db,
            "convert_opportunity",
            "opportunity",
            opportunity.id,
            actor_user_id=user.id,
            meta={"jobId": job.id, "conversionValue": data.conversionValue, "staffPoints": points},
        )
        self.db.commit()
        logger.info(
            f"🎉 Opportunity {opportunity.id} converted by user {user.id} (${data.conversionValue:.2f}, {points} pts)"
        )
        return {
            "message": "Opportunity converted successfully",
            "opportunityId": opportunity.id,
            "jobId": job.id,
            "conversionValue": data.conversionValue,
            "pointsAwarded": points,
            "closedOffers": closed_offers,
        }


def process_opportunity_follow_ups(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Daily pipeline maintenance.

    Counts follow-ups due today, logs the overdue ones, and expires open
    opportunities older than OPPORTUNITY_EXPIRY_DAYS.
    """
    now = now or datetime.utcnow()
    today = to_local(now).date()
    start_of_today = local_time_to_utc_naive(today, time(0, 0))
    start_of_tomorrow = local_time_to_utc_naive(today + timedelta(days=1), time(0, 0))

    due = OpportunityRepository.follow_ups_due(db, start_of_tomorrow)
    overdue = [o for o in due if o.follow_up_scheduled_date < start_of_today]
    for opportunity in overdue:
        logger.warning(
            f"⏰ Opportunity {opportunity.id} follow-up overdue since "
            f"{opportunity.follow_up_scheduled_date:%Y-%m-%d} (assigned to {opportunity.follow_up_assigned_to})"
        )

    expired = OpportunityRepository.stale_open(db, now - timedelta(days=OPPORTUNITY_EXPIRY_DAYS))
    for opportunity in expired:
        previous_status = opportunity.status
        opportunity.status = "expired"
        OpportunityRepository.add_interaction(
            db,
            opportunity_id=opportunity.id,
            interaction_type="expired",
            notes=f"Expired after {OPPORTUNITY_EXPIRY_DAYS} days",
            meta={"from": previous_status},
        )

    summary = {
        "ok": True,
        "dueToday": len(due) - len(overdue),
        "overdue": len(overdue),
        "expired": len(expired),
    }
    write_audit_log(db, "cron_opportunities", "opportunity", meta=summary)
    db.commit()
    logger.info(f"💼 Opportunity cron: {summary}")
    return summary
