"""Opportunity repository - Database operations for the opportunity pipeline"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models_opportunities import TERMINAL_OPPORTUNITY_STATUSES, MissedOpportunity, OpportunityInteraction
from ...models_promotions import PromotionDelivery


class OpportunityRepository:
    """Repository for opportunity database operations"""

    @staticmethod
    def list_opportunities(
        db: Session,
        customer_id: Optional[int] = None,
        status: Optional[str] = None,
        opportunity_type: Optional[str] = None,
        assigned_to: Optional[int] = None,
        converted: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[MissedOpportunity], int]:
        query = db.query(MissedOpportunity)
        if customer_id:
            query = query.filter(MissedOpportunity.customer_id == customer_id)
        if status:
            query = query.filter(MissedOpportunity.status == status)
        if opportunity_type:
            query = query.filter(MissedOpportunity.opportunity_type == opportunity_type)
        if assigned_to:
            query = query.filter(MissedOpportunity.follow_up_assigned_to == assigned_to)
        if converted is not None:
            query = query.filter(MissedOpportunity.converted.is_(converted))

        total = query.count()
        opportunities = (
            query.order_by(MissedOpportunity.created_at.desc(), MissedOpportunity.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return opportunities, total

    @staticmethod
    def get_by_id(db: Session, opportunity_id: int) -> Optional[MissedOpportunity]:
        return db.query(MissedOpportunity).filter(MissedOpportunity.id == opportunity_id).first()

    @staticmethod
    def create(db: Session, **kwargs) -> MissedOpportunity:
        opportunity = MissedOpportunity(**kwargs)
        db.add(opportunity)
        db.flush()
        return opportunity

    @staticmethod
    def add_interaction(db: Session, **kwargs) -> OpportunityInteraction:
        interaction = OpportunityInteraction(**kwargs)
        db.add(interaction)
        db.flush()
        return interaction

    @staticmethod
    def open_offer_deliveries(db: Session, promotion_id: int) -> list[PromotionDelivery]:
        return (
            db.query(PromotionDelivery)
            .filter(
                PromotionDelivery.promotion_id == promotion_id,
                PromotionDelivery.redeemed_at.is_(None),
                PromotionDelivery.delivery_status != "completed",
            )
            .all()
        )

    @staticmethod
    def follow_ups_due(db: Session, due_before: datetime) -> list[MissedOpportunity]:
        return (
            db.query(MissedOpportunity)
            .filter(
                MissedOpportunity.status == "follow_up_scheduled",
                MissedOpportunity.follow_up_scheduled_date.isnot(None),
                MissedOpportunity.follow_up_scheduled_date < due_before,
            )
            .all()
        )

    @staticmethod
    def stale_open(db: Session, created_before: datetime) -> list[MissedOpportunity]:
        return (
            db.query(MissedOpportunity)
            .filter(
                MissedOpportunity.status.notin_(TERMINAL_OPPORTUNITY_STATUSES),
                MissedOpportunity.created_at < created_before,
            )
            .all()
        )
