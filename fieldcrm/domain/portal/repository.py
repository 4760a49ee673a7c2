"""Portal repository - customer-scoped reads"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Job
from ...models_promotions import Promotion, PromotionDelivery


class PortalRepository:
    """Queries always filtered to the signed-in customer"""

    @staticmethod
    def customer_jobs(db: Session, customer_id: int) -> list[Job]:
        return (
            db.query(Job)
            .filter(Job.customer_id == customer_id)
            .order_by(Job.scheduled_date.desc(), Job.id.desc())
            .all()
        )

    @staticmethod
    def get_job(db: Session, job_id: int) -> Optional[Job]:
        return db.query(Job).filter(Job.id == job_id).first()

    @staticmethod
    def active_offers(db: Session, customer_id: int, now: datetime) -> list[PromotionDelivery]:
        return (
            db.query(PromotionDelivery)
            .join(Promotion, PromotionDelivery.promotion_id == Promotion.id)
            .filter(
                PromotionDelivery.customer_id == customer_id,
                PromotionDelivery.redeemed_at.is_(None),
                Promotion.status == "active",
                Promotion.start_date <= now,
                Promotion.end_date >= now,
            )
            .order_by(Promotion.end_date.asc())
            .all()
        )
