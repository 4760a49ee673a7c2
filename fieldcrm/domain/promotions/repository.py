"""Promotion repository - Database operations for promotions and deliveries"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models_promotions import Promotion, PromotionDelivery


class PromotionRepository:
    """Repository for promotion database operations"""

    @staticmethod
    def list_promotions(db: Session, status: Optional[str] = None) -> list[Promotion]:
        query = db.query(Promotion)
        if status:
            query = query.filter(Promotion.status == status)
        return query.order_by(Promotion.created_at.desc(), Promotion.id.desc()).all()

    @staticmethod
    def get_by_id(db: Session, promotion_id: int) -> Optional[Promotion]:
        return db.query(Promotion).filter(Promotion.id == promotion_id).first()

    @staticmethod
    def code_exists(db: Session, code: str) -> bool:
        return db.query(Promotion.id).filter(Promotion.code == code).first() is not None

    @staticmethod
    def claim_code_exists(db: Session, claim_code: str) -> bool:
        return (
            db.query(PromotionDelivery.id).filter(PromotionDelivery.claim_code == claim_code).first()
            is not None
        )

    @staticmethod
    def get_delivery(db: Session, promotion_id: int, customer_id: int) -> Optional[PromotionDelivery]:
        return (
            db.query(PromotionDelivery)
            .filter(
                PromotionDelivery.promotion_id == promotion_id,
                PromotionDelivery.customer_id == customer_id,
            )
            .order_by(PromotionDelivery.id.desc())
            .first()
        )

    @staticmethod
    def count_deliveries(db: Session, promotion_id: int) -> int:
        return db.query(PromotionDelivery).filter(PromotionDelivery.promotion_id == promotion_id).count()

    @staticmethod
    def customer_deliveries(db: Session, customer_id: int) -> list[PromotionDelivery]:
        return (
            db.query(PromotionDelivery)
            .filter(PromotionDelivery.customer_id == customer_id)
            .order_by(PromotionDelivery.id.desc())
            .all()
        )

    @staticmethod
    def active_past_end(db: Session, now: datetime) -> list[Promotion]:
        return db.query(Promotion).filter(Promotion.status == "active", Promotion.end_date < now).all()
