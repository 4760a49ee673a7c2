"""Loyalty repository - Database operations for balances and the points ledger"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Customer
from ...models_loyalty import CustomerLoyalty, LoyaltyTransaction


class LoyaltyRepository:
    """Repository for loyalty database operations"""

    @staticmethod
    def get_customer(db: Session, customer_id: int) -> Optional[Customer]:
        return db.query(Customer).filter(Customer.id == customer_id).first()

    @staticmethod
    def get_account(db: Session, customer_id: int) -> Optional[CustomerLoyalty]:
        return db.query(CustomerLoyalty).filter(CustomerLoyalty.customer_id == customer_id).first()

    @staticmethod
    def get_or_create_account(db: Session, customer_id: int) -> CustomerLoyalty:
        account = LoyaltyRepository.get_account(db, customer_id)
        if account is None:
            account = CustomerLoyalty(
                customer_id=customer_id, total_points=0, lifetime_points=0, current_tier_level=1
            )
            db.add(account)
            db.flush()
        return account

    @staticmethod
    def add_transaction(
        db: Session,
        customer_id: int,
        points: int,
        transaction_type: str,
        reason: str,
        job_id: Optional[int] = None,
        created_by_user_id: Optional[int] = None,
        meta: Optional[dict] = None,
    ) -> LoyaltyTransaction:
        transaction = LoyaltyTransaction(
            customer_id=customer_id,
            points=points,
            transaction_type=transaction_type,
            reason=reason,
            job_id=job_id,
            created_by_user_id=created_by_user_id,
            referred_customer_id=(meta or {}).get("referredCustomerId"),
            meta=meta,
        )
        db.add(transaction)
        db.flush()
        return transaction

    @staticmethod
    def list_transactions(db: Session, customer_id: int, limit: int = 50) -> list[LoyaltyTransaction]:
        return (
            db.query(LoyaltyTransaction)
            .filter(LoyaltyTransaction.customer_id == customer_id)
            .order_by(LoyaltyTransaction.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def has_referral_award(db: Session, referred_customer_id: int) -> bool:
        return (
            db.query(LoyaltyTransaction.id)
            .filter(
                LoyaltyTransaction.transaction_type == "referral",
                LoyaltyTransaction.referred_customer_id == referred_customer_id,
            )
            .first()
            is not None
        )
