"""Loyalty service - Points accounting and tier upgrades"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...email_service import EmailDeliveryError, send_tier_upgrade_email
from ...models_loyalty import CustomerLoyalty
from ...services.audit import write_audit_log
from ...services.preference_checker import check_communication_allowed
from ...shared.responses import APIError
from .repository import LoyaltyRepository
from .tiers import (
    calculate_tier,
    format_tier_benefits_for_display,
    get_active_tiers,
    get_tier_by_level,
    progress_between,
    serialize_tier,
    tier_upgrade_bonus,
)

logger = logging.getLogger(__name__)

REFERRAL_POINTS = 500


class LoyaltyService:
    """Service layer for loyalty points and tiers"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = LoyaltyRepository()

    def _require_customer(self, customer_id: int):
        customer = self.repo.get_customer(self.db, customer_id)
        if not customer:
            raise APIError("not_found", "Customer not found", 404)
        return customer

    def get_tier_progress(self, customer_id: int) -> dict:
        """Current tier, next tier and progress toward it"""
        self._require_customer(customer_id)
        account = self.repo.get_account(self.db, customer_id)
        points = account.total_points if account else 0

        current = calculate_tier(self.db, points)
        if current is None:
            raise APIError("not_configured", "Loyalty tiers are not configured", 500)
        next_tier = next((t for t in get_active_tiers(self.db) if t.tier_level == current.tier_level + 1), None)

        return {
            "customerId": customer_id,
            "currentPoints": points,
            "lifetimePoints": account.lifetime_points if account else 0,
            "currentTier": serialize_tier(current),
            "nextTier": serialize_tier(next_tier),
            **progress_between(points, current, next_tier),
        }

    async def award_points(
        self,
        customer_id: int,
        points: int,
        reason: str,
        job_id: Optional[int] = None,
        actor_user_id: Optional[int] = None,
        transaction_type: str = "earn",
        meta: Optional[dict] = None,
    ) -> dict:
        customer = self._require_customer(customer_id)
        account = self.repo.get_or_create_account(self.db, customer_id)

        account.total_points += points
        account.lifetime_points += points
        transaction = self.repo.add_transaction(
            self.db, customer_id, points, transaction_type, reason, job_id, actor_user_id, meta
        )

        upgrade = self._apply_tier_upgrade(account)
        write_audit_log(
            self.db,
            "award_points",
            "customer",
            customer_id,
            actor_user_id=actor_user_id,
            meta={"points": points, "reason": reason, "type": transaction_type},
        )
        self.db.commit()
        logger.info(f"⭐ Awarded {points} points to customer {customer_id} ({reason})")

        if upgrade["upgraded"]:
            await self._notify_tier_upgrade(customer, upgrade["newTierLevel"])

        return {
            "transactionId": transaction.id,
            "pointsAwarded": points,
            "totalPoints": account.total_points,
            "lifetimePoints": account.lifetime_points,
            "tierUpgrade": upgrade,
        }

    def _apply_tier_upgrade(self, account: CustomerLoyalty) -> dict:
        """Move the account up to the tier its balance qualifies for and award the upgrade bonus"""
        previous_level = account.current_tier_level or 1
        correct_tier = calculate_tier(self.db, account.total_points)

        if correct_tier is None or correct_tier.tier_level <= previous_level:
            return {"upgraded": False, "bonusPoints": 0}

        previous_tier = get_tier_by_level(self.db, previous_level)
        bonus = tier_upgrade_bonus(correct_tier)

        account.current_tier_level = correct_tier.tier_level
        account.tier_upgraded_at = datetime.utcnow()
        account.total_points += bonus
        account.lifetime_points += bonus
        self.repo.add_transaction(
            self.db,
            account.customer_id,
            bonus,
            "tier_upgrade_bonus",
            f"Tier upgrade bonus - {correct_tier.tier_name}",
        )

        logger.info(
            f"🏆 Customer {account.customer_id} upgraded to {correct_tier.tier_name} (+{bonus} bonus points)"
        )
        return {
            "upgraded": True,
            "previousTier": previous_tier.tier_name if previous_tier else "Bronze",
            "newTier": correct_tier.tier_name,
            "newTierLevel": correct_tier.tier_level,
            "bonusPoints": bonus,
            "message": f"Upgraded from {previous_tier.tier_name if previous_tier else 'Bronze'} to {correct_tier.tier_name}",
        }

    async def _notify_tier_upgrade(self, customer, tier_level: int) -> None:
        tier = get_tier_by_level(self.db, tier_level)
        if not customer.email or tier is None:
            return
        allowed, _ = check_communication_allowed(self.db, customer.id, "email", "service")
        if not allowed:
            return
        try:
            await send_tier_upgrade_email(
                customer.email, customer.full_name, tier.tier_name, format_tier_benefits_for_display(tier)
            )
        except EmailDeliveryError as e:
            logger.warning(f"⚠️ Tier upgrade email failed for customer {customer.id}: {e}")

    def redeem_points(
        self, customer_id: int, points: int, reason: str, actor_user_id: Optional[int] = None
    ) -> dict:
        self._require_customer(customer_id)
        account = self.repo.get_account(self.db, customer_id)
        balance = account.total_points if account else 0

        if balance < points:
            raise APIError(
                "insufficient_points",
                f"Insufficient points. Balance is {balance}, requested {points}",
                400,
            )

        account.total_points -= points
        transaction = self.repo.add_transaction(
            self.db, customer_id, -points, "redeem", reason, created_by_user_id=actor_user_id
        )
        write_audit_log(
            self.db,
            "redeem_points",
            "customer",
            customer_id,
            actor_user_id=actor_user_id,
            meta={"points": points, "reason": reason},
        )
        self.db.commit()
        return {
            "transactionId": transaction.id,
            "pointsRedeemed": points,
            "totalPoints": account.total_points,
        }

    def list_transactions(self, customer_id: int, limit: int = 50):
        self._require_customer(customer_id)
        return self.repo.list_transactions(self.db, customer_id, limit)

    async def complete_referral(
        self,
        referrer_customer_id: int,
        referred_customer_id: int,
        job_id: Optional[int] = None,
        actor_user_id: Optional[int] = None,
    ) -> dict:
        """Award the referrer once per referred customer"""
        self._require_customer(referred_customer_id)
        if self.repo.has_referral_award(self.db, referred_customer_id):
            raise APIError("already_awarded", "Referral points already awarded for this customer", 409)

        result = await self.award_points(
            referrer_customer_id,
            REFERRAL_POINTS,
            f"Referral completed - customer {referred_customer_id}",
            job_id=job_id,
            actor_user_id=actor_user_id,
            transaction_type="referral",
            meta={"referredCustomerId": referred_customer_id},
        )
        return {**result, "referredCustomerId": referred_customer_id}
