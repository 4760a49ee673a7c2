"""
Loyalty tier rules

Tier membership is decided by the spendable point balance: the highest active
tier whose points_required does not exceed the balance, falling back to
level 1 (Bronze).
"""

import math
import re
from typing import Optional

from sqlalchemy.orm import Session

from ...models_loyalty import LoyaltyTier

TIER_UPGRADE_BONUS_RATE = 0.1

DEFAULT_TIERS = [
    {
        "tier_name": "Bronze",
        "tier_level": 1,
        "points_required": 0,
        "discount_percentage": 5.0,
        "benefits": {
            "welcome_gift": "5% off first service",
            "birthday_discount": "10% off birthday month",
            "email_updates": True,
            "member_portal_access": True,
        },
        "free_upgrades": [],
        "priority_scheduling": False,
    },
    {
        "tier_name": "Silver",
        "tier_level": 2,
        "points_required": 1000,
        "discount_percentage": 10.0,
        "benefits": {
            "discount": "10% off all services",
            "birthday_discount": "15% off birthday month",
            "priority_support": True,
            "quarterly_newsletter": True,
            "exclusive_promotions": True,
            "free_stain_protection": "On annual service",
        },
        "free_upgrades": ["stain_protection_annual"],
        "priority_scheduling": False,
    },
    {
        "tier_name": "Gold",
        "tier_level": 3,
        "points_required": 2500,
        "discount_percentage": 15.0,
        "benefits": {
            "discount": "15% off all services",
            "birthday_discount": "20% off birthday month",
            "priority_support": True,
            "free_room_upgrade": "One free room per service",
            "annual_deep_clean_discount": "25% off once per year",
            "referral_bonus": "Double referral points",
            "vip_promotions": True,
        },
        "free_upgrades": ["stain_protection", "deodorizing", "one_extra_room_per_service"],
        "priority_scheduling": True,
    },
    {
        "tier_name": "Platinum",
        "tier_level": 4,
        "points_required": 5000,
        "discount_percentage": 20.0,
        "benefits": {
            "discount": "20% off all services",
            "birthday_discount": "25% off birthday month",
            "priority_support": "Dedicated account manager",
            "free_room_upgrade": "Two free rooms per service",
            "free_upholstery": "One furniture item per service",
            "annual_deep_clean": "Free annual deep clean (up to 5 rooms)",
            "referral_bonus": "Triple referral points",
            "vip_events": "Exclusive VIP events and promotions",
            "lifetime_guarantee": "Lifetime satisfaction guarantee",
        },
        "free_upgrades": [
            "stain_protection",
            "deodorizing",
            "scotchgard",
            "two_extra_rooms_per_service",
            "one_furniture_item",
        ],
        "priority_scheduling": True,
    },
]


def seed_default_tiers(db: Session) -> int:
    """Insert the default tiers when the table is empty. Returns rows inserted."""
    if db.query(LoyaltyTier).count() > 0:
        return 0
    for tier in DEFAULT_TIERS:
        db.add(LoyaltyTier(**tier))
    db.commit()
    return len(DEFAULT_TIERS)


def get_active_tiers(db: Session) -> list[LoyaltyTier]:
    return (
        db.query(LoyaltyTier)
        .filter(LoyaltyTier.active.is_(True))
        .order_by(LoyaltyTier.tier_level.asc())
        .all()
    )


def get_tier_by_level(db: Session, level: int) -> Optional[LoyaltyTier]:
    return db.query(LoyaltyTier).filter(LoyaltyTier.tier_level == level).first()


def calculate_tier(db: Session, points: int) -> Optional[LoyaltyTier]:
    tier = (
        db.query(LoyaltyTier)
        .filter(LoyaltyTier.active.is_(True), LoyaltyTier.points_required <= points)
        .order_by(LoyaltyTier.tier_level.desc())
        .first()
    )
    return tier or get_tier_by_level(db, 1)


def progress_between(points: int, current: LoyaltyTier, next_tier: Optional[LoyaltyTier]) -> dict:
    """Points to the next tier and percentage of the way there (100 at the top tier)"""
    if next_tier is None:
        return {"pointsToNextTier": None, "progressPercentage": 100}

    needed = next_tier.points_required - current.points_required
    percentage = 100
    if needed > 0:
        percentage = min(100, round((points - current.points_required) / needed * 100))

    return {
        "pointsToNextTier": next_tier.points_required - points,
        "progressPercentage": percentage,
    }


def tier_upgrade_bonus(tier: LoyaltyTier) -> int:
    return math.floor(tier.points_required * TIER_UPGRADE_BONUS_RATE)


def _title_case(key: str) -> str:
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), key.replace("_", " "))


def format_tier_benefits_for_display(tier: LoyaltyTier) -> list[str]:
    benefits = []

    if tier.discount_percentage and tier.discount_percentage > 0:
        benefits.append(f"{tier.discount_percentage:g}% discount on all services")

    if tier.priority_scheduling:
        benefits.append("Priority scheduling")

    for upgrade in tier.free_upgrades or []:
        benefits.append(f"Free {_title_case(upgrade)}")

    for key, value in (tier.benefits or {}).items():
        if isinstance(value, str) and key != "discount":
            benefits.append(value)
        elif value is True:
            benefits.append(_title_case(key))

    return benefits


def serialize_tier(tier: Optional[LoyaltyTier]) -> Optional[dict]:
    if tier is None:
        return None
    return {
        "id": tier.id,
        "tierName": tier.tier_name,
        "tierLevel": tier.tier_level,
        "pointsRequired": tier.points_required,
        "discountPercentage": tier.discount_percentage,
        "priorityScheduling": tier.priority_scheduling,
        "freeUpgrades": tier.free_upgrades or [],
        "benefits": format_tier_benefits_for_display(tier),
    }
