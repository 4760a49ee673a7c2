"""
Loyalty Models
Tier definitions, per-customer point balances and the points ledger
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class LoyaltyTier(Base):
    __tablename__ = "loyalty_tiers"

    id = Column(Integer, primary_key=True, index=True)
    tier_name = Column(String(50), nullable=False)
    tier_level = Column(Integer, unique=True, nullable=False)
    points_required = Column(Integer, nullable=False, default=0)
    discount_percentage = Column(Float, default=0.0)
    benefits = Column(JSON, default=dict)
    free_upgrades = Column(JSON, default=list)
    priority_scheduling = Column(Boolean, default=False)
    active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())


class CustomerLoyalty(Base):
    __tablename__ = "customer_loyalty"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, unique=True)
    total_points = Column(Integer, default=0, nullable=False)  # Spendable balance
    lifetime_points = Column(Integer, default=0, nullable=False)  # Never decreases
    current_tier_level = Column(Integer, default=1, nullable=False)
    tier_upgraded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer")


class LoyaltyTransaction(Base):
    __tablename__ = "loyalty_transactions"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    points = Column(Integer, nullable=False)  # Negative for redemptions
    # earn, redeem, adjust, tier_upgrade_bonus, referral
    transaction_type = Column(String(30), nullable=False)
    reason = Column(Text, nullable=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    # Set on referral awards
    referred_customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
