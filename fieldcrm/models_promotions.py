"""
Promotion Models
Promotions with targeting rules and their per-customer deliveries
"""

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Promotion(Base):
    __tablename__ = "promotions"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    promotion_type = Column(String(20), default="percentage")  # percentage, fixed_amount
    discount_value = Column(Float, nullable=False, default=0.0)
    status = Column(String(20), default="draft", index=True)  # draft, active, paused, expired
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)

    # all_customers, new, inactive, vip, specific
    target_audience = Column(String(30), default="all_customers")
    target_customer_ids = Column(JSON, default=list)
    target_zones = Column(JSON, default=list)
    target_service_types = Column(JSON, default=list)
    min_job_value = Column(Float, nullable=True)
    max_job_value = Column(Float, nullable=True)

    max_redemptions = Column(Integer, nullable=True)
    redemptions_per_customer = Column(Integer, default=1)
    current_redemptions = Column(Integer, default=0, nullable=False)

    # manual, opportunity, review
    created_from = Column(String(30), default="manual")
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    deliveries = relationship("PromotionDelivery", back_populates="promotion")


class PromotionDelivery(Base):
    """A promotion handed to one customer; the claim code is what gets redeemed"""

    __tablename__ = "promotion_deliveries"

    id = Column(Integer, primary_key=True, index=True)
    promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    claim_code = Column(String(20), unique=True, nullable=False, index=True)
    delivery_channel = Column(String(20), default="portal")  # portal, email, sms
    # pending, delivered, completed
    delivery_status = Column(String(20), default="pending")
    delivered_at = Column(DateTime, nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    redeemed_at = Column(DateTime, nullable=True)
    redeemed_job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True)
    discount_amount = Column(Float, nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    promotion = relationship("Promotion", back_populates="deliveries")
    customer = relationship("Customer")
