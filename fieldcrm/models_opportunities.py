"""
Opportunity Pipeline Models
Missed sales (declined services, price objections, postponed bookings) and
every follow-up interaction recorded against them
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

OPPORTUNITY_TYPES = (
    "declined_service",
    "partial_booking",
    "price_objection",
    "postponed_booking",
    "competitor_mention",
    "service_upsell",
)

FOLLOW_UP_METHODS = ("call", "email", "sms", "portal_offer")

TERMINAL_OPPORTUNITY_STATUSES = ("converted", "declined", "expired")


class MissedOpportunity(Base):
    __tablename__ = "opportunities"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    opportunity_type = Column(String(30), nullable=False)
    original_job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True)
    declined_services = Column(JSON, default=list)
    estimated_value = Column(Float, nullable=True)
    reason = Column(Text, nullable=True)

    # pending, follow_up_scheduled, contacted, offer_sent, converted, declined, expired
    status = Column(String(30), default="pending", index=True)

    follow_up_scheduled_date = Column(DateTime, nullable=True)
    follow_up_method = Column(String(20), nullable=True)
    follow_up_assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True)

    auto_offer_enabled = Column(Boolean, default=False)
    offer_discount_percentage = Column(Float, nullable=True)
    offer_promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=True)
    offer_sent_at = Column(DateTime, nullable=True)

    converted = Column(Boolean, default=False)
    conversion_date = Column(DateTime, nullable=True)
    conversion_job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True)
    conversion_value = Column(Float, nullable=True)

    notes = Column(Text, nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer")
    assignee = relationship("User", foreign_keys=[follow_up_assigned_to])
    interactions = relationship(
        "OpportunityInteraction",
        back_populates="opportunity",
        order_by="OpportunityInteraction.id",
        cascade="all, delete-orphan",
    )


class OpportunityInteraction(Base):
    __tablename__ = "opportunity_interactions"

    id = Column(Integer, primary_key=True, index=True)
    opportunity_id = Column(Integer, ForeignKey("opportunities.id"), nullable=False, index=True)
    # created, contacted, offer_sent, status_changed, converted, follow_up_overdue, expired
    interaction_type = Column(String(30), nullable=False)
    interaction_method = Column(String(20), nullable=True)
    performed_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    notes = Column(Text, nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    opportunity = relationship("MissedOpportunity", back_populates="interactions")
