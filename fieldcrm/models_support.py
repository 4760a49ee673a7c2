"""
Review and Support Models
Post-job review requests, support tickets and the ticket message thread
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import generate_public_id


class ReviewRequest(Base):
    __tablename__ = "review_requests"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    request_method = Column(String(10), default="portal")  # portal, email, sms
    status = Column(String(20), default="pending")  # pending, sent, completed
    sent_at = Column(DateTime, nullable=True)
    portal_review_completed = Column(Boolean, default=False)
    rating = Column(Integer, nullable=True)
    feedback = Column(Text, nullable=True)
    resolution_request = Column(Text, nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    google_review_requested = Column(Boolean, default=False)
    google_review_requested_at = Column(DateTime, nullable=True)
    thank_you_promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=True)
    support_ticket_id = Column(Integer, ForeignKey("support_tickets.id"), nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    customer = relationship("Customer")
    job = relationship("Job")


class SupportTicket(Base):
    __tablename__ = "support_tickets"

    id = Column(Integer, primary_key=True, index=True)
    ticket_number = Column(String(30), unique=True, nullable=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), default="general")  # service_quality, scheduling, billing, general
    priority = Column(String(10), default="medium", index=True)  # low, medium, high, urgent
    # open, assigned, in_progress, resolved, closed, escalated
    status = Column(String(20), default="open", index=True)
    source = Column(String(20), default="staff")  # review_system, chatbot, portal, staff
    assigned_to_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    resolution_notes = Column(Text, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)
    escalated_at = Column(DateTime, nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer")
    messages = relationship(
        "TicketMessage",
        back_populates="ticket",
        order_by="TicketMessage.id",
        cascade="all, delete-orphan",
    )


class TicketMessage(Base):
    __tablename__ = "ticket_messages"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("support_tickets.id"), nullable=False, index=True)
    author_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    author_customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    message_text = Column(Text, nullable=False)
    is_internal_note = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now())

    ticket = relationship("SupportTicket", back_populates="messages")
