"""
Messaging Models
Reminders, outbound/inbound communication logs, SMS opt-outs and
per-customer communication preferences
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Reminder(Base):
    """Scheduled outbound SMS reminder picked up by the reminder cron"""

    __tablename__ = "reminders"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True)
    type = Column(String(30), default="custom")  # job_reminder, follow_up, custom
    title = Column(String(255), nullable=True)
    body = Column(Text, nullable=True)
    scheduled_date = Column(DateTime, nullable=False, index=True)
    status = Column(String(20), default="pending", index=True)  # pending, completed, cancelled
    attempt_count = Column(Integer, default=0, nullable=False)
    snoozed_until = Column(DateTime, nullable=True)
    locked_at = Column(DateTime, nullable=True)
    last_attempt_at = Column(DateTime, nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer")
    job = relationship("Job")


class CommunicationLog(Base):
    """Every SMS/email sent or received, keyed by provider_message_id for idempotency"""

    __tablename__ = "communication_logs"

    id = Column(Integer, primary_key=True, index=True)
    direction = Column(String(10), nullable=False)  # outbound, inbound
    channel = Column(String(10), default="sms")  # sms, email
    to_e164 = Column(String(20), nullable=True, index=True)
    from_e164 = Column(String(20), nullable=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True)
    template_key = Column(String(50), nullable=True)
    status = Column(String(20), default="queued")  # queued, sent, delivered, failed, received
    provider_message_id = Column(String(255), unique=True, nullable=True)
    twilio_sid = Column(String(255), nullable=True)
    body = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), index=True)


class SmsOptOut(Base):
    __tablename__ = "sms_opt_outs"

    id = Column(Integer, primary_key=True, index=True)
    phone_e164 = Column(String(20), unique=True, nullable=False, index=True)
    reason = Column(String(100), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class CommunicationPreference(Base):
    """Customer consent and channel settings; absence means everything is allowed"""

    __tablename__ = "communication_preferences"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, unique=True)

    # Channels
    email_enabled = Column(Boolean, default=True)
    sms_enabled = Column(Boolean, default=True)
    phone_enabled = Column(Boolean, default=True)
    portal_enabled = Column(Boolean, default=True)

    # Message types
    marketing_emails = Column(Boolean, default=True)
    appointment_reminders = Column(Boolean, default=True)
    service_updates = Column(Boolean, default=True)
    promotional_messages = Column(Boolean, default=True)
    billing_notifications = Column(Boolean, default=True)
    survey_requests = Column(Boolean, default=True)

    preferred_contact_method = Column(String(10), nullable=True)  # email, sms, phone, portal
    do_not_contact = Column(Boolean, default=False)
    opted_out_at = Column(DateTime, nullable=True)
    opt_out_reason = Column(String(255), nullable=True)
    max_messages_per_week = Column(Integer, nullable=True)
    quiet_hours_start = Column(String(5), nullable=True)  # HH:MM local
    quiet_hours_end = Column(String(5), nullable=True)
    timezone = Column(String(50), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer")
