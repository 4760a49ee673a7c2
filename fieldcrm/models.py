import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_public_id():
    """Generate a unique public ID for secure portal access"""
    return str(uuid.uuid4())


STAFF_ROLES = ("admin", "manager", "dispatcher", "technician")


class User(Base):
    """Staff member authenticated through Firebase"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    firebase_uid = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone_number = Column(String(50), nullable=True)
    role = Column(String(20), nullable=True)  # admin, manager, dispatcher, technician
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone_e164 = Column(String(20), nullable=True, index=True)
    address_line1 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    postal_code = Column(String(20), nullable=True)
    zone = Column(String(50), nullable=True)  # Service zone (N, S, E, W, Central)
    customer_type = Column(String(20), default="standard")  # standard, vip
    lifetime_value = Column(Float, default=0.0)
    last_service_date = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    # Firebase uid of the portal login linked to this customer
    auth_uid = Column(String(255), unique=True, index=True, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    jobs = relationship("Job", back_populates="customer")


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    technician_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    service_type = Column(String(100), nullable=True)  # carpet_cleaning, upholstery, tile_grout...
    description = Column(Text, nullable=True)
    scheduled_date = Column(DateTime, nullable=True)  # Start of the appointment (UTC)
    scheduled_time_start = Column(String(10), nullable=True)  # Arrival window, local HH:MM
    scheduled_time_end = Column(String(10), nullable=True)
    # scheduled, in_progress, completed, cancelled, pending_approval
    status = Column(String(30), default="scheduled", index=True)
    total_amount = Column(Float, default=0.0)
    completed_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer", back_populates="jobs")
    technician = relationship("User")


class AuditLog(Base):
    """Append-only record of staff actions and automated jobs"""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String(100), nullable=False, index=True)
    entity = Column(String(100), nullable=False)
    entity_id = Column(String(100), nullable=True)
    outcome = Column(String(20), default="ok")  # ok, error, blocked
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
