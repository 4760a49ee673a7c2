"""Support repository - Database operations for tickets and ticket messages"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import User
from ...models_support import ReviewRequest, SupportTicket, TicketMessage


class SupportRepository:
    """Repository for support ticket database operations"""

    @staticmethod
    def list_tickets(
        db: Session,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        source: Optional[str] = None,
        customer_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[SupportTicket], int]:
        query = db.query(SupportTicket)
        if status:
            query = query.filter(SupportTicket.status == status)
        if priority:
            query = query.filter(SupportTicket.priority == priority)
        if source:
            query = query.filter(SupportTicket.source == source)
        if customer_id:
            query = query.filter(SupportTicket.customer_id == customer_id)

        total = query.count()
        tickets = query.order_by(SupportTicket.created_at.desc(), SupportTicket.id.desc()).offset(offset).limit(limit).all()
        return tickets, total

    @staticmethod
    def get_by_id(db: Session, ticket_id: int) -> Optional[SupportTicket]:
        return db.query(SupportTicket).filter(SupportTicket.id == ticket_id).first()

    @staticmethod
    def create(db: Session, **kwargs) -> SupportTicket:
        ticket = SupportTicket(**kwargs)
        db.add(ticket)
        db.flush()
        return ticket

    @staticmethod
    def add_message(db: Session, **kwargs) -> TicketMessage:
        message = TicketMessage(**kwargs)
        db.add(message)
        db.flush()
        return message

    @staticmethod
    def get_staff_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()

    @staticmethod
    def staff_with_roles(db: Session, roles: tuple) -> list[User]:
        return db.query(User).filter(User.role.in_(roles), User.is_active.is_(True)).all()

    @staticmethod
    def stale_review_tickets(db: Session, created_before: datetime) -> list[tuple[SupportTicket, ReviewRequest]]:
        """Open review-system tickets older than the cutoff, with the low rating that raised them"""
        return (
            db.query(SupportTicket, ReviewRequest)
            .join(ReviewRequest, ReviewRequest.support_ticket_id == SupportTicket.id)
            .filter(
                SupportTicket.source == "review_system",
                SupportTicket.status.in_(("open", "assigned")),
                SupportTicket.created_at <= created_before,
                ReviewRequest.rating.between(1, 3),
            )
            .all()
        )
