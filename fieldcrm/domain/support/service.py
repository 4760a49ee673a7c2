"""Support service - tickets, staff actions and chatbot escalation"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...auth import OFFICE_ROLES
from ...email_service import EmailDeliveryError, send_staff_alert_email
from ...models import Customer
from ...models_support import SupportTicket
from ...services.audit import write_audit_log
from ...shared.responses import APIError
from .escalation import detect_escalation
from .repository import SupportRepository
from .schemas import TicketMessageCreate, TicketUpdateRequest

logger = logging.getLogger(__name__)

PRIORITY_EMOJI = {"urgent": "🚨", "high": "⚠️", "medium": "ℹ️", "low": "📋"}


class SupportService:
    """Service layer for support tickets"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SupportRepository()

    def create_ticket(
        self,
        title: str,
        description: Optional[str] = None,
        customer_id: Optional[int] = None,
        job_id: Optional[int] = None,
        category: str = "general",
        priority: str = "medium",
        source: str = "staff",
        meta: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> SupportTicket:
        """Create a ticket and number it; flushes but does not commit"""
        now = now or datetime.utcnow()
        ticket = self.repo.create(
            self.db,
            customer_id=customer_id,
            job_id=job_id,
            title=title,
            description=description,
            category=category,
            priority=priority,
            status="open",
            source=source,
            meta=meta,
        )
        ticket.ticket_number = f"TKT-{now:%Y%m%d}-{ticket.id}"
        self.db.flush()
        logger.info(f"🎫 Ticket {ticket.ticket_number} opened ({source}, {priority})")
        return ticket

    def list_tickets(
        self,
        status: Optional[str],
        priority: Optional[str],
        source: Optional[str],
        page: int,
        limit: int,
    ) -> dict:
        tickets, total = self.repo.list_tickets(
            self.db, status=status, priority=priority, source=source, limit=limit, offset=(page - 1) * limit
        )
        return {"tickets": tickets, "total": total}

    def get_ticket(self, ticket_id: int) -> SupportTicket:
        ticket = self.repo.get_by_id(self.db, ticket_id)
        if not ticket:
            raise APIError("not_found", "Ticket not found", 404)
        return ticket

    def update_ticket(
        self, ticket_id: int, data: TicketUpdateRequest, actor_user_id: int, now: Optional[datetime] = None
    ) -> SupportTicket:
        now = now or datetime.utcnow()
        ticket = self.get_ticket(ticket_id)
        action = data.action

        if action == "assign":
            if not data.assignedToUserId:
                raise APIError("validation_failed", "assignedToUserId is required for assign action", 400)
            if not self.repo.get_staff_user(self.db, data.assignedToUserId):
                raise APIError("not_found", "Assignee not found", 404)
            ticket.assigned_to_user_id = data.assignedToUserId
            ticket.status = "assigned"

        elif action == "resolve":
            if not data.resolutionNotes:
                raise APIError("validation_failed", "resolutionNotes is required for resolve action", 400)
            ticket.resolution_notes = data.resolutionNotes
            ticket.status = "resolved"
            ticket.resolved_at = now

        elif action == "close":
            ticket.status = "closed"
            ticket.closed_at = now

        elif action == "update_status":
            if not data.status:
                raise APIError("validation_failed", "status is required for update_status action", 400)
            ticket.status = data.status
            if data.status == "closed":
                ticket.closed_at = now
            elif data.status == "resolved":
                ticket.resolved_at = now

        elif action == "update_priority":
            if not data.priority:
                raise APIError("validation_failed", "priority is required for update_priority action", 400)
            ticket.priority = data.priority

        write_audit_log(
            self.db,
            f"ticket_{action}",
            "support_ticket",
            ticket_id,
            actor_user_id=actor_user_id,
            meta=data.model_dump(exclude_none=True),
        )
        self.db.commit()
        self.db.refresh(ticket)
        return ticket

    def add_message(self, ticket_id: int, data: TicketMessageCreate, actor_user_id: int):
        ticket = self.get_ticket(ticket_id)
        message = self.repo.add_message(
            self.db,
            ticket_id=ticket.id,
            author_user_id=actor_user_id,
            message_text=data.messageText,
            is_internal_note=data.isInternalNote,
        )
        if ticket.status == "open":
            ticket.status = "in_progress"
        self.db.commit()
        self.db.refresh(message)
        return message

    # ==========================================================================
    # CHATBOT ESCALATION
    # ==========================================================================

    def _vip_customer_ids(self, customer_id: Optional[int]) -> list[int]:
        if customer_id is None:
            return []
        customer = self.db.query(Customer).filter(Customer.id == customer_id).first()
        return [customer.id] if customer and customer.customer_type == "vip" else []

    async def escalate_chatbot_conversation(
        self,
        session_id: str,
        message: str,
        confidence: float,
        failure_count: int = 0,
        customer_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        detection = detect_escalation(
            message, confidence, failure_count, customer_id, self._vip_customer_ids(customer_id)
        )
        if not detection["should_escalate"]:
            return {"escalated": False, "reason": "No escalation triggers detected", "detection": detection}

        ticket = self.create_ticket(
            title=f"Chatbot escalation: {detection['reason']}",
            description=message,
            customer_id=customer_id,
            priority=detection["priority"],
            source="chatbot",
            meta={
                "chatbotSessionId": session_id,
                "trigger": detection["trigger"],
                "isUrgent": detection["is_urgent"],
                **detection["meta"],
            },
            now=now,
        )
        write_audit_log(
            self.db,
            "chatbot_escalation",
            "support_ticket",
            ticket.id,
            meta={"trigger": detection["trigger"], "priority": detection["priority"]},
        )
        self.db.commit()

        await self.notify_staff(ticket, detection["reason"])
        return {
            "escalated": True,
            "ticketId": ticket.id,
            "ticketNumber": ticket.ticket_number,
            "reason": detection["reason"],
            "detection": detection,
        }

    async def notify_staff(self, ticket: SupportTicket, reason: str, roles: tuple = OFFICE_ROLES) -> int:
        """Best-effort email to office staff; returns how many were sent"""
        recipients = [u.email for u in self.repo.staff_with_roles(self.db, roles) if u.email]
        if not recipients:
            logger.warning(f"⚠️ No staff to notify about ticket {ticket.ticket_number}")
            return 0

        emoji = PRIORITY_EMOJI.get(ticket.priority, "📋")
        try:
            await send_staff_alert_email(
                recipients,
                f"{emoji} {ticket.priority.upper()} - Support Ticket {ticket.ticket_number}",
                [f"Ticket: {ticket.ticket_number}", f"Priority: {ticket.priority.upper()}", f"Reason: {reason}"],
            )
        except EmailDeliveryError as e:
            logger.warning(f"⚠️ Staff alert for ticket {ticket.ticket_number} failed: {e}")
            return 0
        return len(recipients)
