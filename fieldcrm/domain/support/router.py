"""Support router - ticket queue and chatbot escalation"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...shared.responses import success_response
from .schemas import (
    ChatbotEscalateRequest,
    TicketMessageCreate,
    TicketUpdateRequest,
    serialize_message,
    serialize_ticket,
)
from .service import SupportService

router = APIRouter(prefix="/support", tags=["Support"])


def get_support_service(db: Session = Depends(get_db)) -> SupportService:
    """Dependency injection for SupportService"""
    return SupportService(db)


@router.post("/chatbot/escalate")
async def escalate_chatbot(
    data: ChatbotEscalateRequest,
    current_user: User = Depends(get_current_user),
    service: SupportService = Depends(get_support_service),
):
    result = await service.escalate_chatbot_conversation(
        data.sessionId, data.message, data.confidence, data.failureCount, data.customerId
    )
    return success_response(result, status_code=201 if result["escalated"] else 200)


# ============================================================================
# TICKETS
# ============================================================================


@router.get("/tickets")
async def list_tickets(
    status: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    source: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    service: SupportService = Depends(get_support_service),
):
    result = service.list_tickets(status, priority, source, page, limit)
    return success_response(
        {
            "tickets": [serialize_ticket(t) for t in result["tickets"]],
            "pagination": {"page": page, "limit": limit, "total": result["total"]},
        }
    )


@router.get("/tickets/{ticket_id}")
async def get_ticket(
    ticket_id: int,
    current_user: User = Depends(get_current_user),
    service: SupportService = Depends(get_support_service),
):
    return success_response(serialize_ticket(service.get_ticket(ticket_id), include_messages=True))


@router.patch("/tickets/{ticket_id}")
async def update_ticket(
    ticket_id: int,
    data: TicketUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: SupportService = Depends(get_support_service),
):
    ticket = service.update_ticket(ticket_id, data, actor_user_id=current_user.id)
    return success_response(serialize_ticket(ticket))


@router.post("/tickets/{ticket_id}/messages")
async def add_ticket_message(
    ticket_id: int,
    data: TicketMessageCreate,
    current_user: User = Depends(get_current_user),
    service: SupportService = Depends(get_support_service),
):
    message = service.add_message(ticket_id, data, actor_user_id=current_user.id)
    return success_response(serialize_message(message), status_code=201)


__all__ = ["router"]
