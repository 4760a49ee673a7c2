"""Support ticket schemas"""

from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_choice

TICKET_ACTIONS = ("assign", "resolve", "close", "update_status", "update_priority")
TICKET_STATUSES = ("open", "assigned", "in_progress", "resolved", "closed", "escalated")
TICKET_PRIORITIES = ("low", "medium", "high", "urgent")


class ChatbotEscalateRequest(BaseModel):
    sessionId: str
    message: str
    confidence: float = 1.0
    failureCount: int = 0
    customerId: Optional[int] = None

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, v):
        if not 0 <= v <= 1:
            raise ValueError("Confidence must be between 0 and 1")
        return v


class TicketUpdateRequest(BaseModel):
    action: str
    assignedToUserId: Optional[int] = None
    resolutionNotes: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None

    @field_validator("action")
    @classmethod
    def validate_action(cls, v):
        return validate_choice(v, TICKET_ACTIONS, "action")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return validate_choice(v, TICKET_STATUSES, "status")

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v):
        return validate_choice(v, TICKET_PRIORITIES, "priority")


class TicketMessageCreate(BaseModel):
    messageText: str
    isInternalNote: bool = False

    @field_validator("messageText")
    @classmethod
    def validate_text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Message text is required")
        return v


def serialize_message(m) -> dict:
    return {
        "id": m.id,
        "authorUserId": m.author_user_id,
        "authorCustomerId": m.author_customer_id,
        "messageText": m.message_text,
        "isInternalNote": m.is_internal_note,
        "createdAt": m.created_at,
    }


def serialize_ticket(t, include_messages: bool = False) -> dict:
    data = {
        "id": t.id,
        "ticketNumber": t.ticket_number,
        "customerId": t.customer_id,
        "jobId": t.job_id,
        "title": t.title,
        "description": t.description,
        "category": t.category,
        "priority": t.priority,
        "status": t.status,
        "source": t.source,
        "assignedToUserId": t.assigned_to_user_id,
        "resolutionNotes": t.resolution_notes,
        "resolvedAt": t.resolved_at,
        "closedAt": t.closed_at,
        "escalatedAt": t.escalated_at,
        "meta": t.meta,
        "createdAt": t.created_at,
    }
    if include_messages:
        data["messages"] = [serialize_message(m) for m in t.messages]
    return data
