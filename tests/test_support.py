from datetime import datetime

import pytest

from fieldcrm.domain.support.escalation import detect_escalation
from fieldcrm.domain.support.schemas import TicketMessageCreate, TicketUpdateRequest
from fieldcrm.domain.support.service import SupportService
from fieldcrm.models import AuditLog
from fieldcrm.models_support import SupportTicket
from fieldcrm.shared.responses import APIError

NOW = datetime(2024, 7, 15, 18, 0)


@pytest.mark.parametrize(
    "message,trigger,priority,keyword",
    [
        ("Water is flooding my basement and I want a refund", "urgent_issue", "urgent", "flooding"),
        ("I want my money back, let me talk to someone", "customer_frustration", "high", "money back"),
        ("Can I talk to a real person? This is awful", "explicit_request", "high", "talk to"),
        ("This is awful", "customer_frustration", "high", "awful"),
        ("EMERGENCY!!", "urgent_issue", "urgent", "emergency"),
    ],
)
def test_keyword_triggers_in_order(message, trigger, priority, keyword):
    result = detect_escalation(message, confidence=0.95)
    assert result["should_escalate"] is True
    assert result["trigger"] == trigger
    assert result["priority"] == priority
    assert result["meta"]["keyword"] == keyword


def test_urgent_flag_only_for_urgent_keywords():
    assert detect_escalation("burst pipe in the kitchen", 1.0)["is_urgent"] is True
    assert detect_escalation("I want a refund", 1.0)["is_urgent"] is False


def test_vip_beats_low_confidence():
    result = detect_escalation("What time do you open tomorrow?", 0.2, customer_id=7, vip_customer_ids=[7])
    assert result["trigger"] == "vip_customer"
    assert result["priority"] == "high"


def test_low_confidence_and_repeated_failures():
    low = detect_escalation("What time do you open tomorrow?", 0.3)
    assert low["trigger"] == "low_confidence"
    assert low["priority"] == "medium"
    assert low["reason"] == "Low confidence score: 30%"

    failures = detect_escalation("What time do you open tomorrow?", 0.9, failure_count=3)
    assert failures["trigger"] == "repeated_failure"
    assert failures["reason"] == "3 consecutive failed intent detections"


def test_no_trigger():
    result = detect_escalation("What time do you open tomorrow?", 0.9, failure_count=2)
    assert result["should_escalate"] is False
    assert result["priority"] == "low"


async def test_escalation_uses_customer_vip_status(db, customer):
    customer.customer_type = "vip"
    db.commit()

    result = await SupportService(db).escalate_chatbot_conversation(
        "session-1", "What time do you open tomorrow?", 0.9, customer_id=customer.id, now=NOW
    )

    assert result["escalated"] is True
    ticket = db.query(SupportTicket).one()
    assert ticket.source == "chatbot"
    assert ticket.priority == "high"
    assert ticket.customer_id == customer.id
    assert ticket.meta["chatbotSessionId"] == "session-1"
    assert ticket.meta["trigger"] == "vip_customer"
    assert result["ticketNumber"] == f"TKT-20240715-{ticket.id}"
    assert db.query(AuditLog).filter(AuditLog.action == "chatbot_escalation").count() == 1


def test_ticket_actions(db, customer, staff_user):
    service = SupportService(db)
    ticket = service.create_ticket("Carpet still damp", customer_id=customer.id, now=NOW)
    db.commit()

    with pytest.raises(APIError) as exc:
        service.update_ticket(ticket.id, TicketUpdateRequest(action="assign"), staff_user.id)
    assert exc.value.status == 400

    with pytest.raises(APIError) as exc:
        service.update_ticket(ticket.id, TicketUpdateRequest(action="assign", assignedToUserId=999), staff_user.id)
    assert exc.value.status == 404

    ticket = service.update_ticket(
        ticket.id, TicketUpdateRequest(action="assign", assignedToUserId=staff_user.id), staff_user.id
    )
    assert ticket.status == "assigned"
    assert ticket.assigned_to_user_id == staff_user.id

    ticket = service.update_ticket(
        ticket.id, TicketUpdateRequest(action="update_priority", priority="urgent"), staff_user.id
    )
    assert ticket.priority == "urgent"

    with pytest.raises(APIError):
        service.update_ticket(ticket.id, TicketUpdateRequest(action="resolve"), staff_user.id)

    ticket = service.update_ticket(
        ticket.id, TicketUpdateRequest(action="resolve", resolutionNotes="Re-dried"), staff_user.id, now=NOW
    )
    assert ticket.status == "resolved"
    assert ticket.resolved_at == NOW

    with pytest.raises(APIError):
        service.update_ticket(ticket.id, TicketUpdateRequest(action="update_status"), staff_user.id)

    ticket = service.update_ticket(ticket.id, TicketUpdateRequest(action="close"), staff_user.id, now=NOW)
    assert ticket.status == "closed"
    assert ticket.closed_at == NOW

    actions = [a.action for a in db.query(AuditLog).order_by(AuditLog.id).all()]
    assert actions == ["ticket_assign", "ticket_update_priority", "ticket_resolve", "ticket_close"]


def test_first_reply_moves_ticket_in_progress(db, staff_user):
    service = SupportService(db)
    ticket = service.create_ticket("Question about invoice", now=NOW)
    db.commit()

    service.add_message(ticket.id, TicketMessageCreate(messageText="  Looking into it  "), staff_user.id)

    db.refresh(ticket)
    assert ticket.status == "in_progress"
    assert ticket.messages[0].message_text == "Looking into it"


# ============================================================================
# HTTP
# ============================================================================


async def test_chatbot_escalate_endpoint(client):
    response = await client.post(
        "/support/chatbot/escalate", json={"sessionId": "abc", "message": "This is an emergency", "confidence": 0.9}
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["escalated"] is True
    assert data["detection"]["priority"] == "urgent"
    assert data["ticketNumber"].startswith("TKT-")

    response = await client.post(
        "/support/chatbot/escalate", json={"sessionId": "abc", "message": "What are your hours?"}
    )
    assert response.status_code == 200
    assert response.json()["data"]["escalated"] is False


async def test_ticket_endpoints(client, staff_user):
    created = await client.post(
        "/support/chatbot/escalate", json={"sessionId": "xyz", "message": "I need a refund"}
    )
    ticket_id = created.json()["data"]["ticketId"]

    response = await client.post(
        f"/support/tickets/{ticket_id}/messages", json={"messageText": "Called the customer", "isInternalNote": True}
    )
    assert response.status_code == 201

    response = await client.patch(f"/support/tickets/{ticket_id}", json={"action": "reopen"})
    assert response.status_code == 400
    assert response.json()["error"] == "validation_failed"

    response = await client.patch(
        f"/support/tickets/{ticket_id}", json={"action": "update_status", "status": "closed"}
    )
    assert response.json()["data"]["status"] == "closed"

    detail = (await client.get(f"/support/tickets/{ticket_id}")).json()["data"]
    assert detail["messages"][0]["isInternalNote"] is True

    listed = (await client.get("/support/tickets", params={"source": "chatbot"})).json()["data"]
    assert [t["id"] for t in listed["tickets"]] == [ticket_id]
