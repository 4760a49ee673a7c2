from datetime import datetime, timedelta

import pytest

from fieldcrm.domain.portal.schemas import JobCancelRequest, JobRescheduleRequest
from fieldcrm.domain.portal.service import PortalService, within_notice_window
from fieldcrm.models import AuditLog, Customer, Job
from fieldcrm.models_messaging import Reminder
from fieldcrm.models_promotions import Promotion, PromotionDelivery
from fieldcrm.models_support import SupportTicket
from fieldcrm.services.reminder_service import select_due_reminders
from fieldcrm.shared.responses import APIError

NOW = datetime(2024, 7, 15, 18, 0)


def make_job(db, customer, starts_in: timedelta, **overrides) -> Job:
    values = {
        "customer_id": customer.id,
        "service_type": "carpet_cleaning",
        "scheduled_date": NOW + starts_in,
        "status": "scheduled",
    }
    values.update(overrides)
    job = Job(**values)
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def test_notice_window_bounds(db, customer):
    assert within_notice_window(make_job(db, customer, timedelta(hours=5)), NOW) is True
    assert within_notice_window(make_job(db, customer, timedelta(hours=24)), NOW) is False
    assert within_notice_window(make_job(db, customer, timedelta(hours=-1)), NOW) is False
    assert within_notice_window(make_job(db, customer, timedelta(0), scheduled_date=None), NOW) is False


def test_jobs_split_into_upcoming_and_past(db, customer):
    later = make_job(db, customer, timedelta(days=10))
    sooner = make_job(db, customer, timedelta(days=2))
    done = make_job(db, customer, timedelta(days=-5), status="completed")
    cancelled_future = make_job(db, customer, timedelta(days=4), status="cancelled")

    result = PortalService(db, customer).list_jobs(NOW)

    assert [j.id for j in result["upcoming"]] == [sooner.id, later.id]
    assert {j.id for j in result["past"]} == {done.id, cancelled_future.id}


async def test_late_cancellation_needs_approval(db, customer):
    job = make_job(db, customer, timedelta(hours=5))
    reminder = Reminder(customer_id=customer.id, job_id=job.id, type="job_reminder", scheduled_date=NOW)
    db.add(reminder)
    db.commit()

    result = await PortalService(db, customer).cancel_job(job.id, JobCancelRequest(reason="Sick kid"), now=NOW)

    assert result["requiresApproval"] is True
    assert result["status"] == "pending_approval"
    db.refresh(job)
    assert job.status == "pending_approval"

    ticket = db.query(SupportTicket).one()
    assert ticket.id == result["ticketId"]
    assert ticket.title == f"Late Cancellation Request - Job {job.public_id[:8]}"
    assert ticket.category == "cancellation"
    assert ticket.priority == "high"
    assert ticket.source == "portal"
    assert ticket.meta["hoursUntilJob"] == 5.0
    assert "Reason: Sick kid" in ticket.description
    assert db.query(AuditLog).filter(AuditLog.action == "portal_cancel_requested").count() == 1
    # held until staff decide, not cancelled
    db.refresh(reminder)
    assert reminder.status == "pending"
    assert select_due_reminders(db, NOW) == []


async def test_emergency_cancellation_skips_approval(db, customer):
    job = make_job(db, customer, timedelta(hours=5))

    result = await PortalService(db, customer).cancel_job(
        job.id, JobCancelRequest(reason="Pipe burst", cancellationType="emergency"), now=NOW
    )

    assert result["status"] == "cancelled"
    assert result["requiresApproval"] is False
    assert db.query(SupportTicket).count() == 0


async def test_cancellation_with_notice_is_immediate(db, customer):
    job = make_job(db, customer, timedelta(days=3))
    db.add(
        Reminder(customer_id=customer.id, job_id=job.id, type="job_reminder", scheduled_date=NOW + timedelta(days=2))
    )
    db.commit()

    result = await PortalService(db, customer).cancel_job(job.id, JobCancelRequest(reason="Traveling"), now=NOW)

    assert result["message"] == "Your appointment has been cancelled successfully."
    db.refresh(job)
    assert job.status == "cancelled"
    audit = db.query(AuditLog).filter(AuditLog.action == "portal_cancel_job").one()
    assert audit.meta["previousStatus"] == "scheduled"
    assert audit.meta["remindersCancelled"] == 1
    assert db.query(Reminder).one().status == "cancelled"
    assert db.query(SupportTicket).count() == 0


@pytest.mark.parametrize("status,error", [("completed", "job_not_cancellable"), ("cancelled", "job_already_cancelled")])
async def test_closed_jobs_cannot_be_cancelled(db, customer, status, error):
    job = make_job(db, customer, timedelta(days=3), status=status)
    with pytest.raises(APIError) as exc:
        await PortalService(db, customer).cancel_job(job.id, JobCancelRequest(reason="Changed mind"), now=NOW)
    assert exc.value.status == 400
    assert exc.value.error == error


async def test_other_customers_job_is_not_found(db, customer):
    other = Customer(full_name="Other Household")
    db.add(other)
    db.commit()
    job = make_job(db, other, timedelta(days=3))

    with pytest.raises(APIError) as exc:
        await PortalService(db, customer).cancel_job(job.id, JobCancelRequest(reason="Hmm"), now=NOW)
    assert exc.value.status == 404
    assert exc.value.error == "job_not_found"
    db.refresh(job)
    assert job.status == "scheduled"


def test_reschedule_opens_ticket(db, customer):
    job = make_job(db, customer, timedelta(days=3))
    data = JobRescheduleRequest(preferredDate="2024-07-25", preferredTime="afternoon", reason="Work trip")

    result = PortalService(db, customer).reschedule_job(job.id, data, now=NOW)

    ticket = db.query(SupportTicket).one()
    assert result["ticketNumber"] == ticket.ticket_number
    assert ticket.category == "reschedule"
    assert ticket.priority == "medium"
    assert ticket.meta == {"preferredDate": "2024-07-25", "preferredTime": "afternoon"}
    db.refresh(job)
    assert job.status == "scheduled"


def test_reschedule_inside_window_is_refused(db, customer):
    job = make_job(db, customer, timedelta(hours=10))
    data = JobRescheduleRequest(preferredDate="2024-07-25", preferredTime="morning")

    with pytest.raises(APIError) as exc:
        PortalService(db, customer).reschedule_job(job.id, data, now=NOW)
    assert exc.value.error == "reschedule_window_closed"

    completed = make_job(db, customer, timedelta(days=-2), status="completed")
    with pytest.raises(APIError) as exc:
        PortalService(db, customer).reschedule_job(completed.id, data, now=NOW)
    assert exc.value.error == "job_not_reschedulable"
    assert exc.value.message == "Cannot reschedule completed jobs"


def test_active_offers_only_open_and_current(db, customer):
    current = Promotion(
        title="Loyal Customer",
        discount_value=10,
        status="active",
        start_date=NOW - timedelta(days=1),
        end_date=NOW + timedelta(days=5),
    )
    ended = Promotion(
        title="Spring Clean",
        discount_value=10,
        status="active",
        start_date=NOW - timedelta(days=30),
        end_date=NOW - timedelta(days=1),
    )
    db.add_all([current, ended])
    db.flush()
    db.add_all(
        [
            PromotionDelivery(promotion_id=current.id, customer_id=customer.id, claim_code="OPEN0001"),
            PromotionDelivery(promotion_id=ended.id, customer_id=customer.id, claim_code="GONE0001"),
            PromotionDelivery(
                promotion_id=current.id, customer_id=customer.id, claim_code="USED0001", redeemed_at=NOW
            ),
        ]
    )
    db.commit()

    offers = PortalService(db, customer).active_offers(NOW)

    assert [d.claim_code for d in offers] == ["OPEN0001"]


# ============================================================================
# HTTP
# ============================================================================


async def test_profile_round_trip(client):
    response = await client.get("/portal/customer")
    assert response.json()["data"]["fullName"] == "Casey Customer"

    response = await client.patch("/portal/customer", json={"phone": "(512) 555-0199", "email": "Casey@Example.com"})
    data = response.json()["data"]
    assert data["phone"] == "+15125550199"
    assert data["email"] == "casey@example.com"
    assert data["fullName"] == "Casey Customer"

    response = await client.patch("/portal/customer", json={"fullName": "   "})
    assert response.status_code == 400


async def test_cancel_and_reschedule_over_http(client, db, customer):
    soon = Job(customer_id=customer.id, scheduled_date=datetime.utcnow() + timedelta(hours=3))
    later = Job(customer_id=customer.id, scheduled_date=datetime.utcnow() + timedelta(days=7))
    db.add_all([soon, later])
    db.commit()

    response = await client.post(f"/portal/jobs/{soon.id}/cancel", json={"reason": "Running late"})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "pending_approval"

    response = await client.post(
        f"/portal/jobs/{soon.id}/reschedule", json={"preferredDate": "2030-01-02", "preferredTime": "morning"}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "reschedule_window_closed"

    response = await client.post(
        f"/portal/jobs/{later.id}/reschedule", json={"preferredDate": "2030-01-02", "preferredTime": "noon"}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "validation_failed"

    response = await client.post(
        f"/portal/jobs/{later.id}/reschedule", json={"preferredDate": "2030-01-02", "preferredTime": "evening"}
    )
    assert response.status_code == 201

    jobs = (await client.get("/portal/jobs")).json()["data"]
    assert [j["id"] for j in jobs["upcoming"]] == [soon.id, later.id]


async def test_preferences_over_http(client):
    response = await client.get("/portal/preferences")
    assert response.json()["data"]["isDefault"] is True

    response = await client.put(
        "/portal/preferences", json={"smsEnabled": False, "quietHoursStart": "21:30", "quietHoursEnd": "07:00"}
    )
    data = response.json()["data"]
    assert data["smsEnabled"] is False
    assert data["quietHoursStart"] == "21:30"
    assert data["isDefault"] is False

    response = await client.put("/portal/preferences", json={"quietHoursStart": "25:00"})
    assert response.status_code == 400


async def test_loyalty_and_offers_over_http(client):
    loyalty = (await client.get("/portal/loyalty")).json()["data"]
    assert loyalty["currentTier"]["tierName"] == "Bronze"
    assert loyalty["recentTransactions"] == []

    assert (await client.get("/portal/promotions")).json()["data"] == []
