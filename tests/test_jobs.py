from datetime import datetime, timedelta

import pytest

from fieldcrm.domain.jobs.schemas import JobCompleteRequest, JobCreate, JobUpdate
from fieldcrm.domain.jobs.service import JobService, day_before_reminder_time
from fieldcrm.models import Job
from fieldcrm.models_loyalty import LoyaltyTransaction
from fieldcrm.models_messaging import Reminder
from fieldcrm.models_support import ReviewRequest
from fieldcrm.services.reminder_service import select_due_reminders
from fieldcrm.shared.responses import APIError

NOW = datetime(2024, 7, 15, 18, 0)


def test_reminder_is_nine_local_the_day_before():
    # 10:00 CDT on the 20th -> 09:00 CDT on the 19th
    assert day_before_reminder_time(datetime(2024, 7, 20, 15, 0)) == datetime(2024, 7, 19, 14, 0)
    # 00:30 CST on Jan 10th -> 09:00 CST on the 9th
    assert day_before_reminder_time(datetime(2024, 1, 10, 6, 30)) == datetime(2024, 1, 9, 15, 0)


def test_create_job_schedules_reminder(db, customer, staff_user):
    data = JobCreate(customerId=customer.id, serviceType="carpet_cleaning", scheduledDate="2024-07-20T10:00:00-05:00")

    result = JobService(db).create_job(data, staff_user, now=NOW)

    job = result["job"]
    assert job.scheduled_date == datetime(2024, 7, 20, 15, 0)
    assert job.status == "scheduled"
    reminder = db.query(Reminder).one()
    assert result["reminderId"] == reminder.id
    assert reminder.type == "job_reminder"
    assert reminder.job_id == job.id
    assert reminder.scheduled_date == datetime(2024, 7, 19, 14, 0)


def test_create_job_tomorrow_afternoon_skips_past_reminder(db, customer, staff_user):
    # reminder time (09:00 CDT today) already passed at 13:00 CDT
    data = JobCreate(customerId=customer.id, scheduledDate=datetime(2024, 7, 16, 20, 0))

    result = JobService(db).create_job(data, staff_user, now=NOW)

    assert result["reminderId"] is None
    assert db.query(Reminder).count() == 0


def test_update_cannot_complete(db, customer, staff_user):
    job = JobService(db).create_job(JobCreate(customerId=customer.id, scheduledDate=NOW), staff_user, now=NOW)["job"]
    with pytest.raises(APIError) as exc:
        JobService(db).update_job(job.id, JobUpdate(status="completed"), staff_user)
    assert exc.value.error == "invalid_status"


def test_cancelling_job_cancels_reminder(db, customer, staff_user):
    service = JobService(db)
    job = service.create_job(
        JobCreate(customerId=customer.id, scheduledDate=datetime(2024, 7, 20, 15, 0)), staff_user, now=NOW
    )["job"]

    service.update_job(job.id, JobUpdate(status="cancelled"), staff_user, now=NOW)

    assert db.query(Reminder).one().status == "cancelled"
    assert select_due_reminders(db, datetime(2024, 7, 19, 15, 0)) == []


def test_rescheduling_moves_reminder(db, customer, staff_user):
    service = JobService(db)
    job = service.create_job(
        JobCreate(customerId=customer.id, scheduledDate=datetime(2024, 7, 20, 15, 0)), staff_user, now=NOW
    )["job"]
    reminder = db.query(Reminder).one()
    reminder.attempt_count = 2
    reminder.snoozed_until = datetime(2024, 7, 19, 16, 0)
    db.commit()

    service.update_job(job.id, JobUpdate(scheduledDate="2024-07-30T10:00:00-05:00"), staff_user, now=NOW)

    db.refresh(reminder)
    assert reminder.status == "pending"
    assert reminder.scheduled_date == datetime(2024, 7, 29, 14, 0)
    assert reminder.snoozed_until is None
    assert reminder.attempt_count == 0
    assert db.query(Reminder).count() == 1


def test_rescheduling_to_tomorrow_afternoon_drops_reminder(db, customer, staff_user):
    service = JobService(db)
    job = service.create_job(
        JobCreate(customerId=customer.id, scheduledDate=datetime(2024, 7, 20, 15, 0)), staff_user, now=NOW
    )["job"]

    service.update_job(job.id, JobUpdate(scheduledDate=datetime(2024, 7, 16, 20, 0)), staff_user, now=NOW)

    assert db.query(Reminder).one().status == "cancelled"


def test_rescheduling_later_adds_missing_reminder(db, customer, staff_user):
    service = JobService(db)
    # too close for a reminder when booked
    job = service.create_job(
        JobCreate(customerId=customer.id, scheduledDate=datetime(2024, 7, 16, 20, 0)), staff_user, now=NOW
    )["job"]
    assert db.query(Reminder).count() == 0

    service.update_job(job.id, JobUpdate(scheduledDate=datetime(2024, 7, 25, 15, 0)), staff_user, now=NOW)

    reminder = db.query(Reminder).one()
    assert reminder.type == "job_reminder"
    assert reminder.scheduled_date == datetime(2024, 7, 24, 14, 0)


async def test_complete_awards_points_and_requests_review(db, customer, staff_user):
    job = Job(customer_id=customer.id, service_type="carpet_cleaning", scheduled_date=NOW, total_amount=180)
    db.add(job)
    db.commit()

    result = await JobService(db).complete_job(job.id, JobCompleteRequest(totalAmount=249.99), staff_user, now=NOW)

    assert result["job"].status == "completed"
    assert result["job"].completed_at == NOW
    assert result["loyalty"]["pointsAwarded"] == 249
    review_request = db.query(ReviewRequest).one()
    assert result["reviewRequestId"] == review_request.id
    assert review_request.request_method == "portal"

    db.refresh(customer)
    assert customer.last_service_date == NOW
    assert customer.lifetime_value == pytest.approx(249.99)

    with pytest.raises(APIError) as exc:
        await JobService(db).complete_job(job.id, JobCompleteRequest(), staff_user, now=NOW)
    assert exc.value.error == "already_completed"


async def test_completion_points_are_capped(db, customer, staff_user):
    job = Job(customer_id=customer.id, total_amount=15000)
    db.add(job)
    db.commit()

    await JobService(db).complete_job(job.id, JobCompleteRequest(), staff_user, now=NOW)

    earn = db.query(LoyaltyTransaction).filter(LoyaltyTransaction.transaction_type == "earn").one()
    assert earn.points == 10000
    assert earn.job_id == job.id


async def test_free_job_awards_nothing(db, customer, staff_user):
    job = Job(customer_id=customer.id, total_amount=0)
    db.add(job)
    db.commit()

    result = await JobService(db).complete_job(job.id, JobCompleteRequest(), staff_user, now=NOW)

    assert result["loyalty"] is None
    assert db.query(LoyaltyTransaction).count() == 0


async def test_cancelled_job_cannot_be_completed(db, customer, staff_user):
    job = Job(customer_id=customer.id, status="cancelled")
    db.add(job)
    db.commit()
    with pytest.raises(APIError) as exc:
        await JobService(db).complete_job(job.id, JobCompleteRequest(), staff_user)
    assert exc.value.error == "invalid_status"


# ============================================================================
# HTTP
# ============================================================================


async def test_job_endpoints(client, customer):
    scheduled = (datetime.utcnow() + timedelta(days=5)).isoformat()
    response = await client.post(
        "/jobs", json={"customerId": customer.id, "scheduledDate": scheduled, "totalAmount": 120}
    )
    assert response.status_code == 201
    created = response.json()["data"]
    assert created["reminderId"] is not None

    response = await client.post(f"/jobs/{created['id']}/complete")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["job"]["status"] == "completed"
    assert data["loyalty"]["totalPoints"] == 120
    assert data["reviewRequestId"] is not None

    listed = (await client.get("/jobs", params={"customerId": customer.id})).json()["data"]
    assert listed["jobs"][0]["id"] == created["id"]


async def test_customer_endpoints(client):
    response = await client.post(
        "/customers", json={"fullName": "Morgan Homeowner", "phone": "512-555-0142", "email": "morgan@example.com"}
    )
    assert response.status_code == 201
    customer_id = response.json()["data"]["id"]

    await client.put(f"/customers/{customer_id}/preferences", json={"smsEnabled": False})
    data = (await client.get(f"/customers/{customer_id}/preferences")).json()["data"]
    assert data["allowedChannels"] == ["email", "phone", "portal"]

    response = await client.put(f"/customers/{customer_id}/preferences", json={"doNotContact": True})
    data = response.json()["data"]
    assert data["doNotContact"] is True
    assert data["optedOutAt"] is not None

    data = (await client.get(f"/customers/{customer_id}/preferences")).json()["data"]
    assert data["allowedChannels"] == []

    response = await client.get("/customers", params={"search": "morgan"})
    assert [c["id"] for c in response.json()["data"]["customers"]] == [customer_id]
