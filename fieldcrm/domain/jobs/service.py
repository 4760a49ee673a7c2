"""Job service - scheduling, day-before reminders and completion side effects"""

import logging
from datetime import datetime, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Job, User
from ...services.audit import write_audit_log
from ...services.quiet_hours import local_time_to_utc_naive, to_local, to_naive_utc
from ...shared.responses import APIError
from ..loyalty.schemas import MAX_POINTS_PER_TRANSACTION
from ..loyalty.service import LoyaltyService
from ..reviews.repository import ReviewRepository
from ..reviews.service import ReviewService
from .repository import JobRepository
from .schemas import JOB_FIELDS, JobCompleteRequest, JobCreate, JobUpdate

logger = logging.getLogger(__name__)

REMINDER_LOCAL_TIME = time(9, 0)


def day_before_reminder_time(scheduled_date: datetime) -> datetime:
    """09:00 business-local on the day before the appointment, as naive UTC"""
    local_day = to_local(scheduled_date).date() - timedelta(days=1)
    return local_time_to_utc_naive(local_day, REMINDER_LOCAL_TIME)


class JobService:
    """Service layer for jobs"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = JobRepository()

    def list_jobs(
        self,
        customer_id: Optional[int],
        status: Optional[str],
        technician_id: Optional[int],
        date_from: Optional[datetime],
        date_to: Optional[datetime],
        page: int,
        limit: int,
    ) -> dict:
        jobs, total = self.repo.list_jobs(
            self.db,
            customer_id=customer_id,
            status=status,
            technician_id=technician_id,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return {"jobs": jobs, "total": total}

    def get_job(self, job_id: int) -> Job:
        job = self.repo.get_by_id(self.db, job_id)
        if not job:
            raise APIError("not_found", "Job not found", 404)
        return job

    def create_job(self, data: JobCreate, user: User, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        customer = self.repo.get_customer(self.db, data.customerId)
        if not customer:
            raise APIError("not_found", "Customer not found", 404)

        job = self.repo.create(
            self.db,
            customer_id=customer.id,
            service_type=data.serviceType,
            description=data.description,
            scheduled_date=to_naive_utc(data.scheduledDate),
            scheduled_time_start=data.scheduledTimeStart,
            scheduled_time_end=data.scheduledTimeEnd,
            total_amount=data.totalAmount,
            technician_id=data.technicianId,
            notes=data.notes,
            status="scheduled",
        )

        reminder = None
        remind_at = day_before_reminder_time(job.scheduled_date)
        if remind_at > now:
            reminder = self.repo.add_reminder(
                self.db,
                customer_id=customer.id,
                job_id=job.id,
                type="job_reminder",
                title="Appointment reminder",
                scheduled_date=remind_at,
                status="pending",
                created_by_user_id=user.id,
            )

        write_audit_log(
            self.db,
            "create_job",
            "job",
            job.id,
            actor_user_id=user.id,
            meta={"customerId": customer.id, "reminderId": reminder.id if reminder else None},
        )
        self.db.commit()
        self.db.refresh(job)
        logger.info(f"✅ Job {job.id} scheduled for customer {customer.id}")
        return {"job": job, "reminderId": reminder.id if reminder else None}

    def update_job(self, job_id: int, data: JobUpdate, user: User, now: Optional[datetime] = None) -> Job:
        now = now or datetime.utcnow()
        job = self.get_job(job_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("scheduledDate"):
            changes["scheduledDate"] = to_naive_utc(changes["scheduledDate"])
        if changes.get("status") == "completed":
            raise APIError("invalid_status", "Use the complete endpoint to finish a job", 400)

        previous_date = job.scheduled_date
        for field, value in changes.items():
            setattr(job, JOB_FIELDS[field], value)

        meta = {"fields": sorted(changes)}
        if job.status == "cancelled":
            meta["remindersCancelled"] = self.repo.cancel_pending_reminders(self.db, job.id)
        elif job.scheduled_date and job.scheduled_date != previous_date:
            meta["reminderId"] = self._reschedule_reminder(job, user, now)

        write_audit_log(self.db, "update_job", "job", job_id, actor_user_id=user.id, meta=meta)
        self.db.commit()
        self.db.refresh(job)
        return job

    def _reschedule_reminder(self, job: Job, user: User, now: datetime) -> Optional[int]:
        """Move the day-before reminder to the new date; drop it when that time has passed"""
        remind_at = day_before_reminder_time(job.scheduled_date)
        reminder = self.repo.get_pending_reminder(self.db, job.id)

        if remind_at <= now:
            if reminder:
                reminder.status = "cancelled"
            return None

        if reminder is None:
            reminder = self.repo.add_reminder(
                self.db,
                customer_id=job.customer_id,
                job_id=job.id,
                type="job_reminder",
                title="Appointment reminder",
                scheduled_date=remind_at,
                status="pending",
                created_by_user_id=user.id,
            )
        reminder.scheduled_date = remind_at
        reminder.snoozed_until = None
        reminder.attempt_count = 0
        reminder.locked_at = None
        return reminder.id

    async def complete_job(
        self, job_id: int, data: JobCompleteRequest, user: User, now: Optional[datetime] = None
    ) -> dict:
        """
        Mark a job completed and run the follow-on steps.

        Updates the customer's service history, awards one loyalty point per
        dollar and opens a portal review request for the job.
        """
        now = now or datetime.utcnow()
        job = self.get_job(job_id)
        if job.status == "completed":
            raise APIError("already_completed", "Job is already completed", 400)
        if job.status == "cancelled":
            raise APIError("invalid_status", "Cancelled jobs cannot be completed", 400)

        if data.totalAmount is not None:
            job.total_amount = data.totalAmount
        if data.notes:
            job.notes = data.notes
        job.status = "completed"
        job.completed_at = now

        customer = job.customer
        amount = job.total_amount or 0.0
        customer.last_service_date = now
        customer.lifetime_value = (customer.lifetime_value or 0.0) + amount

        write_audit_log(self.db, "complete_job", "job", job_id, actor_user_id=user.id, meta={"amount": amount})
        self.db.commit()
        logger.info(f"🧹 Job {job_id} completed (${amount:.2f})")

        loyalty = None
        points = min(int(amount), MAX_POINTS_PER_TRANSACTION)
        if points > 0:
            loyalty = await LoyaltyService(self.db).award_points(
                customer.id,
                points,
                f"Service completed - job {job_id}",
                job_id=job_id,
                actor_user_id=user.id,
            )

        review_request_id = None
        if not ReviewRepository.get_for_job(self.db, customer.id, job_id):
            result = await ReviewService(self.db).create_review_request(
                customer.id, job_id, method="portal", actor_user_id=user.id, now=now
            )
            review_request_id = result["reviewRequest"].id

        self.db.refresh(job)
        return {"job": job, "loyalty": loyalty, "reviewRequestId": review_request_id}
