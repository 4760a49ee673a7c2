"""
Portal service - self-service actions for signed-in customers

Every operation is scoped to the customer resolved from the portal login.
Cancellations inside the 24 hour notice window are not applied directly:
the job moves to pending_approval and the office gets a ticket.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Customer, Job
from ...services.audit import write_audit_log
from ...shared.responses import APIError
from ..customers.repository import CustomerRepository
from ..jobs.repository import JobRepository
from ..support.service import SupportService
from .repository import PortalRepository
from .schemas import JobCancelRequest, JobRescheduleRequest, PortalProfileUpdate

logger = logging.getLogger(__name__)

NOTICE_WINDOW_HOURS = 24
CLOSED_JOB_STATUSES = ("completed", "cancelled")


def hours_until(job: Job, now: datetime) -> Optional[float]:
    if not job.scheduled_date:
        return None
    return (job.scheduled_date - now).total_seconds() / 3600


def within_notice_window(job: Job, now: datetime) -> bool:
    """True when the job starts in the future but less than 24 hours from now"""
    hours = hours_until(job, now)
    return hours is not None and 0 < hours < NOTICE_WINDOW_HOURS


class PortalService:
    """Service layer for the customer portal"""

    def __init__(self, db: Session, customer: Customer):
        self.db = db
        self.customer = customer
        self.repo = PortalRepository()

    # ==========================================================================
    # PROFILE
    # ==========================================================================

    def update_profile(self, data: PortalProfileUpdate) -> Customer:
        updates = {"full_name": data.fullName, "phone_e164": data.phone, "email": data.email}
        customer = CustomerRepository.update(self.db, self.customer, **updates)
        write_audit_log(
            self.db,
            "portal_update_profile",
            "customer",
            customer.id,
            meta={"fields": [k for k, v in updates.items() if v is not None]},
            commit=True,
        )
        return customer

    # ==========================================================================
    # JOBS
    # ==========================================================================

    def list_jobs(self, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        upcoming, past = [], []
        for job in self.repo.customer_jobs(self.db, self.customer.id):
            if job.status not in CLOSED_JOB_STATUSES and job.scheduled_date and job.scheduled_date >= now:
                upcoming.append(job)
            else:
                past.append(job)
        upcoming.sort(key=lambda j: j.scheduled_date)
        return {"upcoming": upcoming, "past": past}

    def _get_own_job(self, job_id: int) -> Job:
        job = self.repo.get_job(self.db, job_id)
        if not job or job.customer_id != self.customer.id:
            raise APIError("job_not_found", "Job not found or access denied", 404)
        return job

    async def cancel_job(self, job_id: int, data: JobCancelRequest, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        job = self._get_own_job(job_id)

        if job.status == "completed":
            raise APIError("job_not_cancellable", "Cannot cancel completed jobs", 400)
        if job.status == "cancelled":
            raise APIError("job_already_cancelled", "This job is already cancelled", 400)

        previous_status = job.status
        requires_approval = data.cancellationType != "emergency" and within_notice_window(job, now)

        if requires_approval:
            support = SupportService(self.db)
            ticket = support.create_ticket(
                title=f"Late Cancellation Request - Job {job.public_id[:8]}",
                description=(
                    f"Customer requested cancellation less than {NOTICE_WINDOW_HOURS} hours before the "
                    f"appointment.\n\nReason: {data.reason}"
                ),
                customer_id=self.customer.id,
                job_id=job.id,
                category="cancellation",
                priority="high",
                source="portal",
                meta={"cancellationType": data.cancellationType, "hoursUntilJob": round(hours_until(job, now), 1)},
                now=now,
            )
            job.status = "pending_approval"
            write_audit_log(
                self.db,
                "portal_cancel_requested",
                "job",
                job.id,
                meta={"previousStatus": previous_status, "ticketId": ticket.id, "reason": data.reason},
            )
            self.db.commit()
            logger.info(f"⏳ Late cancellation for job {job.id} sent for approval (ticket {ticket.ticket_number})")

            await support.notify_staff(ticket, f"Late cancellation request: {data.reason}")
            return {
                "jobId": job.id,
                "status": "pending_approval",
                "requiresApproval": True,
                "ticketId": ticket.id,
                "ticketNumber": ticket.ticket_number,
                "message": (
                    "Your cancellation request has been submitted. Due to our 24-hour cancellation policy, "
                    "this request requires approval. Our team will contact you shortly."
                ),
            }

        job.status = "cancelled"
        reminders_cancelled = JobRepository.cancel_pending_reminders(self.db, job.id)
        write_audit_log(
            self.db,
            "portal_cancel_job",
            "job",
            job.id,
            meta={
                "previousStatus": previous_status,
                "reason": data.reason,
                "cancellationType": data.cancellationType,
                "remindersCancelled": reminders_cancelled,
            },
        )
        self.db.commit()
        logger.info(f"🚫 Job {job.id} cancelled by customer {self.customer.id}")
        return {
            "jobId": job.id,
            "status": "cancelled",
            "requiresApproval": False,
            "message": "Your appointment has been cancelled successfully.",
        }

    def reschedule_job(self, job_id: int, data: JobRescheduleRequest, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        job = self._get_own_job(job_id)

        if job.status in CLOSED_JOB_STATUSES:
            raise APIError("job_not_reschedulable", f"Cannot reschedule {job.status} jobs", 400)
        if within_notice_window(job, now):
            raise APIError(
                "reschedule_window_closed",
                "Cannot reschedule jobs within 24 hours. Please call us directly.",
                400,
            )

        description = f"Preferred date: {data.preferredDate.isoformat()} ({data.preferredTime})"
        if data.reason:
            description += f"\n\nReason: {data.reason}"
        ticket = SupportService(self.db).create_ticket(
            title=f"Reschedule Request - Job {job.public_id[:8]}",
            description=description,
            customer_id=self.customer.id,
            job_id=job.id,
            category="reschedule",
            priority="medium",
            source="portal",
            meta={"preferredDate": data.preferredDate.isoformat(), "preferredTime": data.preferredTime},
            now=now,
        )
        write_audit_log(self.db, "portal_reschedule_requested", "job", job.id, meta={"ticketId": ticket.id})
        self.db.commit()
        logger.info(f"📅 Reschedule requested for job {job.id} (ticket {ticket.ticket_number})")

        return {
            "jobId": job.id,
            "ticketId": ticket.id,
            "ticketNumber": ticket.ticket_number,
            "message": (
                "Reschedule request submitted successfully. Our team will contact you to confirm "
                "the new schedule."
            ),
        }

    # ==========================================================================
    # OFFERS
    # ==========================================================================

    def active_offers(self, now: Optional[datetime] = None) -> list:
        now = now or datetime.utcnow()
        return self.repo.active_offers(self.db, self.customer.id, now)
