"""
Review service

Post-job review requests and the rating-based routing of submitted reviews:
4-5 stars ask for a public Google review and earn a thank-you discount,
1-3 stars open a support ticket that escalates if nobody picks it up.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...auth import MANAGER_ROLES
from ...config import COMPANY_NAME, PORTAL_URL, REVIEW_ESCALATION_HOURS
from ...email_service import EmailDeliveryError, send_review_request_email, send_review_thank_you_email
from ...models import Customer, Job
from ...models_support import ReviewRequest
from ...services.audit import write_audit_log
from ...services.preference_checker import (
    check_communication_allowed,
    customer_quiet_hours_end,
    has_hit_frequency_limit,
)
from ...services.quiet_hours import is_quiet_hours, next_allowed_send_naive
from ...services.twilio_service import record_communication, send_sms
from ...shared.responses import APIError
from ..promotions.service import PromotionService
from ..support.repository import SupportRepository
from ..support.service import SupportService
from .repository import ReviewRepository

logger = logging.getLogger(__name__)

THANK_YOU_DISCOUNT_PERCENT = 15
THANK_YOU_VALID_DAYS = 30
GOOGLE_REVIEW_MIN_RATING = 4


class ReviewService:
    """Service layer for review requests and submissions"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ReviewRepository()

    async def create_review_request(
        self,
        customer_id: int,
        job_id: int,
        method: str = "portal",
        actor_user_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        """
        Create the review request for a job and deliver it.

        Returns {"reviewRequest": ReviewRequest, "delivery": {...}}. Delivery
        problems are reported in the result and never fail the request.
        """
        now = now or datetime.utcnow()
        customer = self.db.query(Customer).filter(Customer.id == customer_id).first()
        if not customer:
            raise APIError("not_found", "Customer not found", 404)
        job = self.db.query(Job).filter(Job.id == job_id).first()
        if not job:
            raise APIError("not_found", "Job not found", 404)
        if job.customer_id != customer_id:
            raise APIError("invalid_job", "Job does not belong to this customer", 400)
        if self.repo.get_for_job(self.db, customer_id, job_id):
            raise APIError("duplicate", "A review request already exists for this job", 409)

        review_request = self.repo.create(
            self.db,
            customer_id=customer_id,
            job_id=job_id,
            request_method=method,
            status="pending",
            created_by_user_id=actor_user_id,
        )

        if method == "email":
            delivery = await self._deliver_email(review_request, customer, actor_user_id, now)
        elif method == "sms":
            delivery = await self._deliver_sms(review_request, customer, actor_user_id, now)
        else:
            delivery = {"channel": "portal", "status": "sent"}

        if delivery["status"] == "sent":
            review_request.status = "sent"
            review_request.sent_at = now

        write_audit_log(
            self.db,
            "create_review_request",
            "review_request",
            review_request.id,
            actor_user_id=actor_user_id,
            meta={"jobId": job_id, "method": method, "delivery": delivery["status"]},
        )
        self.db.commit()
        self.db.refresh(review_request)
        logger.info(f"⭐ Review request {review_request.id} for job {job_id} ({method}: {delivery['status']})")
        return {"reviewRequest": review_request, "delivery": delivery}

    async def _deliver_email(
        self, review_request: ReviewRequest, customer: Customer, actor_user_id, now: datetime
    ) -> dict:
        if not customer.email:
            return {"channel": "email", "status": "skipped", "reason": "no_email"}
        allowed, reason = check_communication_allowed(self.db, customer.id, "email", "survey", actor_user_id)
        if not allowed:
            return {"channel": "email", "status": "blocked", "reason": reason}
        if has_hit_frequency_limit(self.db, customer.id, now):
            return {"channel": "email", "status": "blocked", "reason": "frequency_limit"}
        try:
            await send_review_request_email(customer.email, customer.full_name, review_request.public_id)
        except EmailDeliveryError as e:
            logger.warning(f"⚠️ Review request email failed for customer {customer.id}: {e}")
            return {"channel": "email", "status": "failed", "reason": str(e)}
        return {"channel": "email", "status": "sent"}

    async def _deliver_sms(
        self, review_request: ReviewRequest, customer: Customer, actor_user_id, now: datetime
    ) -> dict:
        if not customer.phone_e164:
            return {"channel": "sms", "status": "skipped", "reason": "no_phone"}
        allowed, reason = check_communication_allowed(self.db, customer.id, "sms", "survey", actor_user_id)
        if not allowed:
            return {"channel": "sms", "status": "blocked", "reason": reason}
        if has_hit_frequency_limit(self.db, customer.id, now):
            return {"channel": "sms", "status": "blocked", "reason": "frequency_limit"}
        if is_quiet_hours(now):
            return {
                "channel": "sms",
                "status": "deferred",
                "reason": "quiet_hours",
                "nextAllowedSend": next_allowed_send_naive(now).isoformat(),
            }
        customer_resume_at = customer_quiet_hours_end(self.db, customer.id, now)
        if customer_resume_at:
            return {
                "channel": "sms",
                "status": "deferred",
                "reason": "customer_quiet_hours",
                "nextAllowedSend": customer_resume_at.isoformat(),
            }

        body = (
            f"Hi {customer.full_name}, thanks for choosing {COMPANY_NAME}! "
            f"How did we do? {PORTAL_URL}/reviews/{review_request.public_id} Reply STOP to opt out."
        )
        success, sid, error = await send_sms(self.db, customer.phone_e164, body, "review_request")
        record_communication(
            self.db,
            direction="outbound",
            status="sent" if success else "failed",
            to_e164=customer.phone_e164,
            customer_id=customer.id,
            job_id=review_request.job_id,
            template_key="review_request",
            provider_message_id=f"review_request:{review_request.id}",
            twilio_sid=sid,
            body={"text": body},
            error_message=error,
        )
        if not success:
            return {"channel": "sms", "status": "failed", "reason": error}
        return {"channel": "sms", "status": "sent"}

    def list_requests(self, status: Optional[str], customer_id: Optional[int], page: int, limit: int) -> dict:
        requests, total = self.repo.list_requests(
            self.db, status=status, customer_id=customer_id, limit=limit, offset=(page - 1) * limit
        )
        return {"requests": requests, "total": total}

    def get_stats(self) -> dict:
        counts = self.repo.rating_counts(self.db)
        completed = sum(counts.values())
        total = self.repo.count(self.db)
        average = round(sum(r * c for r, c in counts.items()) / completed, 2) if completed else 0.0
        return {
            "totalRequests": total,
            "completedReviews": completed,
            "pendingReviews": total - completed,
            "responseRate": round(completed / total * 100, 1) if total else 0.0,
            "averageRating": average,
            "ratingDistribution": {str(r): counts.get(r, 0) for r in range(1, 6)},
        }

    # ==========================================================================
    # PORTAL SUBMISSION
    # ==========================================================================

    async def submit_review(
        self,
        public_id: str,
        customer: Customer,
        rating: int,
        feedback: Optional[str] = None,
        resolution_request: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        now = now or datetime.utcnow()
        review_request = self.repo.get_by_public_id(self.db, public_id)
        if not review_request:
            raise APIError("not_found", "Review request not found", 404)
        if review_request.customer_id != customer.id:
            raise APIError("forbidden", "This review request does not belong to you", 403)
        if review_request.portal_review_completed:
            raise APIError("already_submitted", "Review already submitted", 400)

        google_requested = rating >= GOOGLE_REVIEW_MIN_RATING
        review_request.portal_review_completed = True
        review_request.rating = rating
        review_request.feedback = feedback or ""
        review_request.resolution_request = resolution_request
        review_request.submitted_at = now
        review_request.status = "completed"
        review_request.google_review_requested = google_requested
        if google_requested:
            review_request.google_review_requested_at = now

        result = {"message": "Review submitted successfully", "googleReviewRequested": google_requested}
        promo_code = None

        if google_requested:
            promotion, _ = PromotionService(self.db).create_customer_offer(
                customer.id,
                title="Thank You for Your Review!",
                description=(
                    f"As a thank you for your positive review, enjoy {THANK_YOU_DISCOUNT_PERCENT}% off "
                    "your next service."
                ),
                discount_percentage=THANK_YOU_DISCOUNT_PERCENT,
                valid_days=THANK_YOU_VALID_DAYS,
                code_prefix="THANKS",
                created_from="review",
                now=now,
            )
            review_request.thank_you_promotion_id = promotion.id
            promo_code = promotion.code
            result.update(promoCode=promo_code, promoCreated=True)
        else:
            job = review_request.job
            service_name = (job.service_type if job else None) or "Service"
            description = f"Customer left a {rating}/5 star review with the following feedback:\n\n" + (
                feedback or "No feedback provided"
            )
            if resolution_request:
                description += f"\n\nResolution Request: {resolution_request}"

            ticket = SupportService(self.db).create_ticket(
                title=f"Low Review Rating ({rating}/5) - {service_name}",
                description=description,
                customer_id=customer.id,
                job_id=review_request.job_id,
                category="service_quality",
                priority="high" if rating == 1 else "medium",
                source="review_system",
                meta={
                    "reviewRequestId": review_request.id,
                    "rating": rating,
                    "resolutionRequest": resolution_request,
                    "autoCreated": True,
                },
                now=now,
            )
            review_request.support_ticket_id = ticket.id
            result.update(supportTicketCreated=True, supportTicketId=ticket.id)

        write_audit_log(
            self.db,
            "submit_review",
            "review_request",
            review_request.id,
            meta={"customerId": customer.id, "rating": rating},
        )
        self.db.commit()
        logger.info(f"⭐ Review {review_request.id} submitted by customer {customer.id}: {rating}/5")

        if customer.email:
            try:
                await send_review_thank_you_email(customer.email, customer.full_name, rating, promo_code)
            except EmailDeliveryError as e:
                logger.warning(f"⚠️ Review thank-you email failed for customer {customer.id}: {e}")

        return result

    def list_for_customer(self, customer_id: int) -> list[ReviewRequest]:
        requests, _ = self.repo.list_requests(self.db, customer_id=customer_id, limit=200)
        return requests


async def escalate_unresolved_reviews(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Escalate low-rating review tickets nobody has picked up.

    Review-system tickets still open or assigned after REVIEW_ESCALATION_HOURS
    become escalated/urgent, get an internal note, and managers are emailed.
    """
    now = now or datetime.utcnow()
    cutoff = now - timedelta(hours=REVIEW_ESCALATION_HOURS)
    stale = SupportRepository.stale_review_tickets(db, cutoff)

    support = SupportService(db)
    escalated = []
    for ticket, review_request in stale:
        hours_open = int((now - ticket.created_at).total_seconds() // 3600)
        ticket.status = "escalated"
        ticket.priority = "urgent"
        ticket.escalated_at = now
        SupportRepository.add_message(
            db,
            ticket_id=ticket.id,
            message_text=(
                f"ESCALATED: Unresolved {review_request.rating}-star review after {hours_open} hours. "
                "Customer requires immediate follow-up."
            ),
            is_internal_note=True,
        )
        escalated.append(ticket)

    if escalated:
        write_audit_log(
            db, "cron_review_escalations", "support_ticket", meta={"escalated": [t.id for t in escalated]}
        )
    db.commit()

    notified = 0
    for ticket in escalated:
        notified += await support.notify_staff(ticket, "Unresolved low review rating", roles=MANAGER_ROLES)

    if escalated:
        logger.warning(f"🚨 Escalated {len(escalated)} unresolved review ticket(s)")
    return {"ok": True, "checked": len(stale), "escalated": len(escalated), "notificationsSent": notified}
