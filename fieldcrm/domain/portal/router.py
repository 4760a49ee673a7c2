"""Portal router - customer self-service endpoints"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_portal_customer
from ...database import get_db
from ...models import Customer
from ...rate_limiter import portal_write_limit
from ...shared.responses import success_response
from ..customers.schemas import PreferencesUpdate, serialize_preferences
from ..customers.service import CustomerService
from ..loyalty.schemas import serialize_transaction
from ..loyalty.service import LoyaltyService
from ..reviews.schemas import ReviewSubmitRequest, serialize_review_request
from ..reviews.service import ReviewService
from .schemas import (
    JobCancelRequest,
    JobRescheduleRequest,
    PortalProfileUpdate,
    serialize_portal_customer,
    serialize_portal_job,
    serialize_portal_offer,
)
from .service import PortalService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/portal", tags=["Customer Portal"])


def get_portal_service(
    customer: Customer = Depends(get_portal_customer),
    db: Session = Depends(get_db),
) -> PortalService:
    """Dependency injection for PortalService bound to the signed-in customer"""
    return PortalService(db, customer)


# ============================================================================
# PROFILE
# ============================================================================


@router.get("/customer")
async def get_profile(customer: Customer = Depends(get_portal_customer)):
    return success_response(serialize_portal_customer(customer))


@router.patch("/customer", dependencies=[Depends(portal_write_limit)])
async def update_profile(
    data: PortalProfileUpdate,
    service: PortalService = Depends(get_portal_service),
):
    return success_response(serialize_portal_customer(service.update_profile(data)))


# ============================================================================
# JOBS
# ============================================================================


@router.get("/jobs")
async def list_jobs(service: PortalService = Depends(get_portal_service)):
    result = service.list_jobs()
    return success_response(
        {
            "upcoming": [serialize_portal_job(j) for j in result["upcoming"]],
            "past": [serialize_portal_job(j) for j in result["past"]],
        }
    )


@router.post("/jobs/{job_id}/cancel", dependencies=[Depends(portal_write_limit)])
async def cancel_job(
    job_id: int,
    data: JobCancelRequest,
    service: PortalService = Depends(get_portal_service),
):
    return success_response(await service.cancel_job(job_id, data))


@router.post("/jobs/{job_id}/reschedule", dependencies=[Depends(portal_write_limit)])
async def reschedule_job(
    job_id: int,
    data: JobRescheduleRequest,
    service: PortalService = Depends(get_portal_service),
):
    return success_response(service.reschedule_job(job_id, data), status_code=201)


# ============================================================================
# OFFERS, LOYALTY AND REVIEWS
# ============================================================================


@router.get("/promotions")
async def list_offers(service: PortalService = Depends(get_portal_service)):
    now = datetime.utcnow()
    return success_response([serialize_portal_offer(d, now) for d in service.active_offers(now)])


@router.get("/loyalty")
async def get_loyalty(
    customer: Customer = Depends(get_portal_customer),
    db: Session = Depends(get_db),
):
    service = LoyaltyService(db)
    progress = service.get_tier_progress(customer.id)
    progress["recentTransactions"] = [serialize_transaction(t) for t in service.list_transactions(customer.id, 20)]
    return success_response(progress)


@router.get("/reviews")
async def list_reviews(
    customer: Customer = Depends(get_portal_customer),
    db: Session = Depends(get_db),
):
    requests = ReviewService(db).list_for_customer(customer.id)
    return success_response([serialize_review_request(r) for r in requests])


@router.post("/reviews/{public_id}/submit", dependencies=[Depends(portal_write_limit)])
async def submit_review(
    public_id: str,
    data: ReviewSubmitRequest,
    customer: Customer = Depends(get_portal_customer),
    db: Session = Depends(get_db),
):
    result = await ReviewService(db).submit_review(
        public_id, customer, data.rating, feedback=data.feedback, resolution_request=data.resolutionRequest
    )
    return success_response(result)


# ============================================================================
# COMMUNICATION PREFERENCES
# ============================================================================


@router.get("/preferences")
async def get_preferences(
    customer: Customer = Depends(get_portal_customer),
    db: Session = Depends(get_db),
):
    return success_response(serialize_preferences(CustomerService(db).get_preferences(customer.id)))


@router.put("/preferences", dependencies=[Depends(portal_write_limit)])
async def update_preferences(
    data: PreferencesUpdate,
    customer: Customer = Depends(get_portal_customer),
    db: Session = Depends(get_db),
):
    prefs = CustomerService(db).update_preferences(customer.id, data)
    return success_response(serialize_preferences(prefs))


__all__ = ["router"]
