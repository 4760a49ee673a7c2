"""Loyalty router - tiers, balances and point transactions"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import OFFICE_ROLES, get_current_user, require_roles
from ...database import get_db
from ...models import User
from ...shared.responses import success_response
from .schemas import PointsEarnRequest, PointsRedeemRequest, ReferralCompleteRequest, serialize_transaction
from .service import LoyaltyService
from .tiers import get_active_tiers, serialize_tier

router = APIRouter(prefix="/loyalty", tags=["Loyalty"])


def get_loyalty_service(db: Session = Depends(get_db)) -> LoyaltyService:
    """Dependency injection for LoyaltyService"""
    return LoyaltyService(db)


@router.get("/tiers")
async def list_tiers(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return success_response([serialize_tier(t) for t in get_active_tiers(db)])


@router.get("/customers/{customer_id}")
async def get_customer_loyalty(
    customer_id: int,
    current_user: User = Depends(get_current_user),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    return success_response(service.get_tier_progress(customer_id))


@router.get("/customers/{customer_id}/transactions")
async def list_transactions(
    customer_id: int,
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    transactions = service.list_transactions(customer_id, limit)
    return success_response([serialize_transaction(t) for t in transactions])


# ============================================================================
# POINT MUTATIONS
# ============================================================================


@router.post("/points/earn")
async def earn_points(
    data: PointsEarnRequest,
    current_user: User = Depends(require_roles(*OFFICE_ROLES)),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    result = await service.award_points(
        data.customerId, data.points, data.reason, job_id=data.jobId, actor_user_id=current_user.id
    )
    return success_response(result, status_code=201)


@router.post("/points/redeem")
async def redeem_points(
    data: PointsRedeemRequest,
    current_user: User = Depends(require_roles(*OFFICE_ROLES)),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    return success_response(
        service.redeem_points(data.customerId, data.points, data.reason, actor_user_id=current_user.id)
    )


@router.post("/referrals/complete")
async def complete_referral(
    data: ReferralCompleteRequest,
    current_user: User = Depends(require_roles(*OFFICE_ROLES)),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    result = await service.complete_referral(
        data.referrerCustomerId, data.referredCustomerId, job_id=data.jobId, actor_user_id=current_user.id
    )
    return success_response(result, status_code=201)


__all__ = ["router"]
