"""Promotions router - staff management, claiming and redemption"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import MANAGER_ROLES, OFFICE_ROLES, get_current_user, require_roles
from ...database import get_db
from ...models import User
from ...shared.responses import success_response
from .schemas import (
    ClaimRequest,
    PromotionCreate,
    PromotionRedeemRequest,
    PromotionUpdate,
    PromotionValidateRequest,
    serialize_delivery,
    serialize_promotion,
)
from .service import PromotionService

router = APIRouter(tags=["Promotions"])


def get_promotion_service(db: Session = Depends(get_db)) -> PromotionService:
    """Dependency injection for PromotionService"""
    return PromotionService(db)


@router.get("/promotions")
async def list_promotions(
    status: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: PromotionService = Depends(get_promotion_service),
):
    return success_response([serialize_promotion(p) for p in service.list_promotions(status)])


@router.post("/promotions")
async def create_promotion(
    data: PromotionCreate,
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
    service: PromotionService = Depends(get_promotion_service),
):
    promotion = service.create(data, actor_user_id=current_user.id)
    return success_response(serialize_promotion(promotion), status_code=201)


# Static path must be registered before /promotions/{promotion_id}
@router.post("/promotions/redeem")
async def redeem_promotion(
    data: PromotionRedeemRequest,
    current_user: User = Depends(require_roles(*OFFICE_ROLES)),
    service: PromotionService = Depends(get_promotion_service),
):
    result = service.redeem(data.claimCode, data.jobId, data.jobValue, actor_user_id=current_user.id)
    return success_response(result)


@router.get("/promotions/{promotion_id}")
async def get_promotion(
    promotion_id: int,
    current_user: User = Depends(get_current_user),
    service: PromotionService = Depends(get_promotion_service),
):
    return success_response(serialize_promotion(service.get_promotion(promotion_id)))


@router.patch("/promotions/{promotion_id}")
async def update_promotion(
    promotion_id: int,
    data: PromotionUpdate,
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
    service: PromotionService = Depends(get_promotion_service),
):
    promotion = service.update(promotion_id, data, actor_user_id=current_user.id)
    return success_response(serialize_promotion(promotion))


@router.delete("/promotions/{promotion_id}")
async def delete_promotion(
    promotion_id: int,
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
    service: PromotionService = Depends(get_promotion_service),
):
    return success_response(service.delete(promotion_id, actor_user_id=current_user.id))


@router.post("/promotions/{promotion_id}/validate")
async def validate_promotion(
    promotion_id: int,
    data: PromotionValidateRequest,
    current_user: User = Depends(get_current_user),
    service: PromotionService = Depends(get_promotion_service),
):
    result = service.validate(
        promotion_id,
        customer_id=data.customerId,
        job_value=data.jobValue,
        zone=data.zone,
        service_types=data.serviceTypes,
    )
    return success_response(result)


# ============================================================================
# CUSTOMER CLAIMS
# ============================================================================


@router.get("/customers/{customer_id}/promotions")
async def list_customer_promotions(
    customer_id: int,
    current_user: User = Depends(get_current_user),
    service: PromotionService = Depends(get_promotion_service),
):
    deliveries = service.customer_deliveries(customer_id)
    return success_response(
        [{**serialize_delivery(d), "promotion": serialize_promotion(d.promotion)} for d in deliveries]
    )


@router.post("/customers/{customer_id}/promotions/{promotion_id}/claim")
async def claim_promotion(
    customer_id: int,
    promotion_id: int,
    data: Optional[ClaimRequest] = None,
    current_user: User = Depends(require_roles(*OFFICE_ROLES)),
    service: PromotionService = Depends(get_promotion_service),
):
    channel = data.deliveryChannel if data else "portal"
    result, created = service.claim_for_customer(
        customer_id, promotion_id, channel=channel, actor_user_id=current_user.id
    )
    body = {
        "claimCode": result["claimCode"],
        "alreadyClaimed": result["alreadyClaimed"],
        "delivery": serialize_delivery(result["delivery"]),
    }
    return success_response(body, status_code=201 if created else 200)


__all__ = ["router"]
