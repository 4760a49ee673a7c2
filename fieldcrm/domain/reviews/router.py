"""Reviews router - staff review requests and statistics"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import OFFICE_ROLES, get_current_user, require_roles
from ...database import get_db
from ...models import User
from ...shared.responses import success_response
from .schemas import ReviewRequestCreate, serialize_review_request
from .service import ReviewService

router = APIRouter(prefix="/reviews", tags=["Reviews"])


def get_review_service(db: Session = Depends(get_db)) -> ReviewService:
    """Dependency injection for ReviewService"""
    return ReviewService(db)


@router.post("/requests")
async def create_review_request(
    data: ReviewRequestCreate,
    current_user: User = Depends(require_roles(*OFFICE_ROLES)),
    service: ReviewService = Depends(get_review_service),
):
    result = await service.create_review_request(
        data.customerId, data.jobId, method=data.requestMethod, actor_user_id=current_user.id
    )
    return success_response(
        {**serialize_review_request(result["reviewRequest"]), "delivery": result["delivery"]},
        status_code=201,
    )


@router.get("/requests")
async def list_review_requests(
    status: Optional[str] = Query(None),
    customerId: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    result = service.list_requests(status, customerId, page, limit)
    return success_response(
        {
            "requests": [serialize_review_request(r) for r in result["requests"]],
            "pagination": {"page": page, "limit": limit, "total": result["total"]},
        }
    )


@router.get("/stats")
async def review_stats(
    current_user: User = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    return success_response(service.get_stats())


__all__ = ["router"]
