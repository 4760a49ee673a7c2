"""Opportunities router - missed-sale pipeline for staff"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import OFFICE_ROLES, get_current_user, require_roles
from ...database import get_db
from ...models import User
from ...shared.responses import success_response
from .schemas import OpportunityConvertRequest, OpportunityCreate, OpportunityUpdate, serialize_opportunity
from .service import OpportunityService

router = APIRouter(prefix="/opportunities", tags=["Opportunities"])


def get_opportunity_service(db: Session = Depends(get_db)) -> OpportunityService:
    """Dependency injection for OpportunityService"""
    return OpportunityService(db)


@router.get("")
async def list_opportunities(
    customerId: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    opportunityType: Optional[str] = Query(None),
    assignedTo: Optional[int] = Query(None),
    converted: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    service: OpportunityService = Depends(get_opportunity_service),
):
    result = service.list_opportunities(customerId, status, opportunityType, assignedTo, converted, page, limit)
    return success_response(
        {
            "opportunities": [serialize_opportunity(o) for o in result["opportunities"]],
            "pagination": result["pagination"],
        }
    )


@router.post("")
async def create_opportunity(
    data: OpportunityCreate,
    current_user: User = Depends(get_current_user),
    service: OpportunityService = Depends(get_opportunity_service),
):
    opportunity = await service.create_opportunity(data, current_user)
    return success_response(
        {"opportunity": serialize_opportunity(opportunity), "message": "Opportunity created successfully"},
        status_code=201,
    )


@router.get("/{opportunity_id}")
async def get_opportunity(
    opportunity_id: int,
    current_user: User = Depends(get_current_user),
    service: OpportunityService = Depends(get_opportunity_service),
):
    return success_response(serialize_opportunity(service.get_opportunity(opportunity_id), include_interactions=True))


@router.patch("/{opportunity_id}")
async def update_opportunity(
    opportunity_id: int,
    data: OpportunityUpdate,
    current_user: User = Depends(get_current_user),
    service: OpportunityService = Depends(get_opportunity_service),
):
    opportunity = service.update_opportunity(opportunity_id, data, current_user)
    return success_response(serialize_opportunity(opportunity))


@router.post("/{opportunity_id}/convert")
async def convert_opportunity(
    opportunity_id: int,
    data: OpportunityConvertRequest,
    current_user: User = Depends(require_roles(*OFFICE_ROLES, "technician")),
    service: OpportunityService = Depends(get_opportunity_service),
):
    return success_response(service.convert_opportunity(opportunity_id, data, current_user))


__all__ = ["router"]
