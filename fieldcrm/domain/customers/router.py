"""Customer router - FastAPI endpoints for staff customer management"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import MANAGER_ROLES, OFFICE_ROLES, get_current_user, require_roles
from ...database import get_db
from ...models import User
from ...shared.responses import success_response
from .schemas import CustomerCreate, CustomerResponse, CustomerUpdate, PreferencesUpdate, serialize_preferences
from .service import CustomerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers", tags=["Customers"])


def get_customer_service(db: Session = Depends(get_db)) -> CustomerService:
    """Dependency injection for CustomerService"""
    return CustomerService(db)


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("")
async def list_customers(
    search: Optional[str] = Query(None),
    zone: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    result = service.list_customers(search, zone, page, limit)
    return success_response(
        {
            "customers": [CustomerResponse.from_model(c) for c in result["customers"]],
            "pagination": {"page": page, "limit": limit, "total": result["total"]},
        }
    )


@router.post("")
async def create_customer(
    data: CustomerCreate,
    current_user: User = Depends(require_roles(*OFFICE_ROLES)),
    service: CustomerService = Depends(get_customer_service),
):
    customer = service.create_customer(data, current_user)
    return success_response(CustomerResponse.from_model(customer), status_code=201)


@router.get("/{customer_id}")
async def get_customer(
    customer_id: int,
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return success_response(CustomerResponse.from_model(service.get_customer(customer_id)))


@router.patch("/{customer_id}")
async def update_customer(
    customer_id: int,
    data: CustomerUpdate,
    current_user: User = Depends(require_roles(*OFFICE_ROLES)),
    service: CustomerService = Depends(get_customer_service),
):
    customer = service.update_customer(customer_id, data, current_user)
    return success_response(CustomerResponse.from_model(customer))


@router.delete("/{customer_id}")
async def delete_customer(
    customer_id: int,
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
    service: CustomerService = Depends(get_customer_service),
):
    return success_response(service.delete_customer(customer_id, current_user))


# ============================================================================
# COMMUNICATION PREFERENCES
# ============================================================================


@router.get("/{customer_id}/preferences")
async def get_preferences(
    customer_id: int,
    messageType: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    data = serialize_preferences(service.get_preferences(customer_id))
    data["allowedChannels"] = service.allowed_channels(customer_id, messageType)
    return success_response(data)


@router.put("/{customer_id}/preferences")
async def update_preferences(
    customer_id: int,
    data: PreferencesUpdate,
    current_user: User = Depends(require_roles(*OFFICE_ROLES)),
    service: CustomerService = Depends(get_customer_service),
):
    prefs = service.update_preferences(customer_id, data, actor_user_id=current_user.id)
    return success_response(serialize_preferences(prefs))


__all__ = ["router"]
