"""Jobs router - staff scheduling and completion"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import OFFICE_ROLES, get_current_user, require_roles
from ...database import get_db
from ...models import User
from ...shared.responses import success_response
from .schemas import JobCompleteRequest, JobCreate, JobUpdate, serialize_job
from .service import JobService

router = APIRouter(prefix="/jobs", tags=["Jobs"])


def get_job_service(db: Session = Depends(get_db)) -> JobService:
    """Dependency injection for JobService"""
    return JobService(db)


@router.get("")
async def list_jobs(
    customerId: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    technicianId: Optional[int] = Query(None),
    dateFrom: Optional[datetime] = Query(None),
    dateTo: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    result = service.list_jobs(customerId, status, technicianId, dateFrom, dateTo, page, limit)
    return success_response(
        {
            "jobs": [serialize_job(j) for j in result["jobs"]],
            "pagination": {"page": page, "limit": limit, "total": result["total"]},
        }
    )


@router.post("")
async def create_job(
    data: JobCreate,
    current_user: User = Depends(require_roles(*OFFICE_ROLES)),
    service: JobService = Depends(get_job_service),
):
    result = service.create_job(data, current_user)
    return success_response(
        {**serialize_job(result["job"]), "reminderId": result["reminderId"]}, status_code=201
    )


@router.get("/{job_id}")
async def get_job(
    job_id: int,
    current_user: User = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    return success_response(serialize_job(service.get_job(job_id)))


@router.patch("/{job_id}")
async def update_job(
    job_id: int,
    data: JobUpdate,
    current_user: User = Depends(require_roles(*OFFICE_ROLES)),
    service: JobService = Depends(get_job_service),
):
    return success_response(serialize_job(service.update_job(job_id, data, current_user)))


@router.post("/{job_id}/complete")
async def complete_job(
    job_id: int,
    data: Optional[JobCompleteRequest] = None,
    current_user: User = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    result = await service.complete_job(job_id, data or JobCompleteRequest(), current_user)
    return success_response(
        {
            "job": serialize_job(result["job"]),
            "loyalty": result["loyalty"],
            "reviewRequestId": result["reviewRequestId"],
        }
    )


__all__ = ["router"]
