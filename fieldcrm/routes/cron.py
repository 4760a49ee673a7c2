"""
Scheduled job endpoints
Called by an external scheduler with Authorization: Bearer <CRON_SECRET>
"""

import hmac
import inspect
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..auth import security
from ..config import CRON_SECRET
from ..database import get_db
from ..domain.opportunities.service import process_opportunity_follow_ups
from ..domain.promotions.service import expire_promotions
from ..domain.reviews.service import escalate_unresolved_reviews
from ..services.audit import write_audit_log
from ..services.reminder_service import send_due_reminders

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])


async def verify_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    if not CRON_SECRET:
        logger.error("❌ CRON_SECRET not configured, refusing cron request")
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not credentials or not hmac.compare_digest(credentials.credentials.encode(), CRON_SECRET.encode()):
        logger.warning("🚫 Cron request with invalid secret")
        raise HTTPException(status_code=401, detail="Unauthorized")


def _summary_response(summary: dict) -> JSONResponse:
    return JSONResponse(status_code=200 if summary.get("ok") else 500, content=jsonable_encoder(summary))


async def run_job(db: Session, name: str, job, *args) -> dict:
    """
    Run a scheduled job, converting unexpected failures into an ok=false summary.

    job may be a plain function or a coroutine function taking (db, *args).
    """
    try:
        result = job(db, *args)
        if inspect.isawaitable(result):
            result = await result
        return result
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Cron job {name} failed: {str(e)}")
        try:
            write_audit_log(db, name, "cron", outcome="error", meta={"error": str(e)}, commit=True)
        except Exception as audit_error:
            db.rollback()
            logger.error(f"❌ Failed to audit {name} error: {audit_error}")
        return {"ok": False, "error": str(e)}


@router.post("/send-reminders", dependencies=[Depends(verify_cron_secret)])
async def cron_send_reminders(db: Session = Depends(get_db)):
    summary = await send_due_reminders(db)
    return _summary_response(summary)


@router.post("/opportunities", dependencies=[Depends(verify_cron_secret)])
async def cron_opportunities(db: Session = Depends(get_db)):
    return _summary_response(await run_job(db, "cron_opportunities", process_opportunity_follow_ups))


@router.post("/promotions", dependencies=[Depends(verify_cron_secret)])
async def cron_promotions(db: Session = Depends(get_db)):
    return _summary_response(await run_job(db, "cron_promotions", expire_promotions))


@router.post("/review-escalations", dependencies=[Depends(verify_cron_secret)])
async def cron_review_escalations(db: Session = Depends(get_db)):
    return _summary_response(await run_job(db, "cron_review_escalations", escalate_unresolved_reviews))


__all__ = ["router"]
