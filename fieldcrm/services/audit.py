"""Audit log helper shared by routes, services and cron jobs"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models import AuditLog

logger = logging.getLogger(__name__)


def write_audit_log(
    db: Session,
    action: str,
    entity: str,
    entity_id=None,
    outcome: str = "ok",
    meta: Optional[dict] = None,
    actor_user_id: Optional[int] = None,
    commit: bool = False,
) -> AuditLog:
    """Add an audit row to the session; commits only when asked"""
    entry = AuditLog(
        actor_user_id=actor_user_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        outcome=outcome,
        meta=meta,
    )
    db.add(entry)
    if commit:
        db.commit()
    else:
        db.flush()
    return entry
