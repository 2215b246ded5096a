"""
Audit Service
Append-only audit trail for recorder and sweeper side effects
"""

import logging
from typing import Any, Dict, List, Optional
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy import desc

import models
from models import AuditEventType


logger = logging.getLogger(__name__)


def record_event(
    session: Session,
    user_id: int,
    medication_id: Optional[int],
    event_type: AuditEventType,
    metadata: Optional[Dict[str, Any]] = None,
    timestamp: Optional[datetime] = None
) -> models.AuditEvent:
    """
    Stage an audit event inside the caller's transaction.

    Nothing is committed here: the event lands or disappears together
    with the ledger write it describes.
    """
    event = models.AuditEvent(
        user_id=user_id,
        medication_id=medication_id,
        event_type=event_type,
        event_metadata=metadata or {},
        timestamp=timestamp or datetime.utcnow()
    )
    session.add(event)
    logger.debug("Staged %s audit event for user %s", event_type.value, user_id)
    return event


def list_events(
    session: Session,
    user_id: int,
    event_type: Optional[AuditEventType] = None,
    limit: int = 100
) -> List[models.AuditEvent]:
    """Most recent audit events for a user, newest first"""
    query = session.query(models.AuditEvent).filter(models.AuditEvent.user_id == user_id)
    if event_type:
        query = query.filter(models.AuditEvent.event_type == event_type)
    return query.order_by(desc(models.AuditEvent.timestamp), desc(models.AuditEvent.id)).limit(limit).all()
