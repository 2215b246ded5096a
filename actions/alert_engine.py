"""
Alert Engine
Fans a synthesized missed dose out to the patient's active guardians
"""

import logging
from typing import Callable, List, Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_db_context
from models import AuditEventType
from services.audit_service import record_event
from services.guardian_service import GuardianContact
from tools.notification_service import (
    GuardianAlertSignal,
    NotificationService,
    RealtimeEvent,
    notification_service,
)


logger = logging.getLogger(__name__)


class AlertSeverity(str, Enum):
    """Alert severity levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertType(str, Enum):
    MISSED_DOSE = "MISSED_DOSE"


@dataclass
class MissedDoseAlert:
    """One missed slot-instance, ready to be fanned out"""
    patient_id: int
    patient_name: str
    medication_id: int
    medication_name: str
    missed_slot: str
    severity: AlertSeverity = AlertSeverity.CRITICAL
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    created_at: datetime = field(default_factory=datetime.utcnow)

    def realtime_payload(self) -> dict:
        return {
            "type": AlertType.MISSED_DOSE.value,
            "alert_id": self.id,
            "patientName": self.patient_name,
            "medName": self.medication_name,
            "time": self.missed_slot,
            "severity": self.severity.value,
        }


@dataclass
class FanOutResult:
    queued: int = 0
    realtime_delivered: int = 0
    skipped_without_contact: int = 0


class AlertEngine:
    """
    Emits guardian alerts for a missed dose.

    Runs only after the missed entry has committed. Every step here is
    best effort: a failure is logged and never undoes the ledger write.
    """

    def __init__(
        self,
        notifier: Optional[NotificationService] = None,
        session_factory: Optional[Callable[[], Session]] = None
    ):
        self.notifier = notifier or notification_service
        self.session_factory = session_factory

    def fan_out(self, alert: MissedDoseAlert, guardians: List[GuardianContact]) -> FanOutResult:
        result = FanOutResult()
        alerted: List[GuardianContact] = []

        for guardian in guardians:
            if not guardian.email:
                result.skipped_without_contact += 1
                continue

            self.notifier.enqueue_guardian_alert(GuardianAlertSignal(
                guardian_contact=guardian.email,
                patient_name=alert.patient_name or "Your Patient",
                medication_name=alert.medication_name,
                missed_slot=alert.missed_slot,
                guardian_id=guardian.guardian_id,
                patient_id=alert.patient_id
            ))
            result.queued += 1
            alerted.append(guardian)

            if self.notifier.publish_realtime(
                str(guardian.guardian_id),
                RealtimeEvent.EMERGENCY_ALERT,
                alert.realtime_payload()
            ):
                result.realtime_delivered += 1

        if alerted:
            self._record_sent(alert, alerted)

        logger.info(
            f"Missed-dose alert {alert.id} for patient {alert.patient_id}: "
            f"{result.queued} queued, {result.realtime_delivered} live"
        )
        return result

    def _record_sent(self, alert: MissedDoseAlert, guardians: List[GuardianContact]) -> None:
        try:
            with get_db_context(self.session_factory) as session:
                for guardian in guardians:
                    record_event(
                        session,
                        alert.patient_id,
                        alert.medication_id,
                        AuditEventType.GUARDIAN_ALERT_SENT,
                        {
                            "guardian_id": guardian.guardian_id,
                            "scheduled_slot": alert.missed_slot,
                            "alert_id": alert.id,
                        }
                    )
        except SQLAlchemyError:
            logger.exception(f"Could not record guardian-alert audit events for alert {alert.id}")
