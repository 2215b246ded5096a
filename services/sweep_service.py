"""
Sweep Service
Periodic reconciliation that turns unreported, overdue slot-instances
into missed ledger entries and alerts guardians.

Per (medication, slot, day) the sweeper sees one of:
    pending  -> before the scheduled instant, nothing to do
    grace    -> inside the grace window, still reportable
    resolved -> a ledger entry exists (taken, skipped or missed)
    overdue  -> past the grace window with no entry: write "missed"
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from database import get_db_context
import models
from models import AuditEventType, DoseResolution, MedicationType
from exceptions import SweepAbortedError, SweepInProgressError
from actions.alert_engine import AlertEngine, MissedDoseAlert
from services.audit_service import record_event
from services.guardian_service import GuardianContact, active_guardians
from tools.notification_service import NotificationService, notification_service
from tools.time_windows import (
    Clock,
    SlotPhase,
    canonical_slot,
    resolve_zone,
    slot_window,
    system_clock,
    to_utc_naive,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepTarget:
    """Detached snapshot of one scheduled medication and its owner"""
    medication_id: int
    medication_name: str
    owner_id: int
    owner_name: str
    owner_timezone: str
    slots: Tuple[str, ...]


@dataclass
class SweepReport:
    missed: int = 0
    medications_scanned: int = 0
    failures: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class SweepService:
    """
    Missed-dose sweeper.

    A process-wide run lock keeps passes from overlapping; the ledger's
    unique key on (medication, slot, day) still rejects a second writer
    if the recorder or another process gets there first.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        clock: Optional[Clock] = None,
        notifier: Optional[NotificationService] = None,
        grace_minutes: Optional[int] = None,
        medication_budget_seconds: Optional[float] = None,
        timer: Callable[[], float] = time.monotonic
    ):
        self.session_factory = session_factory
        self.clock = clock or system_clock
        self.notifier = notifier or notification_service
        self.alert_engine = AlertEngine(notifier=self.notifier, session_factory=session_factory)
        self.grace_minutes = settings.GRACE_WINDOW_MINUTES if grace_minutes is None else grace_minutes
        self.medication_budget_seconds = (
            settings.SWEEP_MEDICATION_BUDGET_SECONDS
            if medication_budget_seconds is None else medication_budget_seconds
        )
        self._timer = timer
        self._run_lock = threading.Lock()
        self.last_report: Optional[SweepReport] = None

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def run_sweep_pass(self) -> int:
        """
        Run one full pass and return the number of missed entries written.

        Raises SweepInProgressError if another pass holds the run lock and
        SweepAbortedError if the schedules cannot be enumerated.
        """
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Sweep pass requested while another pass is running")
            raise SweepInProgressError("A sweep pass is already running")
        try:
            report = self._sweep()
            self.last_report = report
            return report.missed
        finally:
            self._run_lock.release()

    def _sweep(self) -> SweepReport:
        report = SweepReport(started_at=self.clock.utcnow())
        logger.info("Sweep pass starting")

        try:
            targets = self._load_targets()
        except SQLAlchemyError as exc:
            logger.exception("Sweep aborted: could not enumerate scheduled medications")
            raise SweepAbortedError("Could not enumerate scheduled medications") from exc

        owner_now: Dict[int, datetime] = {}
        for target in targets:
            report.medications_scanned += 1
            try:
                if target.owner_id not in owner_now:
                    owner_now[target.owner_id] = self.clock.now(resolve_zone(target.owner_timezone))
                report.missed += self._sweep_medication(target, owner_now[target.owner_id], report)
            except Exception:
                report.failures += 1
                logger.exception(f"Sweep skipped medication {target.medication_id}")

        report.finished_at = self.clock.utcnow()
        logger.info(
            f"Sweep pass finished: {report.missed} missed doses recorded across "
            f"{report.medications_scanned} medications ({report.failures} failures)"
        )
        return report

    def _load_targets(self) -> List[SweepTarget]:
        with get_db_context(self.session_factory) as session:
            rows = (
                session.query(models.Medication, models.User)
                .join(models.User, models.Medication.owner_id == models.User.id)
                .filter(
                    models.Medication.is_deleted.is_(False),
                    models.Medication.is_active.is_(True),
                    models.Medication.med_type == MedicationType.SCHEDULED
                )
                .order_by(models.Medication.owner_id, models.Medication.id)
                .all()
            )
            return [
                SweepTarget(
                    medication_id=med.id,
                    medication_name=med.name,
                    owner_id=owner.id,
                    owner_name=owner.name,
                    owner_timezone=owner.timezone,
                    slots=tuple(med.slots or ())
                )
                for med, owner in rows
            ]

    def _sweep_medication(self, target: SweepTarget, now_local: datetime, report: SweepReport) -> int:
        started = self._timer()
        missed = 0
        for slot in target.slots:
            if self._timer() - started > self.medication_budget_seconds:
                logger.warning(
                    f"Medication {target.medication_id} exceeded its sweep budget; "
                    f"remaining slots deferred to the next pass"
                )
                report.failures += 1
                break
            try:
                if self._resolve_slot(target, slot, now_local):
                    missed += 1
            except Exception:
                report.failures += 1
                logger.exception(f"Sweep skipped slot {slot} of medication {target.medication_id}")
        return missed

    def _resolve_slot(self, target: SweepTarget, slot: str, now_local: datetime) -> bool:
        """Write a missed entry for today's instance if it is overdue and unresolved."""
        slot = canonical_slot(slot)
        window = slot_window(slot, now_local.date(), now_local.tzinfo, self.grace_minutes)
        if window.phase(now_local) != SlotPhase.OVERDUE:
            return False

        day = now_local.date()
        now_utc = to_utc_naive(now_local)
        resolution = DoseResolution.missed()

        with get_db_context(self.session_factory) as session:
            existing = session.query(models.DoseLog.id).filter(
                models.DoseLog.medication_id == target.medication_id,
                models.DoseLog.scheduled_slot == slot,
                models.DoseLog.slot_date == day
            ).first()
            if existing:
                return False

            session.add(models.DoseLog(
                user_id=target.owner_id,
                medication_id=target.medication_id,
                scheduled_slot=slot,
                slot_date=day,
                outcome=resolution.outcome,
                classification=resolution.classification,
                delay_minutes=resolution.delay_minutes,
                reported_by="system",
                logged_at=now_utc
            ))
            record_event(
                session, target.owner_id, target.medication_id, AuditEventType.DOSE_MISSED,
                {"scheduled_slot": slot, "reported_by": "system"}, now_utc
            )
            try:
                session.commit()
            except IntegrityError:
                # Another writer resolved the slot-instance between our check and insert
                session.rollback()
                logger.info(f"Slot {slot} of medication {target.medication_id} resolved concurrently")
                return False

            guardians = active_guardians(session, target.owner_id)

        logger.info(f"Marked slot {slot} of medication {target.medication_id} missed for {day}")
        self._alert_guardians(target, slot, guardians)
        return True

    def _alert_guardians(self, target: SweepTarget, slot: str, guardians: List[GuardianContact]) -> None:
        if not guardians:
            return
        alert = MissedDoseAlert(
            patient_id=target.owner_id,
            patient_name=target.owner_name,
            medication_id=target.medication_id,
            medication_name=target.medication_name,
            missed_slot=slot
        )
        try:
            self.alert_engine.fan_out(alert, guardians)
        except Exception:
            logger.exception(f"Guardian fan-out failed for medication {target.medication_id}")


# Singleton instance
sweep_service = SweepService()
