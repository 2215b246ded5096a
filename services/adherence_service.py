"""
Adherence Service
Transactional recording of reported dose outcomes
"""

import logging
import math
import time
from typing import Callable, Optional, Union
from datetime import datetime, timedelta
from sqlalchemy.orm import Session
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from config import settings
from database import get_db_context
import models
from models import AdherenceClass, AuditEventType, DoseOutcome, DoseResolution, MedicationType
from exceptions import (
    AdherenceError,
    DuplicateSubmissionError,
    InvalidSlotError,
    MedicationUnavailableError,
    RecorderTimeoutError,
    SlotAlreadyResolvedError,
    TransientStoreError,
    UserNotFoundError,
    ValidationError,
)
from services.audit_service import record_event
from tools.notification_service import NotificationService, RealtimeEvent, notification_service
from tools.time_windows import (
    Clock,
    canonical_slot,
    minutes_between,
    resolve_zone,
    slot_instant,
    system_clock,
    to_utc_naive,
)


logger = logging.getLogger(__name__)


def classify_report(
    scheduled_slot: str,
    outcome: DoseOutcome,
    now_local: datetime,
    late_threshold_minutes: Optional[int] = None
) -> DoseResolution:
    """
    Classify a reported outcome against today's instance of the slot.

    An explicit miss is always missed. Otherwise a report more than the
    late threshold after the scheduled instant is late, with the delay
    floored to whole minutes; anything earlier is on time.
    """
    if outcome == DoseOutcome.MISSED:
        return DoseResolution.missed()

    threshold = settings.LATE_THRESHOLD_MINUTES if late_threshold_minutes is None else late_threshold_minutes
    scheduled = slot_instant(scheduled_slot, now_local.date(), now_local.tzinfo)
    diff = minutes_between(scheduled, now_local)

    if diff > threshold:
        return DoseResolution.late(math.floor(diff), outcome)
    return DoseResolution.on_time(outcome)


def active_medication_query(session: Session, owner_id: Optional[int] = None):
    """Medications that are neither soft-deleted nor deactivated"""
    query = session.query(models.Medication).filter(
        models.Medication.is_deleted.is_(False),
        models.Medication.is_active.is_(True)
    )
    if owner_id is not None:
        query = query.filter(models.Medication.owner_id == owner_id)
    return query


class AdherenceService:
    """
    Entry point for actively reported dose outcomes.

    One call writes one ledger entry plus its side effects (stock
    decrement, audit events) in a single transaction, or nothing at all.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        notifier: Optional[NotificationService] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        timeout_seconds: Optional[float] = None,
        timer: Callable[[], float] = time.monotonic
    ):
        self.clock = clock or system_clock
        self.notifier = notifier or notification_service
        self.session_factory = session_factory
        self.timeout_seconds = settings.RECORDER_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        self._timer = timer

    async def record_dose(
        self,
        medication_id: int,
        owner_id: int,
        scheduled_slot: str,
        outcome: Union[DoseOutcome, str] = DoseOutcome.TAKEN,
        timezone: Optional[str] = None,
        db: Optional[Session] = None
    ) -> models.DoseLog:
        """
        Record a reported outcome for one slot-instance

        Args:
            medication_id: Medication the dose belongs to
            owner_id: Patient who owns the medication
            scheduled_slot: "HH:MM" slot being resolved
            outcome: taken, missed or skipped
            timezone: Actor's zone; defaults to the owner's zone
            db: Database session

        Returns:
            The committed DoseLog

        Raises:
            ValidationError: malformed slot, zone or outcome
            DuplicateSubmissionError: same dose reported taken moments ago
            SlotAlreadyResolvedError: the slot-instance already has an entry
            StateError: owner or medication missing, inactive or deleted
            TransientStoreError: store failure or timeout; fully rolled back
        """
        scheduled_slot = canonical_slot(scheduled_slot)
        try:
            outcome = DoseOutcome(outcome)
        except ValueError as exc:
            raise ValidationError(f"Unknown dose outcome: {outcome!r}", {"outcome": outcome}) from exc

        def _record(session: Session) -> models.DoseLog:
            started = self._timer()
            try:
                log = self._write_unit(
                    session, medication_id, owner_id, scheduled_slot, outcome, timezone
                )
                self._check_deadline(started)
                session.commit()
            except AdherenceError:
                session.rollback()
                raise
            except IntegrityError as exc:
                session.rollback()
                logger.warning(
                    f"Slot {scheduled_slot} of medication {medication_id} already resolved today"
                )
                raise SlotAlreadyResolvedError(
                    "Dose already recorded for this slot today",
                    {"medication_id": medication_id, "scheduled_slot": scheduled_slot}
                ) from exc
            except SQLAlchemyError as exc:
                session.rollback()
                logger.exception("Store failure while recording dose; rolled back")
                raise TransientStoreError("Dose could not be recorded, please retry") from exc

            session.refresh(log)
            logger.info(
                f"Recorded {log.outcome.value}/{log.classification.value} for medication "
                f"{medication_id}, slot {scheduled_slot} (delay {log.delay_minutes}m)"
            )
            self._announce(log)
            return log

        if db:
            return _record(db)

        with get_db_context(self.session_factory) as session:
            return _record(session)

    def _write_unit(
        self,
        session: Session,
        medication_id: int,
        owner_id: int,
        scheduled_slot: str,
        outcome: DoseOutcome,
        timezone: Optional[str]
    ) -> models.DoseLog:
        owner = session.get(models.User, owner_id)
        if owner is None:
            raise UserNotFoundError(owner_id)

        medication = active_medication_query(session, owner_id).filter(
            models.Medication.id == medication_id
        ).first()
        if medication is None:
            raise MedicationUnavailableError(medication_id, owner_id)

        if medication.med_type == MedicationType.SCHEDULED and scheduled_slot not in {
            str(slot).strip() for slot in medication.slots or ()
        }:
            raise InvalidSlotError(
                scheduled_slot,
                f"Slot {scheduled_slot} is not on the schedule of medication {medication_id}"
            )

        zone = resolve_zone(timezone or owner.timezone)
        now_local = self.clock.now(zone)
        now_utc = to_utc_naive(now_local)

        if outcome == DoseOutcome.TAKEN:
            self._guard_duplicate(session, medication_id, scheduled_slot, now_utc)

        resolution = classify_report(scheduled_slot, outcome, now_local)

        log = models.DoseLog(
            user_id=owner_id,
            medication_id=medication_id,
            scheduled_slot=scheduled_slot,
            slot_date=now_local.date(),
            outcome=resolution.outcome,
            classification=resolution.classification,
            delay_minutes=resolution.delay_minutes,
            reported_by="patient",
            logged_at=now_utc
        )
        session.add(log)
        # Unique key on (medication, slot, day) rejects a second writer here
        session.flush()

        event_meta = {"scheduled_slot": scheduled_slot, "delay_minutes": resolution.delay_minutes}
        if resolution.consumes_stock:
            self._decrement_stock(session, medication, now_utc)
            event_type = (
                AuditEventType.DOSE_LATE
                if resolution.classification == AdherenceClass.LATE
                else AuditEventType.DOSE_TAKEN
            )
            record_event(session, owner_id, medication_id, event_type, event_meta, now_utc)
        elif resolution.outcome == DoseOutcome.MISSED:
            record_event(
                session, owner_id, medication_id, AuditEventType.DOSE_MISSED,
                {"scheduled_slot": scheduled_slot, "reported_by": "patient"}, now_utc
            )

        session.flush()
        return log

    def _guard_duplicate(
        self,
        session: Session,
        medication_id: int,
        scheduled_slot: str,
        now_utc: datetime
    ) -> None:
        window_start = now_utc - timedelta(minutes=settings.DUPLICATE_WINDOW_MINUTES)
        recent = session.query(models.DoseLog.id).filter(
            models.DoseLog.medication_id == medication_id,
            models.DoseLog.scheduled_slot == scheduled_slot,
            models.DoseLog.outcome == DoseOutcome.TAKEN,
            models.DoseLog.logged_at >= window_start
        ).first()
        if recent:
            logger.warning(f"Duplicate taken report for medication {medication_id} slot {scheduled_slot}")
            raise DuplicateSubmissionError(
                "Dose was already logged as taken moments ago",
                {"medication_id": medication_id, "scheduled_slot": scheduled_slot}
            )

    def _decrement_stock(self, session: Session, medication: models.Medication, now_utc: datetime) -> None:
        """Take one unit off the shelf; stock never drops below zero."""
        result = session.execute(
            update(models.Medication)
            .where(
                models.Medication.id == medication.id,
                models.Medication.remaining_quantity > 0
            )
            .values(remaining_quantity=models.Medication.remaining_quantity - 1)
            .execution_options(synchronize_session=False)
        )
        session.refresh(medication)

        if result.rowcount == 0:
            logger.warning(f"Medication {medication.id} has no recorded stock left to decrement")

        if medication.remaining_quantity < settings.LOW_STOCK_THRESHOLD:
            record_event(
                session, medication.owner_id, medication.id, AuditEventType.INVENTORY_LOW,
                {"stock": medication.remaining_quantity}, now_utc
            )

    def _check_deadline(self, started: float) -> None:
        elapsed = self._timer() - started
        if elapsed > self.timeout_seconds:
            logger.error(f"Dose recording exceeded {self.timeout_seconds}s ({elapsed:.2f}s); rolling back")
            raise RecorderTimeoutError(
                "Dose recording timed out",
                {"elapsed_seconds": round(elapsed, 3)}
            )

    def _announce(self, log: models.DoseLog) -> None:
        self.notifier.publish_realtime(
            str(log.user_id),
            RealtimeEvent.DOSE_UPDATED,
            {
                "log_id": log.id,
                "medication_id": log.medication_id,
                "scheduled_slot": log.scheduled_slot,
                "outcome": log.outcome.value,
                "classification": log.classification.value,
            }
        )


# Singleton instance
adherence_service = AdherenceService()
