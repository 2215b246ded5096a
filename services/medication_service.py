"""
Medication Service
Business logic for medication schedules and inventory
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple
from datetime import datetime, date
from sqlalchemy.orm import Session
from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError

from config import settings
from database import get_db_context
import models
from models import AdherenceClass, AuditEventType, MedicationType
from exceptions import MedicationUnavailableError, TransientStoreError, UserNotFoundError, ValidationError
from actions.reminder_engine import ReminderEngine
from services.adherence_service import active_medication_query
from services.audit_service import record_event
from tools.time_windows import Clock, canonical_slot, parse_slot, resolve_zone


logger = logging.getLogger(__name__)


def normalize_slots(slots: List[str]) -> List[str]:
    """Validate "HH:MM" slots and return them de-duplicated in time order"""
    parsed = {parse_slot(slot): canonical_slot(slot) for slot in slots}
    return [parsed[t] for t in sorted(parsed)]


class MedicationService:
    """
    Service for medication-related operations
    """

    UPDATABLE_FIELDS = {"name", "dosage", "frequency", "instructions", "slots", "med_type", "is_active"}

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        reminder_engine: Optional[ReminderEngine] = None,
        clock: Optional[Clock] = None
    ):
        self.session_factory = session_factory
        self.reminder_engine = reminder_engine or ReminderEngine()
        self.clock = clock or self.reminder_engine.clock

    def _run(self, fn, db: Optional[Session]):
        if db:
            return fn(db)
        with get_db_context(self.session_factory) as session:
            return fn(session)

    async def add_medication(
        self,
        owner_id: int,
        name: str,
        dosage: str,
        frequency: str,
        slots: List[str],
        med_type: MedicationType = MedicationType.SCHEDULED,
        total_quantity: int = 0,
        instructions: Optional[str] = None,
        start_date: Optional[date] = None,
        db: Optional[Session] = None
    ) -> models.Medication:
        """
        Enroll a medication for a patient

        Args:
            owner_id: Patient ID
            name: Medication name
            dosage: Dosage (e.g., "500mg")
            frequency: Frequency description (e.g., "twice daily")
            slots: "HH:MM" times in the patient's zone
            med_type: scheduled or as_needed
            total_quantity: Units dispensed; remaining stock starts here
            instructions: Special instructions
            start_date: Start date
            db: Database session

        Returns:
            Created Medication object
        """
        if total_quantity < 0:
            raise ValidationError("total_quantity must not be negative")
        clean_slots = normalize_slots(slots)
        if med_type == MedicationType.SCHEDULED and not clean_slots:
            raise ValidationError("Scheduled medications need at least one slot")

        def _add(session: Session) -> models.Medication:
            owner = session.get(models.User, owner_id)
            if not owner:
                raise UserNotFoundError(owner_id)

            medication = models.Medication(
                owner_id=owner_id,
                name=name,
                dosage=dosage,
                frequency=frequency,
                slots=clean_slots,
                med_type=med_type,
                instructions=instructions,
                total_quantity=total_quantity,
                remaining_quantity=total_quantity,
                start_date=start_date or self.clock.now(resolve_zone(owner.timezone)).date(),
                is_active=True,
                is_deleted=False
            )

            session.add(medication)
            session.commit()
            session.refresh(medication)

            logger.info(f"Added medication {name} for user {owner_id}")
            self.reminder_engine.schedule_for_medication(medication, owner.timezone)
            return medication

        return self._run(_add, db)

    async def get_medication(
        self,
        medication_id: int,
        owner_id: int,
        db: Optional[Session] = None
    ) -> models.Medication:
        """Get a non-deleted medication by ID"""
        return self._run(lambda session: owned_medication(session, medication_id, owner_id), db)

    async def list_medications(
        self,
        owner_id: int,
        db: Optional[Session] = None
    ) -> List[models.Medication]:
        """All non-deleted medications for a user, newest first"""
        def _get(session: Session) -> List[models.Medication]:
            return session.query(models.Medication).filter(
                models.Medication.owner_id == owner_id,
                models.Medication.is_deleted.is_(False)
            ).order_by(desc(models.Medication.created_at), desc(models.Medication.id)).all()

        return self._run(_get, db)

    async def update_medication(
        self,
        medication_id: int,
        owner_id: int,
        updates: Dict[str, Any],
        db: Optional[Session] = None
    ) -> models.Medication:
        """Update medication information; deleted medications cannot be updated"""
        def _update(session: Session) -> models.Medication:
            medication = owned_medication(session, medication_id, owner_id)

            changes = {
                field: value for field, value in updates.items()
                if field in self.UPDATABLE_FIELDS and value is not None
            }
            if "slots" in changes:
                changes["slots"] = normalize_slots(changes["slots"])
            if "med_type" in changes:
                try:
                    changes["med_type"] = MedicationType(changes["med_type"])
                except ValueError as exc:
                    raise ValidationError(
                        f"Unknown medication type: {changes['med_type']!r}",
                        {"med_type": changes["med_type"]}
                    ) from exc

            med_type = changes.get("med_type", medication.med_type)
            slots = changes.get("slots", medication.slots)
            if med_type == MedicationType.SCHEDULED and not slots:
                raise ValidationError(
                    "Scheduled medications need at least one slot",
                    {"medication_id": medication_id}
                )

            for field, value in changes.items():
                setattr(medication, field, value)

            medication.updated_at = datetime.utcnow()
            session.commit()
            session.refresh(medication)
            return medication

        return self._run(_update, db)

    async def refill_medication(
        self,
        medication_id: int,
        owner_id: int,
        amount: int,
        db: Optional[Session] = None
    ) -> models.Medication:
        """Add stock to both the total and the remaining quantity"""
        if amount <= 0:
            raise ValidationError("Refill amount must be positive", {"amount": amount})

        def _refill(session: Session) -> models.Medication:
            medication = owned_medication(session, medication_id, owner_id)
            medication.total_quantity += amount
            medication.remaining_quantity += amount
            session.commit()
            session.refresh(medication)
            logger.info(f"Refilled medication {medication_id} by {amount}")
            return medication

        return self._run(_refill, db)

    async def delete_medication(
        self,
        medication_id: int,
        owner_id: int,
        db: Optional[Session] = None
    ) -> models.Medication:
        """Soft delete: the record stays, but drops out of every read"""
        def _delete(session: Session) -> models.Medication:
            try:
                medication = owned_medication(session, medication_id, owner_id)
                medication.is_deleted = True
                medication.is_active = False
                medication.deleted_at = datetime.utcnow()
                record_event(session, owner_id, medication_id, AuditEventType.MEDICATION_DELETED)
                session.commit()
            except MedicationUnavailableError:
                session.rollback()
                raise
            except SQLAlchemyError as exc:
                session.rollback()
                logger.exception(f"Failed to delete medication {medication_id}")
                raise TransientStoreError("Medication could not be deleted, please retry") from exc

            session.refresh(medication)
            logger.info(f"Soft-deleted medication {medication_id}")
            return medication

        return self._run(_delete, db)

    async def low_stock_medications(
        self,
        owner_id: int,
        db: Optional[Session] = None
    ) -> List[models.Medication]:
        def _get(session: Session) -> List[models.Medication]:
            return active_medication_query(session, owner_id).filter(
                models.Medication.remaining_quantity < settings.LOW_STOCK_THRESHOLD
            ).order_by(models.Medication.remaining_quantity).all()

        return self._run(_get, db)

    async def dose_history(
        self,
        medication_id: int,
        owner_id: int,
        page: int = 1,
        limit: int = 10,
        db: Optional[Session] = None
    ) -> Tuple[int, List[models.DoseLog]]:
        """Ledger entries for one medication, newest first, with the total count"""
        page = max(page, 1)
        limit = max(min(limit, 100), 1)

        def _get(session: Session) -> Tuple[int, List[models.DoseLog]]:
            query = session.query(models.DoseLog).filter(
                models.DoseLog.medication_id == medication_id,
                models.DoseLog.user_id == owner_id
            )
            total = query.count()
            logs = query.order_by(
                desc(models.DoseLog.logged_at), desc(models.DoseLog.id)
            ).offset((page - 1) * limit).limit(limit).all()
            return total, logs

        return self._run(_get, db)

    async def adherence_report(
        self,
        owner_id: int,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """Share of all ledger entries that were on time"""
        def _get(session: Session) -> Dict[str, Any]:
            classes = [
                row[0] for row in session.query(models.DoseLog.classification).filter(
                    models.DoseLog.user_id == owner_id
                ).all()
            ]
            if not classes:
                return {"total_doses": 0, "on_time": 0, "adherence_percentage": 0.0}

            on_time = sum(1 for c in classes if c == AdherenceClass.ON_TIME)
            return {
                "total_doses": len(classes),
                "on_time": on_time,
                "adherence_percentage": round(on_time / len(classes) * 100, 2)
            }

        return self._run(_get, db)


def owned_medication(session: Session, medication_id: int, owner_id: int) -> models.Medication:
    """Fetch a non-deleted medication owned by `owner_id` or raise"""
    medication = session.query(models.Medication).filter(
        models.Medication.id == medication_id,
        models.Medication.owner_id == owner_id,
        models.Medication.is_deleted.is_(False)
    ).first()
    if not medication:
        raise MedicationUnavailableError(medication_id, owner_id)
    return medication


# Singleton instance
medication_service = MedicationService()
