"""
Database Models
SQLAlchemy ORM models for DoseSentinel
"""

from dataclasses import dataclass
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, Date, Enum, Index, UniqueConstraint, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum

from config import TableNames
from database import Base


# ==================== ENUMS ====================

class UserRole(str, PyEnum):
    PATIENT = "patient"
    GUARDIAN = "guardian"
    DOCTOR = "doctor"
    ADMIN = "admin"


class MedicationType(str, PyEnum):
    """Scheduled medications have fixed slots; as-needed ones are never swept"""
    SCHEDULED = "scheduled"
    AS_NEEDED = "as_needed"


class DoseOutcome(str, PyEnum):
    """What happened to a slot-instance"""
    TAKEN = "taken"
    MISSED = "missed"
    SKIPPED = "skipped"


class AdherenceClass(str, PyEnum):
    """Timing classification of a slot-instance"""
    ON_TIME = "on_time"
    LATE = "late"
    MISSED = "missed"


class AuditEventType(str, PyEnum):
    DOSE_TAKEN = "dose_taken"
    DOSE_LATE = "dose_late"
    DOSE_MISSED = "dose_missed"
    INVENTORY_LOW = "inventory_low"
    GUARDIAN_ALERT_SENT = "guardian_alert_sent"
    MEDICATION_DELETED = "medication_deleted"


class LinkStatus(str, PyEnum):
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"


@dataclass(frozen=True)
class DoseResolution:
    """
    A legal (outcome, classification, delay) triple.

    Built only through the constructors below, so a missed outcome can
    never carry an on-time classification or a positive delay.
    """
    outcome: DoseOutcome
    classification: AdherenceClass
    delay_minutes: int = 0

    @classmethod
    def on_time(cls, outcome: DoseOutcome = DoseOutcome.TAKEN) -> "DoseResolution":
        if outcome == DoseOutcome.MISSED:
            return cls.missed()
        return cls(outcome, AdherenceClass.ON_TIME, 0)

    @classmethod
    def late(cls, delay_minutes: int, outcome: DoseOutcome = DoseOutcome.TAKEN) -> "DoseResolution":
        if outcome == DoseOutcome.MISSED:
            return cls.missed()
        if delay_minutes <= 0:
            return cls.on_time(outcome)
        return cls(outcome, AdherenceClass.LATE, int(delay_minutes))

    @classmethod
    def missed(cls) -> "DoseResolution":
        return cls(DoseOutcome.MISSED, AdherenceClass.MISSED, 0)

    @property
    def consumes_stock(self) -> bool:
        return self.outcome == DoseOutcome.TAKEN


# ==================== MODELS ====================

class User(Base):
    """Patient or guardian account with the zone used for every schedule lookup"""
    __tablename__ = TableNames.USERS

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(Enum(UserRole), default=UserRole.PATIENT, nullable=False)

    # IANA zone identifier, e.g. "Asia/Kolkata"
    timezone = Column(String(64), default="UTC", nullable=False)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    medications = relationship("Medication", back_populates="owner", cascade="all, delete-orphan")
    dose_logs = relationship("DoseLog", back_populates="user", cascade="all, delete-orphan")


class Medication(Base):
    """Per-medication schedule: slots, stock and lifecycle flags"""
    __tablename__ = TableNames.MEDICATIONS

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    name = Column(String(255), nullable=False)
    dosage = Column(String(100), nullable=False)
    frequency = Column(String(100), nullable=False)
    instructions = Column(Text)
    med_type = Column(Enum(MedicationType), default=MedicationType.SCHEDULED, nullable=False)

    # Ordered "HH:MM" strings, interpreted in the owner's time zone
    slots = Column(JSON, default=list, nullable=False)

    # Inventory
    total_quantity = Column(Integer, default=0, nullable=False)
    remaining_quantity = Column(Integer, default=0, nullable=False)

    # Status
    is_active = Column(Boolean, default=True, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime)
    start_date = Column(Date)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    owner = relationship("User", back_populates="medications")
    dose_logs = relationship("DoseLog", back_populates="medication")

    __table_args__ = (
        Index("ix_medications_owner_state", "owner_id", "is_deleted", "is_active"),
    )

    @property
    def daily_slot_count(self) -> int:
        return len(self.slots or [])


class DoseLog(Base):
    """
    Ledger entry resolving one slot-instance.

    The unique key on (medication, slot, calendar day) is what keeps the
    recorder and the sweeper from both resolving the same slot-instance.
    """
    __tablename__ = TableNames.DOSE_LOGS

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    medication_id = Column(Integer, ForeignKey("medications.id"), nullable=False)

    scheduled_slot = Column(String(5), nullable=False)
    slot_date = Column(Date, nullable=False)  # owner's local calendar day

    outcome = Column(Enum(DoseOutcome), nullable=False)
    classification = Column(Enum(AdherenceClass), nullable=False)
    delay_minutes = Column(Integer, default=0, nullable=False)

    reported_by = Column(String(20), default="patient", nullable=False)  # "patient", "system"
    logged_at = Column(DateTime, default=datetime.utcnow, nullable=False)  # UTC

    # Relationships
    user = relationship("User", back_populates="dose_logs")
    medication = relationship("Medication", back_populates="dose_logs")

    __table_args__ = (
        UniqueConstraint("medication_id", "scheduled_slot", "slot_date", name="uq_dose_slot_instance"),
        Index("ix_dose_logs_user_day", "user_id", "slot_date"),
        Index("ix_dose_logs_medication_logged", "medication_id", "logged_at"),
    )

    @property
    def resolution(self) -> DoseResolution:
        return DoseResolution(self.outcome, self.classification, self.delay_minutes or 0)


class AuditEvent(Base):
    """Append-only record of every side effect of the recorder and sweeper"""
    __tablename__ = TableNames.AUDIT_EVENTS

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    medication_id = Column(Integer, ForeignKey("medications.id"))

    event_type = Column(Enum(AuditEventType), nullable=False)
    event_metadata = Column("metadata", JSON, default=dict)

    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_audit_events_user_type", "user_id", "event_type"),
    )


class GuardianLink(Base):
    """Patient/guardian relationship; read-only from the adherence core"""
    __tablename__ = TableNames.GUARDIAN_LINKS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    guardian_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    initiated_by = Column(Integer, ForeignKey("users.id"))
    status = Column(Enum(LinkStatus), default=LinkStatus.PENDING, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    patient = relationship("User", foreign_keys=[patient_id])
    guardian = relationship("User", foreign_keys=[guardian_id])

    __table_args__ = (
        UniqueConstraint("patient_id", "guardian_id", name="uq_guardian_pair"),
    )
