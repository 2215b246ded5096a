"""
Adherence Schemas
Pydantic models for dose reporting and sweep API requests and responses
"""

from typing import Optional
from datetime import date, datetime
from pydantic import BaseModel, Field, ConfigDict

from models import AdherenceClass, DoseOutcome


# ==================== REQUEST SCHEMAS ====================

class DoseReport(BaseModel):
    """Schema for reporting the outcome of a scheduled dose"""
    medication_id: int
    owner_id: int
    scheduled_slot: str = Field(..., min_length=4, max_length=5, examples=["08:00"])
    outcome: DoseOutcome = DoseOutcome.TAKEN
    timezone: Optional[str] = Field(None, max_length=64, description="Defaults to the owner's zone")


# ==================== RESPONSE SCHEMAS ====================

class DoseLogResponse(BaseModel):
    """Schema for a ledger entry"""
    id: int
    user_id: int
    medication_id: int
    scheduled_slot: str
    slot_date: date
    outcome: DoseOutcome
    classification: AdherenceClass
    delay_minutes: int
    reported_by: str
    logged_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SweepRunResponse(BaseModel):
    """Outcome of a manually triggered sweep pass"""
    missed_recorded: int
    medications_scanned: int
    failures: int
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
