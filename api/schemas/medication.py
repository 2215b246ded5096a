"""
Medication Schemas
Pydantic models for medication-related API requests and responses
"""

from typing import Optional, List
from datetime import datetime, date
from pydantic import BaseModel, Field, ConfigDict

from models import MedicationType
from api.schemas.adherence import DoseLogResponse


# ==================== BASE SCHEMAS ====================

class MedicationBase(BaseModel):
    """Base medication schema"""
    name: str = Field(..., min_length=1, max_length=255)
    dosage: str = Field(..., min_length=1, max_length=100)
    frequency: str = Field(..., min_length=1, max_length=100)


# ==================== REQUEST SCHEMAS ====================

class MedicationCreate(MedicationBase):
    """Schema for enrolling a medication"""
    owner_id: int
    slots: List[str] = Field(default_factory=list, description='"HH:MM" times in the owner\'s zone')
    med_type: MedicationType = MedicationType.SCHEDULED
    total_quantity: int = Field(default=0, ge=0)
    instructions: Optional[str] = None
    start_date: Optional[date] = None


class MedicationUpdate(BaseModel):
    """Schema for updating medication"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    dosage: Optional[str] = Field(None, min_length=1, max_length=100)
    frequency: Optional[str] = Field(None, min_length=1, max_length=100)
    instructions: Optional[str] = None
    slots: Optional[List[str]] = None
    med_type: Optional[MedicationType] = None
    is_active: Optional[bool] = None


class MedicationRefill(BaseModel):
    amount: int = Field(..., gt=0)


# ==================== RESPONSE SCHEMAS ====================

class MedicationResponse(MedicationBase):
    """Schema for medication response"""
    id: int
    owner_id: int
    slots: List[str]
    med_type: MedicationType
    total_quantity: int
    remaining_quantity: int
    instructions: Optional[str] = None
    is_active: bool
    start_date: Optional[date] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MedicationList(BaseModel):
    medications: List[MedicationResponse]
    total: int


class DoseHistory(BaseModel):
    """Paged ledger entries for one medication"""
    medication_id: int
    page: int
    limit: int
    total: int
    entries: List[DoseLogResponse]


class AdherenceReport(BaseModel):
    user_id: int
    total_doses: int
    on_time: int
    adherence_percentage: float
