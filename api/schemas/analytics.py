"""
Analytics Schemas
Pydantic models for the read-only adherence analytics endpoints
"""

from typing import Dict, List, Optional
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict


class ReliabilityResponse(BaseModel):
    user_id: int
    streak_days: int


class HeatmapDayResponse(BaseModel):
    """One day of the compliance heatmap"""
    date: date
    percentage: int
    taken: int
    total: int

    model_config = ConfigDict(from_attributes=True)


class HeatmapResponse(BaseModel):
    user_id: int
    days: List[HeatmapDayResponse]


class TemporalRiskResponse(BaseModel):
    """Missed doses per daily window (Morning, Afternoon, Evening, Night)"""
    user_id: int
    buckets: Dict[str, int]


class InventoryRunwayResponse(BaseModel):
    medication_id: int
    name: str
    current_stock: int
    daily_doses: int
    days_remaining: int
    status: str

    model_config = ConfigDict(from_attributes=True)


class InventoryResponse(BaseModel):
    user_id: int
    medications: List[InventoryRunwayResponse]


class NextDoseDetail(BaseModel):
    medication_id: int
    medication_name: str
    scheduled_slot: str
    due_at: datetime
    minutes_until: float

    model_config = ConfigDict(from_attributes=True)


class NextDoseResponse(BaseModel):
    """The soonest upcoming slot; `next_dose` is null when nothing is scheduled"""
    user_id: int
    next_dose: Optional[NextDoseDetail] = None
