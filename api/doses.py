"""
Doses API Router
Endpoint for reporting scheduled dose outcomes
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from api.deps import get_db, services
from api.schemas.adherence import DoseReport, DoseLogResponse
from services.adherence_service import AdherenceService


router = APIRouter(prefix="/doses", tags=["doses"])


@router.post("", response_model=DoseLogResponse, status_code=status.HTTP_201_CREATED)
async def record_dose(
    report: DoseReport,
    db: Session = Depends(get_db),
    adherence_service: AdherenceService = Depends(services.get_adherence_service)
):
    """
    Record a taken, missed or skipped dose for today's instance of a slot

    - **medication_id**: Medication the dose belongs to
    - **owner_id**: Patient who owns the medication
    - **scheduled_slot**: "HH:MM" slot being resolved
    - **outcome**: taken (default), missed or skipped

    Returns 409 when the slot is already resolved today or the same dose
    was just reported, 404 when the medication is gone and 503 when the
    write was rolled back.
    """
    return await adherence_service.record_dose(
        medication_id=report.medication_id,
        owner_id=report.owner_id,
        scheduled_slot=report.scheduled_slot,
        outcome=report.outcome,
        timezone=report.timezone,
        db=db
    )
