"""
Medications API Router
Endpoints for medication management
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_user_id, pagination_params, services
from api.schemas.adherence import DoseLogResponse
from api.schemas.medication import (
    MedicationCreate,
    MedicationUpdate,
    MedicationRefill,
    MedicationResponse,
    MedicationList,
    DoseHistory,
    AdherenceReport,
)
from services.medication_service import MedicationService


router = APIRouter(prefix="/medications", tags=["medications"])


@router.post("", response_model=MedicationResponse, status_code=status.HTTP_201_CREATED)
async def create_medication(
    medication_data: MedicationCreate,
    db: Session = Depends(get_db),
    medication_service: MedicationService = Depends(services.get_medication_service)
):
    """
    Enroll a medication for a patient

    - **owner_id**: Patient ID
    - **name**: Medication name
    - **dosage**: Dosage (e.g., "500mg")
    - **slots**: Daily "HH:MM" times; required for scheduled medications
    - **total_quantity**: Units dispensed
    """
    return await medication_service.add_medication(
        owner_id=medication_data.owner_id,
        name=medication_data.name,
        dosage=medication_data.dosage,
        frequency=medication_data.frequency,
        slots=medication_data.slots,
        med_type=medication_data.med_type,
        total_quantity=medication_data.total_quantity,
        instructions=medication_data.instructions,
        start_date=medication_data.start_date,
        db=db
    )


@router.get("/user/{user_id}", response_model=MedicationList)
async def get_user_medications(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    medication_service: MedicationService = Depends(services.get_medication_service)
):
    """
    Get all non-deleted medications for a user
    """
    medications = await medication_service.list_medications(user_id, db=db)
    return MedicationList(
        medications=[MedicationResponse.model_validate(m) for m in medications],
        total=len(medications)
    )


@router.get("/user/{user_id}/low-stock", response_model=MedicationList)
async def get_low_stock(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    medication_service: MedicationService = Depends(services.get_medication_service)
):
    """
    Active medications whose remaining stock is below the low-stock threshold
    """
    medications = await medication_service.low_stock_medications(user_id, db=db)
    return MedicationList(
        medications=[MedicationResponse.model_validate(m) for m in medications],
        total=len(medications)
    )


@router.get("/user/{user_id}/report", response_model=AdherenceReport)
async def get_adherence_report(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    medication_service: MedicationService = Depends(services.get_medication_service)
):
    report = await medication_service.adherence_report(user_id, db=db)
    return AdherenceReport(user_id=user_id, **report)


@router.get("/{medication_id}", response_model=MedicationResponse)
async def get_medication(
    medication_id: int,
    owner_id: int = Query(..., description="Owning patient ID"),
    db: Session = Depends(get_db),
    medication_service: MedicationService = Depends(services.get_medication_service)
):
    return await medication_service.get_medication(medication_id, owner_id, db=db)


@router.put("/{medication_id}", response_model=MedicationResponse)
async def update_medication(
    medication_id: int,
    medication_data: MedicationUpdate,
    owner_id: int = Query(..., description="Owning patient ID"),
    db: Session = Depends(get_db),
    medication_service: MedicationService = Depends(services.get_medication_service)
):
    """
    Update medication information
    """
    updates = medication_data.model_dump(exclude_unset=True, exclude_none=True)

    if not updates:
        return await medication_service.get_medication(medication_id, owner_id, db=db)

    return await medication_service.update_medication(medication_id, owner_id, updates, db=db)


@router.post("/{medication_id}/refill", response_model=MedicationResponse)
async def refill_medication(
    medication_id: int,
    refill: MedicationRefill,
    owner_id: int = Query(..., description="Owning patient ID"),
    db: Session = Depends(get_db),
    medication_service: MedicationService = Depends(services.get_medication_service)
):
    return await medication_service.refill_medication(medication_id, owner_id, refill.amount, db=db)


@router.delete("/{medication_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_medication(
    medication_id: int,
    owner_id: int = Query(..., description="Owning patient ID"),
    db: Session = Depends(get_db),
    medication_service: MedicationService = Depends(services.get_medication_service)
):
    """
    Soft delete a medication; its ledger history is kept
    """
    await medication_service.delete_medication(medication_id, owner_id, db=db)


@router.get("/{medication_id}/history", response_model=DoseHistory)
async def get_dose_history(
    medication_id: int,
    owner_id: int = Query(..., description="Owning patient ID"),
    paging: dict = Depends(pagination_params),
    db: Session = Depends(get_db),
    medication_service: MedicationService = Depends(services.get_medication_service)
):
    """
    Ledger entries for one medication, newest first
    """
    total, logs = await medication_service.dose_history(
        medication_id,
        owner_id,
        page=paging["page"],
        limit=paging["limit"],
        db=db
    )
    return DoseHistory(
        medication_id=medication_id,
        page=paging["page"],
        limit=paging["limit"],
        total=total,
        entries=[DoseLogResponse.model_validate(log) for log in logs]
    )
