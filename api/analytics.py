"""
Analytics API Router
Read-only adherence signals for one user
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.deps import get_db, services
from api.schemas.analytics import (
    ReliabilityResponse,
    HeatmapResponse,
    HeatmapDayResponse,
    TemporalRiskResponse,
    InventoryResponse,
    InventoryRunwayResponse,
    NextDoseResponse,
    NextDoseDetail,
)
from services.analytics_service import AnalyticsService


router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/{user_id}/reliability", response_model=ReliabilityResponse)
async def get_reliability(
    user_id: int,
    db: Session = Depends(get_db),
    analytics_service: AnalyticsService = Depends(services.get_analytics_service)
):
    """
    Consecutive clean days counting back from today
    """
    streak = await analytics_service.reliability_index(user_id, db=db)
    return ReliabilityResponse(user_id=user_id, streak_days=streak)


@router.get("/{user_id}/heatmap", response_model=HeatmapResponse)
async def get_heatmap(
    user_id: int,
    db: Session = Depends(get_db),
    analytics_service: AnalyticsService = Depends(services.get_analytics_service)
):
    """
    Daily taken percentage for the trailing window, oldest first
    """
    days = await analytics_service.compliance_heatmap(user_id, db=db)
    return HeatmapResponse(
        user_id=user_id,
        days=[HeatmapDayResponse.model_validate(day) for day in days]
    )


@router.get("/{user_id}/temporal-risk", response_model=TemporalRiskResponse)
async def get_temporal_risk(
    user_id: int,
    db: Session = Depends(get_db),
    analytics_service: AnalyticsService = Depends(services.get_analytics_service)
):
    buckets = await analytics_service.temporal_risk(user_id, db=db)
    return TemporalRiskResponse(
        user_id=user_id,
        buckets={window.value: count for window, count in buckets.items()}
    )


@router.get("/{user_id}/inventory", response_model=InventoryResponse)
async def get_inventory(
    user_id: int,
    db: Session = Depends(get_db),
    analytics_service: AnalyticsService = Depends(services.get_analytics_service)
):
    """
    Projected days of stock for every active medication
    """
    runways = await analytics_service.inventory_runway(user_id, db=db)
    return InventoryResponse(
        user_id=user_id,
        medications=[
            InventoryRunwayResponse(
                medication_id=r.medication_id,
                name=r.name,
                current_stock=r.current_stock,
                daily_doses=r.daily_doses,
                days_remaining=r.days_remaining,
                status=r.status.value
            ) for r in runways
        ]
    )


@router.get("/{user_id}/next-dose", response_model=NextDoseResponse)
async def get_next_dose(
    user_id: int,
    db: Session = Depends(get_db),
    analytics_service: AnalyticsService = Depends(services.get_analytics_service)
):
    upcoming = await analytics_service.next_dose(user_id, db=db)
    return NextDoseResponse(
        user_id=user_id,
        next_dose=NextDoseDetail.model_validate(upcoming) if upcoming else None
    )
