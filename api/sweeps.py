"""
Sweeps API Router
Manual trigger for the missed-dose sweep
"""

import asyncio
from fastapi import APIRouter, Depends

from api.deps import services
from api.schemas.adherence import SweepRunResponse
from services.sweep_service import SweepService


router = APIRouter(prefix="/sweeps", tags=["sweeps"])


@router.post("/run", response_model=SweepRunResponse)
async def run_sweep(
    sweep_service: SweepService = Depends(services.get_sweep_service)
):
    """
    Run one sweep pass now and report what it wrote

    Returns 409 if a pass is already running.
    """
    missed = await asyncio.to_thread(sweep_service.run_sweep_pass)
    report = sweep_service.last_report

    return SweepRunResponse(
        missed_recorded=missed,
        medications_scanned=report.medications_scanned if report else 0,
        failures=report.failures if report else 0,
        started_at=report.started_at if report else None,
        finished_at=report.finished_at if report else None
    )
