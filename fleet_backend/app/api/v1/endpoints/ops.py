"""
Operations API Endpoints.

Read-only checks for operators reconciling fleet state.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_backend.app.db.session import get_db
from fleet_backend.app.schemas.consistency import ConsistencyReport
from fleet_backend.app.services.consistency import build_report

router = APIRouter(prefix="/ops", tags=["Ops"])


@router.get("/consistency", response_model=ConsistencyReport)
async def check_consistency(db: AsyncSession = Depends(get_db)):
    """
    Compare every truck and driver status with its open trips.

    Reports violations only; nothing is repaired.
    """
    return await build_report(db)
