"""Dashboard counters, lead chart, activity feed and expiry tracking."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_agent, get_db
from app.api.schemas.common import ApiResponse
from app.api.schemas.dashboard import ActivityOut, DashboardStats, ExpiryOverview, LeadChartPoint
from app.core.rate_limit import rate_limiters
from app.services import dashboard as dashboard_service

router = APIRouter(
    prefix="/dashboard",
    tags=["Dashboard"],
    dependencies=[Depends(get_current_agent), Depends(rate_limiters.general)],
)


@router.get("/stats", response_model=ApiResponse[DashboardStats])
async def get_stats(db: AsyncSession = Depends(get_db)) -> ApiResponse[DashboardStats]:
    return ApiResponse(data=DashboardStats(**await dashboard_service.get_stats(db)))


@router.get("/leads-chart", response_model=ApiResponse[list[LeadChartPoint]])
async def get_leads_chart(db: AsyncSession = Depends(get_db)) -> ApiResponse[list[LeadChartPoint]]:
    points = await dashboard_service.get_leads_chart(db)
    return ApiResponse(data=[LeadChartPoint(**p) for p in points])


@router.get("/activities", response_model=ApiResponse[list[ActivityOut]])
async def get_activities(
    limit: int = Query(5, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[list[ActivityOut]]:
    activities = await dashboard_service.get_recent_activities(db, limit=limit)
    return ApiResponse(data=[ActivityOut.model_validate(a) for a in activities])


@router.get("/expiry", response_model=ApiResponse[ExpiryOverview])
async def get_expiry(db: AsyncSession = Depends(get_db)) -> ApiResponse[ExpiryOverview]:
    """Expiring policies bucketed by urgency plus summary counts."""
    return ApiResponse(data=ExpiryOverview(**await dashboard_service.get_expiry_overview(db)))
