"""
Eswatini MSME Registry - Dashboard Router

Read access to the pre-computed analytics snapshots.
"""

from typing import Literal

from fastapi import APIRouter, Depends

from app.dependencies import get_analytics_aggregator, get_current_admin
from app.models.user import AdminUser
from app.schemas.analytics import AnalyticsSnapshotResponse
from app.services.analytics_aggregator import AnalyticsAggregator


router = APIRouter()

SnapshotKind = Literal["daily", "monthly"]


@router.get(
    "/analytics/{snapshot_type}/latest",
    response_model=AnalyticsSnapshotResponse,
    summary="Most recent snapshot of a type",
)
async def latest_snapshot(
    snapshot_type: SnapshotKind,
    admin: AdminUser = Depends(get_current_admin),
    aggregator: AnalyticsAggregator = Depends(get_analytics_aggregator),
):
    return await aggregator.latest_snapshot(snapshot_type)


@router.get(
    "/analytics/{snapshot_type}/{period}",
    response_model=AnalyticsSnapshotResponse,
    summary="Snapshot for a day (YYYY-MM-DD) or month (YYYY-MM)",
)
async def get_snapshot(
    snapshot_type: SnapshotKind,
    period: str,
    admin: AdminUser = Depends(get_current_admin),
    aggregator: AnalyticsAggregator = Depends(get_analytics_aggregator),
):
    return await aggregator.get_snapshot(snapshot_type, period)
