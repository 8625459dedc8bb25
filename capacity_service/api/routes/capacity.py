"""
Capacity API Endpoints

GET /api/v1/capacity/metrics      - Aggregate capacity dashboard (admin)
GET /api/v1/capacity/availability - Bookable windows for customers (public)
"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import async_sessionmaker

from capacity_service.api.auth import require_admin
from capacity_service.config import Settings, get_settings
from capacity_service.database import get_session_factory
from capacity_service.services.availability import list_available_windows
from capacity_service.services.metrics_calculator import MetricsCalculator, get_metrics_calculator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/capacity", tags=["capacity"])


class MetricsResponse(BaseModel):
    """Response for GET /capacity/metrics"""
    metrics: Dict[str, Any]
    metadata: Dict[str, Any]


class AvailableWindowResponse(BaseModel):
    slot_start: datetime
    slot_end: datetime
    available_units: int
    max_units: int


class AvailabilityResponse(BaseModel):
    """Response for GET /capacity/availability"""
    service_type: str
    date: date
    slots: List[AvailableWindowResponse]


@router.get("/metrics", response_model=MetricsResponse)
async def get_capacity_metrics(
    start_date: Optional[date] = Query(None, description="First business date (default today)"),
    end_date: Optional[date] = Query(None, description="Last business date (default start + 14 days)"),
    service_type: Optional[str] = Query(None, description="Evaluate one service kind only"),
    user: dict = Depends(require_admin),
    calculator: MetricsCalculator = Depends(get_metrics_calculator)
):
    """
    Get capacity totals, per-service and per-date figures.

    Returns:
        metrics with total_slots, available_capacity, reserved_capacity,
        utilization_rate, by_service, by_date, low_capacity_dates and
        no_capacity_dates
    """
    metrics = await calculator.calculate_metrics(
        start_date=start_date,
        end_date=end_date,
        service_type=service_type,
    )
    return MetricsResponse(
        metrics=metrics.to_dict(),
        metadata={"timestamp": datetime.now(timezone.utc).isoformat()},
    )


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    service_type: str = Query(..., description="LAUNDRY or CLEANING"),
    day: date = Query(..., alias="date", description="Business date"),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    settings: Settings = Depends(get_settings)
):
    """Consolidated bookable windows for a date. Partner identity is not exposed."""
    windows = await list_available_windows(
        service_type,
        day,
        session_factory=session_factory,
        settings=settings,
    )
    return AvailabilityResponse(
        service_type=service_type,
        date=day,
        slots=[AvailableWindowResponse(**window.to_dict()) for window in windows],
    )
