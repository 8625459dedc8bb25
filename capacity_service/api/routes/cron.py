"""
Cron API Endpoints

GET /api/v1/cron/populate-slots   - Run slot population from templates
GET /api/v1/cron/capacity-alerts  - Run the capacity alert scan

Both require `Authorization: Bearer $CRON_SECRET`.
"""
import logging
from typing import Any, Dict, List
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from capacity_service.api.auth import require_cron_secret
from capacity_service.services.alert_monitor import AlertMonitor, get_alert_monitor
from capacity_service.services.slot_generator import SlotGenerator, get_slot_generator

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/cron",
    tags=["cron"],
    dependencies=[Depends(require_cron_secret)],
)


class PopulateSlotsResponse(BaseModel):
    success: bool
    created: int
    skipped: int
    errors: List[Dict[str, Any]]


class CapacityAlertsResponse(BaseModel):
    success: bool
    alerts_created: int
    alerts: List[Dict[str, Any]]
    timestamp: str


@router.get("/populate-slots", response_model=PopulateSlotsResponse)
async def populate_slots(generator: SlotGenerator = Depends(get_slot_generator)):
    """Materialise slots for the population horizon from every active template."""
    result = await generator.populate_from_templates()
    return PopulateSlotsResponse(success=True, **result.to_dict())


@router.get("/capacity-alerts", response_model=CapacityAlertsResponse)
async def capacity_alerts(monitor: AlertMonitor = Depends(get_alert_monitor)):
    """Scan the next week for capacity shortfalls; returns only newly created alerts."""
    summary = await monitor.run()
    return CapacityAlertsResponse(success=True, **summary)
