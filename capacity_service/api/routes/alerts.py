"""
Operational Alert API Endpoints

GET  /api/v1/capacity/alerts                - List alerts (unresolved by default)
POST /api/v1/capacity/alerts/{id}/resolve   - Resolve an alert
"""
import logging
import uuid
from typing import Any, Dict, List
from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel

from capacity_service.api.auth import require_admin
from capacity_service.services.alert_monitor import AlertMonitor, alert_to_dict, get_alert_monitor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/capacity/alerts", tags=["capacity-alerts"])


class AlertListResponse(BaseModel):
    alerts: List[Dict[str, Any]]
    count: int


class AlertEnvelope(BaseModel):
    alert: Dict[str, Any]


@router.get("", response_model=AlertListResponse)
async def list_alerts(
    include_resolved: bool = Query(False, description="Include resolved alerts"),
    limit: int = Query(100, ge=1, le=500, description="Maximum alerts returned"),
    user: dict = Depends(require_admin),
    monitor: AlertMonitor = Depends(get_alert_monitor)
):
    alerts = await monitor.list_alerts(include_resolved=include_resolved, limit=limit)
    return AlertListResponse(alerts=[alert_to_dict(alert) for alert in alerts], count=len(alerts))


@router.post("/{alert_id}/resolve", response_model=AlertEnvelope)
async def resolve_alert(
    alert_id: uuid.UUID = Path(..., description="Alert id"),
    user: dict = Depends(require_admin),
    monitor: AlertMonitor = Depends(get_alert_monitor)
):
    alert = await monitor.resolve(alert_id, actor_id=user["user_id"])
    return AlertEnvelope(alert=alert_to_dict(alert))
