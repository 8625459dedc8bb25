"""
Capacity Alert Monitor

Scans the near-term horizon per service kind and raises operational alerts:
- NO_CAPACITY: date fully booked or with no slots (CRITICAL in the first
  ALERT_CRITICAL_DAYS days, WARNING after)
- LOW_CAPACITY: slots with fewer than LOW_CAPACITY_THRESHOLD units left (INFO)

An alert is suppressed while an unresolved alert of the same type and severity
created within the last ALERT_DEDUP_HOURS exists, so repeated scans do not
flood the table.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from capacity_service.config import Settings, get_settings
from capacity_service.database import AsyncSessionLocal
from capacity_service.errors import NotFoundError
from capacity_service.models.operational_alert import OperationalAlert
from capacity_service.models.partner import SERVICE_TYPES
from capacity_service.services.metrics_calculator import MetricsCalculator
from capacity_service.services.slot_store import store_errors

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectedAlert:
    """A capacity condition found by a scan, before deduplication"""
    alert_type: str
    severity: str
    alert_date: date
    service_type: Optional[str]
    count: Optional[int] = None

    @property
    def message(self) -> str:
        if self.alert_type == "NO_CAPACITY":
            return f"No {self.service_type} capacity available on {self.alert_date.isoformat()}"
        return (
            f"{self.count} {self.service_type} slot(s) running low on capacity "
            f"on {self.alert_date.isoformat()}"
        )


def alert_to_dict(alert: OperationalAlert) -> Dict[str, Any]:
    return {
        "id": str(alert.id),
        "type": alert.alert_type,
        "severity": alert.severity,
        "date": alert.alert_date.isoformat(),
        "service": alert.service_type,
        "count": alert.count,
        "message": alert.message,
        "resolved": alert.resolved,
        "resolved_at": alert.resolved_at.isoformat() if alert.resolved_at else None,
        "resolved_by": alert.resolved_by,
        "created_at": alert.created_at.isoformat(),
    }


class AlertMonitor:
    """Detects capacity shortfalls and records deduplicated alerts"""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        settings: Optional[Settings] = None,
        metrics_calculator: Optional[MetricsCalculator] = None
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.settings = settings or get_settings()
        self.metrics_calculator = metrics_calculator or MetricsCalculator(self.session_factory, self.settings)

    async def detect(self, now: datetime) -> List[DetectedAlert]:
        """Evaluate every service kind over the alert horizon."""
        today = now.astimezone(self.settings.tz).date()
        end_date = today + timedelta(days=self.settings.alert_horizon_days - 1)

        detected = []
        for service_type in SERVICE_TYPES:
            metrics = await self.metrics_calculator.calculate_metrics(
                start_date=today,
                end_date=end_date,
                service_type=service_type,
                now=now,
            )
            no_capacity = set(metrics.no_capacity_dates)

            for index, day in enumerate(metrics.by_date.values()):
                if day.date in no_capacity:
                    detected.append(DetectedAlert(
                        alert_type="NO_CAPACITY",
                        severity="CRITICAL" if index < self.settings.alert_critical_days else "WARNING",
                        alert_date=day.date,
                        service_type=service_type,
                    ))
                if day.low_capacity_slots > 0:
                    detected.append(DetectedAlert(
                        alert_type="LOW_CAPACITY",
                        severity="INFO",
                        alert_date=day.date,
                        service_type=service_type,
                        count=day.low_capacity_slots,
                    ))

        return detected

    async def _recent_unresolved_exists(self, session: AsyncSession, alert: DetectedAlert, now: datetime) -> bool:
        cutoff = now - timedelta(hours=self.settings.alert_dedup_hours)
        result = await session.execute(
            select(OperationalAlert.id)
            .where(OperationalAlert.alert_type == alert.alert_type)
            .where(OperationalAlert.severity == alert.severity)
            .where(OperationalAlert.resolved.is_(False))
            .where(OperationalAlert.created_at >= cutoff)
            .limit(1)
        )
        return result.first() is not None

    async def run(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Scan the horizon and insert net-new alerts.

        Args:
            now: Evaluation time (defaults to current UTC time)

        Returns:
            {"alerts_created": n, "alerts": [...], "timestamp": ISO time}
            listing only the alerts inserted by this run
        """
        now = now or datetime.now(timezone.utc)
        detected = await self.detect(now)

        created = []
        for alert in detected:
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        if await self._recent_unresolved_exists(session, alert, now):
                            logger.debug(f"Suppressed duplicate {alert.severity} {alert.alert_type} alert for {alert.alert_date}")
                            continue
                        row = OperationalAlert(
                            alert_type=alert.alert_type,
                            severity=alert.severity,
                            alert_date=alert.alert_date,
                            service_type=alert.service_type,
                            count=alert.count,
                            message=alert.message,
                            resolved=False,
                            created_at=now,
                        )
                        session.add(row)
                created.append(row)
                logger.warning(f"Capacity alert raised [{alert.severity}] {alert.message}")
            except Exception as e:
                logger.error(f"Failed to record {alert.alert_type} alert for {alert.alert_date}: {e}", exc_info=True)

        logger.info(f"Capacity alert scan complete: {len(detected)} detected, {len(created)} created")

        return {
            "alerts_created": len(created),
            "alerts": [alert_to_dict(alert) for alert in created],
            "timestamp": now.isoformat(),
        }

    async def list_alerts(self, include_resolved: bool = False, limit: int = 100) -> List[OperationalAlert]:
        query = select(OperationalAlert).order_by(OperationalAlert.created_at.desc()).limit(limit)
        if not include_resolved:
            query = query.where(OperationalAlert.resolved.is_(False))

        with store_errors("list operational alerts"):
            async with self.session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())

    async def resolve(
        self,
        alert_id: uuid.UUID,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> OperationalAlert:
        """Mark an alert resolved. Resolving an already resolved alert is a no-op."""
        now = now or datetime.now(timezone.utc)

        with store_errors("resolve operational alert", alert_id=str(alert_id)):
            async with self.session_factory() as session:
                async with session.begin():
                    alert = await session.get(OperationalAlert, alert_id, with_for_update=True)
                    if alert is None:
                        raise NotFoundError("Alert not found")
                    if not alert.resolved:
                        alert.resolved = True
                        alert.resolved_at = now
                        alert.resolved_by = actor_id
                        logger.info(f"Alert {alert_id} resolved by {actor_id}")
        return alert


# Global monitor instance
_monitor: Optional[AlertMonitor] = None


def get_alert_monitor() -> AlertMonitor:
    """Get or create global AlertMonitor instance."""
    global _monitor
    if _monitor is None:
        _monitor = AlertMonitor()
    return _monitor
