"""
Capacity Metrics Calculator

Aggregates capacity slots into totals, per-service figures and an ordered
per-date breakdown, and classifies dates as no-capacity or low-capacity.

Dates are business-local calendar dates of slot_start. A date with no slots at
all counts as no-capacity unless its weekday is configured as closed.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from capacity_service.config import Settings, get_settings
from capacity_service.database import AsyncSessionLocal
from capacity_service.errors import ValidationError
from capacity_service.models.capacity_slot import CapacitySlot
from capacity_service.models.partner import SERVICE_TYPES
from capacity_service.services.slot_store import local_day_bounds, store_errors, validate_service_type
from capacity_service.services.template_engine import iter_dates, sunday_based_weekday

logger = logging.getLogger(__name__)


def utilization_percent(reserved: int, available: int) -> int:
    """reserved / (reserved + available) as a rounded percentage; 0 when empty."""
    total = reserved + available
    if total <= 0:
        return 0
    return round(reserved / total * 100)


@dataclass
class DayCapacity:
    """Capacity figures for one business-local date"""
    date: date
    slots: int = 0
    available: int = 0
    reserved: int = 0
    max: int = 0
    low_capacity_slots: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "slots": self.slots,
            "available": self.available,
            "reserved": self.reserved,
            "max": self.max,
            "low_capacity_slots": self.low_capacity_slots,
        }


@dataclass
class ServiceCapacity:
    slots: int = 0
    available: int = 0
    reserved: int = 0

    @property
    def utilization(self) -> int:
        return utilization_percent(self.reserved, self.available)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slots": self.slots,
            "available": self.available,
            "reserved": self.reserved,
            "utilization": self.utilization,
        }


@dataclass
class CapacityMetrics:
    """Aggregated capacity over an inclusive date range"""
    start_date: date
    end_date: date
    total_slots: int = 0
    available_capacity: int = 0
    reserved_capacity: int = 0
    by_service: Dict[str, ServiceCapacity] = field(default_factory=dict)
    by_date: "OrderedDict[date, DayCapacity]" = field(default_factory=OrderedDict)
    low_capacity_dates: List[date] = field(default_factory=list)
    no_capacity_dates: List[date] = field(default_factory=list)

    @property
    def utilization_rate(self) -> int:
        return utilization_percent(self.reserved_capacity, self.available_capacity)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "total_slots": self.total_slots,
            "available_capacity": self.available_capacity,
            "reserved_capacity": self.reserved_capacity,
            "utilization_rate": self.utilization_rate,
            "by_service": {service: stats.to_dict() for service, stats in self.by_service.items()},
            "by_date": {day.isoformat(): stats.to_dict() for day, stats in self.by_date.items()},
            "low_capacity_dates": [day.isoformat() for day in self.low_capacity_dates],
            "no_capacity_dates": [day.isoformat() for day in self.no_capacity_dates],
        }


def aggregate_slots(
    slots: Iterable[Any],
    start_date: date,
    end_date: date,
    tz,
    closed_weekdays: Iterable[int] = frozenset({0}),
    low_capacity_threshold: int = 5,
    service_type: Optional[str] = None
) -> CapacityMetrics:
    """
    Aggregate slots over [start_date, end_date] (inclusive).

    Args:
        slots: Objects with service_type, slot_start, max_units, reserved_units
        start_date: First business-local date
        end_date: Last business-local date
        tz: Business timezone used to assign slots to dates
        closed_weekdays: Weekdays (0=Sunday) on which a gap is expected
        low_capacity_threshold: A slot or date is low-capacity when
            0 < available < threshold
        service_type: Only aggregate this service kind

    Returns:
        CapacityMetrics with by_date pre-sized to every date in range
    """
    closed = set(closed_weekdays)
    services = [service_type] if service_type else list(SERVICE_TYPES)

    metrics = CapacityMetrics(start_date=start_date, end_date=end_date)
    metrics.by_service = {service: ServiceCapacity() for service in services}
    for day in iter_dates(start_date, end_date + timedelta(days=1)):
        metrics.by_date[day] = DayCapacity(date=day)

    for slot in slots:
        if slot.service_type not in metrics.by_service:
            continue
        day = metrics.by_date.get(slot.slot_start.astimezone(tz).date())
        if day is None:
            continue

        available = slot.max_units - slot.reserved_units
        metrics.total_slots += 1
        metrics.available_capacity += available
        metrics.reserved_capacity += slot.reserved_units

        service = metrics.by_service[slot.service_type]
        service.slots += 1
        service.available += available
        service.reserved += slot.reserved_units

        day.slots += 1
        day.available += available
        day.reserved += slot.reserved_units
        day.max += slot.max_units
        if 0 < available < low_capacity_threshold:
            day.low_capacity_slots += 1

    for day in metrics.by_date.values():
        if day.slots == 0:
            # Gap: no slots at all
            if sunday_based_weekday(day.date) not in closed:
                metrics.no_capacity_dates.append(day.date)
        elif day.available == 0 and day.max > 0:
            metrics.no_capacity_dates.append(day.date)
        elif 0 < day.available < low_capacity_threshold:
            metrics.low_capacity_dates.append(day.date)

    return metrics


class MetricsCalculator:
    """Loads slots and aggregates capacity metrics"""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        settings: Optional[Settings] = None
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.settings = settings or get_settings()

    async def calculate_metrics(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        service_type: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> CapacityMetrics:
        """
        Compute capacity metrics for an inclusive business-date range.

        Defaults to today through today + METRICS_HORIZON_DAYS.
        """
        tz = self.settings.tz
        now = now or datetime.now(timezone.utc)
        today = now.astimezone(tz).date()
        start_date = start_date or today
        end_date = end_date or start_date + timedelta(days=self.settings.metrics_horizon_days)

        if end_date < start_date:
            raise ValidationError("end_date must not be before start_date")
        if service_type is not None:
            validate_service_type(service_type)

        range_start = local_day_bounds(start_date, tz)[0]
        range_end = local_day_bounds(end_date, tz)[1]
        query = (
            select(CapacitySlot)
            .where(CapacitySlot.slot_start >= range_start)
            .where(CapacitySlot.slot_start < range_end)
            .order_by(CapacitySlot.slot_start)
        )
        if service_type is not None:
            query = query.where(CapacitySlot.service_type == service_type)

        with store_errors("calculate capacity metrics", start_date=str(start_date), end_date=str(end_date)):
            async with self.session_factory() as session:
                result = await session.execute(query)
                slots = result.scalars().all()

        metrics = aggregate_slots(
            slots,
            start_date,
            end_date,
            tz,
            closed_weekdays=self.settings.closed_weekdays,
            low_capacity_threshold=self.settings.low_capacity_threshold,
            service_type=service_type,
        )
        logger.debug(
            f"Capacity metrics {start_date} - {end_date} ({service_type or 'all'}): "
            f"{metrics.total_slots} slots, utilization={metrics.utilization_rate}%"
        )
        return metrics


# Global calculator instance
_calculator: Optional[MetricsCalculator] = None


def get_metrics_calculator() -> MetricsCalculator:
    """Get or create global MetricsCalculator instance."""
    global _calculator
    if _calculator is None:
        _calculator = MetricsCalculator()
    return _calculator
