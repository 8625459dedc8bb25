"""
Customer Availability Lookup

Bookable windows for one service kind on one business-local date. Slots from
active partners are filtered (full, past, inside the minimum booking lead time)
and consolidated by identical window so partner identity is never exposed.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from capacity_service.config import Settings, get_settings
from capacity_service.database import AsyncSessionLocal
from capacity_service.models.capacity_slot import CapacitySlot
from capacity_service.models.partner import Partner
from capacity_service.services.slot_store import local_day_bounds, store_errors, validate_service_type

logger = logging.getLogger(__name__)


@dataclass
class AvailableWindow:
    slot_start: datetime
    slot_end: datetime
    available_units: int
    max_units: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slot_start": self.slot_start.isoformat(),
            "slot_end": self.slot_end.isoformat(),
            "available_units": self.available_units,
            "max_units": self.max_units,
        }


async def list_available_windows(
    service_type: str,
    day: date,
    now: Optional[datetime] = None,
    session_factory: Optional[async_sessionmaker] = None,
    settings: Optional[Settings] = None
) -> List[AvailableWindow]:
    """
    List consolidated bookable windows for a date.

    Args:
        service_type: LAUNDRY or CLEANING
        day: Business-local date
        now: Evaluation time (defaults to current UTC time)
        session_factory: Session factory (defaults to the application's)
        settings: Settings (defaults to the process settings)

    Returns:
        Windows ordered by start, each summing available and max units across
        partners offering the same [slot_start, slot_end)
    """
    validate_service_type(service_type)
    session_factory = session_factory or AsyncSessionLocal
    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)
    earliest_start = now + timedelta(hours=settings.min_booking_lead_hours)

    day_start, day_end = local_day_bounds(day, settings.tz)
    query = (
        select(CapacitySlot)
        .join(Partner, Partner.id == CapacitySlot.partner_id)
        .where(Partner.active.is_(True))
        .where(CapacitySlot.service_type == service_type)
        .where(CapacitySlot.slot_start >= day_start)
        .where(CapacitySlot.slot_start < day_end)
        .where(CapacitySlot.reserved_units < CapacitySlot.max_units)
        .order_by(CapacitySlot.slot_start, CapacitySlot.slot_end)
    )

    with store_errors("list available windows", service_type=service_type, day=day.isoformat()):
        async with session_factory() as session:
            result = await session.execute(query)
            slots = result.scalars().all()

    windows: "OrderedDict[tuple, AvailableWindow]" = OrderedDict()
    for slot in slots:
        if slot.slot_start <= earliest_start:
            continue
        key = (slot.slot_start, slot.slot_end)
        window = windows.get(key)
        if window is None:
            windows[key] = AvailableWindow(
                slot_start=slot.slot_start,
                slot_end=slot.slot_end,
                available_units=slot.available_units,
                max_units=slot.max_units,
            )
        else:
            window.available_units += slot.available_units
            window.max_units += slot.max_units

    logger.debug(f"{len(windows)} bookable {service_type} windows on {day}")
    return list(windows.values())
