"""
Template Expansion

Turns a recurring weekly template into concrete candidate slot windows over a
date range. Pure functions; nothing here touches the database.

Weekdays follow the template convention 0=Sunday ... 6=Saturday. Template times
are wall-clock times in the business timezone and are converted to UTC.
"""
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, List
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class CandidateWindow:
    """A slot window produced by expanding a template"""
    template_id: uuid.UUID
    partner_id: uuid.UUID
    service_type: str
    slot_start: datetime
    slot_end: datetime
    max_units: int


def sunday_based_weekday(day: date) -> int:
    """Weekday of `day` with 0=Sunday, matching CapacityTemplate.day_of_week."""
    return (day.weekday() + 1) % 7


def iter_dates(range_start: date, range_end: date) -> Iterator[date]:
    """Yield each date in the half-open range [range_start, range_end)."""
    current = range_start
    while current < range_end:
        yield current
        current += timedelta(days=1)


def local_window(day: date, start: time, end: time, tz: ZoneInfo) -> tuple:
    """Combine a business-local date and times into a UTC (start, end) pair."""
    slot_start = datetime.combine(day, start, tzinfo=tz).astimezone(timezone.utc)
    slot_end = datetime.combine(day, end, tzinfo=tz).astimezone(timezone.utc)
    return slot_start, slot_end


def expand_template(
    template,
    range_start: date,
    range_end: date,
    now: datetime,
    tz: ZoneInfo
) -> List[CandidateWindow]:
    """
    Expand a template into candidate windows.

    Args:
        template: CapacityTemplate (or any object with the same attributes)
        range_start: First business-local date considered
        range_end: Exclusive end date
        now: Evaluation time; candidates starting at or before it are dropped
        tz: Business timezone the template times are expressed in

    Returns:
        Candidate windows ordered by start time
    """
    candidates = []
    for day in iter_dates(range_start, range_end):
        if sunday_based_weekday(day) != template.day_of_week:
            continue

        slot_start, slot_end = local_window(day, template.slot_start, template.slot_end, tz)
        if slot_start <= now:
            continue

        candidates.append(
            CandidateWindow(
                template_id=template.id,
                partner_id=template.partner_id,
                service_type=template.service_type,
                slot_start=slot_start,
                slot_end=slot_end,
                max_units=template.max_units,
            )
        )

    return candidates
