"""
Overlap / Conflict Checker

Decides whether a candidate [start, end) window collides with a partner's
existing slots. Windows are half-open, so a slot ending at 12:00 and one starting
at 12:00 do not conflict.

has_conflict() must run in the same transaction as the write it guards. That
transaction, commit included, runs inside partner_write_lock(), and on
PostgreSQL also takes lock_provider().
"""
import asyncio
import uuid
import weakref
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Iterable, List, Optional

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from capacity_service.models.capacity_slot import CapacitySlot


def intervals_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime
) -> bool:
    """True if [a_start, a_end) and [b_start, b_end) intersect."""
    return a_start < b_end and b_start < a_end


def find_conflicts(
    start: datetime,
    end: datetime,
    existing: Iterable[CapacitySlot],
    exclude_id: Optional[uuid.UUID] = None
) -> List[CapacitySlot]:
    """
    Return the slots in `existing` that overlap [start, end).

    Args:
        start: Candidate window start
        end: Candidate window end
        existing: Slots of a single partner
        exclude_id: Slot id to ignore (the slot being updated)
    """
    return [
        slot for slot in existing
        if slot.id != exclude_id and intervals_overlap(start, end, slot.slot_start, slot.slot_end)
    ]


async def has_conflict(
    session: AsyncSession,
    partner_id: uuid.UUID,
    start: datetime,
    end: datetime,
    exclude_id: Optional[uuid.UUID] = None
) -> bool:
    """
    Check the database for a partner slot overlapping [start, end).

    Args:
        session: Session of the transaction that will perform the write
        partner_id: Partner whose calendar is checked (all service kinds)
        start: Candidate window start
        end: Candidate window end
        exclude_id: Slot id to ignore (the slot being updated)

    Returns:
        True if any overlapping slot exists
    """
    query = (
        select(CapacitySlot.id)
        .where(CapacitySlot.partner_id == partner_id)
        .where(CapacitySlot.slot_start < end)
        .where(CapacitySlot.slot_end > start)
        .limit(1)
    )
    if exclude_id is not None:
        query = query.where(CapacitySlot.id != exclude_id)

    result = await session.execute(query)
    return result.first() is not None


async def partner_slots_between(
    session: AsyncSession,
    partner_id: uuid.UUID,
    start: datetime,
    end: datetime
) -> List[CapacitySlot]:
    """Load the partner's slots overlapping [start, end), ordered by start."""
    result = await session.execute(
        select(CapacitySlot)
        .where(CapacitySlot.partner_id == partner_id)
        .where(CapacitySlot.slot_start < end)
        .where(CapacitySlot.slot_end > start)
        .order_by(CapacitySlot.slot_start)
    )
    return list(result.scalars().all())


# Held only while a writer uses them; entries vanish with the last reference
_write_locks: "weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock]" = weakref.WeakValueDictionary()


@asynccontextmanager
async def partner_write_lock(partner_id: Optional[uuid.UUID]) -> AsyncIterator[None]:
    """
    Serialize capacity writers for one partner within this process.

    Must wrap the whole check-then-write transaction, commit included. SQLite
    sessions share one connection under StaticPool, so two open transactions
    can both pass has_conflict() before either insert is flushed.
    A None partner_id takes no lock.
    """
    if partner_id is None:
        yield
        return

    lock = _write_locks.get(partner_id)
    if lock is None:
        lock = asyncio.Lock()
        _write_locks[partner_id] = lock
    async with lock:
        yield


async def lock_provider(session: AsyncSession, partner_id: uuid.UUID) -> None:
    """
    Serialize capacity writers for one partner across processes until the
    transaction ends.

    Takes a transaction-scoped advisory lock on PostgreSQL. Other dialects
    return immediately; partner_write_lock() covers writers in this process
    and the SQLite deployment runs a single process.
    """
    if session.get_bind().dialect.name != "postgresql":
        return
    await session.execute(
        text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))"),
        {"lock_key": f"capacity:{partner_id}"},
    )
