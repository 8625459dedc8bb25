"""
Capacity Slot Store

Create, update, delete and query capacity slots while enforcing the calendar
invariants:
- 0 <= reserved_units <= max_units
- slot_end > slot_start
- no two slots of the same partner overlap on [slot_start, slot_end)

Every check-then-write runs in one transaction holding the partner lock, so two
concurrent requests cannot both pass the overlap check. Audit entries are
appended after commit and never undo a committed change.
"""
import logging
import uuid
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from capacity_service.config import Settings, get_settings
from capacity_service.database import AsyncSessionLocal
from capacity_service.errors import (
    CapacityError,
    ConflictError,
    InternalError,
    NotFoundError,
    PreconditionError,
    ValidationError,
    with_timeout,
)
from capacity_service.models.capacity_slot import CapacitySlot
from capacity_service.models.partner import SERVICE_TYPES
from capacity_service.services.audit_log import record_audit
from capacity_service.services.overlap_checker import (
    find_conflicts,
    has_conflict,
    lock_provider,
    partner_slots_between,
    partner_write_lock,
)
from capacity_service.services.provider_directory import ProviderInfo, get_provider
from capacity_service.services.template_engine import CandidateWindow

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"slot_start", "slot_end", "max_units", "notes"}
MAX_REPORTED_CONFLICTS = 5


def validate_service_type(service_type: str) -> None:
    if service_type not in SERVICE_TYPES:
        raise ValidationError(f"Invalid service_type: {service_type}. Must be one of: {list(SERVICE_TYPES)}")


def ensure_aware(value: datetime, tz) -> datetime:
    """Interpret a naive datetime as business-local time; normalise to UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return value.astimezone(timezone.utc)


def local_day_bounds(day: date, tz) -> tuple:
    """UTC [start, end) covering one business-local calendar day."""
    start = datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz).astimezone(timezone.utc)
    return start, end


def check_provider(provider: Optional[ProviderInfo], service_type: str) -> ProviderInfo:
    """Raise unless the provider exists, is active and serves `service_type`."""
    if provider is None:
        raise NotFoundError("Partner not found")
    if not provider.active:
        raise PreconditionError("Cannot create slots for inactive partner")
    if provider.service_type != service_type:
        raise PreconditionError("Service type does not match partner service type")
    return provider


@contextmanager
def store_errors(operation: str, **context):
    """Translate database failures into CapacityError subclasses, with logging."""
    try:
        yield
    except CapacityError:
        raise
    except IntegrityError as e:
        # Raised by the exclusion/check constraints when a concurrent writer won the race
        logger.warning(f"Constraint violation during {operation} {context}: {e.orig}")
        raise ConflictError("This time slot overlaps with an existing slot for this partner") from e
    except SQLAlchemyError as e:
        logger.error(f"Database error during {operation} {context}: {e}", exc_info=True)
        raise InternalError(f"Failed to {operation}") from e


class SlotStore:
    """Persistence and invariant enforcement for capacity slots"""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        settings: Optional[Settings] = None
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.settings = settings or get_settings()

    def _validate_window(self, slot_start: datetime, slot_end: datetime, now: datetime) -> None:
        if slot_end <= slot_start:
            raise ValidationError("slot_end must be after slot_start")
        if slot_start <= now:
            raise PreconditionError("Cannot create slots in the past")

    async def _load_provider(self, session: AsyncSession, partner_id: uuid.UUID) -> Optional[ProviderInfo]:
        return await with_timeout(
            get_provider(session, partner_id),
            self.settings.precondition_timeout_seconds,
            "partner lookup",
        )

    async def create_slot(
        self,
        partner_id: uuid.UUID,
        service_type: str,
        slot_start: datetime,
        slot_end: datetime,
        max_units: Optional[int] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
        template_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
        audit: bool = True
    ) -> CapacitySlot:
        """
        Create one slot for a partner.

        Args:
            partner_id: Owning partner
            service_type: LAUNDRY or CLEANING; must match the partner
            slot_start: Window start (naive values are business-local)
            slot_end: Window end, strictly after slot_start
            max_units: Capacity units; defaults to the partner's capacity quantum
            notes: Free-text notes
            created_by: Admin actor id; None for system-generated slots
            template_id: Template the slot was generated from, if any
            now: Evaluation time (defaults to current UTC time)
            audit: Append a capacity.create audit entry after commit

        Returns:
            The created slot with reserved_units = 0

        Raises:
            ValidationError: Bad service type, max_units <= 0 or end <= start
            PreconditionError: Slot in the past, inactive partner, service mismatch
            NotFoundError: Partner does not exist
            ConflictError: Window overlaps another slot of the partner
        """
        now = now or datetime.now(timezone.utc)
        tz = self.settings.tz
        validate_service_type(service_type)
        if max_units is not None and max_units <= 0:
            raise ValidationError("max_units must be greater than 0")

        slot_start = ensure_aware(slot_start, tz)
        slot_end = ensure_aware(slot_end, tz)
        self._validate_window(slot_start, slot_end, now)

        with store_errors("create capacity slot", partner_id=str(partner_id), slot_start=slot_start.isoformat()):
            async with partner_write_lock(partner_id), self.session_factory() as session:
                async with session.begin():
                    await lock_provider(session, partner_id)
                    provider = check_provider(await self._load_provider(session, partner_id), service_type)
                    if max_units is None:
                        max_units = provider.default_capacity_units

                    if await has_conflict(session, partner_id, slot_start, slot_end):
                        raise ConflictError("This time slot overlaps with an existing slot for this partner")

                    slot = CapacitySlot(
                        partner_id=partner_id,
                        service_type=service_type,
                        slot_start=slot_start,
                        slot_end=slot_end,
                        max_units=max_units,
                        reserved_units=0,
                        notes=notes or None,
                        created_by=created_by,
                        template_id=template_id,
                    )
                    session.add(slot)

        logger.info(
            f"Created capacity slot {slot.id} for partner {partner_id}: "
            f"{slot_start.isoformat()} - {slot_end.isoformat()}, {max_units} units"
        )

        if audit:
            await record_audit(
                self.session_factory,
                action="capacity.create",
                entity_id=slot.id,
                actor_id=created_by,
                changes={
                    "partner_id": str(partner_id),
                    "service_type": service_type,
                    "slot_start": slot_start.isoformat(),
                    "slot_end": slot_end.isoformat(),
                    "max_units": max_units,
                },
            )

        return slot

    async def insert_batch(
        self,
        partner_id: uuid.UUID,
        service_type: str,
        windows: Sequence[CandidateWindow],
        notes: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> List[CapacitySlot]:
        """
        Insert a batch of windows for one partner, all or nothing.

        Every window is checked for overlap before anything is written. If any
        window conflicts, nothing is inserted.

        Raises:
            ConflictError: With details {"conflicts": first 5 ISO start times,
                "conflict_count": total conflicting windows}
        """
        if not windows:
            return []

        with store_errors("bulk create capacity slots", partner_id=str(partner_id), windows=len(windows)):
            async with partner_write_lock(partner_id), self.session_factory() as session:
                async with session.begin():
                    await lock_provider(session, partner_id)
                    check_provider(await self._load_provider(session, partner_id), service_type)

                    existing = await partner_slots_between(
                        session,
                        partner_id,
                        min(window.slot_start for window in windows),
                        max(window.slot_end for window in windows),
                    )
                    conflicts = [
                        window.slot_start.isoformat()
                        for window in windows
                        if find_conflicts(window.slot_start, window.slot_end, existing)
                    ]

                    if conflicts:
                        raise ConflictError(
                            f"Found {len(conflicts)} conflicting slot(s). "
                            "Please delete or modify existing slots first.",
                            details={
                                "conflicts": conflicts[:MAX_REPORTED_CONFLICTS],
                                "conflict_count": len(conflicts),
                            },
                        )

                    slots = [
                        CapacitySlot(
                            partner_id=partner_id,
                            service_type=service_type,
                            slot_start=window.slot_start,
                            slot_end=window.slot_end,
                            max_units=window.max_units,
                            reserved_units=0,
                            notes=notes,
                            created_by=created_by,
                            template_id=window.template_id,
                        )
                        for window in windows
                    ]
                    session.add_all(slots)

        return slots

    async def update_slot(
        self,
        slot_id: uuid.UUID,
        patch: Dict[str, Any],
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> CapacitySlot:
        """
        Apply a partial update to a slot.

        Time fields are re-validated (range, future, overlap) only when present
        in the patch. max_units may not drop below the reserved units. The audit
        entry records only fields whose value actually changed.

        Args:
            slot_id: Slot to update
            patch: Subset of slot_start, slot_end, max_units, notes
            actor_id: Admin actor id
            now: Evaluation time (defaults to current UTC time)

        Returns:
            The updated slot
        """
        now = now or datetime.now(timezone.utc)
        tz = self.settings.tz

        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {sorted(unknown)}")
        if "max_units" in patch and (patch["max_units"] is None or patch["max_units"] <= 0):
            raise ValidationError("max_units must be greater than 0")

        changes: Dict[str, Dict[str, Any]] = {}

        with store_errors("update capacity slot", slot_id=str(slot_id)):
            # Moving a slot is a check-then-write on the partner's calendar
            partner_id = None
            if patch.get("slot_start") is not None or patch.get("slot_end") is not None:
                partner_id = (await self.get_slot(slot_id)).partner_id

            async with partner_write_lock(partner_id), self.session_factory() as session:
                async with session.begin():
                    slot = await session.get(CapacitySlot, slot_id, with_for_update=True)
                    if slot is None:
                        raise NotFoundError("Slot not found")

                    new_start = patch.get("slot_start")
                    new_end = patch.get("slot_end")
                    if new_start is not None or new_end is not None:
                        start = ensure_aware(new_start, tz) if new_start is not None else slot.slot_start
                        end = ensure_aware(new_end, tz) if new_end is not None else slot.slot_end

                        if end <= start:
                            raise ValidationError("slot_end must be after slot_start")
                        if start <= now:
                            raise PreconditionError("Cannot move slots into the past")

                        await lock_provider(session, slot.partner_id)
                        if await has_conflict(session, slot.partner_id, start, end, exclude_id=slot.id):
                            raise ConflictError("Updated time slot overlaps with an existing slot")

                        if start != slot.slot_start:
                            changes["slot_start"] = {"from": slot.slot_start.isoformat(), "to": start.isoformat()}
                            slot.slot_start = start
                        if end != slot.slot_end:
                            changes["slot_end"] = {"from": slot.slot_end.isoformat(), "to": end.isoformat()}
                            slot.slot_end = end

                    if "max_units" in patch:
                        max_units = patch["max_units"]
                        if max_units < slot.reserved_units:
                            raise ConflictError(
                                f"Cannot reduce capacity below {slot.reserved_units} (currently reserved). "
                                "Cancel or reschedule orders first.",
                                details={"reserved_units": slot.reserved_units, "requested_max_units": max_units},
                            )
                        if max_units != slot.max_units:
                            changes["max_units"] = {"from": slot.max_units, "to": max_units}
                            slot.max_units = max_units

                    if "notes" in patch:
                        notes = patch["notes"] or None
                        if notes != slot.notes:
                            changes["notes"] = {"from": slot.notes, "to": notes}
                            slot.notes = notes

        if changes:
            logger.info(f"Updated capacity slot {slot_id}: {sorted(changes)}")
            await record_audit(
                self.session_factory,
                action="capacity.update",
                entity_id=slot_id,
                actor_id=actor_id,
                changes=changes,
            )

        return slot

    async def delete_slot(self, slot_id: uuid.UUID, actor_id: Optional[str] = None) -> None:
        """
        Delete a slot that has no reservations.

        Raises:
            NotFoundError: Slot does not exist
            ConflictError: Slot has reserved units
        """
        with store_errors("delete capacity slot", slot_id=str(slot_id)):
            async with self.session_factory() as session:
                async with session.begin():
                    slot = await session.get(CapacitySlot, slot_id, with_for_update=True)
                    if slot is None:
                        raise NotFoundError("Slot not found")
                    if slot.reserved_units > 0:
                        raise ConflictError(
                            f"Cannot delete slot with {slot.reserved_units} reserved units. "
                            "Cancel or reschedule orders first.",
                            details={"reserved_units": slot.reserved_units},
                        )
                    snapshot = slot.snapshot()
                    await session.delete(slot)

        logger.info(f"Deleted capacity slot {slot_id}")
        await record_audit(
            self.session_factory,
            action="capacity.delete",
            entity_id=slot_id,
            actor_id=actor_id,
            changes={"deleted_slot": snapshot},
        )

    async def get_slot(self, slot_id: uuid.UUID) -> CapacitySlot:
        with store_errors("fetch capacity slot", slot_id=str(slot_id)):
            async with self.session_factory() as session:
                slot = await session.get(CapacitySlot, slot_id)
        if slot is None:
            raise NotFoundError("Slot not found")
        return slot

    async def list_slots(
        self,
        partner_id: Optional[uuid.UUID] = None,
        service_type: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> List[CapacitySlot]:
        """
        List slots ordered by start time.

        Date filters are inclusive business-local calendar days applied to
        slot_start.
        """
        tz = self.settings.tz
        query = select(CapacitySlot).order_by(CapacitySlot.slot_start)

        if partner_id is not None:
            query = query.where(CapacitySlot.partner_id == partner_id)
        if service_type is not None:
            validate_service_type(service_type)
            query = query.where(CapacitySlot.service_type == service_type)
        if start_date is not None:
            query = query.where(CapacitySlot.slot_start >= local_day_bounds(start_date, tz)[0])
        if end_date is not None:
            query = query.where(CapacitySlot.slot_start < local_day_bounds(end_date, tz)[1])

        with store_errors("list capacity slots", partner_id=str(partner_id), service_type=service_type):
            async with self.session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())

    async def exists_at(self, partner_id: uuid.UUID, service_type: str, slot_start: datetime) -> bool:
        """True if a slot with exactly this partner, service and start exists."""
        query = (
            select(CapacitySlot.id)
            .where(CapacitySlot.partner_id == partner_id)
            .where(CapacitySlot.service_type == service_type)
            .where(CapacitySlot.slot_start == slot_start)
            .limit(1)
        )
        with store_errors("look up capacity slot", partner_id=str(partner_id)):
            async with self.session_factory() as session:
                result = await session.execute(query)
                return result.first() is not None

    async def reserve_units(self, slot_id: uuid.UUID, units: int) -> bool:
        """
        Atomically reserve capacity on a slot.

        The increment only applies if reserved_units + units <= max_units, in a
        single conditional UPDATE, so concurrent bookings cannot oversell.

        Returns:
            True if reserved, False if the slot lacks capacity

        Raises:
            ValidationError: units is not positive
            NotFoundError: Slot does not exist
        """
        if units <= 0:
            raise ValidationError("units must be greater than 0")

        with store_errors("reserve capacity", slot_id=str(slot_id), units=units):
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(CapacitySlot)
                        .where(CapacitySlot.id == slot_id)
                        .where(CapacitySlot.reserved_units + units <= CapacitySlot.max_units)
                        .values(reserved_units=CapacitySlot.reserved_units + units)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        if await session.get(CapacitySlot, slot_id) is None:
                            raise NotFoundError("Slot not found")
                        logger.info(f"Reservation of {units} units rejected for slot {slot_id}: insufficient capacity")
                        return False

        logger.debug(f"Reserved {units} units on slot {slot_id}")
        return True

    async def release_units(self, slot_id: uuid.UUID, units: int) -> None:
        """Release previously reserved capacity; reserved_units never drops below zero."""
        if units <= 0:
            raise ValidationError("units must be greater than 0")

        remaining = CapacitySlot.reserved_units - units
        with store_errors("release capacity", slot_id=str(slot_id), units=units):
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(CapacitySlot)
                        .where(CapacitySlot.id == slot_id)
                        .values(reserved_units=case((remaining < 0, 0), else_=remaining))
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        raise NotFoundError("Slot not found")

        logger.debug(f"Released {units} units on slot {slot_id}")


# Global store instance
_store: Optional[SlotStore] = None


def get_slot_store() -> SlotStore:
    """Get or create global SlotStore instance."""
    global _store
    if _store is None:
        _store = SlotStore()
    return _store
