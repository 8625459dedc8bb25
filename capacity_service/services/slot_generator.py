"""
Slot Generator

Materialises capacity slots from weekly templates in two modes:
- populate_from_templates(): periodic job, tolerant. Existing windows are
  skipped, per-candidate failures are recorded and the run continues.
- bulk_generate(): admin action for one template, atomic. Any conflict rejects
  the whole batch.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from capacity_service.config import Settings, get_settings
from capacity_service.database import AsyncSessionLocal
from capacity_service.errors import CapacityError, ValidationError, with_timeout
from capacity_service.services.audit_log import record_audit
from capacity_service.services.provider_directory import get_provider
from capacity_service.services.slot_store import SlotStore, check_provider, store_errors
from capacity_service.services.template_engine import expand_template
from capacity_service.services.template_store import TemplateStore

logger = logging.getLogger(__name__)


@dataclass
class PopulationResult:
    """Outcome of one population run"""
    created: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"created": self.created, "skipped": self.skipped, "errors": self.errors}


class SlotGenerator:
    """Template-driven slot creation"""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        settings: Optional[Settings] = None,
        slot_store: Optional[SlotStore] = None,
        template_store: Optional[TemplateStore] = None
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.settings = settings or get_settings()
        self.slot_store = slot_store or SlotStore(self.session_factory, self.settings)
        self.template_store = template_store or TemplateStore(self.session_factory, self.settings)

    async def populate_from_templates(
        self,
        horizon_days: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> PopulationResult:
        """
        Ensure slots exist for every active template over the next horizon.

        The window is today through today + horizon_days, both inclusive, in
        the business timezone. Running twice creates nothing new the second time.

        Args:
            horizon_days: Days ahead to populate (defaults to POPULATION_HORIZON_DAYS)
            now: Evaluation time (defaults to current UTC time)

        Returns:
            PopulationResult with created/skipped counts and per-candidate errors
        """
        now = now or datetime.now(timezone.utc)
        tz = self.settings.tz
        if horizon_days is None:
            horizon_days = self.settings.population_horizon_days
        if horizon_days < 0:
            raise ValidationError("horizon_days must not be negative")

        today = now.astimezone(tz).date()
        range_end = today + timedelta(days=horizon_days + 1)

        with store_errors("load capacity templates"):
            async with self.session_factory() as session:
                templates = await with_timeout(
                    self.template_store.list_generation_templates(session),
                    self.settings.precondition_timeout_seconds,
                    "template lookup",
                )

        logger.info(f"Populating slots from {len(templates)} active templates through {range_end - timedelta(days=1)}")

        result = PopulationResult()
        for template in templates:
            for window in expand_template(template, today, range_end, now, tz):
                window_date = window.slot_start.astimezone(tz).date().isoformat()
                try:
                    if await self.slot_store.exists_at(window.partner_id, window.service_type, window.slot_start):
                        result.skipped += 1
                        continue

                    await self.slot_store.create_slot(
                        partner_id=window.partner_id,
                        service_type=window.service_type,
                        slot_start=window.slot_start,
                        slot_end=window.slot_end,
                        max_units=window.max_units,
                        notes=f"Auto-generated from template {template.id}",
                        created_by=None,
                        template_id=template.id,
                        now=now,
                        audit=False,
                    )
                    result.created += 1
                except CapacityError as e:
                    logger.warning(f"Template {template.id} could not populate {window_date}: {e.message}")
                    result.errors.append({"template_id": str(template.id), "date": window_date, "error": e.message})
                except Exception as e:
                    logger.error(f"Unexpected error populating template {template.id} on {window_date}: {e}", exc_info=True)
                    result.errors.append({"template_id": str(template.id), "date": window_date, "error": str(e)})

        logger.info(
            f"Slot population complete: {result.created} created, "
            f"{result.skipped} skipped, {len(result.errors)} errors"
        )

        await record_audit(
            self.session_factory,
            action="capacity.auto_populate",
            entity_id="bulk",
            entity_type="capacity_calendar",
            changes={
                **result.to_dict(),
                "templates": len(templates),
                "range_start": today.isoformat(),
                "range_end": (range_end - timedelta(days=1)).isoformat(),
            },
        )
        return result

    async def bulk_generate(
        self,
        template_id: uuid.UUID,
        start_date: date,
        end_date: date,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Create slots for one template over an inclusive date range, all or nothing.

        Args:
            template_id: Active template to expand
            start_date: First business-local date
            end_date: Last business-local date, after start_date and at most
                BULK_GENERATE_MAX_DAYS later
            actor_id: Admin actor id
            now: Evaluation time (defaults to current UTC time)

        Returns:
            {"slots_created": n, "message": str}

        Raises:
            ValidationError: Bad date range
            NotFoundError: Template missing or inactive
            PreconditionError: Partner inactive
            ConflictError: Any candidate overlaps an existing slot; details
                carry up to 5 conflicting start times
        """
        now = now or datetime.now(timezone.utc)
        tz = self.settings.tz

        if end_date <= start_date:
            raise ValidationError("end_date must be after start_date")
        if (end_date - start_date).days > self.settings.bulk_generate_max_days:
            raise ValidationError(f"Date range cannot exceed {self.settings.bulk_generate_max_days} days")

        template = await self.template_store.get_active_template(template_id)

        with store_errors("load partner", partner_id=str(template.partner_id)):
            async with self.session_factory() as session:
                provider = await with_timeout(
                    get_provider(session, template.partner_id),
                    self.settings.precondition_timeout_seconds,
                    "partner lookup",
                )
        check_provider(provider, template.service_type)

        windows = expand_template(template, start_date, end_date + timedelta(days=1), now, tz)
        if not windows:
            return {"slots_created": 0, "message": "No future slots to create in the selected date range"}

        slots = await self.slot_store.insert_batch(
            partner_id=template.partner_id,
            service_type=template.service_type,
            windows=windows,
            notes=f"Generated from template {template.id}",
            created_by=actor_id,
        )

        logger.info(f"Bulk generated {len(slots)} slots from template {template.id} ({start_date} - {end_date})")

        await record_audit(
            self.session_factory,
            action="capacity.bulk_create",
            entity_id="bulk",
            entity_type="capacity_calendar",
            actor_id=actor_id,
            changes={
                "template_id": str(template.id),
                "partner_id": str(template.partner_id),
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "slots_created": len(slots),
            },
        )
        return {"slots_created": len(slots), "message": f"Successfully created {len(slots)} slots"}


# Global generator instance
_generator: Optional[SlotGenerator] = None


def get_slot_generator() -> SlotGenerator:
    """Get or create global SlotGenerator instance."""
    global _generator
    if _generator is None:
        _generator = SlotGenerator()
    return _generator
