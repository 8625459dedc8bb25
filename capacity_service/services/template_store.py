"""
Capacity Template Store

Admin management of recurring weekly templates. A template that has already
produced slots is deactivated instead of deleted so slot provenance survives.
"""
import logging
import uuid
from datetime import time
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from capacity_service.config import Settings, get_settings
from capacity_service.database import AsyncSessionLocal
from capacity_service.errors import NotFoundError, ValidationError, with_timeout
from capacity_service.models.capacity_slot import CapacitySlot
from capacity_service.models.capacity_template import CapacityTemplate
from capacity_service.models.partner import Partner
from capacity_service.services.audit_log import record_audit
from capacity_service.services.slot_store import check_provider, store_errors, validate_service_type
from capacity_service.services.provider_directory import get_provider

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"day_of_week", "slot_start", "slot_end", "max_units", "active"}


def _validate_template_fields(day_of_week: int, slot_start: time, slot_end: time, max_units: Optional[int]) -> None:
    if day_of_week < 0 or day_of_week > 6:
        raise ValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
    if slot_end <= slot_start:
        raise ValidationError("slot_end must be after slot_start")
    if max_units is not None and max_units <= 0:
        raise ValidationError("max_units must be greater than 0")


def _template_changes(template: CapacityTemplate) -> Dict[str, Any]:
    return {
        "partner_id": str(template.partner_id),
        "service_type": template.service_type,
        "day_of_week": template.day_of_week,
        "slot_start": template.slot_start.isoformat(),
        "slot_end": template.slot_end.isoformat(),
        "max_units": template.max_units,
        "active": template.active,
    }


def _audit_value(value: Any) -> Any:
    return value.isoformat() if isinstance(value, time) else value


class TemplateStore:
    """CRUD for capacity templates"""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        settings: Optional[Settings] = None
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.settings = settings or get_settings()

    async def create_template(
        self,
        partner_id: uuid.UUID,
        service_type: str,
        day_of_week: int,
        slot_start: time,
        slot_end: time,
        max_units: Optional[int] = None,
        actor_id: Optional[str] = None
    ) -> CapacityTemplate:
        """
        Create an active template for a partner.

        max_units defaults to the partner's capacity quantum.
        """
        validate_service_type(service_type)
        _validate_template_fields(day_of_week, slot_start, slot_end, max_units)

        with store_errors("create capacity template", partner_id=str(partner_id)):
            async with self.session_factory() as session:
                async with session.begin():
                    provider = await with_timeout(
                        get_provider(session, partner_id),
                        self.settings.precondition_timeout_seconds,
                        "partner lookup",
                    )
                    provider = check_provider(provider, service_type)

                    template = CapacityTemplate(
                        partner_id=partner_id,
                        service_type=service_type,
                        day_of_week=day_of_week,
                        slot_start=slot_start,
                        slot_end=slot_end,
                        max_units=max_units or provider.default_capacity_units,
                        active=True,
                    )
                    session.add(template)

        logger.info(f"Created capacity template {template.id} for partner {partner_id} (day {day_of_week})")
        await record_audit(
            self.session_factory,
            action="capacity_template.create",
            entity_id=template.id,
            entity_type="capacity_template",
            actor_id=actor_id,
            changes=_template_changes(template),
        )
        return template

    async def get_template(self, template_id: uuid.UUID) -> CapacityTemplate:
        with store_errors("fetch capacity template", template_id=str(template_id)):
            async with self.session_factory() as session:
                template = await session.get(CapacityTemplate, template_id)
        if template is None:
            raise NotFoundError("Template not found")
        return template

    async def get_active_template(self, template_id: uuid.UUID) -> CapacityTemplate:
        """Fetch a template for generation; missing and inactive templates look the same."""
        async def _load() -> Optional[CapacityTemplate]:
            async with self.session_factory() as session:
                return await session.get(CapacityTemplate, template_id)

        with store_errors("fetch capacity template", template_id=str(template_id)):
            template = await with_timeout(_load(), self.settings.precondition_timeout_seconds, "template lookup")
        if template is None or not template.active:
            raise NotFoundError("Template not found or inactive")
        return template

    async def list_templates(
        self,
        partner_id: Optional[uuid.UUID] = None,
        service_type: Optional[str] = None,
        active: Optional[bool] = None
    ) -> List[CapacityTemplate]:
        query = select(CapacityTemplate).order_by(
            CapacityTemplate.partner_id,
            CapacityTemplate.day_of_week,
            CapacityTemplate.slot_start,
        )
        if partner_id is not None:
            query = query.where(CapacityTemplate.partner_id == partner_id)
        if service_type is not None:
            validate_service_type(service_type)
            query = query.where(CapacityTemplate.service_type == service_type)
        if active is not None:
            query = query.where(CapacityTemplate.active == active)

        with store_errors("list capacity templates"):
            async with self.session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())

    async def list_generation_templates(self, session: AsyncSession) -> List[CapacityTemplate]:
        """Active templates whose partner is also active, read fresh in `session`."""
        result = await session.execute(
            select(CapacityTemplate)
            .join(Partner, Partner.id == CapacityTemplate.partner_id)
            .where(CapacityTemplate.active.is_(True))
            .where(Partner.active.is_(True))
            .order_by(CapacityTemplate.partner_id, CapacityTemplate.day_of_week, CapacityTemplate.slot_start)
        )
        return list(result.scalars().all())

    async def update_template(
        self,
        template_id: uuid.UUID,
        patch: Dict[str, Any],
        actor_id: Optional[str] = None
    ) -> CapacityTemplate:
        """
        Apply a partial update. Existing slots are not touched; changes only
        affect slots generated afterwards.
        """
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {sorted(unknown)}")
        if "max_units" in patch and (patch["max_units"] is None or patch["max_units"] <= 0):
            raise ValidationError("max_units must be greater than 0")

        changes: Dict[str, Dict[str, Any]] = {}

        with store_errors("update capacity template", template_id=str(template_id)):
            async with self.session_factory() as session:
                async with session.begin():
                    template = await session.get(CapacityTemplate, template_id, with_for_update=True)
                    if template is None:
                        raise NotFoundError("Template not found")

                    merged = {field: getattr(template, field) for field in UPDATABLE_FIELDS}
                    merged.update({k: v for k, v in patch.items() if v is not None})
                    _validate_template_fields(
                        merged["day_of_week"], merged["slot_start"], merged["slot_end"], merged["max_units"]
                    )

                    for field in sorted(UPDATABLE_FIELDS):
                        if merged[field] != getattr(template, field):
                            changes[field] = {
                                "from": _audit_value(getattr(template, field)),
                                "to": _audit_value(merged[field]),
                            }
                            setattr(template, field, merged[field])

        if changes:
            logger.info(f"Updated capacity template {template_id}: {sorted(changes)}")
            await record_audit(
                self.session_factory,
                action="capacity_template.update",
                entity_id=template_id,
                entity_type="capacity_template",
                actor_id=actor_id,
                changes=changes,
            )
        return template

    async def remove_template(self, template_id: uuid.UUID, actor_id: Optional[str] = None) -> str:
        """
        Delete a template, or deactivate it if any slot was generated from it.

        Returns:
            "deleted" or "deactivated"
        """
        with store_errors("remove capacity template", template_id=str(template_id)):
            async with self.session_factory() as session:
                async with session.begin():
                    template = await session.get(CapacityTemplate, template_id, with_for_update=True)
                    if template is None:
                        raise NotFoundError("Template not found")

                    referenced = await session.execute(
                        select(CapacitySlot.id).where(CapacitySlot.template_id == template_id).limit(1)
                    )
                    snapshot = _template_changes(template)
                    if referenced.first() is None:
                        await session.delete(template)
                        outcome = "deleted"
                    else:
                        template.active = False
                        outcome = "deactivated"

        logger.info(f"Capacity template {template_id} {outcome}")
        await record_audit(
            self.session_factory,
            action=f"capacity_template.{'delete' if outcome == 'deleted' else 'deactivate'}",
            entity_id=template_id,
            entity_type="capacity_template",
            actor_id=actor_id,
            changes={"template": snapshot},
        )
        return outcome


# Global store instance
_store: Optional[TemplateStore] = None


def get_template_store() -> TemplateStore:
    """Get or create global TemplateStore instance."""
    global _store
    if _store is None:
        _store = TemplateStore()
    return _store
