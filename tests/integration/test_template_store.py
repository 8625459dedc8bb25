"""
Integration tests for template management

Tests template validation, partner preconditions and delete-or-deactivate.
"""

import uuid
from datetime import time

import pytest
from sqlalchemy import select

from capacity_service.errors import NotFoundError, PreconditionError, ValidationError
from capacity_service.models import AuditLog, CapacityTemplate
from conftest import NOW


@pytest.mark.asyncio
@pytest.mark.integration
class TestTemplateStore:

    async def test_create_defaults_to_partner_quantum(self, template_store, cleaning_partner):
        template = await template_store.create_template(
            partner_id=cleaning_partner.id,
            service_type="CLEANING",
            day_of_week=1,
            slot_start=time(8, 0),
            slot_end=time(12, 0),
            actor_id="admin-ops-1",
        )

        assert template.max_units == 240
        assert template.active is True

    async def test_create_validation(self, template_store, laundry_partner):
        with pytest.raises(ValidationError):
            await template_store.create_template(laundry_partner.id, "LAUNDRY", 7, time(9), time(13))
        with pytest.raises(ValidationError):
            await template_store.create_template(laundry_partner.id, "LAUNDRY", 2, time(13), time(9))
        with pytest.raises(ValidationError):
            await template_store.create_template(laundry_partner.id, "LAUNDRY", 2, time(9), time(13), max_units=0)

    async def test_create_requires_matching_active_partner(self, template_store, laundry_partner, inactive_partner):
        with pytest.raises(PreconditionError):
            await template_store.create_template(laundry_partner.id, "CLEANING", 2, time(9), time(13))
        with pytest.raises(PreconditionError):
            await template_store.create_template(inactive_partner.id, "LAUNDRY", 2, time(9), time(13))
        with pytest.raises(NotFoundError):
            await template_store.create_template(uuid.uuid4(), "LAUNDRY", 2, time(9), time(13))

    async def test_update_records_diff(self, template_store, laundry_partner, session_factory):
        template = await template_store.create_template(laundry_partner.id, "LAUNDRY", 2, time(9), time(13))

        updated = await template_store.update_template(
            template.id, {"slot_end": time(14, 0), "max_units": 10}, actor_id="admin-ops-1"
        )

        assert updated.slot_end == time(14, 0)
        assert updated.max_units == 10

        async with session_factory() as session:
            result = await session.execute(
                select(AuditLog).where(AuditLog.action == "capacity_template.update")
            )
            entry = result.scalars().one()
        assert entry.changes == {
            "max_units": {"from": 8, "to": 10},
            "slot_end": {"from": "13:00:00", "to": "14:00:00"},
        }

    async def test_update_rejects_inverted_times(self, template_store, laundry_partner):
        template = await template_store.create_template(laundry_partner.id, "LAUNDRY", 2, time(9), time(13))

        with pytest.raises(ValidationError):
            await template_store.update_template(template.id, {"slot_start": time(15, 0)})

    async def test_list_filters(self, template_store, laundry_partner, cleaning_partner):
        await template_store.create_template(laundry_partner.id, "LAUNDRY", 2, time(9), time(13))
        await template_store.create_template(laundry_partner.id, "LAUNDRY", 4, time(9), time(13))
        await template_store.create_template(cleaning_partner.id, "CLEANING", 2, time(9), time(13))

        assert len(await template_store.list_templates()) == 3
        assert len(await template_store.list_templates(partner_id=laundry_partner.id)) == 2
        assert len(await template_store.list_templates(service_type="CLEANING")) == 1

    async def test_remove_unused_template_deletes(self, template_store, laundry_partner, session_factory):
        template = await template_store.create_template(laundry_partner.id, "LAUNDRY", 2, time(9), time(13))

        outcome = await template_store.remove_template(template.id)

        assert outcome == "deleted"
        async with session_factory() as session:
            assert await session.get(CapacityTemplate, template.id) is None

    async def test_remove_used_template_deactivates(
        self, template_store, slot_generator, laundry_partner, session_factory
    ):
        template = await template_store.create_template(laundry_partner.id, "LAUNDRY", 2, time(9), time(13))
        await slot_generator.populate_from_templates(horizon_days=14, now=NOW)

        outcome = await template_store.remove_template(template.id)

        assert outcome == "deactivated"
        reloaded = await template_store.get_template(template.id)
        assert reloaded.active is False
        assert await template_store.list_templates(active=True) == []

    async def test_remove_missing(self, template_store):
        with pytest.raises(NotFoundError):
            await template_store.remove_template(uuid.uuid4())
