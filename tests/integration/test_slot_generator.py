"""
Integration tests for slot generation from templates

Tests the tolerant population job (idempotent, per-candidate errors) and the
atomic bulk generation (all-or-nothing with conflict listing).

NOW is Wednesday 2025-06-04, so a 14-day horizon (06-04 .. 06-18) contains two
Tuesdays: 06-10 and 06-17.
"""

from datetime import date, time, timedelta

import pytest
from sqlalchemy import select

from capacity_service.errors import ConflictError, NotFoundError, PreconditionError, ValidationError
from capacity_service.models import AuditLog, CapacitySlot, Partner
from conftest import NOW, add_template, local

TUESDAY_STARTS = ["2025-06-10T13:00:00+00:00", "2025-06-17T13:00:00+00:00"]


async def all_slots(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(CapacitySlot).order_by(CapacitySlot.slot_start))
        return list(result.scalars().all())


@pytest.mark.asyncio
@pytest.mark.integration
class TestPopulateFromTemplates:
    """Scheduled population job"""

    async def test_creates_slots_for_horizon(self, slot_generator, laundry_partner, session_factory):
        template = await add_template(session_factory, laundry_partner)

        result = await slot_generator.populate_from_templates(horizon_days=14, now=NOW)

        assert result.created == 2
        assert result.skipped == 0
        assert result.errors == []

        slots = await all_slots(session_factory)
        assert [s.slot_start.isoformat() for s in slots] == TUESDAY_STARTS
        assert all(s.max_units == 8 and s.reserved_units == 0 for s in slots)
        assert all(s.template_id == template.id for s in slots)
        assert all(s.created_by is None for s in slots)
        assert slots[0].notes == f"Auto-generated from template {template.id}"

    async def test_idempotent(self, slot_generator, laundry_partner, session_factory):
        """Running twice creates nothing the second time"""
        await add_template(session_factory, laundry_partner)

        first = await slot_generator.populate_from_templates(horizon_days=14, now=NOW)
        second = await slot_generator.populate_from_templates(horizon_days=14, now=NOW)

        assert first.created == 2
        assert second.created == 0
        assert second.skipped == 2
        assert len(await all_slots(session_factory)) == 2

    async def test_horizon_end_is_inclusive(self, slot_generator, laundry_partner, session_factory):
        await add_template(session_factory, laundry_partner)

        # 06-04 + 13 days = 06-17 (a Tuesday), which must be included
        result = await slot_generator.populate_from_templates(horizon_days=13, now=NOW)

        assert result.created == 2

    async def test_conflict_recorded_and_run_continues(
        self, slot_generator, slot_store, laundry_partner, session_factory
    ):
        await add_template(session_factory, laundry_partner)
        # A manual slot occupies part of the 06-10 template window
        await slot_store.create_slot(
            laundry_partner.id, "LAUNDRY", local(2025, 6, 10, 11), local(2025, 6, 10, 12), now=NOW
        )

        result = await slot_generator.populate_from_templates(horizon_days=14, now=NOW)

        assert result.created == 1
        assert len(result.errors) == 1
        assert result.errors[0]["date"] == "2025-06-10"
        assert "overlaps" in result.errors[0]["error"]

    async def test_skips_inactive_templates_and_partners(
        self, slot_generator, laundry_partner, inactive_partner, session_factory
    ):
        await add_template(session_factory, laundry_partner, active=False)
        await add_template(session_factory, inactive_partner)

        result = await slot_generator.populate_from_templates(horizon_days=14, now=NOW)

        assert result.to_dict() == {"created": 0, "skipped": 0, "errors": []}

    async def test_writes_single_summary_audit(self, slot_generator, laundry_partner, session_factory):
        await add_template(session_factory, laundry_partner)

        await slot_generator.populate_from_templates(horizon_days=14, now=NOW)

        async with session_factory() as session:
            result = await session.execute(select(AuditLog))
            entries = list(result.scalars().all())

        assert [e.action for e in entries] == ["capacity.auto_populate"]
        assert entries[0].actor_id == "system"
        assert entries[0].changes["created"] == 2

    async def test_negative_horizon_rejected(self, slot_generator):
        with pytest.raises(ValidationError):
            await slot_generator.populate_from_templates(horizon_days=-1, now=NOW)


@pytest.mark.asyncio
@pytest.mark.integration
class TestBulkGenerate:
    """Operator-triggered atomic generation"""

    async def test_bulk_generate_creates_all(self, slot_generator, laundry_partner, session_factory):
        template = await add_template(session_factory, laundry_partner)

        result = await slot_generator.bulk_generate(
            template.id, date(2025, 6, 4), date(2025, 6, 18), actor_id="admin-ops-1", now=NOW
        )

        assert result["slots_created"] == 2
        slots = await all_slots(session_factory)
        assert all(s.created_by == "admin-ops-1" for s in slots)
        assert slots[0].notes == f"Generated from template {template.id}"

    async def test_end_to_end_populate_then_bulk_conflict(self, slot_generator, laundry_partner, session_factory):
        """Population creates 2 Tuesdays; bulk over the same range is rejected listing both"""
        template = await add_template(session_factory, laundry_partner)

        populated = await slot_generator.populate_from_templates(horizon_days=14, now=NOW)
        assert populated.created == 2

        with pytest.raises(ConflictError) as exc_info:
            await slot_generator.bulk_generate(template.id, date(2025, 6, 4), date(2025, 6, 18), now=NOW)

        assert exc_info.value.status_code == 409
        assert exc_info.value.details["conflicts"] == TUESDAY_STARTS
        assert exc_info.value.details["conflict_count"] == 2
        assert len(await all_slots(session_factory)) == 2

    async def test_any_conflict_blocks_whole_batch(
        self, slot_generator, slot_store, laundry_partner, session_factory
    ):
        template = await add_template(session_factory, laundry_partner)
        await slot_store.create_slot(
            laundry_partner.id, "LAUNDRY", local(2025, 6, 17, 12), local(2025, 6, 17, 14), now=NOW
        )

        with pytest.raises(ConflictError) as exc_info:
            await slot_generator.bulk_generate(template.id, date(2025, 6, 4), date(2025, 7, 4), now=NOW)

        assert exc_info.value.details["conflicts"] == ["2025-06-17T13:00:00+00:00"]
        # Only the manual slot exists; nothing from the batch was inserted
        assert len(await all_slots(session_factory)) == 1

    async def test_conflicts_capped_at_five(self, slot_generator, laundry_partner, session_factory):
        template = await add_template(session_factory, laundry_partner)
        await slot_generator.bulk_generate(template.id, date(2025, 6, 4), date(2025, 8, 1), now=NOW)

        with pytest.raises(ConflictError) as exc_info:
            await slot_generator.bulk_generate(template.id, date(2025, 6, 4), date(2025, 8, 1), now=NOW)

        assert len(exc_info.value.details["conflicts"]) == 5
        assert exc_info.value.details["conflict_count"] == 8

    async def test_no_future_candidates(self, slot_generator, laundry_partner, session_factory):
        template = await add_template(session_factory, laundry_partner)

        result = await slot_generator.bulk_generate(template.id, date(2025, 6, 5), date(2025, 6, 9), now=NOW)

        assert result["slots_created"] == 0

    async def test_date_range_validation(self, slot_generator, laundry_partner, session_factory):
        template = await add_template(session_factory, laundry_partner)

        with pytest.raises(ValidationError):
            await slot_generator.bulk_generate(template.id, date(2025, 6, 10), date(2025, 6, 10), now=NOW)

        with pytest.raises(ValidationError):
            await slot_generator.bulk_generate(
                template.id, date(2025, 6, 4), date(2025, 6, 4) + timedelta(days=91), now=NOW
            )

    async def test_ninety_days_allowed(self, slot_generator, laundry_partner, session_factory):
        template = await add_template(session_factory, laundry_partner)

        result = await slot_generator.bulk_generate(
            template.id, date(2025, 6, 4), date(2025, 6, 4) + timedelta(days=90), now=NOW
        )

        assert result["slots_created"] == 13

    async def test_inactive_template_not_found(self, slot_generator, laundry_partner, session_factory):
        template = await add_template(session_factory, laundry_partner, active=False)

        with pytest.raises(NotFoundError) as exc_info:
            await slot_generator.bulk_generate(template.id, date(2025, 6, 4), date(2025, 6, 18), now=NOW)

        assert exc_info.value.message == "Template not found or inactive"

    async def test_inactive_partner_rejected(self, slot_generator, laundry_partner, session_factory):
        template = await add_template(session_factory, laundry_partner)
        async with session_factory() as session:
            partner = await session.get(Partner, laundry_partner.id)
            partner.active = False
            await session.commit()

        with pytest.raises(PreconditionError):
            await slot_generator.bulk_generate(template.id, date(2025, 6, 4), date(2025, 6, 18), now=NOW)

    async def test_evening_template_in_cleaning_units(self, slot_generator, cleaning_partner, session_factory):
        template = await add_template(
            session_factory,
            cleaning_partner,
            day_of_week=5,  # Friday
            slot_start=time(17, 0),
            slot_end=time(21, 0),
            max_units=240,
        )

        result = await slot_generator.bulk_generate(template.id, date(2025, 6, 4), date(2025, 6, 14), now=NOW)

        assert result["slots_created"] == 2
        slots = await all_slots(session_factory)
        assert slots[0].slot_start == local(2025, 6, 6, 17)
        assert slots[0].max_units == 240
