"""
Integration tests for capacity metrics and the alert monitor

Tests the metrics scenario against stored slots, per-service alert detection,
severity by horizon position and deduplication of repeated scans.
"""

import logging
import uuid
from datetime import date, timedelta

import pytest
from sqlalchemy import select

from capacity_service.errors import NotFoundError, ValidationError
from capacity_service.models import OperationalAlert
from capacity_service.services.alert_monitor import DetectedAlert
from conftest import NOW, local


async def create_day(slot_store, laundry_partner, cleaning_partner, day, laundry_reserved, cleaning_reserved):
    laundry = await slot_store.create_slot(
        laundry_partner.id, "LAUNDRY", local(2025, 6, day, 9), local(2025, 6, day, 13), max_units=8, now=NOW
    )
    cleaning = await slot_store.create_slot(
        cleaning_partner.id, "CLEANING", local(2025, 6, day, 9), local(2025, 6, day, 13), max_units=240, now=NOW
    )
    if laundry_reserved:
        assert await slot_store.reserve_units(laundry.id, laundry_reserved)
    if cleaning_reserved:
        assert await slot_store.reserve_units(cleaning.id, cleaning_reserved)


@pytest.mark.asyncio
@pytest.mark.integration
class TestMetricsCalculator:

    async def test_metrics_scenario(self, metrics_calculator, slot_store, laundry_partner, cleaning_partner):
        """Full day and Monday gap are no-capacity; partial and unbooked days and Sunday are not"""
        await create_day(slot_store, laundry_partner, cleaning_partner, 5, 8, 240)  # Thu: full
        await create_day(slot_store, laundry_partner, cleaning_partner, 6, 2, 60)  # Fri: partial
        await create_day(slot_store, laundry_partner, cleaning_partner, 7, 0, 0)  # Sat: unbooked

        metrics = await metrics_calculator.calculate_metrics(date(2025, 6, 5), date(2025, 6, 9), now=NOW)

        assert metrics.no_capacity_dates == [date(2025, 6, 5), date(2025, 6, 9)]
        assert metrics.low_capacity_dates == []
        assert metrics.total_slots == 6
        assert metrics.reserved_capacity == 310
        assert metrics.by_date[date(2025, 6, 6)].max == 248

    async def test_default_range_is_today_plus_fourteen(self, metrics_calculator):
        metrics = await metrics_calculator.calculate_metrics(now=NOW)

        assert metrics.start_date == date(2025, 6, 4)
        assert metrics.end_date == date(2025, 6, 18)
        assert len(metrics.by_date) == 15

    async def test_inverted_range_rejected(self, metrics_calculator):
        with pytest.raises(ValidationError):
            await metrics_calculator.calculate_metrics(date(2025, 6, 9), date(2025, 6, 5), now=NOW)


@pytest.mark.asyncio
@pytest.mark.integration
class TestAlertMonitor:
    """Horizon is Wed 06-04 .. Tue 06-10; Sunday 06-08 is closed"""

    async def stored_alerts(self, session_factory):
        async with session_factory() as session:
            result = await session.execute(select(OperationalAlert).order_by(OperationalAlert.alert_date))
            return list(result.scalars().all())

    async def test_detects_gaps_per_service(self, alert_monitor):
        detected = await alert_monitor.detect(NOW)

        laundry = [a for a in detected if a.service_type == "LAUNDRY"]
        assert [a.alert_date for a in laundry] == [
            date(2025, 6, 4),
            date(2025, 6, 5),
            date(2025, 6, 6),
            date(2025, 6, 7),
            date(2025, 6, 9),
            date(2025, 6, 10),
        ]
        assert [a.severity for a in laundry[:3]] == ["CRITICAL", "CRITICAL", "WARNING"]
        assert len([a for a in detected if a.service_type == "CLEANING"]) == 6

    async def test_services_evaluated_independently(
        self, alert_monitor, slot_store, laundry_partner, cleaning_partner
    ):
        # Laundry capacity on Thursday does not hide the cleaning gap
        await slot_store.create_slot(
            laundry_partner.id, "LAUNDRY", local(2025, 6, 5, 9), local(2025, 6, 5, 13), max_units=8, now=NOW
        )

        detected = await alert_monitor.detect(NOW)
        thursday = {(a.service_type, a.alert_type) for a in detected if a.alert_date == date(2025, 6, 5)}

        assert thursday == {("CLEANING", "NO_CAPACITY")}

    async def test_low_capacity_is_info_with_count(self, alert_monitor, slot_store, laundry_partner):
        slot = await slot_store.create_slot(
            laundry_partner.id, "LAUNDRY", local(2025, 6, 6, 9), local(2025, 6, 6, 13), max_units=8, now=NOW
        )
        await slot_store.reserve_units(slot.id, 5)

        detected = await alert_monitor.detect(NOW)
        low = [a for a in detected if a.alert_type == "LOW_CAPACITY"]

        assert len(low) == 1
        assert low[0].severity == "INFO"
        assert low[0].count == 1
        assert low[0].alert_date == date(2025, 6, 6)

    async def test_run_deduplicates(self, alert_monitor, session_factory):
        """One alert per (type, severity) per 24 hours; re-running the same day adds nothing"""
        first = await alert_monitor.run(now=NOW)

        assert first["alerts_created"] == 2
        assert {(a["type"], a["severity"]) for a in first["alerts"]} == {
            ("NO_CAPACITY", "CRITICAL"),
            ("NO_CAPACITY", "WARNING"),
        }
        assert first["timestamp"] == NOW.isoformat()

        second = await alert_monitor.run(now=NOW + timedelta(hours=1))
        assert second["alerts_created"] == 0
        assert second["alerts"] == []
        assert len(await self.stored_alerts(session_factory)) == 2

    async def test_dedup_window_expires(self, alert_monitor, session_factory):
        await alert_monitor.run(now=NOW)

        later = await alert_monitor.run(now=NOW + timedelta(hours=25))

        assert later["alerts_created"] == 2
        assert len(await self.stored_alerts(session_factory)) == 4

    async def test_resolved_alert_no_longer_suppresses(self, alert_monitor):
        first = await alert_monitor.run(now=NOW)
        critical = next(a for a in first["alerts"] if a["severity"] == "CRITICAL")

        resolved = await alert_monitor.resolve(uuid.UUID(critical["id"]), actor_id="admin-ops-1", now=NOW)
        assert resolved.resolved is True
        assert resolved.resolved_by == "admin-ops-1"

        again = await alert_monitor.run(now=NOW + timedelta(hours=1))
        assert again["alerts_created"] == 1
        assert again["alerts"][0]["severity"] == "CRITICAL"

    async def test_list_alerts(self, alert_monitor):
        await alert_monitor.run(now=NOW)
        first = (await alert_monitor.list_alerts())[0]
        await alert_monitor.resolve(first.id)

        assert len(await alert_monitor.list_alerts()) == 1
        assert len(await alert_monitor.list_alerts(include_resolved=True)) == 2

    async def test_resolve_missing(self, alert_monitor):
        with pytest.raises(NotFoundError):
            await alert_monitor.resolve(uuid.uuid4())

    async def test_failed_insert_does_not_stop_scan(self, alert_monitor, monkeypatch, caplog):
        """An alert that cannot be stored is logged; the remaining alerts are still recorded"""
        detected = await alert_monitor.detect(NOW)
        # alert_type is NOT NULL, so this row fails on commit
        broken = DetectedAlert(
            alert_type=None,
            severity="CRITICAL",
            alert_date=date(2025, 6, 4),
            service_type="LAUNDRY",
        )

        async def detect_with_broken_first(now):
            return [broken] + detected

        monkeypatch.setattr(alert_monitor, "detect", detect_with_broken_first)

        with caplog.at_level(logging.ERROR):
            summary = await alert_monitor.run(now=NOW)

        assert summary["alerts_created"] == 2
        assert {a["severity"] for a in summary["alerts"]} == {"CRITICAL", "WARNING"}
        assert "Failed to record" in caplog.text
