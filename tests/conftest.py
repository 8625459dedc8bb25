"""
Shared fixtures

Every test gets a fresh in-memory SQLite database and services bound to it.
The fixed clock NOW is Wednesday 2025-06-04 10:00 in New York (14:00 UTC).
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENABLE_SCHEDULER", "false")

from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from capacity_service.config import Settings
from capacity_service.database import Base, engine_options
from capacity_service.models import CapacityTemplate, Partner
from capacity_service.services.alert_monitor import AlertMonitor
from capacity_service.services.metrics_calculator import MetricsCalculator
from capacity_service.services.slot_generator import SlotGenerator
from capacity_service.services.slot_store import SlotStore
from capacity_service.services.template_store import TemplateStore

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
NEW_YORK = ZoneInfo("America/New_York")
NOW = datetime(2025, 6, 4, 14, 0, tzinfo=timezone.utc)
ADMIN_TOKEN = "test-admin-token"
ADMIN_ACTOR = "admin-ops-1"
CRON_SECRET = "test-cron-secret"


def local(year: int, month: int, day: int, hour: int, minute: int = 0) -> datetime:
    """Business-local wall clock time as an aware datetime"""
    return datetime(year, month, day, hour, minute, tzinfo=NEW_YORK)


@pytest.fixture
def settings():
    return Settings(
        database_url=TEST_DATABASE_URL,
        admin_tokens={ADMIN_TOKEN: ADMIN_ACTOR},
        cron_secret=CRON_SECRET,
        enable_scheduler=False,
    )


@pytest.fixture
async def session_factory():
    """Fresh database with all tables"""
    engine = create_async_engine(TEST_DATABASE_URL, **engine_options(TEST_DATABASE_URL))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


async def add_partner(session_factory, **kwargs) -> Partner:
    values = {"name": "Test Partner", "service_type": "LAUNDRY", "active": True}
    values.update(kwargs)
    async with session_factory() as session:
        partner = Partner(**values)
        session.add(partner)
        await session.commit()
    return partner


async def add_template(session_factory, partner: Partner, **kwargs) -> CapacityTemplate:
    values = {
        "partner_id": partner.id,
        "service_type": partner.service_type,
        "day_of_week": 2,  # Tuesday
        "slot_start": time(9, 0),
        "slot_end": time(13, 0),
        "max_units": 8,
        "active": True,
    }
    values.update(kwargs)
    async with session_factory() as session:
        template = CapacityTemplate(**values)
        session.add(template)
        await session.commit()
    return template


@pytest.fixture
async def laundry_partner(session_factory):
    return await add_partner(session_factory, name="Fresh Fold Laundry", service_type="LAUNDRY", max_orders_per_slot=8)


@pytest.fixture
async def cleaning_partner(session_factory):
    return await add_partner(session_factory, name="Sparkle Home Cleaning", service_type="CLEANING", max_minutes_per_slot=240)


@pytest.fixture
async def inactive_partner(session_factory):
    return await add_partner(session_factory, name="Closed Laundromat", service_type="LAUNDRY", active=False)


@pytest.fixture
def slot_store(session_factory, settings):
    return SlotStore(session_factory, settings)


@pytest.fixture
def template_store(session_factory, settings):
    return TemplateStore(session_factory, settings)


@pytest.fixture
def slot_generator(session_factory, settings, slot_store, template_store):
    return SlotGenerator(session_factory, settings, slot_store=slot_store, template_store=template_store)


@pytest.fixture
def metrics_calculator(session_factory, settings):
    return MetricsCalculator(session_factory, settings)


@pytest.fixture
def alert_monitor(session_factory, settings, metrics_calculator):
    return AlertMonitor(session_factory, settings, metrics_calculator=metrics_calculator)
