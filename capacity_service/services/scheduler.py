"""
APScheduler Configuration

Manages the periodic capacity jobs: slot population from templates and the
capacity alert scan. Both run in the business timezone.
"""
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from capacity_service.config import get_settings
from capacity_service.services.alert_monitor import get_alert_monitor
from capacity_service.services.slot_generator import get_slot_generator

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()


async def populate_capacity_slots():
    """
    Daily job to materialise slots from active templates.

    Logs the created/skipped/error summary; per-template failures are reported
    by the generator and never abort the run.
    """
    logger.info("Starting daily slot population")

    try:
        result = await get_slot_generator().populate_from_templates()

        logger.info(
            f"Slot population finished: {result.created} created, "
            f"{result.skipped} skipped, {len(result.errors)} errors"
        )

        if result.errors:
            logger.warning(f"Slot population had {len(result.errors)} failed candidates")

    except Exception as e:
        logger.error(f"Failed to populate capacity slots: {e}", exc_info=True)


async def scan_capacity_alerts():
    """Hourly job to raise deduplicated capacity alerts for the next week."""
    logger.info("Starting hourly capacity alert scan")

    try:
        summary = await get_alert_monitor().run()
        logger.info(f"Capacity alert scan finished: {summary['alerts_created']} alerts created")

    except Exception as e:
        logger.error(f"Failed to scan capacity alerts: {e}", exc_info=True)


def configure_scheduler():
    """
    Configure APScheduler with all scheduled jobs.

    Jobs:
        - Slot population: Daily at 02:00
        - Capacity alert scan: Every hour at :05
    """
    tz = get_settings().tz

    # Daily slot population
    scheduler.add_job(
        populate_capacity_slots,
        trigger=CronTrigger(hour=2, minute=0, timezone=tz),
        id='slot_population',
        name='Populate Capacity Slots From Templates',
        replace_existing=True,
        coalesce=True,  # Combine missed runs into single execution
        max_instances=1  # Only one instance at a time
    )

    # Hourly capacity alert scan
    scheduler.add_job(
        scan_capacity_alerts,
        trigger=CronTrigger(hour='*', minute=5, timezone=tz),
        id='capacity_alert_scan',
        name='Scan Capacity Alerts',
        replace_existing=True,
        coalesce=True,
        max_instances=1
    )

    logger.info("Scheduler configured with slot population and capacity alert jobs")


def start_scheduler():
    """Start the APScheduler"""
    configure_scheduler()
    scheduler.start()
    logger.info("Scheduler started")


def stop_scheduler():
    """Stop the APScheduler"""
    scheduler.shutdown()
    logger.info("Scheduler stopped")
