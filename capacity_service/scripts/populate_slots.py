"""
Slot Population Script

Manually run the scheduled capacity jobs once, for backfills and demos.
Usage: python -m capacity_service.scripts.populate_slots [--horizon-days N] [--alerts]
"""
import asyncio
import argparse
import logging
import sys

from capacity_service.services.alert_monitor import get_alert_monitor
from capacity_service.services.slot_generator import get_slot_generator


async def run_population(horizon_days: int = None) -> int:
    """Populate slots from templates and print the summary. Returns the error count."""
    print("\n=== Populating capacity slots from templates ===")

    result = await get_slot_generator().populate_from_templates(horizon_days=horizon_days)

    print(f"\n✅ Slot population complete!")
    print(f"  Created: {result.created}")
    print(f"  Skipped (already present): {result.skipped}")
    print(f"  Errors: {len(result.errors)}")

    for error in result.errors[:10]:
        print(f"    template {error['template_id']} on {error['date']}: {error['error']}")

    return len(result.errors)


async def run_alert_scan():
    """Run the capacity alert scan and print newly created alerts"""
    print("\n=== Scanning capacity alerts ===")

    summary = await get_alert_monitor().run()

    print(f"\n  Alerts created: {summary['alerts_created']}")
    for alert in summary['alerts']:
        print(f"    [{alert['severity']}] {alert['message']}")


async def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(description="Populate capacity slots from weekly templates")
    parser.add_argument(
        "--horizon-days",
        "-d",
        type=int,
        default=None,
        help="Days ahead to populate (default: POPULATION_HORIZON_DAYS)"
    )
    parser.add_argument(
        "--alerts",
        "-a",
        action="store_true",
        help="Also run the capacity alert scan"
    )

    args = parser.parse_args()

    if args.horizon_days is not None and args.horizon_days < 0:
        print("ERROR: --horizon-days must not be negative")
        parser.print_help()
        sys.exit(1)

    error_count = await run_population(args.horizon_days)

    if args.alerts:
        await run_alert_scan()

    if error_count:
        sys.exit(2)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    asyncio.run(main())
