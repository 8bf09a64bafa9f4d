#!/usr/bin/env python3
"""
Send appointment reminders for appointments starting soon.

Intended to run hourly from cron or a scheduler.

Usage:
    python scripts/send_reminders.py --hours 24
    python scripts/send_reminders.py --hours 2 --dry-run
"""

import argparse
import asyncio
import sys

import structlog

from app.database import AsyncSessionLocal, engine
from app.dependencies import get_dispatcher
from app.middleware.logging import configure_logging
from app.repositories.appointment_repository import SqlAppointmentRepository
from app.repositories.contact_repository import SqlContactDirectory
from app.services.appointment_service import AppointmentService

logger = structlog.get_logger()


async def send_reminders(hours_before: int, dry_run: bool = False) -> int:
    """
    Find appointments due for a reminder and send them.

    Returns:
        Number of failed reminders
    """
    async with AsyncSessionLocal() as session:
        service = AppointmentService(
            SqlAppointmentRepository(session),
            SqlContactDirectory(session),
            get_dispatcher(),
        )

        items = await service.find_due_reminders(hours_before)
        logger.info("reminders_due", hours_before=hours_before, count=len(items))

        if dry_run:
            for item in items:
                print(f"  would remind {item.appointment_id}")
            return 0

        if not items:
            print("No appointments due for a reminder.")
            return 0

        result = await service.send_reminders(items)

    print(f"✓ Sent: {result.successful}  ✗ Failed: {result.failed}")
    for error in result.errors:
        print(f"  {error}", file=sys.stderr)
    return result.failed


async def run(hours_before: int, dry_run: bool) -> int:
    """Run the job and release database connections."""
    try:
        return await send_reminders(hours_before, dry_run)
    finally:
        await engine.dispose()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Send appointment reminder e-mails")
    parser.add_argument(
        "--hours",
        type=int,
        choices=[24, 2],
        default=24,
        help="Lead time of the reminder (default: 24)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the appointments that would be reminded without sending",
    )
    args = parser.parse_args()

    configure_logging()
    failed = asyncio.run(run(args.hours, args.dry_run))
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
