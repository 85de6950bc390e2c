"""Worker process for the scheduled leave jobs.

Runs an asyncio loop once a day:
- Jan 1: year-end carry-forward for the previous year
- 1st of the month: India monthly accrual
- daily: USA PTO allocation (idempotent, picks up new joiners),
  carry-forward and comp-off expiry, expiry reminders
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import TYPE_CHECKING

from leave_ledger.config import get_settings

if TYPE_CHECKING:
    from leave_ledger.engine import LeaveEngine

logger = logging.getLogger(__name__)


async def run_daily_jobs(engine: LeaveEngine, today: date) -> None:
    """Run every job due on ``today``. A failing job is logged and the rest still run."""
    if today.month == 1 and today.day == 1:
        try:
            await engine.run_year_end_carry_forward(today.year - 1, today.year)
        except Exception:
            logger.exception("Year-end carry-forward failed for %s", today)

    if today.day == 1:
        try:
            await engine.run_monthly_accrual(today.year, today.month)
        except Exception:
            logger.exception("Monthly accrual failed for %s", today)

    try:
        await engine.run_annual_pto_allocation(today.year)
    except Exception:
        logger.exception("Annual PTO allocation failed for %s", today)

    try:
        await engine.run_carry_forward_expiry(today)
    except Exception:
        logger.exception("Carry-forward expiry failed for %s", today)

    try:
        await engine.run_comp_off_expiry(today)
    except Exception:
        logger.exception("Comp-off expiry failed for %s", today)

    try:
        await engine.send_expiry_reminders(today)
    except Exception:
        logger.exception("Expiry reminders failed for %s", today)


async def run_job_loop() -> None:
    """Main worker loop."""
    from leave_ledger.db import get_engine, init_models
    from leave_ledger.main import build_default_engine

    settings = get_settings()
    if settings.auto_create_schema:
        await init_models(get_engine())
    engine = build_default_engine()

    logger.info("Leave worker started")
    while True:
        today = engine.ctx.today()
        logger.info("Running scheduled jobs for %s", today)
        await run_daily_jobs(engine, today)
        await asyncio.sleep(settings.worker_interval_seconds)


def main() -> None:
    """Entry point for the worker process."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(run_job_loop())


if __name__ == "__main__":
    main()
