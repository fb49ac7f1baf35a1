"""IDEMFLOW — Scheduler Jobs.

APScheduler interval job that logs a per-client ingestion summary.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.config import settings
from app.storage.dependencies import get_store
from app.analyzer.aggregation_engine import compute_client_totals
from app.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def ingestion_summary_job():
    """Log committed event counts and totals per client."""
    try:
        totals = compute_client_totals(get_store())
        events = sum(t.count for t in totals)
        logger.info(f"Ingestion summary: {events} events across {len(totals)} clients")
        for t in totals:
            logger.info(
                f"  {t.client_id}: count={t.count} total_amount={t.total_amount}",
                extra={"client_id": t.client_id},
            )
    except Exception as e:
        logger.error(f"Ingestion summary failed: {e}")


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.summary_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        ingestion_summary_job,
        "interval",
        minutes=settings.summary_interval_minutes,
        id="ingestion_summary",
        replace_existing=True,
        misfire_grace_time=300,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started. Ingestion summary every {settings.summary_interval_minutes} min"
    )


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
