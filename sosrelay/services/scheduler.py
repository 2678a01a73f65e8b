"""Background job scheduler.

APScheduler-based in-process trigger for escalation sweeps. Sweeps are
normally triggered from outside (POST /api/escalations/run); this job is
for deployments without an external scheduler and is off by default.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from sosrelay.config import settings
from sosrelay.core.exceptions import StoreUnavailable
from sosrelay.logging_config import get_logger
from sosrelay.services.escalation_engine import run_sweep
from sosrelay.services.push_dispatcher import get_dispatcher
from sosrelay.services.store_factory import get_request_store

logger = get_logger(__name__)

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


async def escalate_pending_requests() -> None:
    """Run one escalation sweep with the configured timeout.

    Errors are logged rather than raised so the job keeps its schedule.
    """
    try:
        result = await run_sweep(
            get_request_store(),
            get_dispatcher(),
            timeout=settings.escalation_timeout_seconds,
        )
        if result.processed:
            logger.info(
                "Scheduled escalation sweep advanced requests",
                processed=result.processed,
            )
    except StoreUnavailable as e:
        logger.warning("Scheduled escalation sweep skipped, store unavailable", error=str(e))
    except Exception as e:
        logger.error("Unexpected error in scheduled escalation sweep", error=str(e))


def start_scheduler() -> AsyncIOScheduler | None:
    """Start the background job scheduler if any job is enabled.

    Returns:
        The started scheduler instance, or None if nothing is scheduled
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already running")
        return scheduler

    if not settings.escalation_check_enabled:
        logger.info("In-process escalation sweep disabled")
        return None

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        escalate_pending_requests,
        trigger=IntervalTrigger(minutes=settings.escalation_check_interval_minutes),
        id="escalation_sweep",
        name="Emergency Escalation Sweep",
        replace_existing=True,
        max_instances=1,
    )
    logger.info(
        "Scheduled escalation sweep job",
        interval_minutes=settings.escalation_check_interval_minutes,
    )

    scheduler.start()
    logger.info("Background scheduler started")

    return scheduler


def stop_scheduler() -> None:
    """Stop the background job scheduler."""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Background scheduler stopped")


def get_scheduler() -> AsyncIOScheduler | None:
    """Get the current scheduler instance, or None if not started."""
    return scheduler
