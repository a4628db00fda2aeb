import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session, sessionmaker

from ..config import get_settings
from ..core.clock import station_timezone
from ..db.session import SessionLocal
from ..services import timeslot_service

logger = logging.getLogger(__name__)

MAINTENANCE_JOB_ID = "daily_timeslot_maintenance"


def run_timeslot_maintenance(
    session_factory: sessionmaker[Session] = SessionLocal,
) -> timeslot_service.MaintenanceResult | None:
    """Scheduled entry point; a failed run is logged and retried on the next tick."""

    try:
        with session_factory() as db:
            result = timeslot_service.run_daily_maintenance(db)
    except Exception:
        logger.exception("Daily time slot maintenance failed")
        return None
    logger.info(
        "Daily time slot maintenance completed",
        extra={
            "deleted": result.deleted,
            "created": result.created,
            "skipped": result.skipped,
        },
    )
    return result


def get_scheduler() -> AsyncIOScheduler:
    settings = get_settings()
    tz = station_timezone(settings.timezone)
    scheduler = AsyncIOScheduler(timezone=tz)
    scheduler.add_job(
        run_timeslot_maintenance,
        CronTrigger(
            hour=settings.maintenance_hour,
            minute=settings.maintenance_minute,
            timezone=tz,
        ),
        id=MAINTENANCE_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    return scheduler
