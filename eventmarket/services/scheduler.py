"""
APScheduler service for seat-hold sweeps and ticket delivery retries.

Uses APScheduler 3.x with SQLAlchemyJobStore for persistence.
Jobs survive app restarts because they are stored in the database.
"""

import logging
from datetime import datetime, timedelta, timezone
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from eventmarket.database import SessionLocal
from eventmarket.config import get_settings

logger = logging.getLogger(__name__)

HOLD_SWEEP_JOB_ID = "release_expired_seat_holds"

# Module-level scheduler instance (singleton)
_scheduler = None


def get_scheduler():
    """Return the global scheduler instance."""
    global _scheduler
    if _scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")
    return _scheduler


def init_scheduler():
    """
    Initialize and start the APScheduler.
    Called once during FastAPI startup.
    """
    global _scheduler
    if _scheduler is not None:
        return

    settings = get_settings()
    db_url = settings.database_url
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)

    jobstores = {
        "default": SQLAlchemyJobStore(url=db_url)
    }

    _scheduler = BackgroundScheduler(
        jobstores=jobstores,
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 3600,
        },
        timezone="UTC",
    )
    _scheduler.start()
    logger.info("APScheduler started with SQLAlchemy job store")


def shutdown_scheduler():
    """Gracefully shut down the scheduler."""
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("APScheduler shut down")


def _sweep_expired_holds():
    """
    Job body for the periodic hold sweep.
    Creates its own DB session (jobs run in background threads).
    """
    from eventmarket.services.reservations import release_expired_holds

    db = SessionLocal()
    try:
        released = release_expired_holds(db)
        if released:
            logger.info(f"Released {released} expired seat hold(s)")
    except Exception as e:
        logger.error(f"Seat hold sweep failed: {e}")
    finally:
        db.close()


def schedule_hold_sweep():
    """Register (or replace) the recurring expired-hold sweep."""
    minutes = get_settings().hold_sweep_minutes
    get_scheduler().add_job(
        _sweep_expired_holds,
        trigger=IntervalTrigger(minutes=minutes),
        id=HOLD_SWEEP_JOB_ID,
        replace_existing=True,
        name=f"Release expired seat holds (every {minutes} min)",
    )
    return {"job_id": HOLD_SWEEP_JOB_ID, "interval_minutes": minutes}


def bootstrap_pending_deliveries():
    """
    Re-queue ticket deliveries left pending by a restart.
    Called once after scheduler init.
    """
    from eventmarket.models import TicketDelivery, DeliveryStatus
    from eventmarket.services.delivery import deliver

    db = SessionLocal()
    try:
        pending = (
            db.query(TicketDelivery)
            .filter(TicketDelivery.status == DeliveryStatus.PENDING)
            .all()
        )
        run_at = datetime.now(timezone.utc) + timedelta(seconds=5)
        for delivery in pending:
            get_scheduler().add_job(
                deliver,
                trigger=DateTrigger(run_date=run_at),
                id=f"ticket_delivery_retry_{delivery.id}",
                replace_existing=True,
                args=[delivery.id],
            )
        logger.info(f"Re-queued {len(pending)} pending ticket deliveries")
    except Exception as e:
        logger.warning(f"Bootstrap deliveries failed: {e}")
    finally:
        db.close()
