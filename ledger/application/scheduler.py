"""
Background scheduler - runs periodic jobs inside the FastAPI process.

Jobs:
  - Retention cleanup (daily, CLEANUP_HOUR_UTC)
  - Consistency sweep (daily, CONSISTENCY_SWEEP_HOUR_UTC): validates every
    budget and logs drift; never corrects it
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from ledger.config import get_settings

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(daemon=True)


def _run_cleanup():
    from ledger.infrastructure.db.session import get_session_factory
    from ledger.application.cleanup import run_cleanup_jobs

    Session = get_session_factory()
    db = Session()
    try:
        results = run_cleanup_jobs(db)
        logger.info("Cleanup finished: %s", results)
    except Exception:
        logger.exception("Cleanup job failed")
    finally:
        db.close()


def run_consistency_sweep(db) -> dict[int, list[str]]:
    """
    Validate every budget.

    Returns:
        {budget_id: [failed check names]} for drifted budgets only
    """
    from ledger.application.consistency import ConsistencyAuditor
    from ledger.infrastructure.db.models import Budget

    drifted = {}
    auditor = ConsistencyAuditor(db)
    for (budget_id,) in db.query(Budget.id).order_by(Budget.id).all():
        failed = [r["check_name"] for r in auditor.validate(budget_id) if not r["is_valid"]]
        if failed:
            drifted[budget_id] = failed
    return drifted


def _run_consistency_sweep():
    from ledger.infrastructure.db.session import get_session_factory

    Session = get_session_factory()
    db = Session()
    try:
        drifted = run_consistency_sweep(db)
        if drifted:
            logger.warning("Consistency sweep found drift in %d budgets: %s", len(drifted), drifted)
        else:
            logger.info("Consistency sweep: all budgets consistent")
    except Exception:
        logger.exception("Consistency sweep failed")
    finally:
        db.close()


def start_scheduler():
    """Start the background scheduler with all periodic jobs."""
    settings = get_settings()

    scheduler.add_job(
        _run_cleanup,
        CronTrigger(hour=settings.CLEANUP_HOUR_UTC, minute=0),
        id="retention_cleanup",
        replace_existing=True,
    )

    scheduler.add_job(
        _run_consistency_sweep,
        CronTrigger(hour=settings.CONSISTENCY_SWEEP_HOUR_UTC, minute=0),
        id="consistency_sweep",
        replace_existing=True,
    )

    scheduler.start()
    logger.info(
        "Scheduler started: retention_cleanup (%02d:00 UTC), consistency_sweep (%02d:00 UTC)",
        settings.CLEANUP_HOUR_UTC, settings.CONSISTENCY_SWEEP_HOUR_UTC,
    )


def shutdown_scheduler():
    """Gracefully stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
