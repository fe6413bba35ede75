"""
Retention cleanup jobs

Hard-deletes soft-deleted transactions past the retention window. Their
balance effect was reversed at soft-delete time, so nothing else changes.
Every run is recorded in cleanup_logs. Safe to re-run.
"""
import logging
import time
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from ledger.application.unit_of_work import atomic
from ledger.config import get_settings
from ledger.infrastructure.db.models import CleanupLog, Transaction, TransactionEvent
from ledger.infrastructure.db.session import begin_snapshot

logger = logging.getLogger(__name__)

JOB_PURGE_DELETED_TRANSACTIONS = "purge_deleted_transactions"
JOB_PRUNE_CLEANUP_LOGS = "prune_cleanup_logs"

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


class PurgeDeletedTransactionsUseCase:
    """Use case: hard-delete soft-deleted transactions older than N days"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, older_than_days: int | None = None, now: datetime | None = None) -> int:
        """
        Args:
            older_than_days: retention window (default: RETENTION_DAYS)
            now: reference time (default: current UTC time)

        Returns:
            Number of purged transactions
        """
        if older_than_days is None:
            older_than_days = get_settings().RETENTION_DAYS
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=older_than_days)

        begin_snapshot(self.db)
        with atomic(self.db):
            ids = [
                tx_id for (tx_id,) in self.db.query(Transaction.id).filter(
                    Transaction.is_deleted.is_(True),
                    Transaction.deleted_at < cutoff,
                ).with_for_update().all()
            ]
            if ids:
                self.db.query(TransactionEvent).filter(
                    TransactionEvent.transaction_id.in_(ids)
                ).delete(synchronize_session=False)
                self.db.query(Transaction).filter(
                    Transaction.id.in_(ids)
                ).delete(synchronize_session=False)

        logger.info("Purged %d soft-deleted transactions older than %d days", len(ids), older_than_days)
        return len(ids)


class PruneCleanupLogsUseCase:
    """Use case: drop cleanup log rows older than CLEANUP_LOG_RETENTION_DAYS"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, older_than_days: int | None = None, now: datetime | None = None) -> int:
        if older_than_days is None:
            older_than_days = get_settings().CLEANUP_LOG_RETENTION_DAYS
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=older_than_days)

        with atomic(self.db):
            count = self.db.query(CleanupLog).filter(
                CleanupLog.executed_at < cutoff
            ).delete(synchronize_session=False)
        return count


CLEANUP_JOBS = (
    (JOB_PURGE_DELETED_TRANSACTIONS, PurgeDeletedTransactionsUseCase),
    (JOB_PRUNE_CLEANUP_LOGS, PruneCleanupLogsUseCase),
)


def run_cleanup_jobs(db: Session, now: datetime | None = None) -> list[dict]:
    """
    Run every cleanup job and log each run to cleanup_logs.

    A failing job is logged and recorded; the remaining jobs still run.

    Returns:
        [{"job_name", "records_cleaned", "execution_time_ms", "status"}, ...]
    """
    results = []
    for job_name, use_case_cls in CLEANUP_JOBS:
        started = time.monotonic()
        details = None
        try:
            cleaned = use_case_cls(db).execute(now=now)
            status = STATUS_SUCCESS
        except Exception as exc:
            logger.exception("Cleanup job %s failed", job_name)
            cleaned = 0
            status = STATUS_FAILED
            details = {"error": str(exc)}

        elapsed_ms = int((time.monotonic() - started) * 1000)
        with atomic(db):
            db.add(CleanupLog(
                job_name=job_name,
                records_cleaned=cleaned,
                execution_time_ms=elapsed_ms,
                status=status,
                details=details,
                executed_at=now or datetime.now(timezone.utc),
            ))

        results.append({
            "job_name": job_name,
            "records_cleaned": cleaned,
            "execution_time_ms": elapsed_ms,
            "status": status,
        })
    return results
