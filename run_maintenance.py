"""
Run ledger maintenance by hand

    python run_maintenance.py            # validate every budget
    python run_maintenance.py --refresh  # validate, then rebuild drifted caches
    python run_maintenance.py --cleanup  # purge expired soft-deleted transactions
"""
import sys
import traceback

from ledger.application.cleanup import run_cleanup_jobs
from ledger.application.consistency import refresh_budget_cache
from ledger.application.scheduler import run_consistency_sweep
from ledger.infrastructure.db.session import get_db

db = next(get_db())

try:
    print("Validating budgets...")
    drifted = run_consistency_sweep(db)
    if not drifted:
        print("✓ All budgets consistent")
    for budget_id, failed in drifted.items():
        print(f"✗ Budget {budget_id}: {', '.join(failed)}")

    if "--refresh" in sys.argv:
        for budget_id in drifted:
            fixed = refresh_budget_cache(db, budget_id)
            print(f"✓ Budget {budget_id} refreshed: {fixed}")

    if "--cleanup" in sys.argv:
        for result in run_cleanup_jobs(db):
            print(f"  - {result['job_name']}: {result['status']}, {result['records_cleaned']} rows")

except Exception as e:
    print(f"✗ ERROR: {e}")
    traceback.print_exc()

finally:
    db.close()
