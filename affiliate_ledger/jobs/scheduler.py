"""
Background jobs: hold-period commission approval and periodic payout batches.

Each job opens its own database session and never lets an exception escape
into the scheduler thread.
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from affiliate_ledger.core.clock import utcnow
from affiliate_ledger.core.commission_ledger import approve_matured_commissions
from affiliate_ledger.core.config import (
    AUTO_APPROVE_COMMISSIONS,
    COMMISSION_APPROVAL_CRON,
    COMMISSION_HOLD_DAYS,
    PAYOUT_BATCH_CRON,
)
from affiliate_ledger.core.payout_batcher import run_payout_batches_for_all_stores
from affiliate_ledger.db.session import SessionLocal

logger = logging.getLogger(__name__)

job_defaults = {
    'coalesce': True,  # Combine missed runs into one
    'max_instances': 1,
    'misfire_grace_time': 300,
}

scheduler = BackgroundScheduler(job_defaults=job_defaults, timezone='UTC')


def approve_matured_commissions_job():
    db = SessionLocal()
    try:
        approved = approve_matured_commissions(db, now=utcnow(), hold_days=COMMISSION_HOLD_DAYS)
        logger.info(f"Job 'approve_matured_commissions' completed: {len(approved)} sale(s) approved")
    except Exception as e:
        db.rollback()
        logger.error(f"Job 'approve_matured_commissions' failed: {e}", exc_info=True)
    finally:
        db.close()


def run_payout_batches_job():
    db = SessionLocal()
    try:
        payouts = run_payout_batches_for_all_stores(db, now=utcnow(), submit=True)
        logger.info(f"Job 'run_payout_batches' completed: {len(payouts)} payout(s) created")
    except Exception as e:
        db.rollback()
        logger.error(f"Job 'run_payout_batches' failed: {e}", exc_info=True)
    finally:
        db.close()


def register_jobs():
    if AUTO_APPROVE_COMMISSIONS:
        scheduler.add_job(
            approve_matured_commissions_job,
            CronTrigger.from_crontab(COMMISSION_APPROVAL_CRON, timezone='UTC'),
            id='approve_matured_commissions',
            name='Approve commissions past the hold period',
            replace_existing=True,
        )

    scheduler.add_job(
        run_payout_batches_job,
        CronTrigger.from_crontab(PAYOUT_BATCH_CRON, timezone='UTC'),
        id='run_payout_batches',
        name='Affiliate payout batches',
        replace_existing=True,
    )


def start_scheduler():
    """Start the background job scheduler."""
    if not scheduler.running:
        register_jobs()
        scheduler.start()
        logger.info("Background job scheduler started")
        for job in scheduler.get_jobs():
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")
