"""
定时任务调度器

运行方式（在 backend/ 目录下）：
    python -m creator_ledger.worker.scheduler
"""

import logging
from datetime import timezone

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from creator_ledger.worker.tasks import audit_stale_payouts

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_scheduler() -> BlockingScheduler:
    scheduler = BlockingScheduler(timezone=timezone.utc)
    scheduler.add_job(
        audit_stale_payouts,
        CronTrigger(minute=5),
        id="stale_payout_audit",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler


def main() -> None:
    scheduler = build_scheduler()
    logger.info("Scheduler started. Stale payout audit runs at minute 5 of every hour (UTC).")
    scheduler.start()


if __name__ == "__main__":
    main()
