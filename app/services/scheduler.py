"""
Scheduled maintenance jobs.
"""

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from app.config import settings
from app.database import SessionLocal
from app.services.attendance_point_service import AttendancePointService
from app.utils.datetime_utils import get_today

logger = logging.getLogger(__name__)


def expire_points_job(session_factory=None) -> int:
    """每日到期點數處理（SRO 與 GBRO）"""
    db = (session_factory or SessionLocal)()
    try:
        count = AttendancePointService(db).expire_due_points(get_today())
        logger.info(f"Point expiry job finished: {count} points expired")
        return count
    except Exception as e:
        logger.error(f"Point expiry job failed: {str(e)}")
        return 0
    finally:
        db.close()


class MaintenanceScheduler:
    """維護排程"""

    def __init__(self):
        self.scheduler = BackgroundScheduler(timezone=settings.TIMEZONE)
        self._setup_jobs()

    def _setup_jobs(self):
        config = settings.get_scheduler_config()

        if config["point_expiry"]["enabled"]:
            self.scheduler.add_job(
                func=expire_points_job,
                trigger=CronTrigger(
                    hour=config["point_expiry"]["hour"],
                    minute=config["point_expiry"]["minute"],
                    timezone=settings.TIMEZONE,
                ),
                id="point_expiry",
                name="Expire attendance points",
                replace_existing=True,
            )

    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Maintenance scheduler started")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Maintenance scheduler stopped")


_scheduler: Optional[MaintenanceScheduler] = None


def get_scheduler() -> MaintenanceScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = MaintenanceScheduler()
    return _scheduler
