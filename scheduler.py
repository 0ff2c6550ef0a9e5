import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from database import SessionLocal
from services import ReconciliationService, user_ids_with_data


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)


def reconcile_all(session_factory=SessionLocal) -> int:
    """Recompute stored aggregates for every user; returns users reconciled."""
    with session_factory() as session:
        user_ids = user_ids_with_data(session)
    reconciled = 0
    for user_id in user_ids:
        session = session_factory()
        try:
            counts = ReconciliationService(session, user_id).run()
            reconciled += 1
            logger.info(
                f"reconcile_user: user_id={user_id} accounts={counts['accounts']} "
                f"budget_categories={counts['budget_categories']}"
            )
        except Exception:
            session.rollback()
            logger.exception(f"reconcile_user_failed: user_id={user_id}")
        finally:
            session.close()
    return reconciled


class SchedulerManager:
    def __init__(self) -> None:
        settings = get_settings()
        self.reconcile_hour = settings.reconcile_hour
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> None:
        logger.info(f"scheduler_run: source={source}")
        count = reconcile_all()
        logger.info(f"scheduler_run: source={source} users_reconciled={count}")

    def start(self) -> None:
        self._run_job("startup")

        trigger = CronTrigger(hour=self.reconcile_hour, minute=15)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=[f"daily_{self.reconcile_hour:02d}:15"],
            id="reconcile_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        trigger = IntervalTrigger(hours=1)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["hourly_safety_net"],
            id="reconcile_hourly_safety",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info(
            f"Scheduler started with daily {self.reconcile_hour:02d}:15 and hourly safety net"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
