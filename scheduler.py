import logging
import threading

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from alerts import AlertGenerator
from config import get_settings
from store import Store


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, store: Store, lock: threading.Lock) -> None:
        settings = get_settings()
        self.store = store
        self.lock = lock
        self.interval_minutes = settings.alert_interval_minutes
        self.goal_reminder_days = settings.goal_reminder_days
        self.bill_due_days = settings.bill_due_days
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> int:
        logger.info(f"alert_scan: source={source}")
        with self.lock:
            created = AlertGenerator(
                self.store,
                goal_reminder_days=self.goal_reminder_days,
                bill_due_days=self.bill_due_days,
            ).run()
        logger.info(f"alert_scan: source={source} alerts_created={len(created)}")
        return len(created)

    def start(self) -> None:
        self._run_job("startup")

        trigger = IntervalTrigger(minutes=self.interval_minutes)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["interval"],
            id="alert_scan",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info(f"Scheduler started with alert scan every {self.interval_minutes} minutes")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
