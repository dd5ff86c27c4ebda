"""
Sweep Scheduler
Runs the periodic sweep and the daily report on a background thread
"""
import threading

import schedule

from shared.logger import setup_logging
from .service import SweepService

logger = setup_logging(__name__)


class SweepScheduler:
    def __init__(self, service: SweepService, interval_minutes: int = 5,
                 daily_report_at: str = "00:00", poll_seconds: float = 1.0):
        self.service = service
        self.interval_minutes = interval_minutes
        self.daily_report_at = daily_report_at
        self.poll_seconds = poll_seconds
        self.scheduler = schedule.Scheduler()
        self.running = False
        self.scheduler_thread = None
        self._wakeup = threading.Event()

    def start_scheduler(self):
        if self.running:
            logger.warning("Scheduler is already running")
            return

        logger.info(f"🚀 Starting sweep scheduler (every {self.interval_minutes} minutes)")
        self.scheduler.every(self.interval_minutes).minutes.do(self.run_sweep_job)
        self.scheduler.every().day.at(self.daily_report_at).do(self.daily_report_job)

        self.running = True
        self._wakeup.clear()
        self.scheduler_thread = threading.Thread(target=self._run_scheduler, name="sweep-scheduler", daemon=True)
        self.scheduler_thread.start()
        logger.info("✅ Sweep scheduler started")

    def stop_scheduler(self, timeout: float = 30):
        if not self.running:
            return

        logger.info("🛑 Stopping sweep scheduler")
        self.running = False
        self.service.engine.shutdown()
        self._wakeup.set()
        if self.scheduler_thread:
            self.scheduler_thread.join(timeout=timeout)
        self.scheduler.clear()
        logger.info("✅ Sweep scheduler stopped")

    def _run_scheduler(self):
        while self.running:
            try:
                self.scheduler.run_pending()
            except Exception as e:
                logger.error(f"Error in scheduler loop: {e}")
            self._wakeup.wait(self.poll_seconds)

    def run_sweep_job(self):
        try:
            logger.info("⏰ Scheduled sweep job starting")
            result = self.service.run_sweep()
            if result is None:
                logger.info("⏰ Scheduled sweep skipped")
                return
            logger.info(
                f"⏰ Scheduled sweep completed: {result.transfers} transfers, "
                f"{result.total_swept} swept, {result.errors} errors"
            )
        except Exception as e:
            logger.error(f"Error in scheduled sweep job: {e}")

    def daily_report_job(self):
        try:
            self.service.send_daily_report()
        except Exception as e:
            logger.error(f"Error generating daily report: {e}")
