import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from marketsync.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_RETRY_DELAY = timedelta(minutes=30)


def calculate_next_run_time(hour: int, minute: int, now: datetime) -> datetime:
    """
    Next occurrence of hour:minute strictly after now.

    A target equal to now counts as already passed, so the result is never a
    zero-delay fire.
    """
    next_run = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return next_run


def validate_time_of_day(hour, minute):
    """
    Coerce and validate a daily fire time.

    Returns:
        (hour, minute) as ints

    Raises:
        ValueError: If either value is not an integer in range
    """
    try:
        hour = int(hour)
    except (TypeError, ValueError):
        raise ValueError("Hour must be between 0 and 23")
    try:
        minute = int(minute)
    except (TypeError, ValueError):
        raise ValueError("Minute must be between 0 and 59")

    if not 0 <= hour <= 23:
        raise ValueError("Hour must be between 0 and 23")
    if not 0 <= minute <= 59:
        raise ValueError("Minute must be between 0 and 59")
    return hour, minute


def build_background_scheduler() -> BackgroundScheduler:
    executors = {"default": ThreadPoolExecutor(3)}
    return BackgroundScheduler(executors=executors)


@dataclass
class ScheduleStatus:
    """Snapshot of a DailyJobScheduler's pending timer."""
    is_scheduled: bool
    next_run_at: Optional[datetime] = None
    time_until_next_run: Optional[timedelta] = None

    def to_dict(self) -> dict:
        remaining = self.time_until_next_run
        return {
            "is_scheduled": self.is_scheduled,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
            "time_until_next_run_ms": int(remaining.total_seconds() * 1000) if remaining is not None else None,
            "time_until_next_run_seconds": int(remaining.total_seconds()) if remaining is not None else None,
        }


class DailyJobScheduler:
    """
    Runs a named job once per day at a fixed local time.

    Owns exactly one pending timer (an APScheduler date-trigger job whose id is
    the scheduler name). After a successful fire the next day is armed; after a
    failed fire a one-shot retry timer is armed which re-runs schedule() when
    it expires. Only cancel() stops recurrence.
    """

    def __init__(
        self,
        name: str,
        job_func: Callable[[], Any],
        scheduler: Optional[BackgroundScheduler] = None,
        retry_delay: timedelta = DEFAULT_RETRY_DELAY,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.name = name
        self.job_func = job_func
        self.scheduler = scheduler or build_background_scheduler()
        self.retry_delay = retry_delay
        self.clock = clock

        self._lock = threading.RLock()
        self._hour: Optional[int] = None
        self._minute: Optional[int] = None
        self._next_run_at: Optional[datetime] = None
        self._timer_armed = False

    @property
    def job_id(self) -> str:
        return self.name

    @property
    def hour(self) -> Optional[int]:
        return self._hour

    @property
    def minute(self) -> Optional[int]:
        return self._minute

    # -------------------------
    # Lifecycle
    # -------------------------
    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Background scheduler started", job=self.name)

    def shutdown(self, wait: bool = False):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

    # -------------------------
    # Timer management
    # -------------------------
    def schedule(self, hour, minute) -> datetime:
        """
        Arm the daily timer for hour:minute, replacing any pending timer.

        Returns:
            The computed next run time

        Raises:
            ValueError: If hour or minute is out of range
        """
        hour, minute = validate_time_of_day(hour, minute)

        with self._lock:
            self._clear_timer()
            next_run = calculate_next_run_time(hour, minute, self.clock())
            self._arm(next_run, self._fire)
            self._hour = hour
            self._minute = minute

        logger.info(f"Scheduled {self.name} for {next_run.isoformat()}", job=self.name, next_run_at=next_run.isoformat())
        return next_run

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def get_status(self) -> ScheduleStatus:
        """Report the pending timer. Nothing is armed while the underlying scheduler is stopped."""
        with self._lock:
            if not self.running or not self._timer_armed or self._next_run_at is None:
                return ScheduleStatus(is_scheduled=False)
            return ScheduleStatus(
                is_scheduled=True,
                next_run_at=self._next_run_at,
                time_until_next_run=self._next_run_at - self.clock(),
            )

    def cancel(self) -> bool:
        """Clear the pending timer. Returns False when nothing was scheduled."""
        with self._lock:
            was_pending = self._clear_timer()
            # Also stops an in-flight fire from re-arming itself
            self._hour = None
            self._minute = None
        if was_pending:
            logger.info(f"Cancelled scheduled {self.name}", job=self.name)
        return was_pending

    def run_now(self, *args, **kwargs):
        """Run the job body immediately. Errors propagate; the pending timer is left alone."""
        logger.info(f"Running {self.name} immediately", job=self.name)
        return self.job_func(*args, **kwargs)

    def _arm(self, run_at: datetime, func: Callable[[], None]):
        self._remove_job()
        self.scheduler.add_job(
            func=func,
            trigger="date",
            run_date=run_at,
            id=self.job_id,
            name=self.name,
            replace_existing=True,
            misfire_grace_time=None,
        )
        self._next_run_at = run_at
        self._timer_armed = True

    def _remove_job(self):
        try:
            self.scheduler.remove_job(self.job_id)
        except JobLookupError:
            # Date-trigger jobs are dropped by APScheduler once they fire
            pass

    def _clear_timer(self) -> bool:
        was_pending = self._timer_armed
        self._remove_job()
        self._timer_armed = False
        self._next_run_at = None
        return was_pending

    # -------------------------
    # Timer callbacks
    # -------------------------
    def _fire(self):
        with self._lock:
            # The date trigger has been consumed; nothing is pending while the job runs
            self._timer_armed = False
            self._next_run_at = None
            hour, minute = self._hour, self._minute

        logger.info(f"Starting scheduled {self.name}", job=self.name)
        try:
            self.job_func()
        except Exception as exc:
            logger.error(f"Error in scheduled {self.name}", job=self.name, error=str(exc), exc_info=True)
            self._arm_retry()
            return

        logger.info(f"Scheduled {self.name} completed successfully", job=self.name)
        with self._lock:
            # A cancel() or schedule() issued while the job ran wins over the automatic re-arm
            if self._timer_armed or self._hour is None:
                return
            self.schedule(hour, minute)

    def _arm_retry(self):
        with self._lock:
            if self._timer_armed or self._hour is None:
                return
            retry_at = self.clock() + self.retry_delay
            self._arm(retry_at, self._retry)
        logger.warning(
            f"Will retry {self.name} at {retry_at.isoformat()}",
            job=self.name,
            retry_in_seconds=self.retry_delay.total_seconds(),
        )

    def _retry(self):
        with self._lock:
            self._timer_armed = False
            self._next_run_at = None
            hour, minute = self._hour, self._minute
            if hour is None:
                return
            self.schedule(hour, minute)
