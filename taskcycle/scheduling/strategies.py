from __future__ import annotations

import logging
import re

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from taskcycle.domain.enums import HealthStatus, StrategyName
from taskcycle.services.materializer import InstanceMaterializer

from .base import JobHandler, SchedulingStrategy
from .throttle import GenerationThrottle

logger = logging.getLogger(__name__)

SCHEDULER_TIMEZONE = "UTC"
TRIGGER_PATH = "/api/cron/generate-recurring-tasks"

_DAILY_CRON = re.compile(r"^(\d{1,2})\s+(\d{1,2})\s+\*\s+\*\s+\*$")


class OnAccessStrategy(SchedulingStrategy):
    """Generates a user's instances when that user shows up; no background job."""

    name = StrategyName.ON_ACCESS
    description = "Generate on user access - dependency-free fallback"

    def __init__(self, materializer: InstanceMaterializer, throttle: GenerationThrottle | None = None) -> None:
        super().__init__()
        self._materializer = materializer
        self._throttle = throttle or GenerationThrottle()

    def _start(self) -> None:
        logger.info("Recurring tasks will be generated when users access their tasks")

    def check_and_generate(self, user_id: str) -> bool:
        """Run generation for ``user_id`` unless it ran recently. Returns True if it ran."""
        try:
            if not self._throttle.is_due(user_id):
                return False
            self._materializer.ensure_user_tasks_generated(user_id)
            self._throttle.mark(user_id)
            return True
        except Exception:
            logger.warning("On-access generation failed user=%s", user_id, exc_info=True)
            return False


class TimerStrategy(SchedulingStrategy):
    """In-process APScheduler jobs; lost on restart, re-registered at startup."""

    name = StrategyName.TIMER
    description = "In-process timer - suited to long-running servers"

    def __init__(self, timezone: str = SCHEDULER_TIMEZONE) -> None:
        super().__init__()
        self._timezone = timezone
        self._scheduler: BackgroundScheduler | None = None

    @staticmethod
    def parse_schedule(schedule: str, timezone: str = SCHEDULER_TIMEZONE) -> BaseTrigger:
        """
        Only "daily at a fixed time" is understood:

        - ``"M H * * *"``: every day at H:M
        - ``"daily"``: every day at 01:00

        Anything else runs hourly.
        """
        value = (schedule or "").strip().lower()
        if value == "daily":
            return CronTrigger(hour=1, minute=0, timezone=timezone)

        match = _DAILY_CRON.match(value)
        if match:
            minute, hour = int(match.group(1)), int(match.group(2))
            if 0 <= minute <= 59 and 0 <= hour <= 23:
                return CronTrigger(hour=hour, minute=minute, timezone=timezone)

        logger.debug("Unsupported schedule %r; falling back to hourly", schedule)
        return IntervalTrigger(hours=1, timezone=timezone)

    @property
    def job_ids(self) -> list[str]:
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()]

    def _start(self) -> None:
        self._scheduler = BackgroundScheduler(timezone=self._timezone)
        self._scheduler.start()

    def _add_job(self, job_id: str, schedule: str, handler: JobHandler) -> None:
        trigger = self.parse_schedule(schedule, self._timezone)
        self._scheduler.add_job(
            func=self._run_job,
            trigger=trigger,
            id=job_id,
            args=(job_id, handler),
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=300,
        )
        logger.info("Timer job %s scheduled trigger=%s", job_id, trigger)

    def _remove_job(self, job_id: str) -> None:
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            return
        logger.info("Timer job %s cancelled", job_id)

    def _stop(self) -> None:
        if self._scheduler is None:
            return
        for job_id in self.job_ids:
            logger.info("Clearing timer job %s", job_id)
        self._scheduler.remove_all_jobs()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None

    @staticmethod
    def _run_job(job_id: str, handler: JobHandler) -> None:
        try:
            handler()
        except Exception:
            logger.exception("Scheduled job %s failed", job_id)

    def health(self) -> tuple[HealthStatus, str]:
        status, details = super().health()
        if status != HealthStatus.HEALTHY:
            return status, details
        if self._scheduler is None or not self._scheduler.running:
            return HealthStatus.UNHEALTHY, "Timer scheduler is not running"
        if not self.job_ids:
            return HealthStatus.DEGRADED, "Timer scheduler is running without jobs"
        return HealthStatus.HEALTHY, f"Timer scheduler running jobs: {', '.join(self.job_ids)}"


class WebhookStrategy(SchedulingStrategy):
    """Relies on an external scheduler calling the trigger endpoint."""

    name = StrategyName.WEBHOOK
    description = "External webhook - cron, cloud schedulers or CI call in"

    def __init__(self, app_url: str = "") -> None:
        super().__init__()
        self.trigger_url = f"{app_url.rstrip('/')}{TRIGGER_PATH}"
        self.expected_triggers: dict[str, str] = {}

    def _start(self) -> None:
        logger.info("Webhook strategy expects external calls to %s", self.trigger_url)

    def _add_job(self, job_id: str, schedule: str, handler: JobHandler) -> None:
        self.expected_triggers[job_id] = schedule
        logger.info("Webhook job %s: call %s on schedule %r", job_id, self.trigger_url, schedule)

    def _remove_job(self, job_id: str) -> None:
        self.expected_triggers.pop(job_id, None)
        logger.info("Webhook job %s must be cancelled in the external scheduler", job_id)

    def _stop(self) -> None:
        if self.expected_triggers:
            logger.info(
                "External schedules for %s are still active; remove them at the scheduler",
                ", ".join(self.expected_triggers),
            )
        self.expected_triggers.clear()

    def health(self) -> tuple[HealthStatus, str]:
        status, details = super().health()
        if status != HealthStatus.HEALTHY:
            return status, details
        return HealthStatus.HEALTHY, f"Waiting for external calls to {self.trigger_url}"


class QueueStrategy(SchedulingStrategy):
    """Records the jobs a queue worker would run; no queue is attached."""

    name = StrategyName.QUEUE
    description = "Job queue - for high-availability deployments with a queue backend"

    def __init__(self, redis_url: str | None = None) -> None:
        super().__init__()
        self._redis_url = redis_url
        self.pending: dict[str, str] = {}

    def _start(self) -> None:
        logger.info("Queue strategy enabled backend=%s", "redis" if self._redis_url else "none")

    def _add_job(self, job_id: str, schedule: str, handler: JobHandler) -> None:
        self.pending[job_id] = schedule
        logger.info("Queue job %s registered schedule=%r", job_id, schedule)

    def _remove_job(self, job_id: str) -> None:
        if self.pending.pop(job_id, None) is not None:
            logger.info("Queue job %s removed", job_id)

    def _stop(self) -> None:
        self.pending.clear()

    def health(self) -> tuple[HealthStatus, str]:
        status, details = super().health()
        if status != HealthStatus.HEALTHY:
            return status, details
        return HealthStatus.DEGRADED, f"No queue worker attached; {len(self.pending)} job(s) recorded"
