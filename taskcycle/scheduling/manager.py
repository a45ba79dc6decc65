from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from taskcycle.config import Settings
from taskcycle.domain.entities import GenerationReport
from taskcycle.domain.enums import HealthStatus, StrategyName
from taskcycle.domain.errors import UnknownStrategyError
from taskcycle.services.cleanup import DEFAULT_DAYS_PAST_DUE, ExpirationCleaner
from taskcycle.services.clock import utcnow
from taskcycle.services.materializer import DEFAULT_HORIZON_DAYS, InstanceMaterializer

from .base import SchedulingStrategy
from .strategies import OnAccessStrategy, QueueStrategy, TimerStrategy, WebhookStrategy
from .throttle import GenerationThrottle

logger = logging.getLogger(__name__)

GENERATION_JOB_ID = "recurring-tasks-generation"
GENERATION_SCHEDULE = "0 1 * * *"


@dataclass(frozen=True)
class EnvironmentSignals:
    production: bool = False
    serverless: bool = False
    queue_configured: bool = False
    app_url: str = ""
    redis_url: str | None = None
    override: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> EnvironmentSignals:
        return cls(
            production=settings.is_production,
            serverless=settings.serverless,
            queue_configured=bool(settings.redis_url),
            app_url=settings.app_url,
            redis_url=settings.redis_url,
            override=settings.scheduling_strategy,
        )


def select_strategy_name(signals: EnvironmentSignals) -> StrategyName:
    if signals.override:
        try:
            return StrategyName(signals.override)
        except ValueError:
            logger.warning("Ignoring unknown SCHEDULING_STRATEGY=%r", signals.override)

    if signals.queue_configured and signals.production:
        return StrategyName.QUEUE
    if not signals.serverless and signals.production:
        return StrategyName.TIMER
    if signals.serverless or not signals.production:
        return StrategyName.ON_ACCESS
    return StrategyName.WEBHOOK


class SchedulingManager:
    """
    Owns the active scheduling strategy.

    Construct one per process (the composition root) and drive it through
    ``initialize``/``switch_strategy``/``shutdown``; those calls are not
    meant to run concurrently.
    """

    def __init__(
            self,
            materializer: InstanceMaterializer,
            cleaner: ExpirationCleaner,
            signals: EnvironmentSignals | None = None,
            *,
            throttle: GenerationThrottle | None = None,
            horizon_days: int = DEFAULT_HORIZON_DAYS,
            cleanup_days_past_due: int = DEFAULT_DAYS_PAST_DUE,
    ) -> None:
        self._materializer = materializer
        self._cleaner = cleaner
        self._signals = signals or EnvironmentSignals()
        self._horizon_days = horizon_days
        self._cleanup_days_past_due = cleanup_days_past_due

        self._strategies: dict[str, SchedulingStrategy] = {}
        self._on_access = OnAccessStrategy(materializer, throttle)
        self._register(self._on_access)
        self._register(TimerStrategy())
        self._register(WebhookStrategy(self._signals.app_url))
        self._register(QueueStrategy(self._signals.redis_url))

        self._current = self._strategies[select_strategy_name(self._signals)]
        logger.info("Selected scheduling strategy: %s", self._current.name)

    def _register(self, strategy: SchedulingStrategy) -> None:
        self._strategies[strategy.name.value] = strategy

    @property
    def strategies(self) -> dict[str, SchedulingStrategy]:
        return dict(self._strategies)

    @property
    def current(self) -> SchedulingStrategy:
        return self._current

    def initialize(self) -> None:
        self._activate(self._current)

    def switch_strategy(self, name: str) -> None:
        strategy = self._strategies.get(str(name))
        if strategy is None:
            raise UnknownStrategyError(str(name), list(self._strategies))

        previous = self._current
        logger.info("Switching scheduling strategy: %s -> %s", previous.name, strategy.name)
        previous.destroy()
        try:
            self._activate(strategy)
        except Exception:
            logger.exception("Strategy %s failed to start; restoring %s", strategy.name, previous.name)
            strategy.destroy()
            self._activate(previous)
            raise
        self._current = strategy

    def shutdown(self) -> None:
        self._current.destroy()

    def _activate(self, strategy: SchedulingStrategy) -> None:
        strategy.initialize()
        if strategy.name != StrategyName.ON_ACCESS:
            strategy.schedule(GENERATION_JOB_ID, GENERATION_SCHEDULE, self.run_generation_job)

    def run_generation_job(self, horizon_days: int | None = None) -> GenerationReport:
        """Materialize every user's horizon, then drop expired instances.

        This is also what the external trigger endpoint must run.
        """
        horizon = horizon_days or self._horizon_days
        logger.info("Running recurring task generation job horizon_days=%s", horizon)
        started = time.monotonic()
        generated = self._materializer.materialize_all(horizon)
        cleaned = self._cleaner.cleanup_expired_instances(self._cleanup_days_past_due)
        report = GenerationReport(
            generated=generated,
            cleaned=cleaned,
            execution_time_ms=int((time.monotonic() - started) * 1000),
            finished_at=utcnow(),
        )
        logger.info(
            "Generation job finished generated=%s cleaned=%s in %sms",
            report.generated,
            report.cleaned,
            report.execution_time_ms,
        )
        return report

    def ensure_user_tasks_generated(self, user_id: str) -> bool:
        return self._on_access.check_and_generate(user_id)

    def get_current_strategy(self) -> dict[str, str]:
        return {"name": self._current.name.value, "description": self._current.description}

    def health_check(self) -> dict[str, Any]:
        strategy = self._current.name.value
        try:
            status, details = self._current.health()
        except Exception as exc:
            logger.exception("Health check failed strategy=%s", strategy)
            return {"strategy": strategy, "status": HealthStatus.UNHEALTHY.value, "details": str(exc) or "Unknown error"}
        return {"strategy": strategy, "status": status.value, "details": details}
