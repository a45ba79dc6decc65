from __future__ import annotations

import logging
from abc import ABC
from collections.abc import Callable
from typing import ClassVar

from taskcycle.domain.enums import HealthStatus, StrategyName, StrategyState
from taskcycle.domain.errors import StrategyStateError

logger = logging.getLogger(__name__)

JobHandler = Callable[[], object]


class SchedulingStrategy(ABC):
    """
    Decides when recurring materialization runs.

    Lifecycle: uninitialized -> initialized -> destroyed. A destroyed strategy
    can be initialized again, which is what a switch back to it does.
    Subclasses override the ``_start``/``_add_job``/``_remove_job``/``_stop``
    hooks; the public methods own the state transitions.
    """

    name: ClassVar[StrategyName]
    description: ClassVar[str] = ""

    def __init__(self) -> None:
        self.state = StrategyState.UNINITIALIZED

    def initialize(self) -> None:
        if self.state == StrategyState.INITIALIZED:
            logger.debug("Strategy %s already initialized", self.name)
            return
        self._start()
        self.state = StrategyState.INITIALIZED
        logger.info("Scheduling strategy %s enabled", self.name)

    def schedule(self, job_id: str, schedule: str, handler: JobHandler) -> None:
        if self.state != StrategyState.INITIALIZED:
            raise StrategyStateError(f"Cannot schedule {job_id!r}: strategy {self.name} is {self.state.value}")
        self._add_job(job_id, schedule, handler)

    def unschedule(self, job_id: str) -> None:
        if self.state != StrategyState.INITIALIZED:
            return
        self._remove_job(job_id)

    def destroy(self) -> None:
        if self.state == StrategyState.INITIALIZED:
            self._stop()
        self.state = StrategyState.DESTROYED
        logger.info("Scheduling strategy %s disabled", self.name)

    def health(self) -> tuple[HealthStatus, str]:
        if self.state != StrategyState.INITIALIZED:
            return HealthStatus.UNHEALTHY, f"Strategy is {self.state.value}"
        return HealthStatus.HEALTHY, "Scheduling system is running"

    def _start(self) -> None:
        pass

    def _add_job(self, job_id: str, schedule: str, handler: JobHandler) -> None:
        pass

    def _remove_job(self, job_id: str) -> None:
        pass

    def _stop(self) -> None:
        pass
