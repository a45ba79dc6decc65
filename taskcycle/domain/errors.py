from __future__ import annotations


class TaskCycleError(Exception):
    """Base class for errors raised by the recurring-task engine."""


class RuleDecodeError(TaskCycleError, ValueError):
    """Stored recurrence rule text could not be turned into a rule."""


class SchedulingError(TaskCycleError):
    pass


class UnknownStrategyError(SchedulingError, KeyError):
    def __init__(self, name: str, available: list[str]) -> None:
        super().__init__(name)
        self.name = name
        self.available = available

    def __str__(self) -> str:
        return f"Unknown scheduling strategy {self.name!r}; expected one of: {', '.join(self.available)}"


class StrategyStateError(SchedulingError):
    pass
