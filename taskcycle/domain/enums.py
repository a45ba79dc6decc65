from __future__ import annotations

from enum import IntEnum, StrEnum


class RecurrenceType(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PriorityLevel(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    URGENT = 4


class StrategyName(StrEnum):
    ON_ACCESS = "on-access"
    TIMER = "timer"
    WEBHOOK = "webhook"
    QUEUE = "queue"


class StrategyState(StrEnum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    DESTROYED = "destroyed"


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
