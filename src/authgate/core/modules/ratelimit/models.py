from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum


class RateLimitedOperation(StrEnum):
    LOGIN = "login"
    PASSWORD_CHANGE = "password_change"
    ADMIN_ACTION = "admin_action"  # elevated operations, tightest bound
    REGISTRATION = "registration"


@dataclass(frozen=True, slots=True)
class RateLimitRule:
    """At most `max_attempts` per sliding `window`; exceeding it blocks for at least `block_duration`."""

    max_attempts: int
    window: timedelta
    block_duration: timedelta | None = None


@dataclass(slots=True)
class RateLimitRecord:
    attempts: list[datetime] = field(default_factory=list)  # oldest first
    blocked_until: datetime | None = None


@dataclass(frozen=True, slots=True)
class Allowed:
    remaining: int


@dataclass(frozen=True, slots=True)
class Blocked:
    retry_after: timedelta
    blocked_until: datetime


type RateLimitDecision = Allowed | Blocked
