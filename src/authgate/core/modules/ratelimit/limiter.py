"""In-process rate limiting.

State lives in memory and is lost on restart; a deployment with several
instances would need a shared store.
"""

from collections.abc import Mapping
from datetime import datetime
from threading import Lock

import structlog

from authgate.core.clock import Clock
from authgate.core.modules.ratelimit.models import (
    Allowed,
    Blocked,
    RateLimitDecision,
    RateLimitedOperation,
    RateLimitRecord,
    RateLimitRule,
)

logger = structlog.get_logger(__name__)


class RateLimiter:
    """Sliding window per (client key, operation) with a hard block once the window is full."""

    def __init__(self, rules: Mapping[RateLimitedOperation, RateLimitRule], clock: Clock) -> None:
        self._rules = dict(rules)
        self._clock = clock
        self._records: dict[tuple[str, RateLimitedOperation], RateLimitRecord] = {}
        self._lock = Lock()

    def rule(self, operation: RateLimitedOperation) -> RateLimitRule:
        if operation not in self._rules:
            raise KeyError(f"No rate limit rule for operation '{operation}'")
        return self._rules[operation]

    def check_and_record(self, client_key: str, operation: RateLimitedOperation) -> RateLimitDecision:
        """Count one attempt, or refuse it. Refused attempts are not counted."""
        rule = self.rule(operation)
        key = (client_key, operation)
        with self._lock:
            now = self._clock.now()
            record = self._records.setdefault(key, RateLimitRecord())
            self._prune(record, rule, now)

            if record.blocked_until is not None and record.blocked_until > now:
                return Blocked(retry_after=record.blocked_until - now, blocked_until=record.blocked_until)

            if len(record.attempts) >= rule.max_attempts:
                blocked_until = record.attempts[0] + rule.window
                if rule.block_duration is not None:
                    blocked_until = max(blocked_until, now + rule.block_duration)
                record.blocked_until = blocked_until
                logger.warning(
                    "rate_limit_exceeded",
                    operation=operation,
                    client_key=client_key,
                    blocked_until=blocked_until.isoformat(),
                )
                return Blocked(retry_after=blocked_until - now, blocked_until=blocked_until)

            record.attempts.append(now)
            return Allowed(remaining=rule.max_attempts - len(record.attempts))

    def reset(self, client_key: str, operation: RateLimitedOperation) -> None:
        with self._lock:
            self._records.pop((client_key, operation), None)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def purge_idle(self) -> int:
        """Drop records with no attempts in their window and no active block."""
        with self._lock:
            now = self._clock.now()
            idle = []
            for key, record in self._records.items():
                self._prune(record, self._rules[key[1]], now)
                if not record.attempts and record.blocked_until is None:
                    idle.append(key)
            for key in idle:
                del self._records[key]
            return len(idle)

    @staticmethod
    def _prune(record: RateLimitRecord, rule: RateLimitRule, now: datetime) -> None:
        cutoff = now - rule.window
        record.attempts = [at for at in record.attempts if at > cutoff]
        if record.blocked_until is not None and record.blocked_until <= now:
            record.blocked_until = None
