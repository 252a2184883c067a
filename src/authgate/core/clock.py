"""Time sources.

Expiry and lockout logic never calls `datetime.now` directly; it asks a Clock,
so tests can move time forward without sleeping.
"""

from datetime import datetime
from typing import Protocol

from authgate.utils import now


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return now()
