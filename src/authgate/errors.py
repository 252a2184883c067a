from abc import ABC
from datetime import timedelta


class UserError(ABC, Exception):
    """Base class for errors whose message is shown to the caller.

    Messages must stay generic: never reveal whether an email exists or
    which step of authentication failed.
    """


class NotFoundError(UserError):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message)


class AuthenticationError(UserError):
    """Raised when the caller is not (or no longer) authenticated."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class AccessDeniedError(UserError):
    """Raised when an authenticated principal lacks the required role."""

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class ValidationError(UserError):
    """Raised when user input fails validation."""


class RateLimitedError(UserError):
    """Raised when an operation is temporarily refused; carries a retry-after hint."""

    def __init__(self, retry_after: timedelta, message: str = "Too many attempts, try again later") -> None:
        super().__init__(message)
        self.retry_after = retry_after

    @property
    def retry_after_seconds(self) -> int:
        return max(1, int(self.retry_after.total_seconds() + 0.999))


class ServiceUnavailableError(UserError):
    """Raised when a backing store failed or timed out. Access is never granted in this case."""

    def __init__(self, message: str = "Service temporarily unavailable") -> None:
        super().__init__(message)
