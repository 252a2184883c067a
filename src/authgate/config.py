from datetime import timedelta

from pydantic_settings import BaseSettings

from authgate.core.modules.access.models import AuthPolicy
from authgate.core.modules.ratelimit.models import RateLimitedOperation, RateLimitRule


class Config(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str
    host: str = "127.0.0.1"
    port: int = 3100
    debug: bool = False
    cors_origins: list[str] = []

    # Sessions
    session_ttl_seconds: int = 24 * 60 * 60  # single authoritative TTL, also used as cookie max_age
    session_idle_timeout_seconds: int | None = None  # disabled unless set
    session_cookie_name: str = "session"
    session_cookie_secure: bool = True  # disable only for local http development

    # Account lockout
    max_failed_logins: int = 5
    lockout_seconds: int = 15 * 60

    # Password hashing
    bcrypt_rounds: int = 12

    # Fail closed when a store call takes longer than this
    store_timeout_seconds: float = 5.0

    # Rate limits per operation: attempts per window, then a hard block
    login_rate_limit: int = 5
    login_rate_window_seconds: int = 15 * 60
    login_block_seconds: int = 30 * 60
    password_change_rate_limit: int = 3
    password_change_rate_window_seconds: int = 60 * 60
    password_change_block_seconds: int = 60 * 60
    admin_action_rate_limit: int = 3
    admin_action_rate_window_seconds: int = 60 * 60
    admin_action_block_seconds: int = 60 * 60
    registration_rate_limit: int = 20
    registration_rate_window_seconds: int = 24 * 60 * 60
    registration_block_seconds: int = 60 * 60

    # Reverse proxies in front of the service. 0 ignores X-Forwarded-For and X-Real-IP entirely
    trusted_proxy_count: int = 0

    # Creates the first admin on startup when no admin exists (optional)
    bootstrap_admin_email: str | None = None
    bootstrap_admin_password: str | None = None

    # Security events older than this are dropped by a TTL index
    security_event_retention_days: int = 90

    model_config = {
        "env_file": [".env"],
        "env_prefix": "AUTHGATE_",
        "extra": "ignore",
    }

    def auth_policy(self) -> AuthPolicy:
        return AuthPolicy(
            session_ttl=timedelta(seconds=self.session_ttl_seconds),
            idle_timeout=(
                timedelta(seconds=self.session_idle_timeout_seconds) if self.session_idle_timeout_seconds else None
            ),
            max_failed_attempts=self.max_failed_logins,
            lockout_duration=timedelta(seconds=self.lockout_seconds),
        )

    def rate_limit_rules(self) -> dict[RateLimitedOperation, RateLimitRule]:
        return {
            RateLimitedOperation.LOGIN: RateLimitRule(
                max_attempts=self.login_rate_limit,
                window=timedelta(seconds=self.login_rate_window_seconds),
                block_duration=timedelta(seconds=self.login_block_seconds),
            ),
            RateLimitedOperation.PASSWORD_CHANGE: RateLimitRule(
                max_attempts=self.password_change_rate_limit,
                window=timedelta(seconds=self.password_change_rate_window_seconds),
                block_duration=timedelta(seconds=self.password_change_block_seconds),
            ),
            RateLimitedOperation.ADMIN_ACTION: RateLimitRule(
                max_attempts=self.admin_action_rate_limit,
                window=timedelta(seconds=self.admin_action_rate_window_seconds),
                block_duration=timedelta(seconds=self.admin_action_block_seconds),
            ),
            RateLimitedOperation.REGISTRATION: RateLimitRule(
                max_attempts=self.registration_rate_limit,
                window=timedelta(seconds=self.registration_rate_window_seconds),
                block_duration=timedelta(seconds=self.registration_block_seconds),
            ),
        }
