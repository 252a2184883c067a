import re
from datetime import UTC, datetime

TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]{43}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def now() -> datetime:
    return datetime.now(UTC)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_email(value: str) -> bool:
    return bool(EMAIL_RE.fullmatch(value))


def is_well_formed_token(value: str) -> bool:
    """Tokens are `secrets.token_urlsafe(32)`: 43 url-safe base64 characters."""
    return bool(TOKEN_RE.fullmatch(value))


def as_utc(value: datetime) -> datetime:
    """MongoDB returns naive datetimes unless the client is tz-aware; treat naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
