from authgate.core.modules.principal.hashing import MAX_PASSWORD_BYTES
from authgate.errors import ValidationError
from authgate.utils import is_email

MIN_PASSWORD_LENGTH = 12
MIN_UNIQUE_CHARS = 6


def validate_email(email: str) -> None:
    if not is_email(email):
        raise ValidationError("Invalid email address")


def validate_password(password: str) -> None:
    """Validate password meets requirements.

    Requirements:
    - At least 12 characters, at most 72 bytes (bcrypt limit)
    - No whitespace at either end
    - At least one letter and one digit
    - At least 6 distinct characters

    Raises:
        ValidationError: If password doesn't meet requirements
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long")

    if password != password.strip():
        raise ValidationError("Password cannot start or end with whitespace")

    if not any(char.isalpha() for char in password) or not any(char.isdigit() for char in password):
        raise ValidationError("Password must contain letters and digits")

    if len(set(password)) < MIN_UNIQUE_CHARS:
        raise ValidationError(f"Password must contain at least {MIN_UNIQUE_CHARS} different characters")
