"""Password hashing.

Hashes are stored as ``<scheme>$<hash>``, e.g. ``bcrypt$$2b$12$...``. The tag
lets a future scheme be introduced without breaking existing hashes. Untagged
``$2a$``/``$2b$``/``$2y$`` values written by older code are read as bcrypt and
flagged for rehash on the next successful login.
"""

import re
import secrets

import bcrypt

BCRYPT_SCHEME = "bcrypt"
MAX_PASSWORD_BYTES = 72  # bcrypt ignores (or rejects) anything past 72 bytes

_BCRYPT_RE = re.compile(r"^\$2[aby]\$(\d{2})\$[./A-Za-z0-9]{53}$")


class PasswordHasher:
    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, password: str) -> str:
        digest = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")
        return f"{BCRYPT_SCHEME}${digest}"

    def verify(self, password: str, stored_hash: str) -> bool:
        """Check a password against a stored hash. Unknown schemes and malformed hashes never match."""
        scheme, digest = _split(stored_hash)
        if scheme != BCRYPT_SCHEME or not _BCRYPT_RE.fullmatch(digest):
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), digest.encode("utf-8"))
        except ValueError:
            # bcrypt >= 5 refuses passwords longer than 72 bytes
            return False

    def needs_rehash(self, stored_hash: str) -> bool:
        """True for untagged hashes and hashes with a different work factor."""
        if not stored_hash.startswith(f"{BCRYPT_SCHEME}$"):
            return True
        match = _BCRYPT_RE.fullmatch(_split(stored_hash)[1])
        return match is None or int(match.group(1)) != self.rounds

    def decoy_hash(self) -> str:
        """A hash of a random secret at the configured cost, compared against when an email is unknown."""
        return self.hash(secrets.token_urlsafe(32))


def _split(stored_hash: str) -> tuple[str, str]:
    if stored_hash.startswith("$2"):
        return BCRYPT_SCHEME, stored_hash
    scheme, _, digest = stored_hash.partition("$")
    return scheme, digest
