"""Password hashing with an upgrade path from legacy unsalted digests.

Stored formats:
  pbkdf2$<iterations>$<base64url salt>$<base64url derived key>   (current)
  <64 lowercase hex chars>                                       (legacy SHA-256, read-only)
"""

import hashlib
import logging

from app.core.config import DEFAULT_PASSWORD_HASH_ITERATIONS, MAX_PASSWORD_HASH_ITERATIONS
from app.core.crypto import (
    RandomSource,
    SystemRandomSource,
    b64url_decode,
    b64url_encode,
    constant_time_equals,
)
from app.schemas.auth import PasswordVerification

logger = logging.getLogger(__name__)

PBKDF2_SCHEME = "pbkdf2"
PASSWORD_SALT_LENGTH = 16
PASSWORD_DERIVED_KEY_LENGTH = 32

_INVALID = PasswordVerification(valid=False, needs_upgrade=False, new_hash=None)


def _derive_key(password: str, salt: bytes, iterations: int, length: int) -> bytes:
    return hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt, iterations, dklen=length
    )


def legacy_digest(password: str) -> str:
    """Unsalted SHA-256 hex digest used by pre-existing accounts."""
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


class PasswordHasher:
    """Hash and verify passwords; reports when a stored hash should be replaced."""

    def __init__(
        self,
        iterations: int = DEFAULT_PASSWORD_HASH_ITERATIONS,
        random_source: RandomSource | None = None,
    ) -> None:
        self.iterations = self._cap(iterations)
        self.random = random_source or SystemRandomSource()

    @staticmethod
    def _cap(iterations: int) -> int:
        if iterations < 1:
            raise ValueError("iterations must be a positive integer")
        return min(iterations, MAX_PASSWORD_HASH_ITERATIONS)

    def hash(self, password: str, iterations: int | None = None) -> str:
        """Hash a plain-text password for storage. Do not store plain passwords."""
        rounds = self._cap(iterations) if iterations is not None else self.iterations
        salt = self.random.token_bytes(PASSWORD_SALT_LENGTH)
        derived = _derive_key(password, salt, rounds, PASSWORD_DERIVED_KEY_LENGTH)
        return f"{PBKDF2_SCHEME}${rounds}${b64url_encode(salt)}${b64url_encode(derived)}"

    def verify(
        self, password: str, stored_hash: str | None, iterations: int | None = None
    ) -> PasswordVerification:
        """
        Verify a plain password against a stored hash.

        A valid match on a weaker hash (legacy digest, or fewer PBKDF2 iterations than
        configured) comes back with needs_upgrade=True and a ready-to-store new_hash.
        """
        if not stored_hash:
            return _INVALID
        rounds = self._cap(iterations) if iterations is not None else self.iterations

        if stored_hash.startswith(f"{PBKDF2_SCHEME}$"):
            return self._verify_pbkdf2(password, stored_hash, rounds)

        candidate = legacy_digest(password).encode("ascii")
        valid = constant_time_equals(candidate, stored_hash.strip().lower().encode("utf-8"))
        if not valid:
            return _INVALID
        return PasswordVerification(
            valid=True, needs_upgrade=True, new_hash=self.hash(password, rounds)
        )

    def _verify_pbkdf2(self, password: str, stored_hash: str, rounds: int) -> PasswordVerification:
        parts = stored_hash.split("$")
        if len(parts) != 4:
            return _INVALID
        _, raw_iterations, raw_salt, raw_key = parts
        try:
            stored_iterations = int(raw_iterations)
            salt = b64url_decode(raw_salt)
            expected = b64url_decode(raw_key)
        except ValueError:
            return _INVALID
        if stored_iterations <= 0 or stored_iterations > MAX_PASSWORD_HASH_ITERATIONS:
            logger.warning("Rejecting stored password hash with out-of-range iteration count")
            return _INVALID

        derived = _derive_key(password, salt, stored_iterations, len(expected))
        if not constant_time_equals(derived, expected):
            return _INVALID
        if rounds > stored_iterations:
            return PasswordVerification(
                valid=True, needs_upgrade=True, new_hash=self.hash(password, rounds)
            )
        return PasswordVerification(valid=True, needs_upgrade=False, new_hash=None)
