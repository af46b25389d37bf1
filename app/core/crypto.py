"""Time and randomness providers plus the small encoding helpers used by auth.

Every expiry, window, and salt in the auth subsystem goes through these so tests
can pin the clock and the random bytes.
"""

import base64
import binascii
import hashlib
import hmac
import secrets
from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    """Source of the current time (timezone-aware, UTC)."""

    def now(self) -> datetime: ...


class RandomSource(Protocol):
    """Source of cryptographically strong random bytes."""

    def token_bytes(self, n: int) -> bytes: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(UTC)


class SystemRandomSource:
    def token_bytes(self, n: int) -> bytes:
        return secrets.token_bytes(n)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite returns timestamps without tzinfo)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def b64url_encode(data: bytes) -> str:
    """URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(value: str) -> bytes:
    """Decode unpadded URL-safe base64. Raises ValueError on malformed input."""
    if not isinstance(value, str) or not value:
        raise ValueError("Empty base64url value")
    padded = value + "=" * (-len(value) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Malformed base64url value") from exc


def constant_time_equals(a: bytes, b: bytes) -> bool:
    """Compare two byte strings without leaking where they differ."""
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a, b)


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()
