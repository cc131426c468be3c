from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class ResetTokenPolicy:
    """Defines the lifetime and usability of a password reset token.

    Semantics (intentionally centralized):
    - A token expires ``lifetime`` after issuance.
    - A token is expired once ``expires_at < now`` (wall clock at redemption).
      A token redeemed exactly at ``expires_at`` is still usable.
    - A token is used once ``used_at`` is set; it is never usable again.
    """

    lifetime: timedelta = timedelta(hours=1)

    def expires_at(self, issued_at: datetime) -> datetime:
        return as_utc(issued_at) + self.lifetime

    def is_expired(self, *, expires_at: datetime, now: datetime) -> bool:
        return as_utc(expires_at) < as_utc(now)

    def is_used(self, *, used_at: datetime | None) -> bool:
        return used_at is not None
