"""One-time passcode data models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Identity:
    """Authenticated user resolved from a bearer credential."""

    user_id: str
    email: str | None = None


@dataclass
class OTPRecord:
    """A stored one-time passcode. At most one exists per user."""

    user_id: str
    email: str | None
    code: str
    expires_at: datetime
    verified: bool = False

    def is_redeemable(self, code: str, now: datetime) -> bool:
        """Whether ``code`` may consume this record at ``now``."""
        return not self.verified and self.code == code and now < self.expires_at
