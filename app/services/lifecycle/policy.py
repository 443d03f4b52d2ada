# app/services/lifecycle/policy.py
"""
Lifecycle policy: active windows, archive duration and TTL math.

Everything here is pure. Callers read the clock once per run and pass
`now` in, so a whole run agrees on one instant.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Optional

from app.config import Settings, get_settings
from app.constants import LifecycleDefaults
from app.models import AccountTier, Listing


def utc_now() -> datetime:
    """Naive UTC instant, matching the naive DateTime columns."""
    return datetime.now(UTC).replace(tzinfo=None)


@dataclass(frozen=True)
class LifecyclePolicy:
    """Durations that drive the listing state machine."""

    free_active_window: timedelta = timedelta(hours=LifecycleDefaults.FREE_ACTIVE_WINDOW_HOURS)
    premium_active_window: timedelta = timedelta(days=LifecycleDefaults.PREMIUM_ACTIVE_WINDOW_DAYS)
    archive_duration: timedelta = timedelta(days=LifecycleDefaults.ARCHIVE_DURATION_DAYS)
    grace_period: timedelta = timedelta(hours=LifecycleDefaults.GRACE_PERIOD_HOURS)

    @classmethod
    def from_settings(cls, settings: Settings) -> "LifecyclePolicy":
        return cls(
            free_active_window=timedelta(hours=settings.FREE_ACTIVE_WINDOW_HOURS),
            premium_active_window=timedelta(days=settings.PREMIUM_ACTIVE_WINDOW_DAYS),
            archive_duration=timedelta(days=settings.ARCHIVE_DURATION_DAYS),
            grace_period=timedelta(hours=settings.GRACE_PERIOD_HOURS),
        )

    def active_window(self, tier: Optional[str]) -> timedelta:
        """
        How long a listing stays publicly live.

        Unknown or missing tiers get the free window.
        """
        if tier == AccountTier.PREMIUM.value:
            return self.premium_active_window
        return self.free_active_window

    def is_immediately_expired(self, listing: Listing, now: datetime) -> bool:
        """
        True when the listing's expiry already passed but it was never archived.

        Such listings get a grace period instead of a TTL derived from an
        archive instant that never happened.
        """
        if listing.archived_at is not None:
            return False
        return listing.expires_at is not None and listing.expires_at <= now

    def compute_ttl(
        self,
        listing: Listing,
        archived_at: Optional[datetime],
        now: datetime,
    ) -> datetime:
        """
        Absolute purge instant for a listing.

        - no archive instant and immediately expired: now + grace_period
        - otherwise: archived_at + archive_duration (archived_at falls back to now)

        Tier does not change the archive duration.
        """
        if archived_at is None and self.is_immediately_expired(listing, now):
            return now + self.grace_period
        return (archived_at or now) + self.archive_duration


def get_active_policy(settings: Optional[Settings] = None) -> LifecyclePolicy:
    """Policy for the current configuration."""
    return LifecyclePolicy.from_settings(settings or get_settings())
