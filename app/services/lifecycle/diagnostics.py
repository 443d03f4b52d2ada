# app/services/lifecycle/diagnostics.py
"""
Diagnostic reconciler and cleanup health monitor.

Read-only. Cross-checks the three independently stored signals (status,
TTL, public visibility) and turns whatever drift it finds into a
prioritised list of remediation calls. Nothing here mutates a row.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.constants import DiagnosticThresholds, RemediationEndpoints, ScheduleIntervals
from app.models import Favorite, Listing, ListingStatus, TtlReason
from app.services.lifecycle.policy import utc_now
from app.services.lifecycle.visibility import has_archive_markers, public_listings_query

logger = logging.getLogger(__name__)

PRIORITY_HIGH = "HIGH"
PRIORITY_MEDIUM = "MEDIUM"
PRIORITY_LOW = "LOW"
_PRIORITY_RANK = {PRIORITY_HIGH: 0, PRIORITY_MEDIUM: 1, PRIORITY_LOW: 2}

_KNOWN_REASONS = {reason.value for reason in TtlReason}

# TTL issue kinds
MISSING_TTL = "missing_ttl"
TTL_ELAPSED = "ttl_elapsed"
INCONSISTENT_TTL_REASON = "inconsistent_ttl_reason"

# Expiration issue kinds
NOT_ARCHIVED_AFTER_EXPIRY = "not_archived_after_expiry"
MISSING_EXPIRES_AT = "missing_expires_at"

HEALTHY = "healthy"
WARNING = "warning"
CRITICAL = "critical"


# -----------------------------------------------------------------------------
# Report types
# -----------------------------------------------------------------------------

@dataclass
class TtlStats:
    with_ttl: int = 0
    without_ttl: int = 0
    expired_ttl: int = 0
    valid_ttl: int = 0


@dataclass
class ExpirationIssue:
    listing_id: str
    title: Optional[str]
    issue: str
    expires_at: Optional[datetime]
    hours_overdue: Optional[float]


@dataclass
class TtlIssue:
    listing_id: str
    title: Optional[str]
    issue: str
    archived_at: Optional[datetime]
    ttl: Optional[datetime]
    ttl_reason: Optional[str]
    detail: str


@dataclass
class VisibilityIssue:
    listing_id: str
    title: Optional[str]
    status: str
    archived_at: Optional[datetime]
    ttl: Optional[datetime]


@dataclass
class Recommendation:
    priority: str
    issue: str
    action: str
    remediation_endpoint: str


@dataclass
class DiagnosticReport:
    """Everything the reconciler found in one scan."""
    timestamp: datetime
    total_listings: int = 0
    status_counts: Dict[str, int] = field(default_factory=dict)
    tier_counts: Dict[str, int] = field(default_factory=dict)
    ttl_stats: TtlStats = field(default_factory=TtlStats)
    expiration_issue_count: int = 0
    ttl_issue_count: int = 0
    visibility_issue_count: int = 0
    orphaned_favorite_count: int = 0
    expiration_issues: List[ExpirationIssue] = field(default_factory=list)
    ttl_issues: List[TtlIssue] = field(default_factory=list)
    visibility_issues: List[VisibilityIssue] = field(default_factory=list)
    recommendations: List[Recommendation] = field(default_factory=list)


@dataclass
class CleanupHealth:
    """Whether the purge clock is keeping up."""
    status: str
    timestamp: datetime
    overdue_count: int = 0
    oldest_overdue_minutes: Optional[int] = None
    next_expected_cleanup: Optional[datetime] = None
    recommendations: List[str] = field(default_factory=list)


# -----------------------------------------------------------------------------
# Classification
# -----------------------------------------------------------------------------

def check_expiration(listing: Listing, now: datetime, tolerance: timedelta) -> Optional[ExpirationIssue]:
    """Active listing that should already have been archived."""
    if listing.status != ListingStatus.ACTIVE.value:
        return None
    if listing.expires_at is None:
        return ExpirationIssue(listing.id, listing.title, MISSING_EXPIRES_AT, None, None)
    if listing.expires_at + tolerance < now:
        hours = round((now - listing.expires_at).total_seconds() / 3600, 1)
        return ExpirationIssue(listing.id, listing.title, NOT_ARCHIVED_AFTER_EXPIRY, listing.expires_at, hours)
    return None


def check_ttl(listing: Listing, now: datetime) -> Optional[TtlIssue]:
    """
    TTL drift on an archived listing.

    At most one issue per listing, most urgent first:
    missing ttl, then inconsistent reason, then elapsed ttl.
    """
    if listing.status != ListingStatus.ARCHIVED.value:
        return None

    def issue(kind: str, detail: str) -> TtlIssue:
        return TtlIssue(
            listing.id, listing.title, kind,
            listing.archived_at, listing.ttl, listing.ttl_reason, detail,
        )

    if listing.ttl is None:
        return issue(MISSING_TTL, "archived listing has no ttl")

    if listing.ttl_reason not in _KNOWN_REASONS:
        return issue(INCONSISTENT_TTL_REASON, f"unknown ttl_reason: {listing.ttl_reason!r}")

    if (
        listing.archived_at is not None
        and listing.ttl < listing.archived_at
        and listing.ttl_reason != TtlReason.MIGRATION_IMMEDIATE_EXPIRY.value
    ):
        return issue(INCONSISTENT_TTL_REASON, f"ttl precedes archived_at with reason {listing.ttl_reason}")

    if listing.ttl < now:
        return issue(TTL_ELAPSED, "ttl elapsed but listing not purged")

    return None


def _priority(count: int, base: str) -> Optional[str]:
    if count <= 0:
        return None
    if count >= DiagnosticThresholds.HIGH_PRIORITY_ISSUE_COUNT:
        return PRIORITY_HIGH
    return base


def build_recommendations(
    expiration_count: int,
    missing_ttl_count: int,
    elapsed_ttl_count: int,
    inconsistent_count: int,
    visibility_count: int,
    orphaned_favorite_count: int = 0,
) -> List[Recommendation]:
    """Recommendations for every non-zero issue count, HIGH first."""
    candidates = [
        (
            expiration_count, PRIORITY_MEDIUM,
            f"{expiration_count} active listings past their expiry",
            "Archive expired listings",
            RemediationEndpoints.ARCHIVE_EXPIRED,
        ),
        (
            elapsed_ttl_count, PRIORITY_MEDIUM,
            f"{elapsed_ttl_count} archived listings past their TTL",
            "Run cleanup of archived listings",
            RemediationEndpoints.CLEANUP_ARCHIVED,
        ),
        (
            visibility_count, PRIORITY_MEDIUM,
            f"{visibility_count} listings with archive markers returned by the public listings query",
            "Clear stray archive fields or re-archive the listings",
            RemediationEndpoints.VALIDATE_TTL_FIELDS,
        ),
        (
            missing_ttl_count, PRIORITY_LOW,
            f"{missing_ttl_count} archived listings without a TTL",
            "Backfill TTLs",
            RemediationEndpoints.MIGRATE_TO_TTL,
        ),
        (
            inconsistent_count, PRIORITY_LOW,
            f"{inconsistent_count} archived listings with inconsistent TTL bookkeeping",
            "Validate and repair TTL fields",
            RemediationEndpoints.VALIDATE_TTL_FIELDS,
        ),
        (
            orphaned_favorite_count, PRIORITY_LOW,
            f"{orphaned_favorite_count} favorites referencing deleted listings",
            "Sweep orphaned favorites",
            RemediationEndpoints.CLEANUP_RELATED_DATA,
        ),
    ]

    recommendations = []
    for count, base, issue, action, endpoint in candidates:
        priority = _priority(count, base)
        if priority:
            recommendations.append(Recommendation(priority, issue, action, endpoint))

    # sorted() is stable, so equal priorities keep the order above
    return sorted(recommendations, key=lambda r: _PRIORITY_RANK[r.priority])


# -----------------------------------------------------------------------------
# Reconciler
# -----------------------------------------------------------------------------

def run_listing_diagnostic(
    db: Session,
    now: Optional[datetime] = None,
    tolerance_minutes: int = 15,
    sample_limit: int = DiagnosticThresholds.ISSUE_SAMPLE_LIMIT,
) -> DiagnosticReport:
    """
    Scan every listing and report drift between status, TTL and visibility.

    Issue counts are exact; the issue lists are capped at `sample_limit`.
    """
    now = now or utc_now()
    tolerance = timedelta(minutes=tolerance_minutes)
    report = DiagnosticReport(timestamp=now)

    status_counts: Counter = Counter()
    tier_counts: Counter = Counter()
    ttl_kinds: Counter = Counter()
    stats = report.ttl_stats

    for listing in db.query(Listing).order_by(Listing.id.asc()).yield_per(1000):
        report.total_listings += 1
        status_counts[listing.status] += 1
        tier_counts[listing.account_tier_at_creation] += 1

        if listing.status == ListingStatus.ARCHIVED.value:
            if listing.ttl is None:
                stats.without_ttl += 1
            else:
                stats.with_ttl += 1
                if listing.ttl < now:
                    stats.expired_ttl += 1
                else:
                    stats.valid_ttl += 1

        expiration = check_expiration(listing, now, tolerance)
        if expiration:
            report.expiration_issue_count += 1
            if len(report.expiration_issues) < sample_limit:
                report.expiration_issues.append(expiration)

        ttl_issue = check_ttl(listing, now)
        if ttl_issue:
            report.ttl_issue_count += 1
            ttl_kinds[ttl_issue.issue] += 1
            if len(report.ttl_issues) < sample_limit:
                report.ttl_issues.append(ttl_issue)

    # Visibility runs the public query itself, so the count matches what users see
    for listing in public_listings_query(db).yield_per(1000):
        if has_archive_markers(listing):
            report.visibility_issue_count += 1
            if len(report.visibility_issues) < sample_limit:
                report.visibility_issues.append(
                    VisibilityIssue(listing.id, listing.title, listing.status, listing.archived_at, listing.ttl)
                )

    report.orphaned_favorite_count = (
        db.query(func.count(Favorite.listing_id))
        .select_from(Favorite)
        .outerjoin(Listing, Listing.id == Favorite.listing_id)
        .filter(Listing.id.is_(None))
        .scalar()
        or 0
    )

    report.status_counts = dict(status_counts)
    report.tier_counts = dict(tier_counts)
    report.recommendations = build_recommendations(
        expiration_count=report.expiration_issue_count,
        missing_ttl_count=ttl_kinds[MISSING_TTL],
        elapsed_ttl_count=ttl_kinds[TTL_ELAPSED],
        inconsistent_count=ttl_kinds[INCONSISTENT_TTL_REASON],
        visibility_count=report.visibility_issue_count,
        orphaned_favorite_count=report.orphaned_favorite_count,
    )

    logger.info(
        f"Listing diagnostic: {report.total_listings} listings, "
        f"{report.expiration_issue_count} expiration, {report.ttl_issue_count} TTL, "
        f"{report.visibility_issue_count} visibility issues, "
        f"{report.orphaned_favorite_count} orphaned favorites",
        extra={"event": "listing_diagnostic", "items_processed": report.total_listings},
    )
    return report


# -----------------------------------------------------------------------------
# Cleanup health
# -----------------------------------------------------------------------------

def next_cleanup_tick(now: datetime, interval_minutes: int = ScheduleIntervals.CLEANUP_ARCHIVED) -> datetime:
    """Next scheduled cleanup, assuming ticks on the hour every `interval_minutes` from midnight."""
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = int((now - midnight).total_seconds() // 60)
    ticks = elapsed // interval_minutes + 1
    return midnight + timedelta(minutes=ticks * interval_minutes)


def check_cleanup_health(db: Session, now: Optional[datetime] = None) -> CleanupHealth:
    """
    How far behind the purge clock the cleanup job is running.

    - healthy: nothing overdue for more than the warning threshold
    - warning: oldest overdue listing > 60 minutes past its TTL
    - critical: oldest overdue listing > 180 minutes past its TTL
    """
    now = now or utc_now()

    overdue_filter = (
        Listing.status == ListingStatus.ARCHIVED.value,
        Listing.ttl.isnot(None),
        Listing.ttl < now,
    )
    overdue_count = db.query(func.count(Listing.id)).filter(*overdue_filter).scalar() or 0
    oldest_ttl = db.query(func.min(Listing.ttl)).filter(*overdue_filter).scalar()

    health = CleanupHealth(
        status=HEALTHY,
        timestamp=now,
        overdue_count=overdue_count,
        next_expected_cleanup=next_cleanup_tick(now),
    )

    if oldest_ttl is None:
        return health

    oldest_minutes = int((now - oldest_ttl).total_seconds() // 60)
    health.oldest_overdue_minutes = oldest_minutes

    if oldest_minutes > DiagnosticThresholds.OVERDUE_CRITICAL_MINUTES:
        health.status = CRITICAL
        health.recommendations.append(
            f"Cleanup is {oldest_minutes} minutes behind; check the scheduler and "
            f"run {RemediationEndpoints.CLEANUP_ARCHIVED} manually"
        )
    elif oldest_minutes > DiagnosticThresholds.OVERDUE_WARNING_MINUTES:
        health.status = WARNING
        health.recommendations.append(
            f"{overdue_count} listings overdue for purge; confirm the next scheduled cleanup runs"
        )

    if health.status != HEALTHY:
        logger.warning(
            f"Cleanup health {health.status}: {overdue_count} overdue, oldest {oldest_minutes} minutes",
            extra={"event": "cleanup_health_degraded", "items_processed": overdue_count},
        )
    return health
