# app/services/lifecycle/archiver.py
"""
Archiver: moves listings whose active window elapsed from active to archived.

Handles:
- Finding active listings with expires_at <= now
- Setting status, archived_at and the TTL in one guarded update per listing
- Restoring an archived listing to active (admin only)

Updates are guarded on the current status, so overlapping runs never
archive a listing twice or touch one that was sold in between.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.constants import BatchLimits
from app.models import Listing, ListingStatus, TtlReason
from app.services.lifecycle.batch_writer import (
    OP_ARCHIVE_LISTING,
    OP_RESTORE_LISTING,
    BatchWriter,
    WriteOperation,
)
from app.services.lifecycle.errors import (
    BatchCommitError,
    InvalidTransitionError,
    ListingNotFoundError,
)
from app.services.lifecycle.policy import LifecyclePolicy, get_active_policy, utc_now

logger = logging.getLogger(__name__)


@dataclass
class ArchiveResult:
    """Result of an archive run."""
    success: bool
    timestamp: datetime
    listings_found: int = 0
    total_archived: int = 0
    completed_batches: int = 0
    errors: List[str] = field(default_factory=list)
    dry_run: bool = False


def find_expired_listings(
    db: Session,
    now: datetime,
    limit: Optional[int] = None,
) -> List[Listing]:
    """Active listings whose active window ended at or before `now`, oldest first."""
    query = (
        db.query(Listing)
        .filter(
            Listing.status == ListingStatus.ACTIVE.value,
            Listing.expires_at.isnot(None),
            Listing.expires_at <= now,
        )
        .order_by(Listing.expires_at.asc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def _archive_statement(listing: Listing, ttl: datetime, now: datetime):
    return (
        update(Listing)
        .where(
            Listing.id == listing.id,
            Listing.status == ListingStatus.ACTIVE.value,
        )
        .values(
            status=ListingStatus.ARCHIVED.value,
            archived_at=now,
            ttl=ttl,
            ttl_set_at=now,
            ttl_reason=TtlReason.ARCHIVER_ASSIGNED.value,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )


def archive_expired_listings(
    db: Session,
    now: Optional[datetime] = None,
    policy: Optional[LifecyclePolicy] = None,
    ceiling: int = BatchLimits.MAX_OPERATIONS_PER_COMMIT,
    limit: Optional[int] = None,
    dry_run: bool = False,
    initiated_by: str = "scheduler",
) -> ArchiveResult:
    """
    Archive every active listing whose active window has elapsed.

    Args:
        db: Database session
        now: Single clock read for the whole run
        policy: Lifecycle durations (defaults to configured policy)
        ceiling: Maximum operations per commit
        limit: Maximum listings handled this run; the rest wait for the next tick
        dry_run: If True, count what would be archived without committing
        initiated_by: Who triggered the run

    Returns:
        ArchiveResult with operation summary
    """
    now = now or utc_now()
    policy = policy or get_active_policy()
    result = ArchiveResult(success=True, timestamp=now, dry_run=dry_run)

    listings = find_expired_listings(db, now, limit=limit)
    result.listings_found = len(listings)

    if not listings:
        logger.info("No expired listings to archive")
        return result

    logger.info(
        f"Found {len(listings)} expired listings to archive (dry_run={dry_run}, initiated_by={initiated_by})",
        extra={"event": "archive_candidates", "items_processed": len(listings), "initiated_by": initiated_by},
    )

    writer = BatchWriter(db, ceiling=ceiling, dry_run=dry_run)
    try:
        for listing in listings:
            # archived_at is now, so the TTL is now + archive_duration
            ttl = policy.compute_ttl(listing, archived_at=now, now=now)
            writer.add_operation(
                WriteOperation(OP_ARCHIVE_LISTING, _archive_statement(listing, ttl, now), listing.id)
            )
        writer.flush()
    except BatchCommitError as e:
        result.success = False
        result.errors.append(e.message + (f": {e.details}" if e.details else ""))

    result.total_archived = writer.affected[OP_ARCHIVE_LISTING]
    result.completed_batches = writer.completed_batches

    logger.info(
        f"Archive run complete: {result.total_archived} archived in "
        f"{result.completed_batches} batches (success={result.success})",
        extra={
            "event": "archive_complete",
            "items_processed": result.total_archived,
            "completed_batches": result.completed_batches,
            "dry_run": dry_run,
        },
    )
    return result


def restore_listing(
    db: Session,
    listing_id: str,
    now: Optional[datetime] = None,
    policy: Optional[LifecyclePolicy] = None,
    initiated_by: str = "admin",
) -> Listing:
    """
    Move an archived listing back to active with a fresh active window.

    Clears archived_at and all TTL bookkeeping.

    Raises:
        ListingNotFoundError: no such listing
        InvalidTransitionError: listing is not archived
        BatchCommitError: the update failed to commit
    """
    now = now or utc_now()
    policy = policy or get_active_policy()

    listing = db.query(Listing).filter(Listing.id == listing_id).first()
    if listing is None:
        raise ListingNotFoundError(f"Listing {listing_id} not found")
    if listing.status != ListingStatus.ARCHIVED.value:
        raise InvalidTransitionError(
            f"Listing {listing_id} is not archived",
            details=f"current status: {listing.status}",
        )

    expires_at = now + policy.active_window(listing.account_tier_at_creation)
    statement = (
        update(Listing)
        .where(
            Listing.id == listing_id,
            Listing.status == ListingStatus.ARCHIVED.value,
        )
        .values(
            status=ListingStatus.ACTIVE.value,
            expires_at=expires_at,
            archived_at=None,
            ttl=None,
            ttl_set_at=None,
            ttl_reason=None,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )

    writer = BatchWriter(db, ceiling=1)
    writer.add_operation(WriteOperation(OP_RESTORE_LISTING, statement, listing_id))

    if not writer.affected[OP_RESTORE_LISTING]:
        raise InvalidTransitionError(f"Listing {listing_id} changed state during restore")

    db.refresh(listing)
    logger.info(
        f"Restored listing {listing_id} to active until {expires_at.isoformat()} (initiated_by={initiated_by})",
        extra={"event": "listing_restored", "listing_id": listing_id, "initiated_by": initiated_by},
    )
    return listing
