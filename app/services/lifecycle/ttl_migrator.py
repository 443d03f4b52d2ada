# app/services/lifecycle/ttl_migrator.py
"""
TTL migrator: backfills a TTL on archived listings that have none.

Safe to re-run indefinitely:
- listings that already carry a TTL are skipped
- the update is guarded on ttl IS NULL, so a concurrent run cannot
  overwrite a TTL assigned in the meantime
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
    OP_ASSIGN_GRACE_TTL,
    OP_ASSIGN_TTL,
    BatchWriter,
    WriteOperation,
)
from app.services.lifecycle.errors import BatchCommitError
from app.services.lifecycle.policy import LifecyclePolicy, get_active_policy, utc_now

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    """Result of a TTL migration run."""
    success: bool
    timestamp: datetime
    listings_found: int = 0
    total_migrated: int = 0
    total_immediately_expired: int = 0
    skipped: int = 0
    completed_batches: int = 0
    errors: List[str] = field(default_factory=list)
    dry_run: bool = False


def find_archived_without_ttl(db: Session, limit: Optional[int] = None) -> List[Listing]:
    """Archived listings with no TTL, oldest archive first (missing archived_at last)."""
    query = (
        db.query(Listing)
        .filter(
            Listing.status == ListingStatus.ARCHIVED.value,
            Listing.ttl.is_(None),
        )
        .order_by(Listing.archived_at.is_(None), Listing.archived_at.asc(), Listing.id.asc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def plan_ttl(listing: Listing, policy: LifecyclePolicy, now: datetime) -> tuple[datetime, TtlReason]:
    """
    TTL and reason the migrator would assign to `listing`.

    - expired but never archived: now + grace_period (migration_immediate_expiry)
    - otherwise: (archived_at or now) + archive_duration (migration_normal)
    """
    if policy.is_immediately_expired(listing, now):
        return now + policy.grace_period, TtlReason.MIGRATION_IMMEDIATE_EXPIRY
    return policy.compute_ttl(listing, listing.archived_at or now, now), TtlReason.MIGRATION_NORMAL


def _assign_statement(listing: Listing, ttl: datetime, reason: TtlReason, now: datetime):
    return (
        update(Listing)
        .where(
            Listing.id == listing.id,
            Listing.status == ListingStatus.ARCHIVED.value,
            Listing.ttl.is_(None),
        )
        .values(
            ttl=ttl,
            ttl_set_at=now,
            ttl_reason=reason.value,
            archived_at=listing.archived_at or now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )


def migrate_to_ttl(
    db: Session,
    now: Optional[datetime] = None,
    policy: Optional[LifecyclePolicy] = None,
    ceiling: int = BatchLimits.MAX_OPERATIONS_PER_COMMIT,
    limit: Optional[int] = None,
    dry_run: bool = False,
    initiated_by: str = "scheduler",
) -> MigrationResult:
    """
    Assign a TTL to every archived listing that lacks one.

    Args:
        db: Database session
        now: Single clock read for the whole run
        policy: Lifecycle durations (defaults to configured policy)
        ceiling: Maximum operations per commit
        limit: Maximum listings handled this run
        dry_run: If True, count what would be migrated without committing
        initiated_by: Who triggered the run

    Returns:
        MigrationResult with operation summary
    """
    now = now or utc_now()
    policy = policy or get_active_policy()
    result = MigrationResult(success=True, timestamp=now, dry_run=dry_run)

    listings = find_archived_without_ttl(db, limit=limit)
    result.listings_found = len(listings)

    if not listings:
        logger.info("No archived listings without TTL")
        return result

    logger.info(
        f"Found {len(listings)} archived listings without TTL (dry_run={dry_run}, initiated_by={initiated_by})",
        extra={"event": "ttl_migration_candidates", "items_processed": len(listings), "initiated_by": initiated_by},
    )

    writer = BatchWriter(db, ceiling=ceiling, dry_run=dry_run)
    try:
        for listing in listings:
            if listing.ttl is not None:
                result.skipped += 1
                continue

            ttl, reason = plan_ttl(listing, policy, now)
            kind = OP_ASSIGN_GRACE_TTL if reason is TtlReason.MIGRATION_IMMEDIATE_EXPIRY else OP_ASSIGN_TTL
            writer.add_operation(WriteOperation(kind, _assign_statement(listing, ttl, reason, now), listing.id))
        writer.flush()
    except BatchCommitError as e:
        result.success = False
        result.errors.append(e.message + (f": {e.details}" if e.details else ""))

    result.total_immediately_expired = writer.affected[OP_ASSIGN_GRACE_TTL]
    result.total_migrated = writer.affected[OP_ASSIGN_TTL] + result.total_immediately_expired
    result.completed_batches = writer.completed_batches

    logger.info(
        f"TTL migration complete: {result.total_migrated} migrated "
        f"({result.total_immediately_expired} immediately expired) in {result.completed_batches} batches",
        extra={
            "event": "ttl_migration_complete",
            "items_processed": result.total_migrated,
            "completed_batches": result.completed_batches,
            "dry_run": dry_run,
        },
    )
    return result
