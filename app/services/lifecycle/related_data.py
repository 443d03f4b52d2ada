# app/services/lifecycle/related_data.py
"""
Related-data sweep: removes favorites whose listing no longer exists.

Catches favorites left behind by a cleanup run that stopped on a failed
commit, and by listings deleted through any other path.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete
from sqlalchemy.orm import Session

from app.constants import BatchLimits
from app.models import Favorite, Listing
from app.services.lifecycle.batch_writer import OP_DELETE_FAVORITE, BatchWriter, WriteOperation
from app.services.lifecycle.errors import BatchCommitError
from app.services.lifecycle.policy import utc_now

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Result of an orphaned-favorites sweep."""
    success: bool
    timestamp: datetime
    orphans_found: int = 0
    total_favorites_removed: int = 0
    completed_batches: int = 0
    errors: List[str] = field(default_factory=list)
    dry_run: bool = False


def find_orphaned_favorites(db: Session, limit: Optional[int] = None) -> List[Favorite]:
    """Favorites pointing at a listing id that has no row."""
    query = (
        db.query(Favorite)
        .outerjoin(Listing, Listing.id == Favorite.listing_id)
        .filter(Listing.id.is_(None))
        .order_by(Favorite.listing_id.asc(), Favorite.owner_user_id.asc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def sweep_orphaned_favorites(
    db: Session,
    ceiling: int = BatchLimits.MAX_OPERATIONS_PER_COMMIT,
    limit: Optional[int] = None,
    dry_run: bool = False,
    initiated_by: str = "scheduler",
) -> SweepResult:
    """
    Delete every favorite whose listing is gone.

    Args:
        db: Database session
        ceiling: Maximum operations per commit
        limit: Maximum favorites removed this run
        dry_run: If True, count orphans without deleting them
        initiated_by: Who triggered the run

    Returns:
        SweepResult with operation summary
    """
    result = SweepResult(success=True, timestamp=utc_now(), dry_run=dry_run)

    orphans = find_orphaned_favorites(db, limit=limit)
    result.orphans_found = len(orphans)

    if not orphans:
        logger.info("No orphaned favorites")
        return result

    logger.info(
        f"Found {len(orphans)} orphaned favorites (dry_run={dry_run}, initiated_by={initiated_by})",
        extra={"event": "orphaned_favorites_found", "items_processed": len(orphans), "initiated_by": initiated_by},
    )

    writer = BatchWriter(db, ceiling=ceiling, dry_run=dry_run)
    try:
        for favorite in orphans:
            statement = (
                delete(Favorite)
                .where(
                    Favorite.owner_user_id == favorite.owner_user_id,
                    Favorite.listing_id == favorite.listing_id,
                )
                .execution_options(synchronize_session=False)
            )
            writer.add_operation(WriteOperation(OP_DELETE_FAVORITE, statement, favorite.listing_id))
        writer.flush()
    except BatchCommitError as e:
        result.success = False
        result.errors.append(e.message + (f": {e.details}" if e.details else ""))

    result.total_favorites_removed = writer.affected[OP_DELETE_FAVORITE]
    result.completed_batches = writer.completed_batches

    logger.info(
        f"Orphaned favorites sweep complete: {result.total_favorites_removed} removed "
        f"in {result.completed_batches} batches",
        extra={
            "event": "orphaned_favorites_swept",
            "items_processed": result.total_favorites_removed,
            "completed_batches": result.completed_batches,
            "dry_run": dry_run,
        },
    )
    return result
