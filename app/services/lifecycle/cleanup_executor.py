# app/services/lifecycle/cleanup_executor.py
"""
Cleanup executor: purges archived listings whose TTL has elapsed.

Two phases, because listings and favorites share no transaction:
1. Read: select purgeable listings, then resolve each one's favorites with
   a bounded pool of concurrent lookups (each worker on its own session).
2. Write: stream each listing delete followed by its favorite deletes
   through the batch writer. Favorite deletes only apply once the listing
   row is gone.

The stored ttl is the only purge clock; it is never recomputed here.
A failed favorite lookup skips that listing (its ttl is unchanged, so the
next run picks it up again). A failed commit stops the run; earlier
commits stand and the partial counts are reported. Favorites whose listing
was deleted in a committed batch but whose own deletes never committed are
left for the related-data sweep.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import delete, exists, select
from sqlalchemy.orm import Session, sessionmaker

from app.constants import BatchLimits
from app.models import Favorite, Listing, ListingStatus
from app.services.lifecycle.batch_writer import (
    OP_DELETE_FAVORITE,
    OP_DELETE_LISTING,
    BatchWriter,
    WriteOperation,
)
from app.services.lifecycle.errors import BatchCommitError, PerEntityProcessingError
from app.services.lifecycle.policy import utc_now

logger = logging.getLogger(__name__)

# (owner_user_id, listing_id)
FavoriteKey = Tuple[str, str]
FavoriteLookup = Callable[[str], List[FavoriteKey]]

DEFAULT_LOOKUP_CONCURRENCY = 10


@dataclass
class CleanupResult:
    """Result of a cleanup run."""
    success: bool
    timestamp: datetime
    listings_found: int = 0
    total_deleted: int = 0
    total_favorites_removed: int = 0
    skipped: int = 0
    completed_batches: int = 0
    errors: List[str] = field(default_factory=list)
    dry_run: bool = False


def find_purgeable_listings(
    db: Session,
    now: datetime,
    limit: Optional[int] = None,
) -> List[Listing]:
    """Archived listings with ttl strictly before `now`, earliest ttl first."""
    query = (
        db.query(Listing)
        .filter(
            Listing.status == ListingStatus.ARCHIVED.value,
            Listing.ttl.isnot(None),
            Listing.ttl < now,
        )
        .order_by(Listing.ttl.asc(), Listing.id.asc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def session_favorite_lookup(session_factory: Callable[[], Session]) -> FavoriteLookup:
    """Favorite lookup that opens and closes its own session per call."""

    def lookup(listing_id: str) -> List[FavoriteKey]:
        db = session_factory()
        try:
            rows = (
                db.query(Favorite.owner_user_id, Favorite.listing_id)
                .filter(Favorite.listing_id == listing_id)
                .order_by(Favorite.owner_user_id.asc())
                .all()
            )
            return [(row.owner_user_id, row.listing_id) for row in rows]
        finally:
            db.close()

    return lookup


def resolve_favorites(
    listing_ids: List[str],
    lookup: FavoriteLookup,
    max_workers: int = DEFAULT_LOOKUP_CONCURRENCY,
) -> Tuple[Dict[str, List[FavoriteKey]], List[PerEntityProcessingError]]:
    """
    Look up favorites for every listing with bounded concurrency.

    Returns:
        (favorites by listing id, per-listing failures)
    """
    resolved: Dict[str, List[FavoriteKey]] = {}
    failures: List[PerEntityProcessingError] = []

    if not listing_ids:
        return resolved, failures

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_id = {executor.submit(lookup, listing_id): listing_id for listing_id in listing_ids}

        for future in as_completed(future_to_id):
            listing_id = future_to_id[future]
            try:
                resolved[listing_id] = future.result()
            except Exception as e:
                failure = PerEntityProcessingError(listing_id, "favorite lookup", cause=e)
                logger.warning(
                    f"{failure.message}: {e}; listing skipped this run",
                    extra={"event": "favorite_lookup_failed", "listing_id": listing_id},
                )
                failures.append(failure)

    return resolved, failures


def _delete_listing_statement(listing_id: str, now: datetime):
    # Guarded so a listing restored since the read phase survives
    return (
        delete(Listing)
        .where(
            Listing.id == listing_id,
            Listing.status == ListingStatus.ARCHIVED.value,
            Listing.ttl < now,
        )
        .execution_options(synchronize_session=False)
    )


def _delete_favorite_statement(key: FavoriteKey):
    # Only once the listing row is gone; a restored listing keeps its favorites
    owner_user_id, listing_id = key
    return (
        delete(Favorite)
        .where(
            Favorite.owner_user_id == owner_user_id,
            Favorite.listing_id == listing_id,
            ~exists(select(Listing.id).where(Listing.id == listing_id)),
        )
        .execution_options(synchronize_session=False)
    )


def cleanup_archived_listings(
    db: Session,
    now: Optional[datetime] = None,
    ceiling: int = BatchLimits.MAX_OPERATIONS_PER_COMMIT,
    limit: Optional[int] = None,
    max_workers: int = DEFAULT_LOOKUP_CONCURRENCY,
    lookup: Optional[FavoriteLookup] = None,
    dry_run: bool = False,
    initiated_by: str = "scheduler",
) -> CleanupResult:
    """
    Delete archived listings past their TTL together with their favorites.

    Args:
        db: Database session used for the selection and all writes
        now: Single clock read for the whole run
        ceiling: Maximum operations per commit
        limit: Maximum listings purged this run; the rest wait for the next tick
        max_workers: Concurrent favorite lookups
        lookup: Favorite resolver (defaults to one session per lookup on db's engine)
        dry_run: If True, count what would be deleted without committing
        initiated_by: Who triggered the run

    Returns:
        CleanupResult with operation summary
    """
    now = now or utc_now()
    result = CleanupResult(success=True, timestamp=now, dry_run=dry_run)

    listings = find_purgeable_listings(db, now, limit=limit)
    result.listings_found = len(listings)

    if not listings:
        logger.info("No archived listings past their TTL")
        return result

    logger.info(
        f"Found {len(listings)} archived listings past TTL (dry_run={dry_run}, initiated_by={initiated_by})",
        extra={"event": "cleanup_candidates", "items_processed": len(listings), "initiated_by": initiated_by},
    )

    if lookup is None:
        lookup = session_favorite_lookup(sessionmaker(bind=db.get_bind(), autoflush=False))

    # Read phase: everything resolved before the first write
    listing_ids = [listing.id for listing in listings]
    favorites_by_listing, failures = resolve_favorites(listing_ids, lookup, max_workers=max_workers)
    result.skipped = len(failures)
    result.errors.extend(f.message + (f": {f.details}" if f.details else "") for f in failures)

    # Write phase
    writer = BatchWriter(db, ceiling=ceiling, dry_run=dry_run)
    try:
        for listing_id in listing_ids:
            if listing_id not in favorites_by_listing:
                continue
            writer.add_operation(
                WriteOperation(OP_DELETE_LISTING, _delete_listing_statement(listing_id, now), listing_id)
            )
            for key in favorites_by_listing[listing_id]:
                writer.add_operation(
                    WriteOperation(OP_DELETE_FAVORITE, _delete_favorite_statement(key), listing_id)
                )
        writer.flush()
    except BatchCommitError as e:
        result.success = False
        result.errors.append(e.message + (f": {e.details}" if e.details else ""))

    result.total_deleted = writer.affected[OP_DELETE_LISTING]
    result.total_favorites_removed = writer.affected[OP_DELETE_FAVORITE]
    result.completed_batches = writer.completed_batches

    logger.info(
        f"Cleanup complete: {result.total_deleted} listings and {result.total_favorites_removed} "
        f"favorites deleted in {result.completed_batches} batches, {result.skipped} skipped",
        extra={
            "event": "cleanup_complete",
            "items_processed": result.total_deleted,
            "items_failed": result.skipped,
            "completed_batches": result.completed_batches,
            "dry_run": dry_run,
        },
    )
    return result
