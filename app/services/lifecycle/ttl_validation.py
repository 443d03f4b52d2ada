# app/services/lifecycle/ttl_validation.py
"""
TTL field validation and repair.

Finds rows whose archive/TTL bookkeeping contradicts their status:
- active listings carrying archive or TTL fields (these also leak archive
  markers into the public listings query)
- archived listings with no archived_at
- archived listings with ttl_set_at/ttl_reason but no ttl

Repairs clear stray fields and backfill archived_at. A ttl is never
assigned or lowered here; missing TTLs are left for the migrator.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from app.constants import BatchLimits
from app.models import Listing, ListingStatus
from app.services.lifecycle.batch_writer import OP_REPAIR_LISTING, BatchWriter, WriteOperation
from app.services.lifecycle.errors import BatchCommitError
from app.services.lifecycle.policy import utc_now

logger = logging.getLogger(__name__)

STRAY_ARCHIVE_FIELDS = "stray_archive_fields"
MISSING_ARCHIVED_AT = "missing_archived_at"
TTL_BOOKKEEPING_WITHOUT_TTL = "ttl_bookkeeping_without_ttl"


@dataclass
class FieldIssue:
    listing_id: str
    status: str
    issues: List[str]


@dataclass
class ValidationResult:
    """Result of a TTL field validation run."""
    success: bool
    timestamp: datetime
    listings_scanned: int = 0
    total_issues: int = 0
    total_repaired: int = 0
    completed_batches: int = 0
    issues: List[FieldIssue] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    dry_run: bool = True


def _candidates(db: Session, limit: Optional[int]) -> List[Listing]:
    query = (
        db.query(Listing)
        .filter(
            or_(
                (Listing.status == ListingStatus.ACTIVE.value) & or_(
                    Listing.archived_at.isnot(None),
                    Listing.ttl.isnot(None),
                    Listing.ttl_set_at.isnot(None),
                    Listing.ttl_reason.isnot(None),
                ),
                (Listing.status == ListingStatus.ARCHIVED.value) & or_(
                    Listing.archived_at.is_(None),
                    Listing.ttl.is_(None) & (Listing.ttl_set_at.isnot(None) | Listing.ttl_reason.isnot(None)),
                ),
            )
        )
        .order_by(Listing.id.asc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def plan_repair(listing: Listing, now: datetime) -> tuple[List[str], Dict[str, Optional[datetime]]]:
    """
    Issues found on `listing` and the column values that repair them.

    Returns ([], {}) for a consistent row.
    """
    issues: List[str] = []
    values: Dict = {}

    if listing.status == ListingStatus.ACTIVE.value:
        if any(v is not None for v in (listing.archived_at, listing.ttl, listing.ttl_set_at, listing.ttl_reason)):
            issues.append(STRAY_ARCHIVE_FIELDS)
            values.update(archived_at=None, ttl=None, ttl_set_at=None, ttl_reason=None)

    elif listing.status == ListingStatus.ARCHIVED.value:
        if listing.archived_at is None:
            issues.append(MISSING_ARCHIVED_AT)
            backfill = listing.ttl_set_at or now
            if listing.ttl is not None and backfill > listing.ttl:
                backfill = listing.ttl
            values["archived_at"] = backfill
        if listing.ttl is None and (listing.ttl_set_at is not None or listing.ttl_reason is not None):
            issues.append(TTL_BOOKKEEPING_WITHOUT_TTL)
            values.update(ttl_set_at=None, ttl_reason=None)

    if values:
        values["updated_at"] = now
    return issues, values


def validate_ttl_fields(
    db: Session,
    now: Optional[datetime] = None,
    ceiling: int = BatchLimits.MAX_OPERATIONS_PER_COMMIT,
    limit: Optional[int] = None,
    dry_run: bool = True,
    initiated_by: str = "admin",
) -> ValidationResult:
    """
    Report (and unless dry_run, repair) inconsistent archive/TTL fields.

    Each repair is guarded on the status it was planned for.
    """
    now = now or utc_now()
    result = ValidationResult(success=True, timestamp=now, dry_run=dry_run)

    listings = _candidates(db, limit)
    result.listings_scanned = len(listings)

    writer = BatchWriter(db, ceiling=ceiling, dry_run=dry_run)
    try:
        for listing in listings:
            issues, values = plan_repair(listing, now)
            if not issues:
                continue
            result.total_issues += len(issues)
            result.issues.append(FieldIssue(listing.id, listing.status, issues))

            statement = (
                update(Listing)
                .where(Listing.id == listing.id, Listing.status == listing.status)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            writer.add_operation(WriteOperation(OP_REPAIR_LISTING, statement, listing.id))
        writer.flush()
    except BatchCommitError as e:
        result.success = False
        result.errors.append(e.message + (f": {e.details}" if e.details else ""))

    # A dry run plans repairs but touches no rows
    result.total_repaired = 0 if dry_run else writer.affected[OP_REPAIR_LISTING]
    result.completed_batches = writer.completed_batches

    logger.info(
        f"TTL field validation: {len(result.issues)} listings with {result.total_issues} issues, "
        f"{result.total_repaired} repaired (dry_run={dry_run}, initiated_by={initiated_by})",
        extra={
            "event": "ttl_fields_validated",
            "items_processed": result.listings_scanned,
            "dry_run": dry_run,
            "initiated_by": initiated_by,
        },
    )
    return result
