# app/routers/lifecycle.py
"""
Scheduled listing lifecycle jobs and the public listings query.

POST /v1/listings/archive-expired      - Archive listings past their active window (hourly)
POST /v1/listings/cleanup-archived     - Purge archived listings past their TTL (every 2h)
POST /v1/listings/cleanup-related-data - Remove orphaned favorites (every 4h)
GET  /v1/listings                      - Public active listings
"""

import logging

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.auth import Principal, require_lifecycle_principal
from app.config import Settings, get_settings
from app.database import get_db
from app.logging_config import log_job
from app.schemas.lifecycle import (
    ArchiveResponse,
    ArchiveSummary,
    CleanupResponse,
    CleanupSummary,
    ErrorResponse,
    LifecycleRunRequest,
    ListingListResponse,
    ListingOut,
    SweepResponse,
    SweepSummary,
)
from app.services.lifecycle import (
    archive_expired_listings,
    cleanup_archived_listings,
    get_active_policy,
    sweep_orphaned_favorites,
)
from app.services.lifecycle.visibility import public_listings_query

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/listings", tags=["listings"])

_ERROR_RESPONSES = {401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}


def partial_failure(message: str, errors: list[str], summary) -> JSONResponse:
    """500 carrying what was committed before the run stopped."""
    return JSONResponse(
        status_code=500,
        content={
            "error": message,
            "details": "; ".join(errors) if errors else None,
            "summary": summary.model_dump(by_alias=True, mode="json"),
        },
    )


def _dry_run(payload: LifecycleRunRequest | None) -> bool:
    return bool(payload and payload.dry_run)


# -----------------------------------------------------------------------------
# Scheduled jobs
# -----------------------------------------------------------------------------


@router.post("/archive-expired", response_model=ArchiveResponse, responses=_ERROR_RESPONSES)
def archive_expired(
    principal: Principal = Depends(require_lifecycle_principal),
    payload: LifecycleRunRequest | None = Body(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Archive every active listing whose active window has elapsed."""
    with log_job("archive_expired"):
        result = archive_expired_listings(
            db,
            policy=get_active_policy(settings),
            ceiling=settings.BATCH_CEILING,
            dry_run=_dry_run(payload),
            initiated_by=principal.value,
        )

    summary = ArchiveSummary(
        listings_found=result.listings_found,
        total_archived=result.total_archived,
        completed_batches=result.completed_batches,
        dry_run=result.dry_run,
        timestamp=result.timestamp,
    )
    if not result.success:
        return partial_failure("Archive run failed", result.errors, summary)

    return ArchiveResponse(
        message=f"Archived {result.total_archived} expired listings",
        summary=summary,
    )


@router.post("/cleanup-archived", response_model=CleanupResponse, responses=_ERROR_RESPONSES)
def cleanup_archived(
    principal: Principal = Depends(require_lifecycle_principal),
    payload: LifecycleRunRequest | None = Body(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Delete archived listings past their TTL and every favorite referencing them."""
    with log_job("cleanup_archived"):
        result = cleanup_archived_listings(
            db,
            ceiling=settings.BATCH_CEILING,
            limit=settings.CLEANUP_MAX_LISTINGS,
            max_workers=settings.FAVORITE_LOOKUP_CONCURRENCY,
            dry_run=_dry_run(payload),
            initiated_by=principal.value,
        )

    summary = CleanupSummary(
        listings_found=result.listings_found,
        total_deleted=result.total_deleted,
        total_favorites_removed=result.total_favorites_removed,
        skipped=result.skipped,
        completed_batches=result.completed_batches,
        dry_run=result.dry_run,
        timestamp=result.timestamp,
        errors=result.errors,
    )
    if not result.success:
        return partial_failure("Cleanup run failed", result.errors, summary)

    return CleanupResponse(
        message=(
            f"Deleted {result.total_deleted} archived listings "
            f"and {result.total_favorites_removed} favorites"
        ),
        summary=summary,
    )


@router.post("/cleanup-related-data", response_model=SweepResponse, responses=_ERROR_RESPONSES)
def cleanup_related_data(
    principal: Principal = Depends(require_lifecycle_principal),
    payload: LifecycleRunRequest | None = Body(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Remove favorites whose listing no longer exists."""
    with log_job("cleanup_related_data"):
        result = sweep_orphaned_favorites(
            db,
            ceiling=settings.BATCH_CEILING,
            limit=settings.CLEANUP_MAX_LISTINGS,
            dry_run=_dry_run(payload),
            initiated_by=principal.value,
        )

    summary = SweepSummary(
        orphans_found=result.orphans_found,
        total_favorites_removed=result.total_favorites_removed,
        completed_batches=result.completed_batches,
        dry_run=result.dry_run,
        timestamp=result.timestamp,
    )
    if not result.success:
        return partial_failure("Related data cleanup failed", result.errors, summary)

    return SweepResponse(
        message=f"Removed {result.total_favorites_removed} orphaned favorites",
        summary=summary,
    )


# -----------------------------------------------------------------------------
# Public
# -----------------------------------------------------------------------------


@router.get("", response_model=ListingListResponse)
def list_active_listings(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> ListingListResponse:
    """Publicly visible listings, newest first."""
    query = public_listings_query(db)
    total = query.count()
    listings = query.offset(offset).limit(limit).all()

    return ListingListResponse(
        listings=[ListingOut.model_validate(listing) for listing in listings],
        total=total,
        limit=limit,
        offset=offset,
    )
