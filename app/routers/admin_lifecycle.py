# app/routers/admin_lifecycle.py
"""
Admin endpoints for listing lifecycle maintenance.

POST /v1/admin/migrate-to-ttl              - Backfill TTLs on archived listings
GET  /v1/admin/listing-diagnostic          - Read-only drift report with recommendations
GET  /v1/admin/ttl-health                  - Is cleanup keeping up with the purge clock
POST /v1/admin/validate-ttl-fields         - Find (and optionally repair) stray archive/TTL fields
POST /v1/admin/listings/{listing_id}/restore - Move an archived listing back to active
"""

import logging

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from app.auth import Principal, require_admin, require_lifecycle_principal
from app.config import Settings, get_settings
from app.database import get_db
from app.logging_config import log_job
from app.routers.lifecycle import partial_failure
from app.schemas.lifecycle import (
    CleanupHealthResponse,
    CleanupHealthSummary,
    DiagnosticIssues,
    DiagnosticResponse,
    DiagnosticSummary,
    ErrorResponse,
    ExpirationIssueOut,
    FieldIssueOut,
    LifecycleRunRequest,
    ListingDetail,
    MigrationResponse,
    MigrationSummary,
    RecommendationOut,
    RestoreResponse,
    TtlIssueOut,
    TtlStatsOut,
    ValidateTtlFieldsRequest,
    ValidationResponse,
    ValidationSummary,
    VisibilityIssueOut,
)
from app.services.lifecycle import (
    check_cleanup_health,
    get_active_policy,
    migrate_to_ttl,
    restore_listing,
    run_listing_diagnostic,
    validate_ttl_fields,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin-lifecycle"])

_ERROR_RESPONSES = {401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}


@router.post("/migrate-to-ttl", response_model=MigrationResponse, responses=_ERROR_RESPONSES)
def migrate_ttl(
    principal: Principal = Depends(require_lifecycle_principal),
    payload: LifecycleRunRequest | None = Body(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Assign a TTL to every archived listing that lacks one.

    Safe to re-run: listings that already have a TTL are never touched.
    """
    with log_job("migrate_to_ttl"):
        result = migrate_to_ttl(
            db,
            policy=get_active_policy(settings),
            ceiling=settings.BATCH_CEILING,
            dry_run=bool(payload and payload.dry_run),
            initiated_by=principal.value,
        )

    summary = MigrationSummary(
        listings_found=result.listings_found,
        total_migrated=result.total_migrated,
        total_immediately_expired=result.total_immediately_expired,
        skipped=result.skipped,
        completed_batches=result.completed_batches,
        dry_run=result.dry_run,
        timestamp=result.timestamp,
    )
    if not result.success:
        return partial_failure("TTL migration failed", result.errors, summary)

    return MigrationResponse(
        message=(
            f"Assigned TTL to {result.total_migrated} archived listings "
            f"({result.total_immediately_expired} given the grace period)"
        ),
        summary=summary,
    )


@router.get("/listing-diagnostic", response_model=DiagnosticResponse, responses=_ERROR_RESPONSES)
def listing_diagnostic(
    _: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> DiagnosticResponse:
    """Cross-check status, TTL and public visibility. Never mutates."""
    report = run_listing_diagnostic(db, tolerance_minutes=settings.EXPIRATION_TOLERANCE_MINUTES)

    stats = report.ttl_stats
    return DiagnosticResponse(
        message="Listing diagnostic complete",
        summary=DiagnosticSummary(
            total_listings=report.total_listings,
            status_counts=report.status_counts,
            tier_counts=report.tier_counts,
            ttl_stats=TtlStatsOut(
                with_ttl=stats.with_ttl,
                without_ttl=stats.without_ttl,
                expired_ttl=stats.expired_ttl,
                valid_ttl=stats.valid_ttl,
            ),
            expiration_issue_count=report.expiration_issue_count,
            ttl_issue_count=report.ttl_issue_count,
            visibility_issue_count=report.visibility_issue_count,
            orphaned_favorite_count=report.orphaned_favorite_count,
            timestamp=report.timestamp,
        ),
        issues=DiagnosticIssues(
            expiration=[
                ExpirationIssueOut(
                    listing_id=i.listing_id,
                    title=i.title,
                    issue=i.issue,
                    expires_at=i.expires_at,
                    hours_overdue=i.hours_overdue,
                )
                for i in report.expiration_issues
            ],
            ttl=[
                TtlIssueOut(
                    listing_id=i.listing_id,
                    title=i.title,
                    issue=i.issue,
                    archived_at=i.archived_at,
                    ttl=i.ttl,
                    ttl_reason=i.ttl_reason,
                    detail=i.detail,
                )
                for i in report.ttl_issues
            ],
            visibility=[
                VisibilityIssueOut(
                    listing_id=i.listing_id,
                    title=i.title,
                    status=i.status,
                    archived_at=i.archived_at,
                    ttl=i.ttl,
                )
                for i in report.visibility_issues
            ],
        ),
        recommendations=[
            RecommendationOut(
                priority=r.priority,
                issue=r.issue,
                action=r.action,
                remediation_endpoint=r.remediation_endpoint,
            )
            for r in report.recommendations
        ],
    )


@router.get("/ttl-health", response_model=CleanupHealthResponse, responses=_ERROR_RESPONSES)
def ttl_health(
    _: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
) -> CleanupHealthResponse:
    """Report how far the cleanup job is behind the purge clock."""
    health = check_cleanup_health(db)
    return CleanupHealthResponse(
        message=f"Cleanup health: {health.status}",
        summary=CleanupHealthSummary(
            status=health.status,
            overdue_count=health.overdue_count,
            oldest_overdue_minutes=health.oldest_overdue_minutes,
            next_expected_cleanup=health.next_expected_cleanup,
            recommendations=health.recommendations,
            timestamp=health.timestamp,
        ),
    )


@router.post("/validate-ttl-fields", response_model=ValidationResponse, responses=_ERROR_RESPONSES)
def validate_fields(
    principal: Principal = Depends(require_admin),
    payload: ValidateTtlFieldsRequest | None = Body(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Report stray archive/TTL fields; repair them when dryRun is false."""
    dry_run = payload.dry_run if payload else True

    with log_job("validate_ttl_fields"):
        result = validate_ttl_fields(
            db,
            ceiling=settings.BATCH_CEILING,
            dry_run=dry_run,
            initiated_by=principal.value,
        )

    summary = ValidationSummary(
        listings_scanned=result.listings_scanned,
        total_issues=result.total_issues,
        total_repaired=result.total_repaired,
        completed_batches=result.completed_batches,
        dry_run=result.dry_run,
        timestamp=result.timestamp,
        issues=[
            FieldIssueOut(listing_id=i.listing_id, status=i.status, issues=i.issues)
            for i in result.issues
        ],
    )
    if not result.success:
        return partial_failure("TTL field repair failed", result.errors, summary)

    verb = "Found" if dry_run else "Repaired"
    count = result.total_issues if dry_run else result.total_repaired
    return ValidationResponse(
        message=f"{verb} {count} TTL field issues",
        summary=summary,
    )


@router.post("/listings/{listing_id}/restore", response_model=RestoreResponse, responses=_ERROR_RESPONSES)
def restore(
    listing_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> RestoreResponse:
    """Move an archived listing back to active with a fresh active window."""
    listing = restore_listing(
        db,
        listing_id,
        policy=get_active_policy(settings),
        initiated_by=principal.value,
    )
    return RestoreResponse(
        message=f"Listing {listing_id} restored",
        listing=ListingDetail.model_validate(listing),
    )
