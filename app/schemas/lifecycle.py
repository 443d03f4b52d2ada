# app/schemas/lifecycle.py
"""
Schemas for listing lifecycle endpoints.

Responses serialize with camelCase keys:
- success: {message, summary: {..., timestamp}}
- failure: {error, details?} (plus the partial summary when a batch commit failed)
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model emitting camelCase keys and accepting either spelling."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------


class LifecycleRunRequest(CamelModel):
    """Optional body for scheduled lifecycle jobs."""

    dry_run: bool = Field(False, description="Compute the plan and counts without committing")


class ValidateTtlFieldsRequest(CamelModel):
    """Request to validate (and optionally repair) archive/TTL fields."""

    dry_run: bool = Field(True, description="Report only; set false to repair")


# -----------------------------------------------------------------------------
# Errors
# -----------------------------------------------------------------------------


class ErrorResponse(CamelModel):
    """Failure body."""

    error: str
    details: str | None = None


# -----------------------------------------------------------------------------
# Job summaries
# -----------------------------------------------------------------------------


class ArchiveSummary(CamelModel):
    listings_found: int
    total_archived: int
    completed_batches: int
    dry_run: bool
    timestamp: datetime


class MigrationSummary(CamelModel):
    listings_found: int
    total_migrated: int
    total_immediately_expired: int
    skipped: int
    completed_batches: int
    dry_run: bool
    timestamp: datetime


class CleanupSummary(CamelModel):
    listings_found: int
    total_deleted: int
    total_favorites_removed: int
    skipped: int
    completed_batches: int
    dry_run: bool
    timestamp: datetime
    errors: list[str] = Field(default_factory=list)


class SweepSummary(CamelModel):
    orphans_found: int
    total_favorites_removed: int
    completed_batches: int
    dry_run: bool
    timestamp: datetime


class FieldIssueOut(CamelModel):
    listing_id: str
    status: str
    issues: list[str]


class ValidationSummary(CamelModel):
    listings_scanned: int
    total_issues: int
    total_repaired: int
    completed_batches: int
    dry_run: bool
    timestamp: datetime
    issues: list[FieldIssueOut] = Field(default_factory=list)


class ArchiveResponse(CamelModel):
    message: str
    summary: ArchiveSummary


class MigrationResponse(CamelModel):
    message: str
    summary: MigrationSummary


class CleanupResponse(CamelModel):
    message: str
    summary: CleanupSummary


class SweepResponse(CamelModel):
    message: str
    summary: SweepSummary


class ValidationResponse(CamelModel):
    message: str
    summary: ValidationSummary


# -----------------------------------------------------------------------------
# Diagnostics
# -----------------------------------------------------------------------------


class TtlStatsOut(CamelModel):
    with_ttl: int = Field(..., alias="withTTL")
    without_ttl: int = Field(..., alias="withoutTTL")
    expired_ttl: int = Field(..., alias="expiredTTL")
    valid_ttl: int = Field(..., alias="validTTL")


class DiagnosticSummary(CamelModel):
    total_listings: int
    status_counts: dict[str, int]
    tier_counts: dict[str, int]
    ttl_stats: TtlStatsOut = Field(..., alias="ttlStats")
    expiration_issue_count: int
    ttl_issue_count: int
    visibility_issue_count: int
    orphaned_favorite_count: int
    timestamp: datetime


class ExpirationIssueOut(CamelModel):
    listing_id: str
    title: str | None = None
    issue: str
    expires_at: datetime | None = None
    hours_overdue: float | None = None


class TtlIssueOut(CamelModel):
    listing_id: str
    title: str | None = None
    issue: str
    archived_at: datetime | None = None
    ttl: datetime | None = None
    ttl_reason: str | None = None
    detail: str


class VisibilityIssueOut(CamelModel):
    listing_id: str
    title: str | None = None
    status: str
    archived_at: datetime | None = None
    ttl: datetime | None = None


class DiagnosticIssues(CamelModel):
    expiration: list[ExpirationIssueOut]
    ttl: list[TtlIssueOut]
    visibility: list[VisibilityIssueOut]


class RecommendationOut(CamelModel):
    priority: str = Field(..., description="HIGH|MEDIUM|LOW")
    issue: str
    action: str
    remediation_endpoint: str


class DiagnosticResponse(CamelModel):
    message: str
    summary: DiagnosticSummary
    issues: DiagnosticIssues
    recommendations: list[RecommendationOut]


class CleanupHealthSummary(CamelModel):
    status: str = Field(..., description="healthy|warning|critical")
    overdue_count: int
    oldest_overdue_minutes: int | None = None
    next_expected_cleanup: datetime | None = None
    recommendations: list[str] = Field(default_factory=list)
    timestamp: datetime


class CleanupHealthResponse(CamelModel):
    message: str
    summary: CleanupHealthSummary


# -----------------------------------------------------------------------------
# Listings
# -----------------------------------------------------------------------------


class ListingOut(CamelModel):
    """Public view of a listing."""

    id: str
    title: str | None = None
    status: str
    owner_id: str
    account_tier_at_creation: str
    created_at: datetime
    expires_at: datetime | None = None


class ListingDetail(ListingOut):
    """Admin view, including archive/TTL bookkeeping."""

    updated_at: datetime | None = None
    archived_at: datetime | None = None
    ttl: datetime | None = None
    ttl_set_at: datetime | None = None
    ttl_reason: str | None = None


class ListingListResponse(CamelModel):
    listings: list[ListingOut]
    total: int
    limit: int
    offset: int


class RestoreResponse(CamelModel):
    message: str
    listing: ListingDetail
