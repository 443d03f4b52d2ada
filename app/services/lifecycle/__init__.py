# app/services/lifecycle/__init__.py
"""
Listing lifecycle services.

Listing states:
- active: publicly visible until expires_at
- archived: hidden; ttl is the absolute purge instant
- deleted: removed together with its favorites (terminal)

Services:
- policy: active windows and TTL math (pure)
- batch_writer: per-commit operation ceiling
- archiver: active -> archived, plus admin restore
- ttl_migrator: TTL backfill for archived listings
- cleanup_executor: purge past-TTL listings and their favorites
- related_data: orphaned favorites sweep
- diagnostics: read-only reconciler and cleanup health
- ttl_validation: stray archive/TTL field repair
"""

from app.services.lifecycle.archiver import (
    ArchiveResult,
    archive_expired_listings,
    find_expired_listings,
    restore_listing,
)
from app.services.lifecycle.batch_writer import BatchWriter, WriteBatch, WriteOperation
from app.services.lifecycle.cleanup_executor import (
    CleanupResult,
    cleanup_archived_listings,
    find_purgeable_listings,
)
from app.services.lifecycle.diagnostics import (
    CleanupHealth,
    DiagnosticReport,
    check_cleanup_health,
    run_listing_diagnostic,
)
from app.services.lifecycle.errors import (
    AuthorizationError,
    BatchCommitError,
    LifecycleError,
    PerEntityProcessingError,
    StoreUnavailableError,
)
from app.services.lifecycle.policy import LifecyclePolicy, get_active_policy, utc_now
from app.services.lifecycle.related_data import SweepResult, sweep_orphaned_favorites
from app.services.lifecycle.ttl_migrator import MigrationResult, migrate_to_ttl
from app.services.lifecycle.ttl_validation import ValidationResult, validate_ttl_fields

__all__ = [
    # Policy
    "LifecyclePolicy",
    "get_active_policy",
    "utc_now",
    # Batching
    "BatchWriter",
    "WriteBatch",
    "WriteOperation",
    # Archive
    "archive_expired_listings",
    "find_expired_listings",
    "restore_listing",
    "ArchiveResult",
    # TTL
    "migrate_to_ttl",
    "MigrationResult",
    "validate_ttl_fields",
    "ValidationResult",
    # Cleanup
    "cleanup_archived_listings",
    "find_purgeable_listings",
    "CleanupResult",
    "sweep_orphaned_favorites",
    "SweepResult",
    # Diagnostics
    "run_listing_diagnostic",
    "check_cleanup_health",
    "DiagnosticReport",
    "CleanupHealth",
    # Errors
    "LifecycleError",
    "AuthorizationError",
    "StoreUnavailableError",
    "PerEntityProcessingError",
    "BatchCommitError",
]
