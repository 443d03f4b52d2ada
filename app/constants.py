# app/constants.py
"""
Centralized magic constants organized by domain.

All hardcoded numbers/strings used throughout the codebase should be
defined here with documentation explaining their purpose.
"""


class LifecycleDefaults:
    """Fallback lifecycle policy values (overridden by Settings)."""

    FREE_ACTIVE_WINDOW_HOURS = 48       # Free tier listing lifetime
    PREMIUM_ACTIVE_WINDOW_DAYS = 30     # Premium tier listing lifetime
    ARCHIVE_DURATION_DAYS = 7           # Archived listing kept before purge
    GRACE_PERIOD_HOURS = 24             # Notice window for already-overdue rows


class BatchLimits:
    """Write batching limits."""

    MAX_OPERATIONS_PER_COMMIT = 500     # Hard per-commit ceiling of the store


class ScheduleIntervals:
    """Expected scheduler cadence, in minutes."""

    CLEANUP_ARCHIVED = 120              # Every two hours


class DiagnosticThresholds:
    """Thresholds used by the reconciler and health monitor."""

    HIGH_PRIORITY_ISSUE_COUNT = 5       # Issue count at which a recommendation becomes HIGH
    ISSUE_SAMPLE_LIMIT = 50             # Issues listed per category in a report
    OVERDUE_WARNING_MINUTES = 60        # Cleanup overdue -> warning
    OVERDUE_CRITICAL_MINUTES = 180      # Cleanup overdue -> critical


class RemediationEndpoints:
    """Routes a recommendation points operators at."""

    ARCHIVE_EXPIRED = "/v1/listings/archive-expired"
    CLEANUP_ARCHIVED = "/v1/listings/cleanup-archived"
    CLEANUP_RELATED_DATA = "/v1/listings/cleanup-related-data"
    MIGRATE_TO_TTL = "/v1/admin/migrate-to-ttl"
    VALIDATE_TTL_FIELDS = "/v1/admin/validate-ttl-fields"
