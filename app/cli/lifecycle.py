# app/cli/lifecycle.py
"""
CLI commands for listing lifecycle maintenance.

Usage:
    python -m app.cli.lifecycle archive --dry-run
    python -m app.cli.lifecycle migrate-ttl
    python -m app.cli.lifecycle cleanup --confirm
    python -m app.cli.lifecycle sweep-favorites --execute
    python -m app.cli.lifecycle diagnose
    python -m app.cli.lifecycle health
    python -m app.cli.lifecycle validate-ttl --repair
    python -m app.cli.lifecycle restore <listing_id>
"""

import argparse
import sys

from dotenv import load_dotenv

load_dotenv()


def get_db_session():
    """Get a database session, exiting if the store is unreachable."""
    from app.database import open_session
    from app.services.lifecycle.errors import StoreUnavailableError

    try:
        return open_session()
    except StoreUnavailableError as e:
        print(f"Error: {e.message} ({e.details})")
        sys.exit(1)


def _print_errors(errors):
    if errors:
        print("\nErrors:")
        for error in errors:
            print(f"  - {error}")


def cmd_archive(args):
    """Archive listings whose active window elapsed."""
    from app.config import get_settings
    from app.services.lifecycle import archive_expired_listings, get_active_policy

    settings = get_settings()
    db = get_db_session()
    try:
        print(f"\n{'DRY RUN - ' if args.dry_run else ''}Archiving expired listings...\n")

        result = archive_expired_listings(
            db,
            policy=get_active_policy(settings),
            ceiling=settings.BATCH_CEILING,
            dry_run=args.dry_run,
            initiated_by="cli",
        )

        print(f"Found: {result.listings_found}")
        print(f"Archived: {result.total_archived}")
        print(f"Batches: {result.completed_batches}")
        _print_errors(result.errors)

        if not result.success:
            sys.exit(1)
    finally:
        db.close()


def cmd_migrate_ttl(args):
    """Backfill TTLs on archived listings."""
    from app.config import get_settings
    from app.services.lifecycle import get_active_policy, migrate_to_ttl

    settings = get_settings()
    db = get_db_session()
    try:
        print(f"\n{'DRY RUN - ' if args.dry_run else ''}Assigning TTLs...\n")

        result = migrate_to_ttl(
            db,
            policy=get_active_policy(settings),
            ceiling=settings.BATCH_CEILING,
            dry_run=args.dry_run,
            initiated_by="cli",
        )

        print(f"Found: {result.listings_found}")
        print(f"Migrated: {result.total_migrated}")
        print(f"Immediately expired: {result.total_immediately_expired}")
        print(f"Skipped: {result.skipped}")
        print(f"Batches: {result.completed_batches}")
        _print_errors(result.errors)

        if not result.success:
            sys.exit(1)
    finally:
        db.close()


def cmd_cleanup(args):
    """Purge archived listings past their TTL."""
    from app.config import get_settings
    from app.services.lifecycle import cleanup_archived_listings

    if not args.dry_run and not args.confirm:
        print("Error: Cleanup requires --confirm flag for non-dry-run operations")
        print("Use --dry-run to preview what would be deleted")
        sys.exit(1)

    settings = get_settings()
    db = get_db_session()
    try:
        print(f"\n{'DRY RUN - ' if args.dry_run else ''}Cleaning up archived listings...\n")

        result = cleanup_archived_listings(
            db,
            ceiling=settings.BATCH_CEILING,
            limit=args.limit or settings.CLEANUP_MAX_LISTINGS,
            max_workers=settings.FAVORITE_LOOKUP_CONCURRENCY,
            dry_run=args.dry_run,
            initiated_by="cli",
        )

        print(f"Found: {result.listings_found}")
        print(f"Listings deleted: {result.total_deleted}")
        print(f"Favorites removed: {result.total_favorites_removed}")
        print(f"Skipped: {result.skipped}")
        print(f"Batches: {result.completed_batches}")
        _print_errors(result.errors)

        if not result.success:
            sys.exit(1)
    finally:
        db.close()


def cmd_sweep_favorites(args):
    """Remove favorites whose listing no longer exists."""
    from app.config import get_settings
    from app.services.lifecycle import sweep_orphaned_favorites

    settings = get_settings()
    db = get_db_session()
    try:
        print(f"\n{'DRY RUN - ' if args.dry_run else ''}Sweeping orphaned favorites...\n")

        result = sweep_orphaned_favorites(
            db,
            ceiling=settings.BATCH_CEILING,
            dry_run=args.dry_run,
            initiated_by="cli",
        )

        print(f"Orphans found: {result.orphans_found}")
        print(f"Removed: {result.total_favorites_removed}")
        _print_errors(result.errors)

        if not result.success:
            sys.exit(1)
    finally:
        db.close()


def cmd_diagnose(args):
    """Print the listing diagnostic report."""
    from app.config import get_settings
    from app.services.lifecycle import run_listing_diagnostic

    settings = get_settings()
    db = get_db_session()
    try:
        report = run_listing_diagnostic(db, tolerance_minutes=settings.EXPIRATION_TOLERANCE_MINUTES)

        print("\n=== Listing Diagnostic ===\n")
        print(f"Total listings: {report.total_listings}")

        print("\nBy status:")
        for status, count in sorted(report.status_counts.items()):
            print(f"  {status}: {count}")

        print("\nBy tier:")
        for tier, count in sorted(report.tier_counts.items()):
            print(f"  {tier}: {count}")

        stats = report.ttl_stats
        print("\nTTL (archived listings):")
        print(f"  with TTL: {stats.with_ttl}")
        print(f"  without TTL: {stats.without_ttl}")
        print(f"  expired: {stats.expired_ttl}")
        print(f"  valid: {stats.valid_ttl}")

        print("\nIssues:")
        print(f"  expiration: {report.expiration_issue_count}")
        print(f"  ttl: {report.ttl_issue_count}")
        print(f"  visibility: {report.visibility_issue_count}")
        print(f"  orphaned favorites: {report.orphaned_favorite_count}")

        if report.recommendations:
            print("\nRecommendations:")
            for rec in report.recommendations:
                print(f"  [{rec.priority}] {rec.issue}")
                print(f"      {rec.action} -> {rec.remediation_endpoint}")
        print()
    finally:
        db.close()


def cmd_health(args):
    """Show whether cleanup is keeping up."""
    from app.services.lifecycle import check_cleanup_health

    db = get_db_session()
    try:
        health = check_cleanup_health(db)

        print(f"\nCleanup health: {health.status.upper()}")
        print(f"  Overdue listings: {health.overdue_count}")
        if health.oldest_overdue_minutes is not None:
            print(f"  Oldest overdue: {health.oldest_overdue_minutes} minutes")
        print(f"  Next expected cleanup: {health.next_expected_cleanup.isoformat()}Z")
        for rec in health.recommendations:
            print(f"  - {rec}")
        print()
    finally:
        db.close()


def cmd_validate_ttl(args):
    """Find (and with --repair, fix) stray archive/TTL fields."""
    from app.config import get_settings
    from app.services.lifecycle import validate_ttl_fields

    settings = get_settings()
    db = get_db_session()
    try:
        result = validate_ttl_fields(
            db,
            ceiling=settings.BATCH_CEILING,
            dry_run=not args.repair,
            initiated_by="cli",
        )

        print(f"\nScanned: {result.listings_scanned}")
        print(f"Issues: {result.total_issues}")
        for issue in result.issues:
            print(f"  {issue.listing_id} ({issue.status}): {', '.join(issue.issues)}")
        if args.repair:
            print(f"Repaired: {result.total_repaired}")
        _print_errors(result.errors)

        if not result.success:
            sys.exit(1)
    finally:
        db.close()


def cmd_restore(args):
    """Restore an archived listing to active."""
    from app.config import get_settings
    from app.services.lifecycle import get_active_policy, restore_listing
    from app.services.lifecycle.errors import LifecycleError

    settings = get_settings()
    db = get_db_session()
    try:
        try:
            listing = restore_listing(db, args.listing_id, policy=get_active_policy(settings), initiated_by="cli")
        except LifecycleError as e:
            print(f"Error: {e.message}")
            sys.exit(1)

        print(f"Restored listing {listing.id}, active until {listing.expires_at.isoformat()}Z")
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(
        description="Listing Lifecycle CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview what would be archived
  python -m app.cli.lifecycle archive --dry-run

  # Purge archived listings past their TTL
  python -m app.cli.lifecycle cleanup --confirm

  # Check for drift between status, TTL and visibility
  python -m app.cli.lifecycle diagnose
        """,
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON logs instead of plain text")

    subparsers = parser.add_subparsers(dest="command", required=True)

    archive_parser = subparsers.add_parser("archive", help="Archive expired listings")
    archive_parser.add_argument("--dry-run", action="store_true", help="Preview only, don't archive")
    archive_parser.set_defaults(func=cmd_archive)

    migrate_parser = subparsers.add_parser("migrate-ttl", help="Backfill TTLs on archived listings")
    migrate_parser.add_argument("--dry-run", action="store_true", help="Preview only, don't assign")
    migrate_parser.set_defaults(func=cmd_migrate_ttl)

    cleanup_parser = subparsers.add_parser("cleanup", help="Purge archived listings past their TTL")
    cleanup_parser.add_argument("--limit", type=int, default=None, help="Max listings to purge this run")
    cleanup_parser.add_argument("--dry-run", action="store_true", help="Preview only, don't delete")
    cleanup_parser.add_argument("--confirm", action="store_true", help="Confirm cleanup operation")
    cleanup_parser.set_defaults(func=cmd_cleanup)

    sweep_parser = subparsers.add_parser("sweep-favorites", help="Remove orphaned favorites")
    sweep_parser.add_argument("--dry-run", action="store_true", default=True, help="Preview only (default: true)")
    sweep_parser.add_argument("--execute", action="store_true", help="Actually delete orphaned favorites")
    sweep_parser.set_defaults(func=cmd_sweep_favorites)

    diagnose_parser = subparsers.add_parser("diagnose", help="Show the listing diagnostic report")
    diagnose_parser.set_defaults(func=cmd_diagnose)

    health_parser = subparsers.add_parser("health", help="Show cleanup health")
    health_parser.set_defaults(func=cmd_health)

    validate_parser = subparsers.add_parser("validate-ttl", help="Validate archive/TTL fields")
    validate_parser.add_argument("--repair", action="store_true", help="Repair the issues found")
    validate_parser.set_defaults(func=cmd_validate_ttl)

    restore_parser = subparsers.add_parser("restore", help="Restore an archived listing")
    restore_parser.add_argument("listing_id", help="Listing id")
    restore_parser.set_defaults(func=cmd_restore)

    args = parser.parse_args()

    # Handle --execute flag for sweep-favorites
    if hasattr(args, "execute") and args.execute:
        args.dry_run = False

    from app.config import get_settings
    from app.logging_config import configure_logging

    configure_logging(json_format=args.json_logs, level=get_settings().LOG_LEVEL)

    args.func(args)


if __name__ == "__main__":
    main()
