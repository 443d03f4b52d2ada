# tests/unit/test_lifecycle/test_diagnostics.py
"""Unit tests for the diagnostic reconciler and cleanup health."""

from datetime import datetime, timedelta


def _archived(make_listing, now, **fields):
    defaults = {
        "status": "archived",
        "expires_at": now - timedelta(days=2),
        "archived_at": now - timedelta(days=1),
        "ttl": now + timedelta(days=6),
        "ttl_set_at": now - timedelta(days=1),
        "ttl_reason": "archiver_assigned",
    }
    defaults.update(fields)
    return make_listing(**defaults)


class TestSummary:
    def test_counts_by_status_tier_and_ttl(self, db_session, make_listing, now):
        from app.services.lifecycle.diagnostics import run_listing_diagnostic

        make_listing(account_tier_at_creation="premium")
        make_listing(status="sold")
        _archived(make_listing, now)
        _archived(make_listing, now, ttl=now - timedelta(hours=1))
        _archived(make_listing, now, ttl=None, ttl_set_at=None, ttl_reason=None)

        report = run_listing_diagnostic(db_session, now=now)

        assert report.total_listings == 5
        assert report.status_counts == {"active": 1, "sold": 1, "archived": 3}
        assert report.tier_counts == {"premium": 1, "free": 4}
        assert report.ttl_stats.with_ttl == 2
        assert report.ttl_stats.without_ttl == 1
        assert report.ttl_stats.expired_ttl == 1
        assert report.ttl_stats.valid_ttl == 1

    def test_clean_store_has_no_recommendations(self, db_session, make_listing, now):
        from app.services.lifecycle.diagnostics import run_listing_diagnostic

        make_listing()
        _archived(make_listing, now)

        report = run_listing_diagnostic(db_session, now=now)

        assert report.expiration_issue_count == 0
        assert report.ttl_issue_count == 0
        assert report.visibility_issue_count == 0
        assert report.recommendations == []

    def test_does_not_mutate(self, db_session, make_listing, count_rows, now):
        from app.models import Listing
        from app.services.lifecycle.diagnostics import run_listing_diagnostic

        listing = make_listing(expires_at=now - timedelta(days=1))
        run_listing_diagnostic(db_session, now=now)

        db_session.expire_all()
        assert db_session.get(Listing, listing.id).status == "active"
        assert count_rows(Listing) == 1


class TestExpirationIssues:
    def test_overdue_beyond_tolerance(self, db_session, make_listing, now):
        from app.services.lifecycle.diagnostics import run_listing_diagnostic

        overdue = make_listing(expires_at=now - timedelta(hours=3))
        make_listing(expires_at=now - timedelta(minutes=10))

        report = run_listing_diagnostic(db_session, now=now, tolerance_minutes=15)

        assert report.expiration_issue_count == 1
        issue = report.expiration_issues[0]
        assert issue.listing_id == overdue.id
        assert issue.issue == "not_archived_after_expiry"
        assert issue.hours_overdue == 3.0

    def test_active_without_expiry(self, db_session, make_listing, now):
        from app.services.lifecycle.diagnostics import run_listing_diagnostic

        make_listing(expires_at=None)

        report = run_listing_diagnostic(db_session, now=now)

        assert report.expiration_issues[0].issue == "missing_expires_at"
        assert report.expiration_issues[0].hours_overdue is None


class TestTtlIssues:
    def test_kinds(self, db_session, make_listing, now):
        from app.services.lifecycle.diagnostics import run_listing_diagnostic

        missing = _archived(make_listing, now, ttl=None, ttl_set_at=None, ttl_reason=None)
        elapsed = _archived(make_listing, now, ttl=now - timedelta(minutes=1))
        unknown = _archived(make_listing, now, ttl_reason=None)
        backwards = _archived(make_listing, now, ttl=now - timedelta(days=2), ttl_reason="migration_normal")

        report = run_listing_diagnostic(db_session, now=now)
        kinds = {issue.listing_id: issue.issue for issue in report.ttl_issues}

        assert kinds == {
            missing.id: "missing_ttl",
            elapsed.id: "ttl_elapsed",
            unknown.id: "inconsistent_ttl_reason",
            backwards.id: "inconsistent_ttl_reason",
        }

    def test_grace_period_ttl_before_archive_is_consistent(self, db_session, make_listing, now):
        from app.services.lifecycle.diagnostics import check_ttl
        from app.models import Listing

        listing = Listing(
            id="grace",
            status="archived",
            archived_at=now,
            ttl=now - timedelta(hours=1),
            ttl_reason="migration_immediate_expiry",
        )

        issue = check_ttl(listing, now - timedelta(hours=2))

        assert issue is None


class TestVisibilityIssues:
    def test_count_matches_public_query_leaks_exactly(self, db_session, make_listing, now):
        from app.services.lifecycle.diagnostics import run_listing_diagnostic
        from app.services.lifecycle.visibility import has_archive_markers, public_listings_query

        make_listing()
        make_listing(archived_at=now - timedelta(hours=1))
        make_listing(ttl=now + timedelta(days=7))
        make_listing(archived_at=now, ttl=now + timedelta(days=7), ttl_reason="archiver_assigned")
        _archived(make_listing, now)
        make_listing(status="sold")

        report = run_listing_diagnostic(db_session, now=now)
        leaked = [l for l in public_listings_query(db_session).all() if has_archive_markers(l)]

        assert report.visibility_issue_count == len(leaked) == 3
        assert {i.listing_id for i in report.visibility_issues} == {l.id for l in leaked}

    def test_issue_lists_are_capped_but_counts_are_not(self, db_session, make_listing, now):
        from app.services.lifecycle.diagnostics import run_listing_diagnostic

        for _ in range(4):
            make_listing(archived_at=now)

        report = run_listing_diagnostic(db_session, now=now, sample_limit=2)

        assert report.visibility_issue_count == 4
        assert len(report.visibility_issues) == 2


class TestOrphanedFavorites:
    def test_counts_favorites_whose_listing_is_gone(self, db_session, make_listing, make_favorite, now):
        from app.services.lifecycle.diagnostics import run_listing_diagnostic

        listing = make_listing()
        make_favorite(listing.id, "user-1")
        make_favorite("deleted-listing", "user-1")
        make_favorite("deleted-listing", "user-2")

        report = run_listing_diagnostic(db_session, now=now)

        assert report.orphaned_favorite_count == 2
        assert [r.remediation_endpoint for r in report.recommendations] == [
            "/v1/listings/cleanup-related-data",
        ]


class TestRecommendations:
    def test_escalates_to_high_at_five(self):
        from app.services.lifecycle.diagnostics import build_recommendations

        recs = build_recommendations(
            expiration_count=4,
            missing_ttl_count=5,
            elapsed_ttl_count=0,
            inconsistent_count=1,
            visibility_count=0,
        )

        assert [(r.priority, r.remediation_endpoint) for r in recs] == [
            ("HIGH", "/v1/admin/migrate-to-ttl"),
            ("MEDIUM", "/v1/listings/archive-expired"),
            ("LOW", "/v1/admin/validate-ttl-fields"),
        ]

    def test_zero_counts_need_nothing(self):
        from app.services.lifecycle.diagnostics import build_recommendations

        assert build_recommendations(0, 0, 0, 0, 0) == []

    def test_elapsed_ttl_points_at_cleanup(self):
        from app.services.lifecycle.diagnostics import build_recommendations

        recs = build_recommendations(0, 0, 2, 0, 0)

        assert len(recs) == 1
        assert recs[0].priority == "MEDIUM"
        assert recs[0].remediation_endpoint == "/v1/listings/cleanup-archived"

    def test_orphaned_favorites_point_at_related_data_sweep(self):
        from app.services.lifecycle.diagnostics import build_recommendations

        recs = build_recommendations(0, 0, 0, 0, 0, orphaned_favorite_count=7)

        assert [(r.priority, r.remediation_endpoint) for r in recs] == [
            ("HIGH", "/v1/listings/cleanup-related-data"),
        ]


class TestCleanupHealth:
    def test_healthy_when_nothing_overdue(self, db_session, make_listing, now):
        from app.services.lifecycle.diagnostics import check_cleanup_health

        _archived(make_listing, now)

        health = check_cleanup_health(db_session, now=now)

        assert health.status == "healthy"
        assert health.overdue_count == 0
        assert health.oldest_overdue_minutes is None

    def test_warning_after_an_hour(self, db_session, make_listing, now):
        from app.services.lifecycle.diagnostics import check_cleanup_health

        _archived(make_listing, now, ttl=now - timedelta(minutes=90))

        health = check_cleanup_health(db_session, now=now)

        assert health.status == "warning"
        assert health.overdue_count == 1
        assert health.oldest_overdue_minutes == 90
        assert health.recommendations

    def test_critical_after_three_hours(self, db_session, make_listing, now):
        from app.services.lifecycle.diagnostics import check_cleanup_health

        _archived(make_listing, now, ttl=now - timedelta(minutes=30))
        _archived(make_listing, now, ttl=now - timedelta(hours=4))

        health = check_cleanup_health(db_session, now=now)

        assert health.status == "critical"
        assert health.overdue_count == 2
        assert health.oldest_overdue_minutes == 240

    def test_next_cleanup_tick_is_on_even_hours(self):
        from app.services.lifecycle.diagnostics import next_cleanup_tick

        assert next_cleanup_tick(datetime(2026, 3, 1, 12, 0)) == datetime(2026, 3, 1, 14, 0)
        assert next_cleanup_tick(datetime(2026, 3, 1, 13, 59)) == datetime(2026, 3, 1, 14, 0)
        assert next_cleanup_tick(datetime(2026, 3, 1, 23, 30)) == datetime(2026, 3, 2, 0, 0)
