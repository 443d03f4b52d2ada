# tests/test_api.py
"""
Contract tests for API responses.
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from app.database import get_db
from app.main import app
from app.models import Favorite, Listing
from app.services.lifecycle.errors import StoreUnavailableError


@pytest.fixture
def client(db_session):
    """Create test client bound to the test database."""
    app.dependency_overrides[get_db] = lambda: db_session
    yield TestClient(app)
    app.dependency_overrides.clear()


def _purgeable(make_listing, now, **fields):
    defaults = {
        "status": "archived",
        "expires_at": now - timedelta(days=9),
        "archived_at": now - timedelta(days=8),
        "ttl": now - timedelta(days=1),
        "ttl_reason": "archiver_assigned",
    }
    defaults.update(fields)
    return make_listing(**defaults)


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "listing-lifecycle"}


class TestAuthorization:
    """Lifecycle endpoints reject bad credentials before touching data."""

    def test_invalid_token_changes_nothing(self, client, make_listing, make_favorite, count_rows, now):
        listing = _purgeable(make_listing, now, ttl=now - timedelta(days=400))
        make_favorite(listing.id)
        before = (count_rows(Listing), count_rows(Favorite))

        response = client.post("/v1/listings/cleanup-archived", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        assert (count_rows(Listing), count_rows(Favorite)) == before

    def test_missing_header(self, client):
        response = client.post("/v1/listings/archive-expired")
        assert response.status_code == 401

    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/v1/admin/listing-diagnostic"),
            ("get", "/v1/admin/ttl-health"),
            ("post", "/v1/admin/validate-ttl-fields"),
            ("post", "/v1/admin/listings/any/restore"),
        ],
    )
    def test_admin_only_routes_reject_scheduler(self, client, cron_headers, method, path):
        response = getattr(client, method)(path, headers=cron_headers)
        assert response.status_code == 401

    def test_scheduler_may_migrate(self, client, cron_headers):
        response = client.post("/v1/admin/migrate-to-ttl", headers=cron_headers)
        assert response.status_code == 200

    def test_store_unavailable(self, client, cron_headers):
        def broken_db():
            raise StoreUnavailableError("Failed to initialize the listing store", details="connection refused")

        app.dependency_overrides[get_db] = broken_db
        response = client.post("/v1/listings/cleanup-archived", headers=cron_headers)

        assert response.status_code == 500
        assert response.json() == {
            "error": "Failed to initialize the listing store",
            "details": "connection refused",
        }


class TestJobEndpoints:
    """Response contract for scheduled jobs."""

    def test_archive_expired(self, client, cron_headers, make_listing, now):
        make_listing(expires_at=now - timedelta(hours=1))

        response = client.post("/v1/listings/archive-expired", headers=cron_headers)

        assert response.status_code == 200
        data = response.json()
        assert "message" in data
        summary = data["summary"]
        assert summary["totalArchived"] == 1
        assert summary["completedBatches"] == 1
        assert summary["dryRun"] is False
        assert "timestamp" in summary

    def test_cleanup_archived(self, client, cron_headers, make_listing, make_favorite, now):
        listing = _purgeable(make_listing, now)
        make_favorite(listing.id, "user-1")
        make_favorite(listing.id, "user-2")

        response = client.post("/v1/listings/cleanup-archived", headers=cron_headers)

        assert response.status_code == 200
        summary = response.json()["summary"]
        assert summary["totalDeleted"] == 1
        assert summary["totalFavoritesRemoved"] == 2
        assert summary["completedBatches"] == 1
        assert "timestamp" in summary

    def test_cleanup_dry_run_body(self, client, admin_headers, make_listing, count_rows, now):
        _purgeable(make_listing, now)

        response = client.post("/v1/listings/cleanup-archived", headers=admin_headers, json={"dryRun": True})

        assert response.status_code == 200
        assert response.json()["summary"]["totalDeleted"] == 1
        assert response.json()["summary"]["dryRun"] is True
        assert count_rows(Listing) == 1

    def test_cleanup_batch_failure_returns_partial_summary(self, client, cron_headers, now):
        from unittest.mock import patch

        from app.services.lifecycle.cleanup_executor import CleanupResult

        partial = CleanupResult(
            success=False,
            timestamp=now,
            listings_found=4,
            total_deleted=2,
            completed_batches=1,
            errors=["Batch 2 failed to commit after 1 committed batches: store went away"],
        )

        with patch("app.routers.lifecycle.cleanup_archived_listings", return_value=partial):
            response = client.post("/v1/listings/cleanup-archived", headers=cron_headers)

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "Cleanup run failed"
        assert "Batch 2" in data["details"]
        assert data["summary"]["totalDeleted"] == 2
        assert data["summary"]["completedBatches"] == 1

    def test_cleanup_related_data(self, client, cron_headers, make_favorite):
        make_favorite("gone")

        response = client.post("/v1/listings/cleanup-related-data", headers=cron_headers)

        assert response.status_code == 200
        assert response.json()["summary"]["totalFavoritesRemoved"] == 1

    def test_migrate_to_ttl(self, client, admin_headers, make_listing, now):
        make_listing(status="archived", archived_at=now, ttl=None)

        response = client.post("/v1/admin/migrate-to-ttl", headers=admin_headers)

        assert response.status_code == 200
        summary = response.json()["summary"]
        assert summary["totalMigrated"] == 1
        assert summary["totalImmediatelyExpired"] == 0
        assert summary["completedBatches"] == 1


class TestAdminEndpoints:
    """Response contract for admin endpoints."""

    def test_listing_diagnostic_shape(self, client, admin_headers, make_listing, now):
        make_listing(archived_at=now, expires_at=now + timedelta(days=3650))

        response = client.get("/v1/admin/listing-diagnostic", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert set(data["summary"]["ttlStats"]) == {"withTTL", "withoutTTL", "expiredTTL", "validTTL"}
        assert data["summary"]["visibilityIssueCount"] == 1
        assert data["summary"]["orphanedFavoriteCount"] == 0
        assert set(data["issues"]) == {"expiration", "ttl", "visibility"}
        assert data["recommendations"][0]["remediationEndpoint"] == "/v1/admin/validate-ttl-fields"

    def test_ttl_health(self, client, admin_headers):
        response = client.get("/v1/admin/ttl-health", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["summary"]["status"] == "healthy"

    def test_validate_ttl_fields_defaults_to_dry_run(self, client, admin_headers, make_listing, now):
        make_listing(ttl=now)

        response = client.post("/v1/admin/validate-ttl-fields", headers=admin_headers)

        assert response.status_code == 200
        summary = response.json()["summary"]
        assert summary["dryRun"] is True
        assert summary["totalIssues"] == 1
        assert summary["totalRepaired"] == 0

    def test_restore(self, client, admin_headers, make_listing, now):
        listing = make_listing(status="archived", archived_at=now, ttl=now + timedelta(days=7), ttl_reason="archiver_assigned")

        response = client.post(f"/v1/admin/listings/{listing.id}/restore", headers=admin_headers)

        assert response.status_code == 200
        restored = response.json()["listing"]
        assert restored["status"] == "active"
        assert restored["ttl"] is None
        assert restored["archivedAt"] is None

    def test_restore_unknown_listing(self, client, admin_headers):
        response = client.post("/v1/admin/listings/missing/restore", headers=admin_headers)

        assert response.status_code == 404
        assert "error" in response.json()


class TestPublicListings:
    def test_only_active_listings(self, client, make_listing, now):
        active = make_listing()
        make_listing(status="archived", archived_at=now, ttl=now + timedelta(days=7))
        make_listing(status="sold")

        response = client.get("/v1/listings")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["listings"][0]["id"] == active.id
        assert "ownerId" in data["listings"][0]
