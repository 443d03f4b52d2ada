# tests/unit/test_lifecycle/test_archiver.py
"""Unit tests for the archiver."""

from datetime import timedelta

import pytest


class TestArchiveExpiredListings:
    """Tests for archive_expired_listings()."""

    def test_archives_expired_listing_with_ttl(self, db_session, make_listing, now):
        from app.models import Listing
        from app.services.lifecycle.archiver import archive_expired_listings

        listing = make_listing(expires_at=now - timedelta(hours=1))

        result = archive_expired_listings(db_session, now=now)

        assert result.success
        assert result.total_archived == 1
        assert result.completed_batches == 1

        db_session.expire_all()
        archived = db_session.get(Listing, listing.id)
        assert archived.status == "archived"
        assert archived.archived_at == now
        assert archived.ttl == now + timedelta(days=7)
        assert archived.ttl_set_at == now
        assert archived.ttl_reason == "archiver_assigned"

    def test_expiry_at_now_is_archived(self, db_session, make_listing, now):
        from app.services.lifecycle.archiver import archive_expired_listings

        make_listing(expires_at=now)

        assert archive_expired_listings(db_session, now=now).total_archived == 1

    def test_leaves_live_and_sold_listings(self, db_session, make_listing, now):
        from app.models import Listing
        from app.services.lifecycle.archiver import archive_expired_listings

        live = make_listing(expires_at=now + timedelta(minutes=1))
        sold = make_listing(status="sold", expires_at=now - timedelta(days=1))

        result = archive_expired_listings(db_session, now=now)

        assert result.total_archived == 0
        db_session.expire_all()
        assert db_session.get(Listing, live.id).status == "active"
        assert db_session.get(Listing, sold.id).status == "sold"

    def test_second_run_is_noop(self, db_session, make_listing, now):
        from app.models import Listing
        from app.services.lifecycle.archiver import archive_expired_listings

        listing = make_listing(expires_at=now - timedelta(hours=1))
        archive_expired_listings(db_session, now=now)

        later = now + timedelta(hours=1)
        result = archive_expired_listings(db_session, now=later)

        assert result.listings_found == 0
        db_session.expire_all()
        assert db_session.get(Listing, listing.id).ttl == now + timedelta(days=7)

    def test_guarded_update_skips_listing_sold_meanwhile(self, db_session, make_listing, now):
        """A listing that changed status after selection is not archived."""
        from app.models import Listing
        from app.services.lifecycle import archiver

        listing = make_listing(expires_at=now - timedelta(hours=1))
        selected = archiver.find_expired_listings(db_session, now)

        db_session.query(Listing).filter(Listing.id == listing.id).update({"status": "sold"})
        db_session.commit()

        from unittest.mock import patch

        with patch.object(archiver, "find_expired_listings", return_value=selected):
            result = archiver.archive_expired_listings(db_session, now=now)

        assert result.total_archived == 0
        db_session.expire_all()
        assert db_session.get(Listing, listing.id).status == "sold"

    def test_splits_into_batches(self, db_session, make_listing, now):
        from app.services.lifecycle.archiver import archive_expired_listings

        for _ in range(5):
            make_listing(expires_at=now - timedelta(hours=2))

        result = archive_expired_listings(db_session, now=now, ceiling=2)

        assert result.total_archived == 5
        assert result.completed_batches == 3

    def test_dry_run_changes_nothing(self, db_session, make_listing, now):
        from app.models import Listing
        from app.services.lifecycle.archiver import archive_expired_listings

        listing = make_listing(expires_at=now - timedelta(hours=1))

        result = archive_expired_listings(db_session, now=now, dry_run=True)

        assert result.dry_run
        assert result.total_archived == 1
        db_session.expire_all()
        assert db_session.get(Listing, listing.id).status == "active"

    def test_respects_limit(self, db_session, make_listing, now):
        from app.services.lifecycle.archiver import archive_expired_listings

        for _ in range(3):
            make_listing(expires_at=now - timedelta(hours=1))

        result = archive_expired_listings(db_session, now=now, limit=2)

        assert result.listings_found == 2
        assert result.total_archived == 2


class TestRestoreListing:
    """Tests for restore_listing()."""

    def test_restores_with_fresh_window(self, db_session, make_listing, now):
        from app.services.lifecycle.archiver import restore_listing

        listing = make_listing(
            status="archived",
            account_tier_at_creation="premium",
            expires_at=now - timedelta(days=2),
            archived_at=now - timedelta(days=1),
            ttl=now + timedelta(days=6),
            ttl_set_at=now - timedelta(days=1),
            ttl_reason="archiver_assigned",
        )

        restored = restore_listing(db_session, listing.id, now=now)

        assert restored.status == "active"
        assert restored.expires_at == now + timedelta(days=30)
        assert restored.archived_at is None
        assert restored.ttl is None
        assert restored.ttl_set_at is None
        assert restored.ttl_reason is None

    def test_missing_listing(self, db_session, now):
        from app.services.lifecycle.archiver import restore_listing
        from app.services.lifecycle.errors import ListingNotFoundError

        with pytest.raises(ListingNotFoundError):
            restore_listing(db_session, "does-not-exist", now=now)

    def test_active_listing_cannot_be_restored(self, db_session, make_listing, now):
        from app.services.lifecycle.archiver import restore_listing
        from app.services.lifecycle.errors import InvalidTransitionError

        listing = make_listing()

        with pytest.raises(InvalidTransitionError):
            restore_listing(db_session, listing.id, now=now)
