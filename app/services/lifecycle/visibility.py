# app/services/lifecycle/visibility.py
"""
The public active-listings query.

Both the public listings route and the diagnostic visibility check run this
exact query, so a leak seen by one is seen by the other.
"""

from sqlalchemy.orm import Query, Session

from app.models import Listing, ListingStatus


def public_listings_query(db: Session) -> Query:
    """Listings the public browse path returns, newest first."""
    return (
        db.query(Listing)
        .filter(Listing.status == ListingStatus.ACTIVE.value)
        .order_by(Listing.created_at.desc(), Listing.id.asc())
    )


def has_archive_markers(listing: Listing) -> bool:
    """True when anything on the row says the listing was archived."""
    return (
        listing.status == ListingStatus.ARCHIVED.value
        or listing.archived_at is not None
        or listing.ttl is not None
    )
