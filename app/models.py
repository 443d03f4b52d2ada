# app/models.py
"""
Listing lifecycle database models

Tables:
- Listing: marketplace listings with their lifecycle and TTL bookkeeping
- Favorite: per-user references to listings (no FK; lives and dies by cleanup)
"""

from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    String,
    Text,
)

from app.database import Base


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class ListingStatus(str, Enum):
    """Lifecycle status of a listing."""
    ACTIVE = "active"
    ARCHIVED = "archived"
    SOLD = "sold"


class AccountTier(str, Enum):
    """Owner account tier; decides the active window."""
    FREE = "free"
    PREMIUM = "premium"


class TtlReason(str, Enum):
    """Which path assigned a listing's TTL."""
    MIGRATION_NORMAL = "migration_normal"
    MIGRATION_IMMEDIATE_EXPIRY = "migration_immediate_expiry"
    ARCHIVER_ASSIGNED = "archiver_assigned"


def _new_id() -> str:
    return uuid.uuid4().hex


# -----------------------------------------------------------------------------
# Models
# -----------------------------------------------------------------------------

class Listing(Base):
    """
    A marketplace listing.

    Lifecycle:
    - active: publicly visible until expires_at
    - archived: hidden, archived_at set; ttl is the absolute purge instant
    - deleted: row removed by the cleanup executor (terminal)

    ttl, ttl_set_at and ttl_reason are only ever set while archived.
    """
    __tablename__ = "listings"

    id = Column(String(64), primary_key=True, default=_new_id)
    title = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default=ListingStatus.ACTIVE.value)

    owner_id = Column(String(128), nullable=False)
    account_tier_at_creation = Column(String(16), nullable=False, default=AccountTier.FREE.value)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True)

    # End of the active window
    expires_at = Column(DateTime, nullable=True)

    # Archive / TTL bookkeeping
    archived_at = Column(DateTime, nullable=True)
    ttl = Column(DateTime, nullable=True)
    ttl_set_at = Column(DateTime, nullable=True)
    ttl_reason = Column(String(64), nullable=True)

    __table_args__ = (
        Index("ix_listings_status_expires_at", "status", "expires_at"),
        Index("ix_listings_status_ttl", "status", "ttl"),
        Index("ix_listings_owner_id", "owner_id"),
    )

    def __repr__(self) -> str:
        return f"<Listing {self.id} status={self.status}>"


class Favorite(Base):
    """
    A user's favorite of a listing.

    Keyed by (owner_user_id, listing_id). There is deliberately no foreign
    key: favorites are removed by the cleanup pass that deletes the listing,
    and the related-data sweep catches anything left behind.
    """
    __tablename__ = "favorites"

    owner_user_id = Column(String(128), primary_key=True)
    listing_id = Column(String(64), primary_key=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_favorites_listing_id", "listing_id"),
    )

    def __repr__(self) -> str:
        return f"<Favorite {self.owner_user_id}:{self.listing_id}>"
