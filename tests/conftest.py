# tests/conftest.py
"""
Pytest configuration and fixtures.
"""

import os
from datetime import datetime, timedelta

import pytest

# Set test environment
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["ADMIN_SECRET"] = "test-admin-secret"
os.environ.setdefault("LOG_JSON", "false")

# Fixed clock shared by lifecycle tests
NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite engine so pooled lookup threads see the same data."""
    from sqlalchemy import create_engine

    from app import models  # noqa: F401
    from app.database import Base

    eng = create_engine(
        f"sqlite:///{tmp_path / 'lifecycle.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db_session(engine):
    from sqlalchemy.orm import sessionmaker

    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def make_listing(db_session):
    """Create and commit a listing. Defaults to an active free-tier listing."""
    from app.models import Listing

    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "id": f"listing-{counter['n']:05d}",
            "title": f"Listing {counter['n']}",
            "status": "active",
            "owner_id": "owner-1",
            "account_tier_at_creation": "free",
            "created_at": NOW - timedelta(days=3),
            "expires_at": NOW + timedelta(hours=12),
        }
        fields.update(overrides)
        listing = Listing(**fields)
        db_session.add(listing)
        db_session.commit()
        return listing

    return _make


@pytest.fixture
def make_favorite(db_session):
    """Create and commit a favorite for a listing id."""
    from app.models import Favorite

    def _make(listing_id, owner_user_id="user-1"):
        favorite = Favorite(owner_user_id=owner_user_id, listing_id=listing_id, created_at=NOW)
        db_session.add(favorite)
        db_session.commit()
        return favorite

    return _make


@pytest.fixture
def cron_headers():
    return {"Authorization": "Bearer test-cron-secret"}


@pytest.fixture
def admin_headers():
    return {"Authorization": "Bearer test-admin-secret"}


@pytest.fixture
def count_rows(db_session):
    """Fresh row count for a model."""

    def _count(model) -> int:
        db_session.expire_all()
        return db_session.query(model).count()

    return _count
