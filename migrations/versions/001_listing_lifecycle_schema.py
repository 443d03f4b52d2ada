"""Listing lifecycle schema

Revision ID: 001_listing_lifecycle
Revises:
Create Date: 2026-10-19

Creates listings (with archive/TTL bookkeeping) and favorites.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_listing_lifecycle'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'listings',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('title', sa.Text, nullable=True),
        sa.Column('status', sa.String(16), nullable=False, server_default='active'),
        sa.Column('owner_id', sa.String(128), nullable=False),
        sa.Column('account_tier_at_creation', sa.String(16), nullable=False, server_default='free'),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=True),
        sa.Column('expires_at', sa.DateTime, nullable=True),
        # Archive / TTL bookkeeping
        sa.Column('archived_at', sa.DateTime, nullable=True),
        sa.Column('ttl', sa.DateTime, nullable=True),
        sa.Column('ttl_set_at', sa.DateTime, nullable=True),
        sa.Column('ttl_reason', sa.String(64), nullable=True),
    )
    op.create_index('ix_listings_status_expires_at', 'listings', ['status', 'expires_at'])
    op.create_index('ix_listings_status_ttl', 'listings', ['status', 'ttl'])
    op.create_index('ix_listings_owner_id', 'listings', ['owner_id'])

    # No FK to listings: favorites are removed by cleanup and the orphan sweep
    op.create_table(
        'favorites',
        sa.Column('owner_user_id', sa.String(128), primary_key=True),
        sa.Column('listing_id', sa.String(64), primary_key=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_favorites_listing_id', 'favorites', ['listing_id'])


def downgrade() -> None:
    op.drop_index('ix_favorites_listing_id', table_name='favorites')
    op.drop_table('favorites')
    op.drop_index('ix_listings_owner_id', table_name='listings')
    op.drop_index('ix_listings_status_ttl', table_name='listings')
    op.drop_index('ix_listings_status_expires_at', table_name='listings')
    op.drop_table('listings')
