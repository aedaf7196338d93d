"""Create service listings, rental pricing tiers and tier audit logs

Revision ID: r3nt4l01
Revises:
Create Date: 2026-10-18

Tiers are soft-deleted (is_active) and evaluated by tier_order.
service_listings.tier_order_version guards concurrent reorders.

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'r3nt4l01'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create service_listings, rental_pricing_tiers and tier_audit_logs."""
    op.create_table('service_listings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('rental_pricing_model', sa.Enum(
            'FLAT', 'PER_HOUR', 'PER_DAY', 'TIERED',
            name='pricingmodel'
        ), nullable=False),
        sa.Column('rental_base_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('tier_order_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_service_listings_id'), 'service_listings', ['id'], unique=False)

    op.create_table('rental_pricing_tiers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('listing_id', sa.Integer(), nullable=False),
        sa.Column('tier_order', sa.Integer(), nullable=False),
        sa.Column('min_duration_hours', sa.Float(), nullable=False),
        sa.Column('max_duration_hours', sa.Float(), nullable=True),
        sa.Column('price_per_unit', sa.Numeric(10, 2), nullable=False),
        sa.Column('unit_type', sa.Enum(
            'FLAT', 'HOUR', 'DAY',
            name='tierunittype'
        ), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['listing_id'], ['service_listings.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_rental_pricing_tiers_id'), 'rental_pricing_tiers', ['id'], unique=False)
    op.create_index('idx_rental_pricing_tiers_listing', 'rental_pricing_tiers', ['listing_id', 'tier_order'], unique=False)

    op.create_table('tier_audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('listing_id', sa.Integer(), nullable=False),
        sa.Column('tier_id', sa.Integer(), nullable=True),
        sa.Column('event', sa.Enum(
            'TIER_CREATED', 'TIER_UPDATED', 'TIER_DEACTIVATED',
            'TIERS_REORDERED', 'DEFAULT_TIERS_APPLIED', 'TIER_WRITE_REJECTED',
            name='tierauditevent'
        ), nullable=False),
        sa.Column('event_data', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['listing_id'], ['service_listings.id']),
        sa.ForeignKeyConstraint(['tier_id'], ['rental_pricing_tiers.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tier_audit_logs_id'), 'tier_audit_logs', ['id'], unique=False)
    op.create_index(op.f('ix_tier_audit_logs_listing_id'), 'tier_audit_logs', ['listing_id'], unique=False)
    op.create_index(op.f('ix_tier_audit_logs_event'), 'tier_audit_logs', ['event'], unique=False)
    op.create_index(op.f('ix_tier_audit_logs_created_at'), 'tier_audit_logs', ['created_at'], unique=False)


def downgrade() -> None:
    """Drop the rental pricing tables."""
    op.drop_index(op.f('ix_tier_audit_logs_created_at'), table_name='tier_audit_logs')
    op.drop_index(op.f('ix_tier_audit_logs_event'), table_name='tier_audit_logs')
    op.drop_index(op.f('ix_tier_audit_logs_listing_id'), table_name='tier_audit_logs')
    op.drop_index(op.f('ix_tier_audit_logs_id'), table_name='tier_audit_logs')
    op.drop_table('tier_audit_logs')

    op.drop_index('idx_rental_pricing_tiers_listing', table_name='rental_pricing_tiers')
    op.drop_index(op.f('ix_rental_pricing_tiers_id'), table_name='rental_pricing_tiers')
    op.drop_table('rental_pricing_tiers')

    op.drop_index(op.f('ix_service_listings_id'), table_name='service_listings')
    op.drop_table('service_listings')

    # Drop enum types (PostgreSQL only, SQLite stores them as VARCHAR)
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("DROP TYPE IF EXISTS tierauditevent")
        op.execute("DROP TYPE IF EXISTS tierunittype")
        op.execute("DROP TYPE IF EXISTS pricingmodel")
