"""Profitability schema: catalog tables, settings, fx_rate_snapshots, profitability_snapshots

Revision ID: 3f1a9c0d7e21
Revises:
Create Date: 2026-10-12 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c0d7e21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('algorithms',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('key', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('aggregator_key', sa.Text(), nullable=True),
        sa.Column('fallback_revenue_usd_per_unit_per_day', sa.Float(), nullable=True),
        sa.Column('fallback_unit', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key'),
    )

    op.create_table('coins',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('key', sa.Text(), nullable=False),
        sa.Column('symbol', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('algorithm_id', sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(['algorithm_id'], ['algorithms.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_coins_algorithm_id', 'coins', ['algorithm_id'])

    op.create_table('machines',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('slug', sa.Text(), nullable=True),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('manufacturer', sa.Text(), nullable=True),
        sa.Column('algorithm_id', sa.Text(), nullable=False),
        sa.Column('hashrate', sa.Text(), nullable=False),
        sa.Column('hashrate_unit', sa.Text(), nullable=False),
        sa.Column('power_w', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['algorithm_id'], ['algorithms.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
    )
    op.create_index('ix_machines_algorithm_id', 'machines', ['algorithm_id'])

    op.create_table('machine_coins',
        sa.Column('machine_id', sa.Text(), nullable=False),
        sa.Column('coin_id', sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(['machine_id'], ['machines.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['coin_id'], ['coins.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('machine_id', 'coin_id'),
    )

    op.create_table('vendor_offerings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('machine_id', sa.Text(), nullable=False),
        sa.Column('vendor_name', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(18, 2), nullable=False),
        sa.Column('currency', sa.Text(), nullable=False),
        sa.Column('shipping_cost', sa.Numeric(18, 2), nullable=True),
        sa.Column('in_stock', sa.Boolean(), nullable=True),
        sa.ForeignKeyConstraint(['machine_id'], ['machines.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_vendor_offerings_machine_id', 'vendor_offerings', ['machine_id'])

    op.create_table('settings',
        sa.Column('key', sa.Text(), nullable=False),
        sa.Column('value', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('key'),
    )

    op.create_table('fx_rate_snapshots',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('base_currency', sa.Text(), nullable=False),
        sa.Column('rates', sa.JSON(), nullable=False),
        sa.Column('fetched_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_fx_rate_snapshots_fetched_at', 'fx_rate_snapshots', ['fetched_at'])

    op.create_table('profitability_snapshots',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('machine_id', sa.Text(), nullable=False),
        sa.Column('computed_at', sa.DateTime(), nullable=False),
        sa.Column('electricity_usd_per_kwh', sa.Numeric(10, 5), nullable=False),
        sa.Column('best_coin_id', sa.Text(), nullable=True),
        sa.Column('revenue_usd_per_day', sa.Numeric(18, 6), nullable=False),
        sa.Column('electricity_usd_per_day', sa.Numeric(18, 6), nullable=False),
        sa.Column('profit_usd_per_day', sa.Numeric(18, 6), nullable=False),
        sa.Column('lowest_price_usd', sa.Numeric(18, 2), nullable=True),
        sa.Column('roi_days', sa.Integer(), nullable=True),
        sa.Column('breakdown', sa.JSON(), nullable=True),
        sa.Column('best_coin_confidence', sa.Integer(), nullable=True),
        sa.Column('best_coin_reason', sa.Text(), nullable=True),
        sa.Column('revenue_source', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['machine_id'], ['machines.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['best_coin_id'], ['coins.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('machine_id', 'computed_at', name='uq_snapshot_machine_computed_at'),
    )
    op.create_index('ix_snapshot_computed_at', 'profitability_snapshots', ['computed_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_snapshot_computed_at', table_name='profitability_snapshots')
    op.drop_table('profitability_snapshots')
    op.drop_index('ix_fx_rate_snapshots_fetched_at', table_name='fx_rate_snapshots')
    op.drop_table('fx_rate_snapshots')
    op.drop_table('settings')
    op.drop_index('ix_vendor_offerings_machine_id', table_name='vendor_offerings')
    op.drop_table('vendor_offerings')
    op.drop_table('machine_coins')
    op.drop_index('ix_machines_algorithm_id', table_name='machines')
    op.drop_table('machines')
    op.drop_index('ix_coins_algorithm_id', table_name='coins')
    op.drop_table('coins')
    op.drop_table('algorithms')
