"""Initial schema: symbols, crypto_api_map, etl_runs

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'symbols',
        sa.Column('sid', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('symbol', sa.String(20), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('sec_type', sa.String(50), nullable=False, server_default='Cryptocurrency'),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='9999999'),
        sa.Column('market_cap_rank', sa.Integer(), nullable=True),
        sa.Column('base_currency', sa.String(20), nullable=True),
        sa.Column('quote_currency', sa.String(20), nullable=True),
        sa.Column('primary_source', sa.String(50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('additional_data', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_symbols_symbol', 'symbols', ['symbol'], unique=True)
    op.create_index('ix_symbols_priority', 'symbols', ['priority'])

    op.create_table(
        'crypto_api_map',
        sa.Column('sid', sa.BigInteger(), sa.ForeignKey('symbols.sid', ondelete='CASCADE'), primary_key=True),
        sa.Column('api_source', sa.String(50), primary_key=True),
        sa.Column('api_id', sa.String(200), nullable=False),
        sa.Column('api_slug', sa.String(200), nullable=True),
        sa.Column('api_symbol', sa.String(50), nullable=True),
        sa.Column('rank', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_verified', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_crypto_api_map_api_source', 'crypto_api_map', ['api_source'])
    op.create_index('ix_crypto_api_map_api_id', 'crypto_api_map', ['api_id'])

    op.create_table(
        'etl_runs',
        sa.Column('run_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('source_name', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('records_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.String(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_etl_runs_source_name', 'etl_runs', ['source_name'])


def downgrade() -> None:
    op.drop_index('ix_etl_runs_source_name', 'etl_runs')
    op.drop_table('etl_runs')
    op.drop_index('ix_crypto_api_map_api_id', 'crypto_api_map')
    op.drop_index('ix_crypto_api_map_api_source', 'crypto_api_map')
    op.drop_table('crypto_api_map')
    op.drop_index('ix_symbols_priority', 'symbols')
    op.drop_index('ix_symbols_symbol', 'symbols')
    op.drop_table('symbols')
