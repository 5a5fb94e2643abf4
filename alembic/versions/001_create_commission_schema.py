"""Create commission engine schema

Revision ID: 001_commission
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

# revision identifiers
revision = '001_commission'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create identity, batch, transaction, bonus, earnings and genealogy tables"""

    # ====================
    # MANAGERS / CREATORS
    # ====================
    op.create_table(
        'managers',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('handle', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('type', sa.String(20), server_default='LIVE', nullable=False),
        sa.Column('lifetime_total', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('created_by_batch_id', UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_managers_handle', 'managers', ['handle'], unique=True)

    op.create_table(
        'creators',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('handle', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('created_by_batch_id', UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_creators_handle', 'creators', ['handle'], unique=True)

    # ====================
    # UPLOAD BATCHES
    # ====================
    op.create_table(
        'upload_batches',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('period', sa.String(6), nullable=False),
        sa.Column('source', sa.String(500), nullable=False),
        sa.Column('status', sa.String(50), server_default='PENDING', nullable=False),
        sa.Column('stage', sa.String(50), server_default='QUEUED', nullable=False),
        sa.Column('progress', sa.Integer, server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean, server_default='false', nullable=False),
        sa.Column('is_processing', sa.Boolean, server_default='false', nullable=False),
        sa.Column('error', sa.Text, nullable=True),
        sa.Column('total_rows', sa.Integer, server_default='0', nullable=False),
        sa.Column('processed_rows', sa.Integer, server_default='0', nullable=False),
        sa.Column('skipped_rows', sa.Integer, server_default='0', nullable=False),
        sa.Column('failed_rows', sa.Integer, server_default='0', nullable=False),
        sa.Column('chunks_committed', sa.Integer, server_default='0', nullable=False),
        sa.Column('row_errors', JSONB, nullable=True),
        sa.Column('total_revenue', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('total_commissions', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('total_bonuses', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('managers_processed', sa.Integer, server_default='0', nullable=False),
        sa.Column('superseded_by_id', UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('superseded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cleared_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_upload_batches_period', 'upload_batches', ['period'])
    op.create_index('ix_upload_batches_period_active', 'upload_batches', ['period', 'is_active'])
    op.create_index('ix_upload_batches_status', 'upload_batches', ['status'])
    # At most one active batch per period
    op.create_index(
        'uq_upload_batches_active_period', 'upload_batches', ['period'],
        unique=True, postgresql_where=sa.text('is_active')
    )

    # ====================
    # TRANSACTIONS
    # ====================
    op.create_table(
        'transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('batch_id', UUID(as_uuid=True), sa.ForeignKey('upload_batches.id', ondelete='CASCADE'), nullable=False),
        sa.Column('period', sa.String(6), nullable=False),
        sa.Column('row_index', sa.Integer, nullable=False),
        sa.Column('manager_id', UUID(as_uuid=True), sa.ForeignKey('managers.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('manager_type', sa.String(20), nullable=False),
        sa.Column('creator_id', UUID(as_uuid=True), sa.ForeignKey('creators.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('gross_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('deductions', sa.Numeric(12, 2), nullable=False),
        sa.Column('net_for_commission', sa.Numeric(12, 2), nullable=False),
        sa.Column('base_commission', sa.Numeric(12, 2), nullable=False),
        sa.Column('milestones_achieved', sa.String(8), server_default='', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_transactions_batch_id', 'transactions', ['batch_id'])
    op.create_index('ix_transactions_period', 'transactions', ['period'])
    op.create_index('ix_transactions_manager_id', 'transactions', ['manager_id'])
    op.create_index('ix_transactions_creator_id', 'transactions', ['creator_id'])
    op.create_index('ix_transactions_period_manager', 'transactions', ['period', 'manager_id'])

    # ====================
    # BONUSES
    # ====================
    op.create_table(
        'bonuses',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('manager_id', UUID(as_uuid=True), sa.ForeignKey('managers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('period', sa.String(6), nullable=False),
        sa.Column('batch_id', UUID(as_uuid=True), sa.ForeignKey('upload_batches.id', ondelete='CASCADE'), nullable=True),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('source', sa.String(20), server_default='BATCH', nullable=False),
        sa.Column('related_manager_id', UUID(as_uuid=True), sa.ForeignKey('managers.id', ondelete='CASCADE'), nullable=True),
        sa.Column('transaction_id', UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_bonuses_manager_id', 'bonuses', ['manager_id'])
    op.create_index('ix_bonuses_period', 'bonuses', ['period'])
    op.create_index('ix_bonuses_batch_id', 'bonuses', ['batch_id'])
    op.create_index('ix_bonuses_period_manager', 'bonuses', ['period', 'manager_id'])
    op.create_index('ix_bonuses_period_type', 'bonuses', ['period', 'type'])

    # ====================
    # MANAGER EARNINGS
    # ====================
    op.create_table(
        'manager_earnings',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('manager_id', UUID(as_uuid=True), sa.ForeignKey('managers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('period', sa.String(6), nullable=False),
        sa.Column('batch_id', UUID(as_uuid=True), sa.ForeignKey('upload_batches.id', ondelete='CASCADE'), nullable=True),
        sa.Column('base_commission', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('milestone_payouts', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('extras', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('total_earnings', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('total_gross', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('total_deductions', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('total_net', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('transaction_count', sa.Integer, server_default='0', nullable=False),
        sa.Column('creator_count', sa.Integer, server_default='0', nullable=False),
        sa.Column('status', sa.String(20), server_default='CALCULATED', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.UniqueConstraint('manager_id', 'period', name='uq_manager_earnings_period'),
    )
    op.create_index('ix_manager_earnings_manager_id', 'manager_earnings', ['manager_id'])
    op.create_index('ix_manager_earnings_period', 'manager_earnings', ['period'])
    op.create_index('ix_manager_earnings_batch_id', 'manager_earnings', ['batch_id'])

    # ====================
    # GENEALOGY
    # ====================
    op.create_table(
        'genealogy_edges',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('team_manager_id', UUID(as_uuid=True), sa.ForeignKey('managers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('live_manager_id', UUID(as_uuid=True), sa.ForeignKey('managers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('level', sa.String(1), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.UniqueConstraint('team_manager_id', 'live_manager_id', name='uq_genealogy_team_live'),
        sa.CheckConstraint('team_manager_id <> live_manager_id', name='ck_genealogy_no_self_edge'),
    )
    op.create_index('ix_genealogy_edges_team_manager_id', 'genealogy_edges', ['team_manager_id'])
    op.create_index('ix_genealogy_edges_live_manager_id', 'genealogy_edges', ['live_manager_id'])

    # ====================
    # COMMISSION CONFIGS
    # ====================
    op.create_table(
        'commission_configs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('effective_from', sa.String(6), nullable=False),
        sa.Column('overrides', JSONB, server_default='{}', nullable=False),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_commission_configs_effective_from', 'commission_configs', ['effective_from'])


def downgrade():
    """Drop all commission engine tables"""
    op.drop_table('commission_configs')
    op.drop_table('genealogy_edges')
    op.drop_table('manager_earnings')
    op.drop_table('bonuses')
    op.drop_table('transactions')
    op.drop_table('upload_batches')
    op.drop_table('creators')
    op.drop_table('managers')
