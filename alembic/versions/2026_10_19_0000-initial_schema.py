"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial database schema."""

    # ========================================================================
    # Create accounts table
    # ========================================================================
    op.create_table(
        'accounts',
        sa.Column('id', sa.String(128), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='user'),
        sa.Column('image_credits', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('video_credits', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_granted', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_used', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('status_reason', sa.Text(), nullable=True),
        sa.Column('status_actor_id', sa.String(128), nullable=True),
        sa.Column('status_changed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ledger_sequence', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),

        # Constraints
        sa.CheckConstraint('image_credits >= 0', name='ck_image_credits_non_negative'),
        sa.CheckConstraint('video_credits >= 0', name='ck_video_credits_non_negative'),
        sa.CheckConstraint('total_granted >= 0', name='ck_total_granted_non_negative'),
        sa.CheckConstraint('total_used >= 0', name='ck_total_used_non_negative'),
        sa.CheckConstraint("role IN ('user', 'admin')", name='ck_account_role'),
        sa.CheckConstraint("status IN ('active', 'suspended', 'deleted')", name='ck_account_status'),
    )

    op.create_index('idx_accounts_email', 'accounts', ['email'])
    op.create_index('idx_accounts_status', 'accounts', ['status'])

    # ========================================================================
    # Create ledger_entries table (append-only audit log)
    # ========================================================================
    op.create_table(
        'ledger_entries',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('account_id', sa.String(128), sa.ForeignKey('accounts.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('actor_id', sa.String(128), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('currency', sa.String(10), nullable=True),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('balance_before', sa.BigInteger(), nullable=False),
        sa.Column('balance_after', sa.BigInteger(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('sequence', sa.BigInteger(), nullable=False),
        sa.Column('status_from', sa.String(20), nullable=True),
        sa.Column('status_to', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('balance_before >= 0', name='ck_entry_balance_before_non_negative'),
        sa.CheckConstraint('balance_after >= 0', name='ck_entry_balance_after_non_negative'),
        sa.CheckConstraint(
            "kind IN ('grant', 'deduct', 'spend', 'adjust', 'status-change')",
            name='ck_entry_kind',
        ),
        sa.CheckConstraint(
            "(kind = 'status-change') = (currency IS NULL)",
            name='ck_entry_currency_matches_kind',
        ),
        sa.UniqueConstraint('account_id', 'sequence', name='uq_ledger_entry_sequence'),
    )

    op.create_index('idx_ledger_entries_account_created', 'ledger_entries', ['account_id', 'created_at'])
    op.create_index('idx_ledger_entries_created_at', 'ledger_entries', ['created_at'])

    # ========================================================================
    # Create media_assets table
    # ========================================================================
    op.create_table(
        'media_assets',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('owner_account_id', sa.String(128), sa.ForeignKey('accounts.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('content_type', sa.String(10), nullable=False),
        sa.Column('blob_key', sa.String(1024), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('base_ttl_seconds', sa.BigInteger(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('extension_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_extended_at', sa.DateTime(timezone=True), nullable=True),

        # Constraints
        sa.CheckConstraint('extension_count >= 0', name='ck_extension_count_non_negative'),
        sa.CheckConstraint('base_ttl_seconds > 0', name='ck_base_ttl_positive'),
        sa.CheckConstraint("content_type IN ('image', 'video')", name='ck_asset_content_type'),
    )

    op.create_index('idx_media_assets_expires_at', 'media_assets', ['expires_at'])
    op.create_index('idx_media_assets_owner', 'media_assets', ['owner_account_id', 'created_at'])

    # ========================================================================
    # Create extension_logs table
    # ========================================================================
    op.create_table(
        'extension_logs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('asset_id', UUID(as_uuid=True), nullable=False),
        sa.Column('owner_account_id', sa.String(128), nullable=False),
        sa.Column('actor_id', sa.String(128), nullable=False),
        sa.Column('extension_number', sa.Integer(), nullable=False),
        sa.Column('new_expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('actor_is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )

    op.create_index('idx_extension_logs_asset', 'extension_logs', ['asset_id'])

    # ========================================================================
    # Create deletion_logs table
    # ========================================================================
    op.create_table(
        'deletion_logs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('asset_id', UUID(as_uuid=True), nullable=False),
        sa.Column('owner_account_id', sa.String(128), nullable=False),
        sa.Column('blob_key', sa.String(1024), nullable=False),
        sa.Column('reason', sa.String(20), nullable=False),
        sa.Column('asset_created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint("reason IN ('expired', 'owner')", name='ck_deletion_reason'),
        sa.UniqueConstraint('asset_id', name='uq_deletion_log_asset'),
    )

    op.create_index('idx_deletion_logs_deleted_at', 'deletion_logs', ['deleted_at'])

    # ========================================================================
    # Create sweep_runs table
    # ========================================================================
    op.create_table(
        'sweep_runs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scanned_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deleted_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),

        # Constraints
        sa.CheckConstraint("status IN ('completed', 'failed')", name='ck_sweep_status'),
    )

    op.create_index('idx_sweep_runs_started_at', 'sweep_runs', ['started_at'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('sweep_runs')
    op.drop_table('deletion_logs')
    op.drop_table('extension_logs')
    op.drop_table('media_assets')
    op.drop_table('ledger_entries')
    op.drop_table('accounts')
