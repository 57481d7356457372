"""Initial WalletLink Hub schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Accounts, wallet bindings (one address per account, one account per
address) and the admin-visible audit log.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # === ACCOUNTS ===
    op.create_table(
        'accounts',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('username', sa.String(64), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255)),
        sa.Column('role', sa.String(32), nullable=False, server_default='subscriber'),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now()),
        sa.UniqueConstraint('email', name='uq_accounts_email'),
        sa.CheckConstraint("status IN ('active', 'suspended', 'deleted')", name='chk_account_status'),
    )
    op.create_index('ix_accounts_username', 'accounts', ['username'], unique=True)
    op.create_index('ix_accounts_status', 'accounts', ['status'])

    # === WALLET BINDINGS ===
    op.create_table(
        'wallet_bindings',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('address', sa.String(42), nullable=False),
        sa.Column('account_id', sa.Uuid(as_uuid=True),
                  sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('signature_proof', sa.Text, nullable=False),
        sa.Column('source', sa.String(20), nullable=False, server_default='link'),
        sa.Column('linked_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.UniqueConstraint('account_id', name='uq_wallet_bindings_account_id'),
    )
    op.create_index('ix_wallet_bindings_address', 'wallet_bindings', ['address'], unique=True)

    # === AUDIT LOG ===
    op.create_table(
        'audit_log',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('timestamp', sa.DateTime(timezone=True),
                  server_default=sa.func.now()),
        sa.Column('actor_id', sa.Uuid(as_uuid=True),
                  sa.ForeignKey('accounts.id', ondelete='SET NULL')),
        sa.Column('actor_role', sa.String(50)),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('object_type', sa.String(50)),
        sa.Column('object_id', sa.String(64)),
        sa.Column('reason', sa.Text),
        sa.Column('before_state', sa.JSON),
        sa.Column('after_state', sa.JSON),
        sa.Column('request_id', sa.String(64)),
        sa.Column('ip_address', sa.String(45)),
        sa.Column('user_agent', sa.Text),
    )
    op.create_index('ix_audit_log_timestamp', 'audit_log', ['timestamp'])
    op.create_index('ix_audit_log_actor_id', 'audit_log', ['actor_id'])
    op.create_index('ix_audit_log_action', 'audit_log', ['action'])


def downgrade() -> None:
    op.drop_table('audit_log')
    op.drop_table('wallet_bindings')
    op.drop_table('accounts')
