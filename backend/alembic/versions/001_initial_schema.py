"""Create accounts, SOW prefixes, proposals and signatures

Revision ID: 001
Revises:
Create Date: 2026-10-16

WHY: The proposal core: accounts own proposals, each account has at most
one SOW prefix, and each proposal has at most one signature.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('style_settings', sa.JSON(), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_accounts_id', 'accounts', ['id'])
    op.create_index('ix_accounts_name', 'accounts', ['name'])

    op.create_table(
        'account_sow_prefixes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('prefix', sa.String(length=10), nullable=False),
        sa.Column('locked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        # WHY: digits only; the application checks this too but the
        # database is the last line for a value that must never change
        sa.CheckConstraint("prefix ~ '^[0-9]{1,10}$'", name='ck_account_sow_prefixes_digits'),
    )
    op.create_index('ix_account_sow_prefixes_id', 'account_sow_prefixes', ['id'])
    op.create_index('ix_account_sow_prefixes_account_id', 'account_sow_prefixes', ['account_id'], unique=True)

    # WHY: enums stored as VARCHAR (native_enum=False in the models) so new
    # statuses never need an ALTER TYPE
    op.create_table(
        'proposals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('token', sa.String(length=64), nullable=False, comment='Public recipient token'),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('is_template', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('template_name', sa.String(length=255), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('proposal_date', sa.Date(), nullable=False, server_default=sa.text('CURRENT_DATE')),
        sa.Column('expiration_date', sa.Date(), nullable=True),
        sa.Column('client_first_name', sa.String(length=255), nullable=True),
        sa.Column('client_last_name', sa.String(length=255), nullable=True),
        sa.Column('client_email', sa.String(length=255), nullable=True),
        sa.Column('client_company', sa.String(length=255), nullable=True),
        sa.Column('contact_id', sa.String(length=64), nullable=True),
        sa.Column('business_name', sa.String(length=255), nullable=True),
        sa.Column('business_email', sa.String(length=255), nullable=True),
        sa.Column('business_phone', sa.String(length=64), nullable=True),
        sa.Column('business_address', sa.Text(), nullable=True),
        sa.Column('custom_sections', JSONB(), nullable=False, server_default='[]'),
        sa.Column('line_items', JSONB(), nullable=False, server_default='[]'),
        sa.Column('terms_content', sa.Text(), nullable=True),
        sa.Column('show_pricing', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('show_terms', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('show_sow_number', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('require_signature', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('pricing_type', sa.String(length=32), nullable=False, server_default='fixed'),
        sa.Column('discount_type', sa.String(length=32), nullable=False, server_default='none'),
        sa.Column('discount_value', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('tax_rate', sa.Numeric(6, 3), nullable=False, server_default='0'),
        sa.Column('sow_number', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='draft'),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('viewed_at', sa.DateTime(), nullable=True),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        sa.Column('declined_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        # WHY: the allocator relies on this to reject a duplicate number
        sa.UniqueConstraint('account_id', 'sow_number', name='uq_proposals_account_sow_number'),
    )
    op.create_index('ix_proposals_id', 'proposals', ['id'])
    op.create_index('ix_proposals_token', 'proposals', ['token'], unique=True)
    op.create_index('ix_proposals_account_id', 'proposals', ['account_id'])
    op.create_index('ix_proposals_status', 'proposals', ['status'])

    op.create_table(
        'proposal_signatures',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('proposal_id', sa.Integer(), nullable=False),
        sa.Column('signer_name', sa.String(length=255), nullable=False),
        sa.Column('signer_email', sa.String(length=255), nullable=False),
        sa.Column('signature_image_url', sa.Text(), nullable=False),
        sa.Column('document_hash', sa.String(length=64), nullable=False),
        sa.Column('accepted_terms', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('signed_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['proposal_id'], ['proposals.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_proposal_signatures_id', 'proposal_signatures', ['id'])
    # WHY: unique, so a concurrent second signature fails instead of overwriting
    op.create_index('ix_proposal_signatures_proposal_id', 'proposal_signatures', ['proposal_id'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_proposal_signatures_proposal_id', table_name='proposal_signatures')
    op.drop_index('ix_proposal_signatures_id', table_name='proposal_signatures')
    op.drop_table('proposal_signatures')

    op.drop_index('ix_proposals_status', table_name='proposals')
    op.drop_index('ix_proposals_account_id', table_name='proposals')
    op.drop_index('ix_proposals_token', table_name='proposals')
    op.drop_index('ix_proposals_id', table_name='proposals')
    op.drop_table('proposals')

    op.drop_index('ix_account_sow_prefixes_account_id', table_name='account_sow_prefixes')
    op.drop_index('ix_account_sow_prefixes_id', table_name='account_sow_prefixes')
    op.drop_table('account_sow_prefixes')

    op.drop_index('ix_accounts_name', table_name='accounts')
    op.drop_index('ix_accounts_id', table_name='accounts')
    op.drop_table('accounts')
