"""initial_schema

Revision ID: 3f2a9c1d7b10
Revises:
Create Date: 2026-10-19 09:12:40.218734

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from groupsplit.db.models import GUID


# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, sessions, groups, members, expenses and settlements."""
    op.create_table(
        'users',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=True),
        sa.Column('email_verified', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'sessions',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('user_id', GUID(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token_hash'),
    )
    op.create_index('ix_sessions_user_id', 'sessions', ['user_id'])

    op.create_table(
        'login_tokens',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('jti', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('jti'),
    )
    op.create_index('ix_login_tokens_email', 'login_tokens', ['email'])

    op.create_table(
        'groups',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('income_frequency', sa.String(length=10), nullable=False),
        sa.Column('created_by', GUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'group_invitations',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('group_id', GUID(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('token', sa.String(length=64), nullable=False),
        sa.Column('created_by', GUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('declined_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token'),
    )
    op.create_index('ix_group_invitations_group_id', 'group_invitations', ['group_id'])
    op.create_index('ix_group_invitations_email', 'group_invitations', ['email'])

    op.create_table(
        'group_members',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('group_id', GUID(), nullable=False),
        sa.Column('user_id', GUID(), nullable=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('income', sa.Integer(), nullable=False),
        sa.Column('coefficient', sa.Integer(), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('left_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('income >= 0', name='ck_group_members_income_non_negative'),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_group_members_group_id', 'group_members', ['group_id'])
    op.create_index('ix_group_members_user_id', 'group_members', ['user_id'])

    op.create_table(
        'expenses',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('group_id', GUID(), nullable=False),
        sa.Column('paid_by', GUID(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('date', sa.String(length=10), nullable=False),
        sa.Column('created_by', GUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_expenses_amount_positive'),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['paid_by'], ['group_members.id']),
        sa.ForeignKeyConstraint(['created_by'], ['group_members.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_expenses_group_date', 'expenses', ['group_id', 'date'])
    op.create_index('ix_expenses_group_created', 'expenses', ['group_id', 'created_at'])

    op.create_table(
        'expense_participants',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('expense_id', GUID(), nullable=False),
        sa.Column('member_id', GUID(), nullable=False),
        sa.Column('custom_amount', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['expense_id'], ['expenses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['member_id'], ['group_members.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('expense_id', 'member_id', name='uq_expense_participant'),
    )
    op.create_index(
        'ix_expense_participants_member_id', 'expense_participants', ['member_id']
    )

    op.create_table(
        'settlements',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('group_id', GUID(), nullable=False),
        sa.Column('from_member', GUID(), nullable=False),
        sa.Column('to_member', GUID(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('date', sa.String(length=10), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('amount > 0', name='ck_settlements_amount_positive'),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['from_member'], ['group_members.id']),
        sa.ForeignKeyConstraint(['to_member'], ['group_members.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_settlements_group_created', 'settlements', ['group_id', 'created_at']
    )


def downgrade() -> None:
    """Drop every table."""
    op.drop_index('ix_settlements_group_created', table_name='settlements')
    op.drop_table('settlements')
    op.drop_index('ix_expense_participants_member_id', table_name='expense_participants')
    op.drop_table('expense_participants')
    op.drop_index('ix_expenses_group_created', table_name='expenses')
    op.drop_index('ix_expenses_group_date', table_name='expenses')
    op.drop_table('expenses')
    op.drop_index('ix_group_members_user_id', table_name='group_members')
    op.drop_index('ix_group_members_group_id', table_name='group_members')
    op.drop_table('group_members')
    op.drop_index('ix_group_invitations_email', table_name='group_invitations')
    op.drop_index('ix_group_invitations_group_id', table_name='group_invitations')
    op.drop_table('group_invitations')
    op.drop_table('groups')
    op.drop_index('ix_login_tokens_email', table_name='login_tokens')
    op.drop_table('login_tokens')
    op.drop_index('ix_sessions_user_id', table_name='sessions')
    op.drop_table('sessions')
    op.drop_table('users')
