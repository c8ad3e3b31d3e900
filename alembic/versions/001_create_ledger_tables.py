"""Create goal ledger and recurring transaction tables.

Revision ID: 001_create_ledger_tables
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ENUM, UUID


# revision identifiers, used by Alembic.
revision: str = '001_create_ledger_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    'transactiontype': ('income', 'expense'),
    'frequency': ('daily', 'weekly', 'monthly', 'yearly'),
    'goaltype': ('savings', 'debt_reduction', 'emergency_fund', 'investment', 'custom'),
    'goalstatus': ('active', 'complete', 'abandoned'),
    'trackingmethod': ('category', 'tag', 'account', 'manual'),
    'contributiontype': ('transaction', 'manual', 'recurring'),
    'notificationtype': (
        'goal_milestone',
        'goal_completed',
        'recurring_transaction_processed',
        'recurring_transaction_upcoming',
    ),
    'notificationpriority': ('low', 'normal', 'high', 'urgent'),
    'referencetype': ('goal', 'recurring_schedule'),
}


def _enum(name: str) -> ENUM:
    # Types are created up front; several tables share them
    return ENUM(*ENUMS[name], name=name, create_type=False)


def _money(name: str, nullable: bool = False, **kwargs) -> sa.Column:
    return sa.Column(name, sa.Numeric(precision=18, scale=2), nullable=nullable, **kwargs)


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        sa.Enum(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('preferred_currency', sa.String(10), nullable=False, server_default='EUR'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'accounts',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_accounts_user_id', 'accounts', ['user_id'])

    op.create_table(
        'categories',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('category_type', _enum('transactiontype'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_categories_user_id', 'categories', ['user_id'])

    op.create_table(
        'tags',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_tags_user_id', 'tags', ['user_id'])

    op.create_table(
        'recurring_schedules',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('category_id', UUID(as_uuid=True), sa.ForeignKey('categories.id'), nullable=False),
        sa.Column('account_id', UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        _money('amount'),
        sa.Column('transaction_type', _enum('transactiontype'), nullable=False),
        sa.Column('frequency', _enum('frequency'), nullable=False),
        sa.Column('interval', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('day_of_week', sa.Integer(), nullable=True),
        sa.Column('day_of_month', sa.Integer(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('last_generated_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('amount > 0', name='ck_recurring_schedules_amount_positive'),
        sa.CheckConstraint('interval >= 1', name='ck_recurring_schedules_interval_positive'),
        sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_recurring_schedules_day_of_week'),
        sa.CheckConstraint('day_of_month BETWEEN 1 AND 31', name='ck_recurring_schedules_day_of_month'),
        sa.CheckConstraint(
            'end_date IS NULL OR end_date >= start_date', name='ck_recurring_schedules_end_after_start'
        ),
    )
    op.create_index('ix_recurring_schedules_user_id', 'recurring_schedules', ['user_id'])
    op.create_index('ix_recurring_schedules_active', 'recurring_schedules', ['active'])

    op.create_table(
        'transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('category_id', UUID(as_uuid=True), sa.ForeignKey('categories.id'), nullable=False),
        sa.Column('account_id', UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        _money('amount'),
        sa.Column('transaction_type', _enum('transactiontype'), nullable=False),
        sa.Column('transaction_date', sa.Date(), nullable=False),
        sa.Column(
            'recurring_schedule_id',
            UUID(as_uuid=True),
            sa.ForeignKey('recurring_schedules.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('amount > 0', name='ck_transactions_amount_positive'),
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('ix_transactions_category_id', 'transactions', ['category_id'])
    op.create_index('ix_transactions_account_id', 'transactions', ['account_id'])
    op.create_index('ix_transactions_transaction_date', 'transactions', ['transaction_date'])
    op.create_index('ix_transactions_recurring_schedule_id', 'transactions', ['recurring_schedule_id'])

    op.create_table(
        'transaction_tags',
        sa.Column(
            'transaction_id', UUID(as_uuid=True),
            sa.ForeignKey('transactions.id', ondelete='CASCADE'), primary_key=True,
        ),
        sa.Column('tag_id', UUID(as_uuid=True), sa.ForeignKey('tags.id', ondelete='CASCADE'), primary_key=True),
    )

    op.create_table(
        'financial_goals',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('goal_type', _enum('goaltype'), nullable=False),
        _money('target_amount'),
        _money('starting_amount', server_default='0'),
        _money('current_amount', server_default='0'),
        sa.Column('target_date', sa.Date(), nullable=True),
        sa.Column('status', _enum('goalstatus'), nullable=False, server_default='active'),
        sa.Column('auto_track', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('tracking_method', _enum('trackingmethod'), nullable=False, server_default='manual'),
        sa.Column('tracking_criteria', sa.JSON(), nullable=False, server_default='[]'),
        _money('contribution_amount', nullable=True),
        sa.Column('contribution_frequency', _enum('frequency'), nullable=True),
        sa.Column('completion_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('target_amount > 0', name='ck_financial_goals_target_positive'),
        sa.CheckConstraint('starting_amount >= 0', name='ck_financial_goals_starting_non_negative'),
    )
    op.create_index('ix_financial_goals_user_id', 'financial_goals', ['user_id'])
    op.create_index('ix_financial_goals_status', 'financial_goals', ['status'])

    op.create_table(
        'goal_categories',
        sa.Column('goal_id', UUID(as_uuid=True), sa.ForeignKey('financial_goals.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('category_id', UUID(as_uuid=True), sa.ForeignKey('categories.id', ondelete='CASCADE'), primary_key=True),
    )
    op.create_table(
        'goal_tags',
        sa.Column('goal_id', UUID(as_uuid=True), sa.ForeignKey('financial_goals.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('tag_id', UUID(as_uuid=True), sa.ForeignKey('tags.id', ondelete='CASCADE'), primary_key=True),
    )

    op.create_table(
        'goal_contributions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'goal_id', UUID(as_uuid=True),
            sa.ForeignKey('financial_goals.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column(
            'transaction_id', UUID(as_uuid=True),
            sa.ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True,
        ),
        _money('amount'),
        sa.Column('contribution_type', _enum('contributiontype'), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('contributed_on', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('amount <> 0', name='ck_goal_contributions_amount_non_zero'),
    )
    op.create_index('ix_goal_contributions_goal_id', 'goal_contributions', ['goal_id'])
    op.create_index('ix_goal_contributions_transaction_id', 'goal_contributions', ['transaction_id'])
    op.create_index('ix_goal_contributions_contributed_on', 'goal_contributions', ['contributed_on'])

    op.create_table(
        'notifications',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', _enum('notificationtype'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('priority', _enum('notificationpriority'), nullable=False, server_default='normal'),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('reference_type', _enum('referencetype'), nullable=True),
        sa.Column('reference_id', UUID(as_uuid=True), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_notifications_user_id_is_read', 'notifications', ['user_id', 'is_read'])
    op.create_index('ix_notifications_reference', 'notifications', ['reference_type', 'reference_id'])


def downgrade() -> None:
    op.drop_index('ix_notifications_reference', table_name='notifications')
    op.drop_index('ix_notifications_user_id_is_read', table_name='notifications')
    op.drop_table('notifications')
    op.drop_table('goal_contributions')
    op.drop_table('goal_tags')
    op.drop_table('goal_categories')
    op.drop_table('financial_goals')
    op.drop_table('transaction_tags')
    op.drop_table('transactions')
    op.drop_table('recurring_schedules')
    op.drop_table('tags')
    op.drop_table('categories')
    op.drop_table('accounts')
    op.drop_table('users')

    for name in reversed(list(ENUMS)):
        op.execute(f'DROP TYPE IF EXISTS {name}')
