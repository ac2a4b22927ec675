"""create_group_schema

Revision ID: 3f7b2c91d4e0
Revises:
Create Date: 2026-10-18 09:12:41.518203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f7b2c91d4e0'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def _group_record(table_name: str, *columns: sa.Column) -> None:
    op.create_table(
        table_name,
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('created_by_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('published', sa.Boolean(), nullable=False),
        *columns,
        *_timestamps(),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f(f'ix_{table_name}_group_id'), table_name, ['group_id'], unique=False)


def upgrade() -> None:
    """
    Create the group membership schema.

    Creates:
    - users, groups (users.current_group_id added after groups exists)
    - group_memberships, otp_verifications
    - payments, payment_entries
    - announcements, constitutions, minutes, expenses
    """
    # 1. Users (current_group_id FK added once groups exists)
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('phone_number', sa.String(length=50), nullable=False),
        sa.Column('gender', sa.String(length=6), nullable=False),
        sa.Column('bio', sa.Text(), nullable=False),
        sa.Column('verified', sa.Boolean(), nullable=False),
        sa.Column('otp_attempts', sa.Integer(), nullable=False),
        sa.Column('notifications_enabled', sa.Boolean(), nullable=False),
        sa.Column('current_group_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    # 2. Groups
    op.create_table(
        'groups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('join_code', sa.String(length=6), nullable=False),
        sa.Column('abbreviation', sa.String(length=3), nullable=False),
        sa.Column('member_counter', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=8), nullable=False),
        sa.Column('created_by_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_groups_join_code'), 'groups', ['join_code'], unique=True)

    with op.batch_alter_table('users') as batch_op:
        batch_op.create_foreign_key(
            'fk_users_current_group_id_groups',
            'groups',
            ['current_group_id'],
            ['id'],
            ondelete='SET NULL',
        )

    # 3. Memberships
    op.create_table(
        'group_memberships',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('member_number', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=8), nullable=False),
        sa.Column('permissions', sa.JSON(), nullable=False),
        sa.Column('notifications_enabled', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('group_id', 'user_id', name='uq_group_user'),
        sa.UniqueConstraint('group_id', 'member_number', name='uq_group_member_number'),
    )
    op.create_index(
        op.f('ix_group_memberships_group_id'), 'group_memberships', ['group_id'], unique=False
    )
    op.create_index(
        op.f('ix_group_memberships_user_id'), 'group_memberships', ['user_id'], unique=False
    )

    # 4. OTP verifications
    op.create_table(
        'otp_verifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('code_hash', sa.String(length=255), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
    )

    # 5. Payments and ledgers
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('payment_type', sa.String(length=12), nullable=False),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('published', sa.Boolean(), nullable=False),
        sa.Column('created_by_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_payments_group_id'), 'payments', ['group_id'], unique=False)

    op.create_table(
        'payment_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('payment_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('paid', sa.Boolean(), nullable=False),
        sa.Column('amount_paid', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_id', 'user_id', name='uq_payment_user'),
    )
    op.create_index(
        op.f('ix_payment_entries_payment_id'), 'payment_entries', ['payment_id'], unique=False
    )
    op.create_index(
        op.f('ix_payment_entries_user_id'), 'payment_entries', ['user_id'], unique=False
    )

    # 6. Group records
    _group_record('announcements', sa.Column('body', sa.Text(), nullable=False))
    _group_record('constitutions', sa.Column('body', sa.Text(), nullable=False))
    _group_record('minutes', sa.Column('body', sa.Text(), nullable=False))
    _group_record(
        'expenses',
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
    )


def downgrade() -> None:
    """Drop every table created by upgrade(), dependents first."""
    for table_name in ('expenses', 'minutes', 'constitutions', 'announcements'):
        op.drop_index(op.f(f'ix_{table_name}_group_id'), table_name=table_name)
        op.drop_table(table_name)

    op.drop_index(op.f('ix_payment_entries_user_id'), table_name='payment_entries')
    op.drop_index(op.f('ix_payment_entries_payment_id'), table_name='payment_entries')
    op.drop_table('payment_entries')
    op.drop_index(op.f('ix_payments_group_id'), table_name='payments')
    op.drop_table('payments')

    op.drop_table('otp_verifications')

    op.drop_index(op.f('ix_group_memberships_user_id'), table_name='group_memberships')
    op.drop_index(op.f('ix_group_memberships_group_id'), table_name='group_memberships')
    op.drop_table('group_memberships')

    with op.batch_alter_table('users') as batch_op:
        batch_op.drop_constraint('fk_users_current_group_id_groups', type_='foreignkey')

    op.drop_index(op.f('ix_groups_join_code'), table_name='groups')
    op.drop_table('groups')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
