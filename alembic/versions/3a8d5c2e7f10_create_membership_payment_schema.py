"""create membership payment schema

Revision ID: 3a8d5c2e7f10
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3a8d5c2e7f10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

member_role = postgresql.ENUM('ADMIN', 'MEMBER', name='memberrole', create_type=False)
membership_tier = postgresql.ENUM('BASIC', 'PREMIUM', 'EXECUTIVE', name='membershiptier', create_type=False)
membership_status = postgresql.ENUM('PENDING', 'ACTIVE', 'SUSPENDED', 'CANCELLED', 'EXPIRED', 'TERMINATED', name='membershipstatus', create_type=False)
billing_cycle = postgresql.ENUM('MONTHLY', 'YEARLY', name='billingcycle', create_type=False)
lead_status = postgresql.ENUM('NEW', 'CONTACTED', 'QUALIFIED', 'CONVERTED', 'REJECTED', name='leadstatus', create_type=False)
lead_source = postgresql.ENUM('WEBSITE_CONTACT', 'PURCHASE_INTENT', 'EVENT_REGISTRATION', 'REFERRAL', 'OTHER', name='leadsource', create_type=False)
lead_priority = postgresql.ENUM('LOW', 'MEDIUM', 'HIGH', 'URGENT', name='leadpriority', create_type=False)
order_status = postgresql.ENUM('PENDING', 'PAID', 'FAILED', name='orderstatus', create_type=False)
intent_status = postgresql.ENUM('PENDING', 'CONVERTED', name='purchaseintentstatus', create_type=False)

ENUM_TYPES = (
    member_role, membership_tier, membership_status, billing_cycle,
    lead_status, lead_source, lead_priority, order_status, intent_status,
)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    # 枚举类型被多张表共用，只创建一次
    for enum_type in ENUM_TYPES:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('username', sa.String(length=100), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users')),
    )
    op.create_index(op.f('ix_users_uuid'), 'users', ['uuid'], unique=True)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table(
        'associations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_associations')),
    )
    op.create_index(op.f('ix_associations_uuid'), 'associations', ['uuid'], unique=True)
    op.create_index(op.f('ix_associations_slug'), 'associations', ['slug'], unique=True)

    op.create_table(
        'profiles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_profiles_user_id_users'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_profiles')),
    )
    op.create_index(op.f('ix_profiles_uuid'), 'profiles', ['uuid'], unique=True)
    op.create_index(op.f('ix_profiles_user_id'), 'profiles', ['user_id'], unique=False)

    op.create_table(
        'profile_badges',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('profile_id', sa.Integer(), nullable=False),
        sa.Column('association_id', sa.Integer(), nullable=False),
        sa.Column('display_order', sa.Integer(), nullable=False),
        sa.Column('is_visible', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['profile_id'], ['profiles.id'], name=op.f('fk_profile_badges_profile_id_profiles'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['association_id'], ['associations.id'], name=op.f('fk_profile_badges_association_id_associations'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_profile_badges')),
        sa.UniqueConstraint('profile_id', 'association_id', name='uq_profile_badges_profile_association'),
    )
    op.create_index(op.f('ix_profile_badges_profile_id'), 'profile_badges', ['profile_id'], unique=False)
    op.create_index(op.f('ix_profile_badges_association_id'), 'profile_badges', ['association_id'], unique=False)

    op.create_table(
        'pricing_plans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('association_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.DECIMAL(precision=10, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('billing_cycle', billing_cycle, nullable=False),
        sa.Column('membership_tier', membership_tier, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('gateway_product_id', sa.String(length=255), nullable=True),
        sa.Column('gateway_price_id', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['association_id'], ['associations.id'], name=op.f('fk_pricing_plans_association_id_associations'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_pricing_plans')),
    )
    op.create_index(op.f('ix_pricing_plans_uuid'), 'pricing_plans', ['uuid'], unique=True)
    op.create_index(op.f('ix_pricing_plans_association_id'), 'pricing_plans', ['association_id'], unique=False)

    op.create_table(
        'purchase_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('association_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('pricing_plan_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.DECIMAL(precision=10, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', order_status, nullable=False),
        sa.Column('gateway_data', sa.JSON(), nullable=True),
        sa.Column('membership_start_date', sa.DateTime(), nullable=True),
        sa.Column('membership_end_date', sa.DateTime(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['association_id'], ['associations.id'], name=op.f('fk_purchase_orders_association_id_associations')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_purchase_orders_user_id_users')),
        sa.ForeignKeyConstraint(['pricing_plan_id'], ['pricing_plans.id'], name=op.f('fk_purchase_orders_pricing_plan_id_pricing_plans')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_purchase_orders')),
        sa.UniqueConstraint('order_number', name=op.f('uq_purchase_orders_order_number')),
    )
    op.create_index(op.f('ix_purchase_orders_uuid'), 'purchase_orders', ['uuid'], unique=True)
    op.create_index(op.f('ix_purchase_orders_association_id'), 'purchase_orders', ['association_id'], unique=False)
    op.create_index(op.f('ix_purchase_orders_user_id'), 'purchase_orders', ['user_id'], unique=False)
    op.create_index(op.f('ix_purchase_orders_pricing_plan_id'), 'purchase_orders', ['pricing_plan_id'], unique=False)
    op.create_index(op.f('ix_purchase_orders_status'), 'purchase_orders', ['status'], unique=False)
    op.create_index('ix_purchase_orders_status_created_at', 'purchase_orders', ['status', 'created_at'], unique=False)

    op.create_table(
        'purchase_intent_data',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('organization', sa.String(length=255), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('association_id', sa.Integer(), nullable=True),
        sa.Column('pricing_plan_id', sa.Integer(), nullable=True),
        sa.Column('purchase_order_id', sa.Integer(), nullable=True),
        sa.Column('purchase_context', sa.JSON(), nullable=True),
        sa.Column('status', intent_status, nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('converted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_purchase_intent_data_user_id_users'), ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['association_id'], ['associations.id'], name=op.f('fk_purchase_intent_data_association_id_associations'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['pricing_plan_id'], ['pricing_plans.id'], name=op.f('fk_purchase_intent_data_pricing_plan_id_pricing_plans'), ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], name=op.f('fk_purchase_intent_data_purchase_order_id_purchase_orders'), ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_purchase_intent_data')),
    )
    op.create_index(op.f('ix_purchase_intent_data_uuid'), 'purchase_intent_data', ['uuid'], unique=True)
    op.create_index(op.f('ix_purchase_intent_data_email'), 'purchase_intent_data', ['email'], unique=False)
    op.create_index(op.f('ix_purchase_intent_data_user_id'), 'purchase_intent_data', ['user_id'], unique=False)
    op.create_index(op.f('ix_purchase_intent_data_association_id'), 'purchase_intent_data', ['association_id'], unique=False)
    op.create_index(op.f('ix_purchase_intent_data_purchase_order_id'), 'purchase_intent_data', ['purchase_order_id'], unique=False)
    op.create_index(op.f('ix_purchase_intent_data_status'), 'purchase_intent_data', ['status'], unique=False)

    op.create_table(
        'association_leads',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('association_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('source', lead_source, nullable=False),
        sa.Column('status', lead_status, nullable=False),
        sa.Column('priority', lead_priority, nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('converted_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['association_id'], ['associations.id'], name=op.f('fk_association_leads_association_id_associations'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_association_leads_user_id_users'), ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], name=op.f('fk_association_leads_purchase_order_id_purchase_orders'), ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_association_leads')),
    )
    op.create_index(op.f('ix_association_leads_uuid'), 'association_leads', ['uuid'], unique=True)
    op.create_index(op.f('ix_association_leads_association_id'), 'association_leads', ['association_id'], unique=False)
    op.create_index(op.f('ix_association_leads_user_id'), 'association_leads', ['user_id'], unique=False)
    op.create_index(op.f('ix_association_leads_status'), 'association_leads', ['status'], unique=False)
    op.create_index(op.f('ix_association_leads_purchase_order_id'), 'association_leads', ['purchase_order_id'], unique=False)

    op.create_table(
        'association_members',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('association_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role', member_role, nullable=False),
        sa.Column('membership_tier', membership_tier, nullable=False),
        sa.Column('membership_status', membership_status, nullable=False),
        sa.Column('renewal_date', sa.DateTime(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['association_id'], ['associations.id'], name=op.f('fk_association_members_association_id_associations'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_association_members_user_id_users'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_association_members')),
        sa.UniqueConstraint('association_id', 'user_id', name='uq_association_members_association_user'),
    )
    op.create_index(op.f('ix_association_members_uuid'), 'association_members', ['uuid'], unique=True)
    op.create_index(op.f('ix_association_members_association_id'), 'association_members', ['association_id'], unique=False)
    op.create_index(op.f('ix_association_members_user_id'), 'association_members', ['user_id'], unique=False)
    op.create_index(op.f('ix_association_members_membership_status'), 'association_members', ['membership_status'], unique=False)

    op.create_table(
        'membership_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('association_member_id', sa.Integer(), nullable=False),
        sa.Column('previous_status', membership_status, nullable=False),
        sa.Column('new_status', membership_status, nullable=False),
        sa.Column('changed_by', sa.Integer(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['association_member_id'], ['association_members.id'], name=op.f('fk_membership_history_association_member_id_association_members'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['changed_by'], ['users.id'], name=op.f('fk_membership_history_changed_by_users'), ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_membership_history')),
    )
    op.create_index(op.f('ix_membership_history_association_member_id'), 'membership_history', ['association_member_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('membership_history')
    op.drop_table('association_members')
    op.drop_table('association_leads')
    op.drop_table('purchase_intent_data')
    op.drop_table('purchase_orders')
    op.drop_table('pricing_plans')
    op.drop_table('profile_badges')
    op.drop_table('profiles')
    op.drop_table('associations')
    op.drop_table('users')
    bind = op.get_bind()
    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(bind, checkfirst=True)
