"""Initial registry schema: businesses, counters, snapshots, admins

Revision ID: 20261019_0900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_0900'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create the registry tables."""
    op.create_table(
        'admin_users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(200), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_super_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_admin_users'),
    )
    op.create_index('ix_admin_users_email', 'admin_users', ['email'], unique=True)

    op.create_table(
        'business_categories',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_business_categories'),
        sa.UniqueConstraint('name', name='uq_business_categories_name'),
    )

    op.create_table(
        'msme_businesses',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('organization_name', sa.String(255), nullable=False),
        sa.Column('email_address', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=True),
        sa.Column('contact_number', sa.String(30), nullable=True),
        sa.Column('business_category_id', sa.Uuid(), nullable=False),
        sa.Column('business_sub_category_id', sa.String(100), nullable=True),
        sa.Column('region', sa.String(50), nullable=False),
        sa.Column('inkhundla', sa.String(100), nullable=False),
        sa.Column('rural_urban_classification', sa.String(20), nullable=False),
        sa.Column('turnover', sa.String(50), nullable=True),
        sa.Column('ownership_type', sa.String(20), nullable=False),
        sa.Column('owner_gender_summary', sa.String(20), nullable=True),
        sa.Column('is_verified', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('verification_comments', sa.Text(), nullable=True),
        sa.Column('verified_by_id', sa.Uuid(), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reset_otp', sa.String(10), nullable=True),
        sa.Column('reset_otp_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('otp_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reset_token_hash', sa.String(64), nullable=True),
        sa.Column('reset_token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_msme_businesses'),
        sa.ForeignKeyConstraint(
            ['business_category_id'], ['business_categories.id'],
            name='fk_msme_businesses_business_category_id_business_categories',
        ),
        sa.ForeignKeyConstraint(
            ['verified_by_id'], ['admin_users.id'], ondelete='SET NULL',
            name='fk_msme_businesses_verified_by_id_admin_users',
        ),
    )
    op.create_index('ix_msme_businesses_email_address', 'msme_businesses', ['email_address'], unique=True)
    op.create_index('ix_msme_businesses_business_category_id', 'msme_businesses', ['business_category_id'])
    op.create_index('ix_msme_businesses_region', 'msme_businesses', ['region'])
    op.create_index('ix_msme_businesses_is_verified', 'msme_businesses', ['is_verified'])
    op.create_index('ix_msme_businesses_deleted_at', 'msme_businesses', ['deleted_at'])
    op.create_index('ix_msme_businesses_reset_otp_expires_at', 'msme_businesses', ['reset_otp_expires_at'])
    op.create_index('ix_msme_businesses_reset_token_expires_at', 'msme_businesses', ['reset_token_expires_at'])

    for table, extra in (
        ('business_owners', [sa.Column('gender', sa.String(20), nullable=False)]),
        ('business_directors', [
            sa.Column('nationality', sa.String(20), nullable=False),
            sa.Column('age', sa.String(20), nullable=True),
        ]),
    ):
        op.create_table(
            table,
            sa.Column('id', sa.Uuid(), nullable=False),
            sa.Column('business_id', sa.Uuid(), nullable=False),
            sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('name', sa.String(255), nullable=True),
            *extra,
            *_timestamps(),
            sa.PrimaryKeyConstraint('id', name=f'pk_{table}'),
            sa.ForeignKeyConstraint(
                ['business_id'], ['msme_businesses.id'], ondelete='CASCADE',
                name=f'fk_{table}_business_id_msme_businesses',
            ),
        )
        op.create_index(f'ix_{table}_business_id', table, ['business_id'])

    op.create_table(
        'counters',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('key', sa.String(150), nullable=False),
        sa.Column('metric', sa.String(50), nullable=False),
        sa.Column('period_date', sa.Date(), nullable=True),
        sa.Column('value', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_counters'),
        sa.UniqueConstraint('key', name='uq_counters_key'),
        sa.CheckConstraint('value >= 0', name='ck_counters_value_non_negative'),
    )
    op.create_index('ix_counters_metric', 'counters', ['metric'])
    op.create_index('ix_counters_period_date', 'counters', ['period_date'])

    op.create_table(
        'analytics_snapshots',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('snapshot_type', sa.String(10), nullable=False),
        sa.Column('period', sa.String(10), nullable=False),
        sa.Column('total_businesses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pending_businesses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('approved_businesses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rejected_businesses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('businesses_by_category', sa.JSON(), nullable=False),
        sa.Column('businesses_by_region', sa.JSON(), nullable=False),
        sa.Column('male_owned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('female_owned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('mixed_ownership', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('new_registrations', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('new_subscribers', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('new_feedback', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('new_tickets', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_analytics_snapshots'),
        sa.UniqueConstraint('snapshot_type', 'period', name='uq_analytics_snapshots_type_period'),
    )
    op.create_index('ix_analytics_snapshots_period', 'analytics_snapshots', ['period'])

    op.create_table(
        'otp_attempts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('identity', sa.String(255), nullable=False),
        sa.Column('attempt_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('window_started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('locked_until', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_otp_attempts'),
        sa.UniqueConstraint('identity', name='uq_otp_attempts_identity'),
    )


def downgrade() -> None:
    """Drop the registry tables."""
    op.drop_table('otp_attempts')
    op.drop_index('ix_analytics_snapshots_period', table_name='analytics_snapshots')
    op.drop_table('analytics_snapshots')
    op.drop_index('ix_counters_period_date', table_name='counters')
    op.drop_index('ix_counters_metric', table_name='counters')
    op.drop_table('counters')
    op.drop_table('business_directors')
    op.drop_table('business_owners')
    op.drop_table('msme_businesses')
    op.drop_table('business_categories')
    op.drop_index('ix_admin_users_email', table_name='admin_users')
    op.drop_table('admin_users')
