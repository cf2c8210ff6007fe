"""Initial treasure hunt schema

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-18 09:12:44.118203

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '3f1c2a9d7b10'
down_revision = None
branch_labels = None
depends_on = None

# Enum types are shared between tables, so they are created once up front
userrole = postgresql.ENUM('PARTICIPANT', 'PROMOTER', 'ADMIN', name='userrole', create_type=False)
tier = postgresql.ENUM('FREE', 'PREMIUM', 'VIP', name='tier', create_type=False)
participantstatus = postgresql.ENUM('PENDING', 'APPROVED', 'ACTIVE', 'REJECTED', 'SUSPENDED',
                                    name='participantstatus', create_type=False)
promoterstatus = postgresql.ENUM('PENDING', 'APPROVED', 'REJECTED', name='promoterstatus', create_type=False)
promotertype = postgresql.ENUM('INFLUENCER', 'BUSINESS', 'COMMUNITY', name='promotertype', create_type=False)
paymentstatus = postgresql.ENUM('PENDING', 'COMPLETED', 'FAILED', name='paymentstatus', create_type=False)

ENUMS = (userrole, tier, participantstatus, promoterstatus, promotertype, paymentstatus)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade():
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('country', sa.String(length=100), nullable=True),
        sa.Column('role', userrole, nullable=False),
        sa.Column('email_verified', sa.Boolean(), nullable=False),
        sa.Column('is_active_account', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_email'), ['email'], unique=True)
        batch_op.create_index(batch_op.f('ix_users_role'), ['role'], unique=False)

    op.create_table(
        'participants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('tier', tier, nullable=False),
        sa.Column('status', participantstatus, nullable=False),
        sa.Column('wallet_address', sa.String(length=255), nullable=True),
        sa.Column('discord_username', sa.String(length=100), nullable=True),
        sa.Column('telegram_username', sa.String(length=100), nullable=True),
        sa.Column('referral_code', sa.String(length=20), nullable=True),
        sa.Column('referred_by', sa.String(length=20), nullable=True),
        sa.Column('registration_data', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('participants', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_participants_user_id'), ['user_id'], unique=True)
        batch_op.create_index(batch_op.f('ix_participants_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_participants_referred_by'), ['referred_by'], unique=False)

    op.create_table(
        'promoters',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('type', promotertype, nullable=False),
        sa.Column('status', promoterstatus, nullable=False),
        sa.Column('referral_code', sa.String(length=20), nullable=False),
        sa.Column('company_name', sa.String(length=255), nullable=True),
        sa.Column('website', sa.String(length=255), nullable=True),
        sa.Column('social_media_links', sa.JSON(), nullable=True),
        sa.Column('followers_count', sa.Integer(), nullable=True),
        sa.Column('engagement_rate', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('niche', sa.String(length=100), nullable=True),
        sa.Column('application_data', sa.JSON(), nullable=True),
        sa.Column('commission_rate', sa.Numeric(precision=5, scale=4), server_default=sa.text('0.10'), nullable=False),
        sa.Column('total_referrals', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('total_revenue', sa.Numeric(precision=12, scale=2), server_default=sa.text('0.00'), nullable=False),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['approved_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('promoters', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_promoters_user_id'), ['user_id'], unique=True)
        batch_op.create_index(batch_op.f('ix_promoters_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_promoters_referral_code'), ['referral_code'], unique=True)

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('participant_id', sa.Integer(), nullable=True),
        sa.Column('stripe_session_id', sa.String(length=255), nullable=False),
        sa.Column('stripe_payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('tier', tier, nullable=False),
        sa.Column('status', paymentstatus, nullable=False),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('referral_code', sa.String(length=20), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['participant_id'], ['participants.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payments_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_participant_id'), ['participant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_stripe_session_id'), ['stripe_session_id'], unique=True)
        batch_op.create_index(batch_op.f('ix_payments_stripe_payment_intent_id'), ['stripe_payment_intent_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_status'), ['status'], unique=False)
        batch_op.create_index('idx_payment_participant_tier_status', ['participant_id', 'tier', 'status'], unique=False)

    op.create_table(
        'referrals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('promoter_id', sa.Integer(), nullable=False),
        sa.Column('participant_email', sa.String(length=255), nullable=False),
        sa.Column('referral_code', sa.String(length=20), nullable=False),
        sa.Column('tier', tier, nullable=False),
        sa.Column('commission', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('is_converted', sa.Boolean(), nullable=False),
        sa.Column('converted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['promoter_id'], ['promoters.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_id'),
    )
    with op.batch_alter_table('referrals', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_referrals_promoter_id'), ['promoter_id'], unique=False)
        batch_op.create_index('idx_referral_email_code', ['participant_email', 'referral_code'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_audit_logs_actor_user_id'), ['actor_user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_logs_action'), ['action'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_logs_created_at'), ['created_at'], unique=False)

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('event_id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('reference', sa.String(length=255), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('remarks', sa.String(length=500), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'event_id', name='uq_webhook_provider_event'),
    )
    with op.batch_alter_table('webhook_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_webhook_events_reference'), ['reference'], unique=False)


def downgrade():
    op.drop_table('webhook_events')
    op.drop_table('audit_logs')
    op.drop_table('referrals')
    op.drop_table('payments')
    op.drop_table('promoters')
    op.drop_table('participants')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
