"""initial offer negotiation schema

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-19 00:01:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '1a2b3c4d5e6f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('roles', sa.JSON, nullable=False),
        sa.Column('api_key_hash', sa.String(64), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False),
        sa.Column('last_seen_at', sa.TIMESTAMP, nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_api_key_hash', 'users', ['api_key_hash'], unique=True)

    op.create_table(
        'job_requests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('seeker_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('budget_min', sa.Numeric(12, 2), nullable=False),
        sa.Column('budget_max', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='EGP'),
        sa.Column('deadline', sa.TIMESTAMP, nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='open'),
        sa.Column('assigned_provider_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP, nullable=False),
        sa.Column('completed_at', sa.TIMESTAMP, nullable=True),
    )
    op.create_index('ix_job_requests_seeker_id', 'job_requests', ['seeker_id'])
    op.create_index('ix_job_requests_status', 'job_requests', ['status'])

    op.create_table(
        'offers',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('job_request_id', sa.String(36), sa.ForeignKey('job_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('seeker_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('provider_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        # Original proposal
        sa.Column('proposed_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='EGP'),
        sa.Column('message', sa.Text, nullable=True),
        sa.Column('estimated_time_days', sa.Integer, nullable=False, server_default='1'),
        sa.Column('available_dates', sa.JSON, nullable=False),
        sa.Column('time_preferences', sa.JSON, nullable=False),
        sa.Column('status', sa.String(30), nullable=False, server_default='pending'),
        # Negotiated terms
        sa.Column('negotiated_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('negotiated_date', sa.Date, nullable=True),
        sa.Column('negotiated_time', sa.String(5), nullable=True),
        sa.Column('negotiated_materials', sa.Text, nullable=True),
        sa.Column('negotiated_scope', sa.Text, nullable=True),
        sa.Column('seeker_confirmed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('provider_confirmed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('last_modified_by', sa.String(36), nullable=True),
        sa.Column('last_modified_at', sa.TIMESTAMP, nullable=True),
        # Escrow
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='not_paid'),
        sa.Column('payment_ref', sa.String(64), nullable=True),
        sa.Column('payment_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('escrowed_at', sa.TIMESTAMP, nullable=True),
        sa.Column('released_at', sa.TIMESTAMP, nullable=True),
        # Cancellation
        sa.Column('cancellation_requested_by', sa.String(36), nullable=True),
        sa.Column('cancellation_requested_at', sa.TIMESTAMP, nullable=True),
        sa.Column('cancellation_reason', sa.Text, nullable=True),
        sa.Column('refund_percentage', sa.Numeric(5, 2), nullable=True),
        sa.Column('refund_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('version', sa.Integer, nullable=False),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP, nullable=False),
    )
    op.create_index('ix_offers_job_request_id', 'offers', ['job_request_id'])
    op.create_index('ix_offers_seeker_id', 'offers', ['seeker_id'])
    op.create_index('ix_offers_provider_id', 'offers', ['provider_id'])
    op.create_index('ix_offers_status', 'offers', ['status'])
    op.create_index('ix_offers_payment_ref', 'offers', ['payment_ref'])

    op.create_table(
        'negotiation_history',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('offer_id', sa.String(36), sa.ForeignKey('offers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sequence', sa.Integer, nullable=False),
        sa.Column('field', sa.String(20), nullable=False),
        sa.Column('old_value', sa.JSON, nullable=True),
        sa.Column('new_value', sa.JSON, nullable=True),
        sa.Column('changed_by', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('timestamp', sa.TIMESTAMP, nullable=False),
        sa.Column('note', sa.Text, nullable=True),
        sa.UniqueConstraint('offer_id', 'sequence', name='uq_negotiation_history_offer_sequence'),
    )
    op.create_index('ix_negotiation_history_offer_id', 'negotiation_history', ['offer_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('payment_ref', sa.String(64), nullable=False, unique=True),
        sa.Column('offer_id', sa.String(36), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='EGP'),
        sa.Column('status', sa.String(20), nullable=False, server_default='escrowed'),
        sa.Column('provider_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('refund_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('settlement_note', sa.Text, nullable=True),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False),
        sa.Column('escrowed_at', sa.TIMESTAMP, nullable=True),
        sa.Column('released_at', sa.TIMESTAMP, nullable=True),
        sa.Column('refunded_at', sa.TIMESTAMP, nullable=True),
    )
    op.create_index('ix_payments_offer_id', 'payments', ['offer_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('offer_id', sa.String(36), sa.ForeignKey('offers.id', ondelete='CASCADE'), nullable=True),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('read_at', sa.TIMESTAMP, nullable=True),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_offer_id', 'notifications', ['offer_id'])
    op.create_index('ix_notifications_read_at', 'notifications', ['read_at'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('payments')
    op.drop_table('negotiation_history')
    op.drop_table('offers')
    op.drop_table('job_requests')
    op.drop_table('users')
