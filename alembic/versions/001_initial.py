"""001 Initial schema - booking records and webhook event log

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'booking_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('customer_id', sa.String(255), nullable=True),
        sa.Column('booking_id', sa.String(255), nullable=False),
        sa.Column('order_id', sa.String(255), nullable=True),
        sa.Column('payment_link_id', sa.String(255), nullable=True),
        sa.Column('order_status', sa.String(50), nullable=True),
        sa.Column('payment_status', sa.String(50), nullable=True),
        sa.Column('status', sa.String(50), server_default='ACCEPTED'),
        sa.Column('raw_booking', sa.Text(), nullable=True),
        sa.Column('service_names', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_booking_record_booking_status', 'booking_records', ['booking_id', 'status'])
    op.create_index('ix_booking_record_payment_link', 'booking_records', ['payment_link_id'])
    op.create_index('ix_booking_record_email_status', 'booking_records', ['email', 'status'])

    op.create_table(
        'webhook_event_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('provider', sa.String(50), nullable=False, server_default='square'),
        sa.Column('event_id', sa.String(255), nullable=True),
        sa.Column('event_type', sa.String(100), nullable=True),
        sa.Column('correlation_id', sa.String(255), nullable=True),
        sa.Column('payload_json', sa.Text(), nullable=False),
        sa.Column('status', sa.String(20), server_default='received'),
        sa.Column('attempts', sa.Integer(), server_default='0'),
        sa.Column('result_action', sa.String(50), nullable=True),
        sa.Column('result_record_id', sa.String(36), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_webhook_event_status', 'webhook_event_logs', ['status', 'received_at'])
    op.create_index('ix_webhook_event_correlation', 'webhook_event_logs', ['provider', 'correlation_id'])


def downgrade():
    op.drop_index('ix_webhook_event_correlation', 'webhook_event_logs')
    op.drop_index('ix_webhook_event_status', 'webhook_event_logs')
    op.drop_table('webhook_event_logs')

    op.drop_index('ix_booking_record_email_status', 'booking_records')
    op.drop_index('ix_booking_record_payment_link', 'booking_records')
    op.drop_index('ix_booking_record_booking_status', 'booking_records')
    op.drop_table('booking_records')
