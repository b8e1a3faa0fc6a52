"""create calendar tables

Revision ID: 5b2f0c7a91d4
Revises:
Create Date: 2026-10-18 09:12:40.512031

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5b2f0c7a91d4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""

    # 1. Provider connections
    op.create_table(
        'calendar_integrations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('provider', sa.String(50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('access_token_encrypted', sa.LargeBinary(), nullable=True),
        sa.Column('refresh_token_encrypted', sa.LargeBinary(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('provider_email', sa.String(320), nullable=True),
        sa.Column('provider_user_name', sa.String(200), nullable=True),
        sa.Column('calendar_id', sa.String(500), nullable=True),
        sa.Column('sync_token', sa.Text(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_sync_status', sa.String(20), nullable=True),
        sa.Column('last_sync_error', sa.Text(), nullable=True),
        sa.Column('provider_config', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True)
    )
    op.create_index('ix_calendar_integrations_company_id', 'calendar_integrations', ['company_id'])
    op.create_index('idx_cal_integrations_company_provider', 'calendar_integrations', ['company_id', 'provider'])

    # 2. Canonical events
    op.create_table(
        'calendar_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('integration_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('calendar_integrations.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location', sa.String(500), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('timezone', sa.String(64), nullable=True, server_default='UTC'),
        sa.Column('all_day', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('event_type', sa.String(30), nullable=False, server_default='meeting'),
        sa.Column('status', sa.String(30), nullable=False, server_default='scheduled'),
        sa.Column('source', sa.String(30), nullable=False, server_default='manual'),
        sa.Column('video_provider', sa.String(30), nullable=True),
        sa.Column('video_link', sa.Text(), nullable=True),
        sa.Column('contact_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('contact_name', sa.String(200), nullable=True),
        sa.Column('contact_phone', sa.String(40), nullable=True),
        sa.Column('contact_email', sa.String(320), nullable=True),
        sa.Column('agent_run_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('call_log_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('agent_name', sa.String(200), nullable=True),
        sa.Column('ai_notes', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_feature', sa.String(50), nullable=True),
        sa.Column('confirmation_status', sa.String(20), nullable=False, server_default='unconfirmed'),
        sa.Column('confirmation_attempts', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('last_confirmation_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('original_start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rescheduled_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rescheduled_reason', sa.Text(), nullable=True),
        sa.Column('retry_of_event_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('calendar_events.id'), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('recurrence_rule', sa.Text(), nullable=True),
        sa.Column('recurring_event_id', sa.String(500), nullable=True),
        sa.Column('attendees', sa.JSON(), nullable=True),
        sa.Column('external_ids', sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column('sync_status', sa.String(20), nullable=False, server_default='pending_push'),
        sa.Column('sync_error', sa.Text(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True)
    )
    op.create_index('idx_cal_events_company_time', 'calendar_events', ['company_id', 'start_time', 'end_time'])
    op.create_index('idx_cal_events_status', 'calendar_events', ['status'])
    op.create_index('idx_cal_events_contact', 'calendar_events', ['contact_id'])

    # 3. Working-hours policy
    op.create_table(
        'company_schedule_settings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column('working_hours_start', sa.String(5), nullable=True),
        sa.Column('working_hours_end', sa.String(5), nullable=True),
        sa.Column('working_days', sa.JSON(), nullable=True),
        sa.Column('exclude_holidays', sa.Boolean(), nullable=True),
        sa.Column('timezone', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True)
    )

    # 4. Sync run history
    op.create_table(
        'calendar_sync_log',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('integration_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('calendar_integrations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sync_type', sa.String(20), nullable=False),
        sa.Column('sync_direction', sa.String(20), nullable=False, server_default='inbound'),
        sa.Column('status', sa.String(20), nullable=False, server_default='running'),
        sa.Column('events_created', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('events_updated', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('events_deleted', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('errors', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True)
    )
    op.create_index('ix_calendar_sync_log_company_id', 'calendar_sync_log', ['company_id'])
    op.create_index('ix_calendar_sync_log_integration_id', 'calendar_sync_log', ['integration_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_calendar_sync_log_integration_id', table_name='calendar_sync_log')
    op.drop_index('ix_calendar_sync_log_company_id', table_name='calendar_sync_log')
    op.drop_table('calendar_sync_log')
    op.drop_table('company_schedule_settings')
    op.drop_index('idx_cal_events_contact', table_name='calendar_events')
    op.drop_index('idx_cal_events_status', table_name='calendar_events')
    op.drop_index('idx_cal_events_company_time', table_name='calendar_events')
    op.drop_table('calendar_events')
    op.drop_index('idx_cal_integrations_company_provider', table_name='calendar_integrations')
    op.drop_index('ix_calendar_integrations_company_id', table_name='calendar_integrations')
    op.drop_table('calendar_integrations')
