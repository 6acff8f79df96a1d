"""Create CRM tables: users, client_accounts, leads, projects, lead_activities, crm_settings

Revision ID: 3f9b1c7d2e40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9b1c7d2e40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=False, unique=True),
        sa.Column('role', sa.Text(), nullable=False, server_default='ADMIN'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime()),
    )

    op.create_table(
        'client_accounts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('contact_name', sa.Text(), server_default=''),
        sa.Column('email', sa.Text(), server_default=''),
        sa.Column('phone', sa.Text(), server_default=''),
        sa.Column('source_lead_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_index('ix_client_accounts_email', 'client_accounts', ['email'])

    op.create_table(
        'leads',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('company', sa.Text(), nullable=False),
        sa.Column('contact_name', sa.Text(), server_default=''),
        sa.Column('contact_email', sa.Text(), server_default=''),
        sa.Column('contact_phone', sa.Text(), server_default=''),
        sa.Column('contact_phone_normalized', sa.Text(), server_default=''),
        sa.Column('source', sa.Text(), server_default=''),
        sa.Column('status', sa.Text(), nullable=False, server_default='LEAD'),
        sa.Column('priority', sa.Text(), nullable=False, server_default='NORMALE'),
        sa.Column('temperature', sa.Text(), nullable=True),
        sa.Column('budget', sa.Float(), nullable=True),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), server_default=''),
        sa.Column('next_action_at', sa.DateTime(), nullable=True),
        sa.Column('last_contact_at', sa.DateTime(), nullable=True),
        sa.Column('status_changed_at', sa.DateTime(), nullable=True),
        sa.Column('assigned_to', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('client_account_id', sa.Integer(), sa.ForeignKey('client_accounts.id'), nullable=True),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index('ix_leads_company', 'leads', ['company'])
    op.create_index('ix_leads_contact_phone_normalized', 'leads', ['contact_phone_normalized'])
    op.create_index('ix_leads_status_priority', 'leads', ['status', 'priority'])
    op.create_index('ix_leads_assignee_next_action', 'leads', ['assigned_to', 'next_action_at'])

    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False, server_default='DRAFT'),
        sa.Column('client_account_id', sa.Integer(), sa.ForeignKey('client_accounts.id'), nullable=False),
        sa.Column('lead_id', sa.Integer(), sa.ForeignKey('leads.id'), nullable=True),
        sa.Column('budget', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_index('ix_projects_lead_id', 'projects', ['lead_id'])

    op.create_table(
        'lead_activities',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('lead_id', sa.Integer(), sa.ForeignKey('leads.id'), nullable=False),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('label', sa.Text(), nullable=False),
        sa.Column('payload', sa.JSON()),
        sa.Column('actor_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_index('ix_lead_activities_lead_created', 'lead_activities', ['lead_id', 'created_at'])

    # Defaults for the singleton row live on the model; get_settings() inserts it.
    op.create_table(
        'crm_settings',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('round_robin_enabled', sa.Boolean(), nullable=False),
        sa.Column('auto_qualify_enabled', sa.Boolean(), nullable=False),
        sa.Column('auto_last_contact_on_contacted', sa.Boolean(), nullable=False),
        sa.Column('auto_next_action_on_demo', sa.Boolean(), nullable=False),
        sa.Column('demo_follow_up_days', sa.Integer(), nullable=False),
        sa.Column('auto_next_action_on_proposal', sa.Boolean(), nullable=False),
        sa.Column('proposal_follow_up_days', sa.Integer(), nullable=False),
        sa.Column('clear_next_action_on_close', sa.Boolean(), nullable=False),
        sa.Column('email_on_assignment', sa.Boolean(), nullable=False),
        sa.Column('activity_logging', sa.Boolean(), nullable=False),
        sa.Column('cold_lead_alert_enabled', sa.Boolean(), nullable=False),
        sa.Column('cold_lead_threshold_days', sa.Integer(), nullable=False),
        sa.Column('cold_lead_email_enabled', sa.Boolean(), nullable=False),
        sa.Column('overdue_alert_enabled', sa.Boolean(), nullable=False),
        sa.Column('daily_overdue_email_enabled', sa.Boolean(), nullable=False),
        sa.Column('daily_overdue_email_time', sa.Text(), nullable=False),
        sa.Column('stale_lead_alert_enabled', sa.Boolean(), nullable=False),
        sa.Column('stale_lead_threshold_days', sa.Integer(), nullable=False),
        sa.Column('escalation_enabled', sa.Boolean(), nullable=False),
        sa.Column('escalation_threshold_days', sa.Integer(), nullable=False),
        sa.Column('escalation_action', sa.Text(), nullable=False),
        sa.Column('escalation_manager_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('scoring_enabled', sa.Boolean(), nullable=False),
        sa.Column('scoring_weights', sa.JSON(), nullable=False),
        sa.Column('duplicate_detection_enabled', sa.Boolean(), nullable=False),
        sa.Column('duplicate_check_email', sa.Boolean(), nullable=False),
        sa.Column('duplicate_check_company', sa.Boolean(), nullable=False),
        sa.Column('duplicate_check_phone', sa.Boolean(), nullable=False),
        sa.Column('proposal_reminder_enabled', sa.Boolean(), nullable=False),
        sa.Column('proposal_reminder_days', sa.Integer(), nullable=False),
        sa.Column('weekly_report_enabled', sa.Boolean(), nullable=False),
        sa.Column('weekly_report_day', sa.Integer(), nullable=False),
        sa.Column('weekly_report_time', sa.Text(), nullable=False),
        sa.Column('weekly_report_recipients', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime()),
    )


def downgrade() -> None:
    op.drop_table('crm_settings')
    op.drop_index('ix_lead_activities_lead_created', table_name='lead_activities')
    op.drop_table('lead_activities')
    op.drop_index('ix_projects_lead_id', table_name='projects')
    op.drop_table('projects')
    op.drop_index('ix_leads_assignee_next_action', table_name='leads')
    op.drop_index('ix_leads_status_priority', table_name='leads')
    op.drop_index('ix_leads_contact_phone_normalized', table_name='leads')
    op.drop_index('ix_leads_company', table_name='leads')
    op.drop_table('leads')
    op.drop_index('ix_client_accounts_email', table_name='client_accounts')
    op.drop_table('client_accounts')
    op.drop_table('users')
