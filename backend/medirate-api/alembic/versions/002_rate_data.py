"""Rate data tables and verification attempt counter

Revision ID: 002_rate_data
Revises: 001_initial_schema
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002_rate_data'
down_revision = '001_initial_schema'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Wrong guesses against the current verification code
    op.add_column(
        'email_verifications',
        sa.Column('failed_attempts', sa.Integer, nullable=False, server_default=sa.text('0')),
    )

    # ========================================
    # Rate developments
    # ========================================

    op.create_table(
        'provider_alerts',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('state', sa.String(100), nullable=True),
        sa.Column('payer', sa.String(255), nullable=True),
        sa.Column('subject', sa.Text, nullable=True),
        sa.Column('summary', sa.Text, nullable=True),
        sa.Column('announcement_date', sa.Date, nullable=True),
        sa.Column('link', sa.Text, nullable=True),
        sa.Column('service_lines_impacted', sa.Text, nullable=True),
        sa.Column('is_new', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_provider_alerts_state', 'provider_alerts', ['state'])
    op.create_index('idx_provider_alerts_announced', 'provider_alerts', ['announcement_date'])

    op.create_table(
        'bill_track_50',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('state', sa.String(100), nullable=True),
        sa.Column('bill_number', sa.String(100), nullable=True),
        sa.Column('name', sa.Text, nullable=True),
        sa.Column('last_action', sa.Text, nullable=True),
        sa.Column('action_date', sa.Date, nullable=True),
        sa.Column('sponsor_list', sa.Text, nullable=True),
        sa.Column('bill_progress', sa.String(255), nullable=True),
        sa.Column('url', sa.String(1024), nullable=False, unique=True),
        sa.Column('ai_summary', sa.Text, nullable=True),
        sa.Column('service_lines_impacted', sa.Text, nullable=True),
        sa.Column('service_lines_impacted_1', sa.Text, nullable=True),
        sa.Column('service_lines_impacted_2', sa.Text, nullable=True),
        sa.Column('service_lines_impacted_3', sa.Text, nullable=True),
        sa.Column('is_new', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_bills_state', 'bill_track_50', ['state'])

    op.create_table(
        'state_plan_amendments',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('state', sa.String(100), nullable=True),
        sa.Column('transmittal_number', sa.String(100), nullable=True),
        sa.Column('subject', sa.Text, nullable=True),
        sa.Column('effective_date', sa.Date, nullable=True),
        sa.Column('approval_date', sa.Date, nullable=True),
        sa.Column('link', sa.Text, nullable=True),
        sa.Column('service_lines_impacted', sa.Text, nullable=True),
        sa.Column('is_new', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_spa_state', 'state_plan_amendments', ['state'])

    # ========================================
    # Published rates and code reference data
    # ========================================

    modifier_columns = []
    for n in range(1, 5):
        modifier_columns.append(sa.Column(f'modifier_{n}', sa.String(10), nullable=True))
        modifier_columns.append(sa.Column(f'modifier_{n}_details', sa.Text, nullable=True))

    op.create_table(
        'rate_records',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('state_name', sa.String(100), nullable=False),
        sa.Column('service_category', sa.String(255), nullable=True),
        sa.Column('service_code', sa.String(50), nullable=True),
        sa.Column('service_description', sa.Text, nullable=True),
        sa.Column('program', sa.String(255), nullable=True),
        sa.Column('location_region', sa.String(255), nullable=True),
        sa.Column('provider_type', sa.String(255), nullable=True),
        sa.Column('duration_unit', sa.String(100), nullable=True),
        *modifier_columns,
        sa.Column('rate', sa.String(50), nullable=True),
        sa.Column('rate_effective_date', sa.Date, nullable=False),
    )
    op.create_index('idx_rate_records_state', 'rate_records', ['state_name'])
    op.create_index('idx_rate_records_code', 'rate_records', ['service_code'])
    op.create_index('idx_rate_records_effective', 'rate_records', ['rate_effective_date'])

    op.create_table(
        'code_definitions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('hcpcs_code_cpt_code', sa.String(50), nullable=True),
        sa.Column('service_code', sa.String(50), nullable=True),
        sa.Column('service_description', sa.Text, nullable=True),
    )
    op.create_index('idx_code_definitions_code', 'code_definitions', ['hcpcs_code_cpt_code'])

    op.create_table(
        'service_category_list',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('categories', sa.String(255), nullable=False, unique=True),
    )

    op.create_table(
        'user_email_preferences',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_email', sa.String(255), nullable=False, unique=True),
        sa.Column('preferences', sa.JSON, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )


def downgrade() -> None:
    op.drop_table('user_email_preferences')
    op.drop_table('service_category_list')
    op.drop_table('code_definitions')
    op.drop_table('rate_records')
    op.drop_table('state_plan_amendments')
    op.drop_table('bill_track_50')
    op.drop_table('provider_alerts')
    op.drop_column('email_verifications', 'failed_attempts')
