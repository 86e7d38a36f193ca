"""Initial schema for the MediRate API

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-09-28

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ========================================
    # Table: users
    # ========================================
    # Portal users, created on first authenticated request

    op.create_table(
        'users',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('first_name', sa.String(255), nullable=True),
        sa.Column('last_name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(50), nullable=False, server_default=sa.text("'user'")),
        sa.Column('subscription_status', sa.String(50), nullable=True),
        sa.Column('plan_id', sa.String(255), nullable=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('last_login_at', sa.DateTime, nullable=True),
        sa.CheckConstraint("role IN ('user', 'subscription_manager')", name='users_role_check')
    )

    op.create_index('idx_users_email', 'users', ['email'])
    op.create_index('idx_users_stripe_customer', 'users', ['stripe_customer_id'])

    # ========================================
    # Table: admin_users
    # ========================================

    op.create_table(
        'admin_users',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.text('true')),
        sa.Column('added_by', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )

    # ========================================
    # Table: subscriptions / payments
    # ========================================
    # Mirror of Stripe state, written by the webhook

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('stripe_subscription_id', sa.String(255), nullable=False, unique=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('user_email', sa.String(255), nullable=True),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('plan_id', sa.String(255), nullable=True),
        sa.Column('current_period_start', sa.DateTime, nullable=True),
        sa.Column('current_period_end', sa.DateTime, nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )

    op.create_index('idx_subscriptions_customer', 'subscriptions', ['stripe_customer_id'])
    op.create_index('idx_subscriptions_email', 'subscriptions', ['user_email'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('stripe_invoice_id', sa.String(255), nullable=False, unique=True),
        sa.Column('stripe_subscription_id', sa.String(255), nullable=True),
        sa.Column('user_email', sa.String(255), nullable=True),
        sa.Column('amount_paid', sa.Integer, nullable=False),
        sa.Column('currency', sa.String(10), nullable=False, server_default=sa.text("'usd'")),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('paid_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )

    op.create_index('idx_payments_subscription', 'payments', ['stripe_subscription_id'])
    op.create_index('idx_payments_email', 'payments', ['user_email'])

    # ========================================
    # Table: subscription_users
    # ========================================
    # Sub-user delegation, one row per primary subscriber

    op.create_table(
        'subscription_users',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('primary_user', sa.String(255), nullable=False, unique=True),
        sa.Column('sub_users', sa.JSON, nullable=False, server_default=sa.text("'[]'")),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )

    # ========================================
    # Table: wire_transfer_subscriptions
    # ========================================

    op.create_table(
        'wire_transfer_subscriptions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_email', sa.String(255), nullable=False),
        sa.Column('subscription_start_date', sa.DateTime, nullable=False),
        sa.Column('subscription_end_date', sa.DateTime, nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint("status IN ('active', 'expired', 'canceled')", name='wire_transfer_status_check'),
        sa.CheckConstraint(
            "subscription_end_date IS NULL OR subscription_end_date >= subscription_start_date",
            name='wire_transfer_dates_check'
        )
    )

    op.create_index('idx_wire_transfer_email', 'wire_transfer_subscriptions', ['user_email'])
    op.create_index('idx_wire_transfer_status', 'wire_transfer_subscriptions', ['status'])

    # ========================================
    # Table: transferred_subscriptions
    # ========================================

    op.create_table(
        'transferred_subscriptions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('primary_user_email', sa.String(255), nullable=False),
        sa.Column('sub_user_email', sa.String(255), nullable=True),
        sa.Column('subscription_start_date', sa.DateTime, nullable=True),
        sa.Column('subscription_end_date', sa.DateTime, nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('primary_user_email', 'sub_user_email', name='uq_transferred_primary_sub'),
        sa.CheckConstraint("status IN ('active', 'expired', 'canceled')", name='transferred_status_check')
    )

    op.create_index('idx_transferred_primary', 'transferred_subscriptions', ['primary_user_email'])
    op.create_index('idx_transferred_sub_user', 'transferred_subscriptions', ['sub_user_email'])
    # NULL sub users are distinct for the unique constraint above
    op.execute("""
        CREATE UNIQUE INDEX idx_transferred_one_primary ON transferred_subscriptions(primary_user_email)
        WHERE sub_user_email IS NULL
    """)

    # ========================================
    # Table: excel_export_usage
    # ========================================

    op.create_table(
        'excel_export_usage',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('primary_user_email', sa.String(255), nullable=False),
        sa.Column('subscription_type', sa.String(20), nullable=False),
        sa.Column('rows_used', sa.Integer, nullable=False, server_default=sa.text('0')),
        sa.Column('rows_limit', sa.Integer, nullable=False),
        sa.Column('current_period_start', sa.DateTime, nullable=False),
        sa.Column('current_period_end', sa.DateTime, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('primary_user_email', 'subscription_type', name='uq_export_usage_owner'),
        sa.CheckConstraint("subscription_type IN ('stripe', 'wire_transfer')", name='export_usage_type_check'),
        sa.CheckConstraint("rows_used >= 0 AND rows_used <= rows_limit", name='export_usage_rows_check')
    )

    op.create_index('idx_export_usage_email', 'excel_export_usage', ['primary_user_email'])

    # ========================================
    # Table: dashboard_templates
    # ========================================

    op.create_table(
        'dashboard_templates',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_email', sa.String(255), nullable=False),
        sa.Column('page_name', sa.String(100), nullable=False, server_default=sa.text("'dashboard'")),
        sa.Column('template_name', sa.String(255), nullable=False),
        sa.Column('template_data', sa.JSON, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('user_email', 'page_name', 'template_name', name='uq_template_name')
    )

    op.create_index('idx_templates_user', 'dashboard_templates', ['user_email'])

    # ========================================
    # Tables: email_verifications / email_verification_requests
    # ========================================

    op.create_table(
        'email_verifications',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('code_hash', sa.String(64), nullable=False),
        sa.Column('expires_at', sa.DateTime, nullable=False),
        sa.Column('last_sent_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('send_count', sa.Integer, nullable=False, server_default=sa.text('0')),
        sa.Column('send_window_start', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('verified_at', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )

    op.create_table(
        'email_verification_requests',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('ip_address', sa.String(64), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('requested_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )

    op.create_index('idx_verification_requests_ip', 'email_verification_requests', ['ip_address'])
    op.create_index('idx_verification_requests_time', 'email_verification_requests', ['requested_at'])


def downgrade() -> None:
    op.drop_table('email_verification_requests')
    op.drop_table('email_verifications')
    op.drop_table('dashboard_templates')
    op.drop_table('excel_export_usage')
    op.execute("DROP INDEX IF EXISTS idx_transferred_one_primary")
    op.drop_table('transferred_subscriptions')
    op.drop_table('wire_transfer_subscriptions')
    op.drop_table('subscription_users')
    op.drop_table('payments')
    op.drop_table('subscriptions')
    op.drop_table('admin_users')
    op.drop_table('users')
