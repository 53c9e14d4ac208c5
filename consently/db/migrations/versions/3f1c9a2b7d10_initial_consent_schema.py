"""initial consent schema

Revision ID: 3f1c9a2b7d10
Revises:
Create Date: 2026-10-18 09:12:44.301127

Tables in dependency order:
1. Tenants and processing activity catalogue
2. Widget configurations
3. Consent records, preferences and OTPs
4. Append-only analytics events
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = '3f1c9a2b7d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    # === Tenants and activity catalogue ===

    op.create_table(
        'users',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('plan', sa.Enum('FREE', 'SMALL', 'MEDIUM', 'ENTERPRISE', name='tenantplan'), nullable=False),
        sa.Column('is_demo', sa.Boolean(), nullable=False),
        sa.Column('is_trial', sa.Boolean(), nullable=False),
        sa.Column('trial_ends_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'processing_activities',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('activity_name', sa.String(length=200), nullable=False),
        sa.Column('industry', sa.String(length=50), nullable=False),
        sa.Column('legal_basis', sa.String(length=50), nullable=True),
        sa.Column('retention_period', sa.String(length=100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_processing_activities_user_id'), 'processing_activities', ['user_id'], unique=False)

    op.create_table(
        'purposes',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('purpose_name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_predefined', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_purposes_user_id'), 'purposes', ['user_id'], unique=False)

    op.create_table(
        'activity_purposes',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('activity_id', sa.String(length=64), nullable=False),
        sa.Column('purpose_id', sa.String(length=64), nullable=False),
        sa.Column('legal_basis', sa.String(length=50), nullable=True),
        sa.Column('custom_description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['activity_id'], ['processing_activities.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['purpose_id'], ['purposes.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('activity_id', 'purpose_id', name='uq_activity_purpose'),
    )
    op.create_index(op.f('ix_activity_purposes_activity_id'), 'activity_purposes', ['activity_id'], unique=False)

    op.create_table(
        'data_categories',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('activity_purpose_id', sa.String(length=64), nullable=False),
        sa.Column('category_name', sa.String(length=200), nullable=False),
        sa.Column('data_fields', postgresql.ARRAY(sa.String(length=100)), nullable=True),
        sa.Column('retention_period', sa.String(length=100), nullable=True),
        sa.ForeignKeyConstraint(['activity_purpose_id'], ['activity_purposes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_data_categories_activity_purpose_id'), 'data_categories', ['activity_purpose_id'], unique=False)

    # === Widgets ===

    op.create_table(
        'widget_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('widget_id', sa.String(length=100), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('domain', sa.String(length=255), nullable=False),
        sa.Column('categories', postgresql.ARRAY(sa.String(length=50)), nullable=True),
        sa.Column('theme', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('consent_duration', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_widget_configs_widget_id'), 'widget_configs', ['widget_id'], unique=True)
    op.create_index(op.f('ix_widget_configs_user_id'), 'widget_configs', ['user_id'], unique=False)

    op.create_table(
        'dpdpa_widget_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('widget_id', sa.String(length=100), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('domain', sa.String(length=255), nullable=False),
        sa.Column('selected_activities', postgresql.ARRAY(sa.String(length=64)), nullable=True),
        sa.Column('theme', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('consent_duration', sa.Integer(), nullable=False),
        sa.Column('otp_expiration_minutes', sa.Integer(), nullable=True),
        sa.Column('display_rules', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_dpdpa_widget_configs_widget_id'), 'dpdpa_widget_configs', ['widget_id'], unique=True)
    op.create_index(op.f('ix_dpdpa_widget_configs_user_id'), 'dpdpa_widget_configs', ['user_id'], unique=False)

    # === Consent records ===

    op.create_table(
        'consent_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('widget_id', sa.String(length=100), nullable=False),
        sa.Column('consent_id', sa.String(length=200), nullable=False),
        sa.Column('visitor_token', sa.String(length=64), nullable=False),
        sa.Column('consent_type', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('categories', postgresql.ARRAY(sa.String(length=50)), nullable=True),
        sa.Column('device_info', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('language', sa.String(length=20), nullable=False),
        sa.Column('consent_method', sa.String(length=20), nullable=False),
        sa.Column('widget_version', sa.String(length=20), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('user_id', 'widget_id', 'consent_id', 'visitor_token', 'created_at'):
        op.create_index(op.f(f'ix_consent_logs_{column}'), 'consent_logs', [column], unique=False)

    op.create_table(
        'consent_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('consent_id', sa.String(length=200), nullable=False),
        sa.Column('consent_type', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('categories', postgresql.ARRAY(sa.String(length=50)), nullable=True),
        sa.Column('device_type', sa.String(length=20), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('language', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_consent_records_user_id'), 'consent_records', ['user_id'], unique=False)
    op.create_index(op.f('ix_consent_records_consent_id'), 'consent_records', ['consent_id'], unique=False)

    op.create_table(
        'dpdpa_consent_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('widget_id', sa.String(length=100), nullable=False),
        sa.Column('visitor_id', sa.String(length=200), nullable=False),
        sa.Column('visitor_token', sa.String(length=64), nullable=True),
        sa.Column('visitor_email', sa.String(length=320), nullable=True),
        sa.Column('visitor_email_hash', sa.String(length=64), nullable=True),
        sa.Column('consent_status', sa.String(length=20), nullable=False),
        sa.Column('consented_activities', postgresql.ARRAY(sa.String(length=64)), nullable=True),
        sa.Column('rejected_activities', postgresql.ARRAY(sa.String(length=64)), nullable=True),
        sa.Column('consent_details', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('device_type', sa.String(length=20), nullable=True),
        sa.Column('browser', sa.String(length=50), nullable=True),
        sa.Column('os', sa.String(length=50), nullable=True),
        sa.Column('country', sa.String(length=100), nullable=True),
        sa.Column('language', sa.String(length=20), nullable=True),
        sa.Column('referrer', sa.Text(), nullable=True),
        sa.Column('consent_given_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('consent_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('consent_version', sa.String(length=10), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['widget_id'], ['dpdpa_widget_configs.widget_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('widget_id', 'visitor_id', 'visitor_email_hash', 'consent_status', 'consent_given_at', 'created_at'):
        op.create_index(op.f(f'ix_dpdpa_consent_records_{column}'), 'dpdpa_consent_records', [column], unique=False)

    op.create_table(
        'visitor_consent_preferences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('visitor_id', sa.String(length=200), nullable=False),
        sa.Column('widget_id', sa.String(length=100), nullable=False),
        sa.Column('activity_id', sa.String(length=64), nullable=False),
        sa.Column('consent_status', sa.String(length=20), nullable=False),
        sa.Column('visitor_email_hash', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('last_updated', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('visitor_id', 'widget_id', 'activity_id', name='uq_visitor_widget_activity'),
    )
    for column in ('visitor_id', 'widget_id', 'visitor_email_hash'):
        op.create_index(
            op.f(f'ix_visitor_consent_preferences_{column}'), 'visitor_consent_preferences', [column], unique=False
        )

    op.create_table(
        'email_verification_otps',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email_hash', sa.String(length=64), nullable=False),
        sa.Column('visitor_id', sa.String(length=200), nullable=False),
        sa.Column('widget_id', sa.String(length=100), nullable=False),
        sa.Column('otp_code', sa.String(length=6), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('verified', sa.Boolean(), nullable=False),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('email_hash', 'visitor_id', 'widget_id'):
        op.create_index(op.f(f'ix_email_verification_otps_{column}'), 'email_verification_otps', [column], unique=False)

    # === Analytics events ===

    op.create_table(
        'email_verification_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('widget_id', sa.String(length=100), nullable=False),
        sa.Column('visitor_id', sa.String(length=200), nullable=False),
        sa.Column('event_type', sa.String(length=30), nullable=False),
        sa.Column('email_hash', sa.String(length=64), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('widget_id', 'event_type', 'created_at'):
        op.create_index(
            op.f(f'ix_email_verification_events_{column}'), 'email_verification_events', [column], unique=False
        )

    op.create_table(
        'dpdpa_rule_match_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('widget_id', sa.String(length=100), nullable=False),
        sa.Column('visitor_id', sa.String(length=200), nullable=False),
        sa.Column('rule_id', sa.String(length=100), nullable=False),
        sa.Column('rule_name', sa.String(length=200), nullable=False),
        sa.Column('url_pattern', sa.String(length=500), nullable=True),
        sa.Column('page_url', sa.Text(), nullable=True),
        sa.Column('trigger_type', sa.String(length=20), nullable=False),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('device_type', sa.String(length=20), nullable=True),
        sa.Column('country', sa.String(length=100), nullable=True),
        sa.Column('language', sa.String(length=20), nullable=True),
        sa.Column('matched_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('widget_id', 'rule_id', 'matched_at'):
        op.create_index(op.f(f'ix_dpdpa_rule_match_events_{column}'), 'dpdpa_rule_match_events', [column], unique=False)

    op.create_table(
        'dpdpa_consent_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('widget_id', sa.String(length=100), nullable=False),
        sa.Column('visitor_id', sa.String(length=200), nullable=False),
        sa.Column('rule_id', sa.String(length=100), nullable=True),
        sa.Column('rule_name', sa.String(length=200), nullable=True),
        sa.Column('consent_status', sa.String(length=20), nullable=False),
        sa.Column('accepted_activities', postgresql.ARRAY(sa.String(length=64)), nullable=True),
        sa.Column('rejected_activities', postgresql.ARRAY(sa.String(length=64)), nullable=True),
        sa.Column('device_type', sa.String(length=20), nullable=True),
        sa.Column('country', sa.String(length=100), nullable=True),
        sa.Column('language', sa.String(length=20), nullable=True),
        sa.Column('consented_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('widget_id', 'rule_id', 'consented_at'):
        op.create_index(op.f(f'ix_dpdpa_consent_events_{column}'), 'dpdpa_consent_events', [column], unique=False)


def downgrade() -> None:
    for table in (
        'dpdpa_consent_events',
        'dpdpa_rule_match_events',
        'email_verification_events',
        'email_verification_otps',
        'visitor_consent_preferences',
        'dpdpa_consent_records',
        'consent_records',
        'consent_logs',
        'dpdpa_widget_configs',
        'widget_configs',
        'data_categories',
        'activity_purposes',
        'purposes',
        'processing_activities',
        'users',
    ):
        op.drop_table(table)
    sa.Enum(name='tenantplan').drop(op.get_bind(), checkfirst=True)
