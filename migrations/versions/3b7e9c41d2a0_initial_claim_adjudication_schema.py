"""initial claim adjudication schema

Revision ID: 3b7e9c41d2a0
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3b7e9c41d2a0'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CLAIM_STATUS_VALUES = (
    'draft', 'assessing', 'filed', 'field_scheduled',
    'audit_pending', 'negotiating', 'settled', 'closed',
)
LOSS_TYPE_VALUES = ('fire', 'water', 'weather', 'other')
PARSE_STATUS_VALUES = ('pending', 'processing', 'completed', 'failed')
AUDIT_REPORT_STATUS_VALUES = ('pending', 'processing', 'completed', 'failed')
PAYMENT_TYPE_VALUES = ('acv', 'rcv')
PAYMENT_STATUS_VALUES = ('expected', 'received', 'reconciled', 'disputed')
ACTIVITY_TYPE_VALUES = (
    'claim_created', 'status_change', 'step_advanced',
    'carrier_estimate_uploaded', 'carrier_estimate_parsed',
    'industry_estimate_generated', 'analysis_completed',
    'dispute_letter_generated', 'owner_pitch_generated', 'owner_pitch_acknowledged',
    'audit_report_superseded',
    'payment_expected', 'payment_received', 'payment_reconciled', 'payment_disputed',
    'rcv_demand_generated', 'rcv_demand_sent',
    'legal_package_generated',
)

ENUM_TYPES = (
    'claimstatus', 'losstype', 'parsestatus', 'auditreportstatus',
    'paymenttype', 'paymentstatus', 'activitytype',
)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'claims',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        *_timestamps(),
        sa.Column('claim_number', sa.String(), nullable=True, unique=True),
        sa.Column('property_id', sa.String(), nullable=True),
        sa.Column('loss_type', sa.Enum(*LOSS_TYPE_VALUES, name='losstype'), nullable=False),
        sa.Column('incident_date', sa.Date(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('scope_summary', sa.Text(), nullable=True),
        sa.Column('contractor_estimate_total', sa.Numeric(12, 2), nullable=True),
        sa.Column('status', sa.Enum(*CLAIM_STATUS_VALUES, name='claimstatus'), nullable=False),
        sa.Column('filed_at', sa.DateTime(), nullable=True),
        sa.Column('adjuster_name', sa.String(), nullable=True),
        sa.Column('adjuster_phone', sa.String(), nullable=True),
        sa.Column('inspection_datetime', sa.DateTime(), nullable=True),
        sa.Column('current_step', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('steps_completed', postgresql.JSONB(), nullable=False, server_default='[]'),
    )

    op.create_table(
        'claim_activities',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        *_timestamps(),
        sa.Column('claim_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('claims.id', ondelete='CASCADE'), nullable=False),
        sa.Column('activity_type', sa.Enum(*ACTIVITY_TYPE_VALUES, name='activitytype'), nullable=False),
        sa.Column('description', sa.String(), nullable=False),
        sa.Column('detail', postgresql.JSONB(), nullable=True),
    )
    op.create_index('ix_claim_activities_claim_id', 'claim_activities', ['claim_id'])

    op.create_table(
        'carrier_estimates',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        *_timestamps(),
        sa.Column('claim_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('claims.id', ondelete='CASCADE'), nullable=False),
        sa.Column('file_name', sa.String(), nullable=False),
        sa.Column('file_path', sa.String(), nullable=False),
        sa.Column('content_type', sa.String(), nullable=False),
        sa.Column('file_size_bytes', sa.Integer(), nullable=True),
        sa.Column('parse_status', sa.Enum(*PARSE_STATUS_VALUES, name='parsestatus'), nullable=False),
        sa.Column('parse_error', sa.Text(), nullable=True),
        sa.Column('parsed_data', postgresql.JSONB(), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(), nullable=True),
        sa.Column('parsed_at', sa.DateTime(), nullable=True),
        sa.Column('retired_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_carrier_estimates_claim_id', 'carrier_estimates', ['claim_id'])

    op.create_table(
        'audit_reports',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        *_timestamps(),
        sa.Column('claim_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('claims.id', ondelete='CASCADE'), nullable=False),
        sa.Column('carrier_estimate_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('carrier_estimates.id'), nullable=True),
        sa.Column('generated_estimate', postgresql.JSONB(), nullable=True),
        sa.Column('comparison_data', postgresql.JSONB(), nullable=True),
        sa.Column('verdict_analysis', sa.Text(), nullable=True),
        sa.Column('total_contractor_estimate', sa.Numeric(12, 2), nullable=True),
        sa.Column('total_carrier_estimate', sa.Numeric(12, 2), nullable=True),
        sa.Column('total_delta', sa.Numeric(12, 2), nullable=True),
        sa.Column('dispute_letter', sa.Text(), nullable=True),
        sa.Column('owner_pitch', sa.Text(), nullable=True),
        sa.Column('owner_pitch_acknowledged_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.Enum(*AUDIT_REPORT_STATUS_VALUES, name='auditreportstatus'), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('superseded_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_audit_reports_claim_id', 'audit_reports', ['claim_id'])
    # at most one open cycle per claim
    op.create_index(
        'uq_audit_reports_active_claim', 'audit_reports', ['claim_id'],
        unique=True, postgresql_where=sa.text('superseded_at IS NULL'),
    )

    op.create_table(
        'payments',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        *_timestamps(),
        sa.Column('claim_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('claims.id', ondelete='CASCADE'), nullable=False),
        sa.Column('payment_type', sa.Enum(*PAYMENT_TYPE_VALUES, name='paymenttype'), nullable=False),
        sa.Column('status', sa.Enum(*PAYMENT_STATUS_VALUES, name='paymentstatus'), nullable=False),
        sa.Column('expected_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('check_number', sa.String(), nullable=True),
        sa.Column('received_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('reconciled_at', sa.DateTime(), nullable=True),
        sa.Column('dispute_reason', sa.Text(), nullable=True),
    )
    op.create_index('ix_payments_claim_id', 'payments', ['claim_id'])

    op.create_table(
        'rcv_demand_letters',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        *_timestamps(),
        sa.Column('claim_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('claims.id', ondelete='CASCADE'), nullable=False),
        sa.Column('payment_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('payments.id', ondelete='SET NULL'), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('acv_received', sa.Numeric(12, 2), nullable=False),
        sa.Column('rcv_expected', sa.Numeric(12, 2), nullable=False),
        sa.Column('rcv_outstanding', sa.Numeric(12, 2), nullable=False),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('sent_to_email', sa.String(), nullable=True),
    )
    op.create_index('ix_rcv_demand_letters_claim_id', 'rcv_demand_letters', ['claim_id'])


def downgrade() -> None:
    op.drop_index('ix_rcv_demand_letters_claim_id', table_name='rcv_demand_letters')
    op.drop_table('rcv_demand_letters')
    op.drop_index('ix_payments_claim_id', table_name='payments')
    op.drop_table('payments')
    op.drop_index('uq_audit_reports_active_claim', table_name='audit_reports')
    op.drop_index('ix_audit_reports_claim_id', table_name='audit_reports')
    op.drop_table('audit_reports')
    op.drop_index('ix_carrier_estimates_claim_id', table_name='carrier_estimates')
    op.drop_table('carrier_estimates')
    op.drop_index('ix_claim_activities_claim_id', table_name='claim_activities')
    op.drop_table('claim_activities')
    op.drop_table('claims')
    for name in ENUM_TYPES:
        op.execute(f"DROP TYPE IF EXISTS {name}")
