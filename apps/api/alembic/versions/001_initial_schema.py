"""Initial compliance ledger schema.

Revision ID: 001
Revises:
Create Date: 2026-10-01
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'compliance_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('source_message_id', sa.String(length=255), nullable=False),
        sa.Column('channel_id', sa.String(length=255), nullable=False),
        sa.Column('channel_name', sa.String(length=255), nullable=False),
        sa.Column('project_id', sa.String(length=255), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('user_name', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=50), nullable=False),
        sa.Column('regulation', sa.String(length=100), nullable=False),
        sa.Column('risk_level', sa.String(length=20), nullable=False),
        sa.Column('decision_type', sa.String(length=100), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('confidence_score', sa.Float(), nullable=False),
        sa.Column('deadline', sa.DateTime(), nullable=True),
        sa.Column('stakeholders', sa.JSON(), nullable=False),
        sa.Column('message_text', sa.Text(), nullable=False),
        sa.Column('evidence_url', sa.Text(), nullable=True),
        sa.Column('extraction_entities', sa.JSON(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('channel_id', 'source_message_id', name='uq_event_channel_message'),
    )
    op.create_index('ix_compliance_events_id', 'compliance_events', ['id'])
    op.create_index('ix_compliance_events_channel_id', 'compliance_events', ['channel_id'])
    op.create_index('ix_compliance_events_project_id', 'compliance_events', ['project_id'])
    op.create_index('ix_compliance_events_event_type', 'compliance_events', ['event_type'])
    op.create_index('ix_compliance_events_regulation', 'compliance_events', ['regulation'])
    op.create_index('ix_compliance_events_risk_level', 'compliance_events', ['risk_level'])
    op.create_index('ix_compliance_events_status', 'compliance_events', ['status'])
    op.create_index('ix_compliance_events_deadline', 'compliance_events', ['deadline'])
    op.create_index('ix_compliance_events_created_at', 'compliance_events', ['created_at'])
    op.create_index('ix_compliance_events_project_created', 'compliance_events', ['project_id', 'created_at'])

    op.create_table(
        'compliance_analytics',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.String(length=255), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('total_events', sa.Integer(), nullable=False),
        sa.Column('compliance_score', sa.Float(), nullable=False),
        sa.Column('high_risk_count', sa.Integer(), nullable=False),
        sa.Column('pending_approvals', sa.Integer(), nullable=False),
        sa.Column('events_by_type', sa.JSON(), nullable=False),
        sa.Column('events_by_regulation', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('project_id', 'date', name='uq_analytics_project_date'),
    )
    op.create_index('ix_compliance_analytics_id', 'compliance_analytics', ['id'])
    op.create_index('ix_compliance_analytics_project_id', 'compliance_analytics', ['project_id'])
    op.create_index('ix_compliance_analytics_date', 'compliance_analytics', ['date'])

    op.create_table(
        'audit_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sequence', sa.BigInteger(), nullable=False),
        sa.Column('project_id', sa.String(length=255), nullable=False),
        sa.Column('regulation', sa.String(length=100), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('event_ids', sa.JSON(), nullable=False),
        sa.Column('report_hash', sa.String(length=64), nullable=False),
        sa.Column('previous_hash', sa.String(length=64), nullable=False),
        sa.Column('summary', sa.JSON(), nullable=False),
        sa.Column('metadata_json', sa.JSON(), nullable=False),
        sa.Column('storage_key', sa.Text(), nullable=True),
        sa.Column('exported_by', sa.String(length=100), nullable=False),
        sa.Column('export_timestamp', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('previous_hash', name='uq_audit_records_previous_hash'),
    )
    op.create_index('ix_audit_records_id', 'audit_records', ['id'])
    op.create_index('ix_audit_records_sequence', 'audit_records', ['sequence'], unique=True)
    op.create_index('ix_audit_records_report_hash', 'audit_records', ['report_hash'], unique=True)
    op.create_index('ix_audit_records_project_id', 'audit_records', ['project_id'])
    op.create_index('ix_audit_records_regulation', 'audit_records', ['regulation'])
    op.create_index('ix_audit_records_period_start', 'audit_records', ['period_start'])

    op.create_table(
        'risk_predictions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.String(length=255), nullable=False),
        sa.Column('risk_category', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('severity', sa.String(length=20), nullable=False),
        sa.Column('probability', sa.Float(), nullable=False),
        sa.Column('predicted_impact_date', sa.DateTime(), nullable=False),
        sa.Column('affected_teams', sa.JSON(), nullable=False),
        sa.Column('contributing_factors', sa.JSON(), nullable=False),
        sa.Column('recommendations', sa.JSON(), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_risk_predictions_id', 'risk_predictions', ['id'])
    op.create_index('ix_risk_predictions_project_id', 'risk_predictions', ['project_id'])
    op.create_index('ix_risk_predictions_risk_category', 'risk_predictions', ['risk_category'])
    op.create_index('ix_risk_predictions_severity', 'risk_predictions', ['severity'])
    op.create_index('ix_risk_predictions_created_at', 'risk_predictions', ['created_at'])


def downgrade() -> None:
    op.drop_table('risk_predictions')
    op.drop_table('audit_records')
    op.drop_table('compliance_analytics')
    op.drop_table('compliance_events')
