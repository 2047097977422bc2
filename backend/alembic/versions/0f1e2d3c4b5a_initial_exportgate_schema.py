"""Initial schema: shipments, strategic catalog, detection results, review queue, permits, validation log, audit trail

Revision ID: 0f1e2d3c4b5a
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0f1e2d3c4b5a'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'shipments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shipment_id', sa.String(length=50), nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('destination_country', sa.String(length=2), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_shipments_shipment_id', 'shipments', ['shipment_id'], unique=True)

    op.create_table(
        'strategic_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=False),
        sa.Column('subcategory', sa.String(length=100), nullable=True),
        sa.Column('keywords', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('technical_thresholds', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('embedding', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('required_permits', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('permit_deadlines', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('control_list_source', sa.String(length=100), nullable=False),
        sa.Column('effective_date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_strategic_items_code', 'strategic_items', ['code'], unique=True)
    op.create_index('ix_strategic_items_category', 'strategic_items', ['category'])

    op.create_table(
        'strategic_detection_results',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('result_id', sa.String(length=36), nullable=False),
        sa.Column('shipment_id', sa.String(length=50), nullable=False),
        sa.Column('item_index', sa.Integer(), nullable=False),
        sa.Column('item_description', sa.Text(), nullable=False),
        sa.Column('hs_code', sa.String(length=20), nullable=True),
        sa.Column('quantity', sa.Numeric(14, 3), nullable=True),
        sa.Column('detection_layers', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('final_confidence', sa.Integer(), nullable=False),
        sa.Column('is_strategic', sa.Boolean(), nullable=False),
        sa.Column('determination', sa.String(length=20), nullable=False),
        sa.Column('strategic_codes', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('required_permits', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('export_blocked', sa.Boolean(), nullable=False),
        sa.Column('compliance_state', sa.String(length=20), nullable=False),
        sa.Column('manual_review_required', sa.Boolean(), nullable=False),
        sa.Column('manual_review_status', sa.String(length=20), nullable=True),
        sa.Column('reviewed_by', sa.String(length=255), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('ruleset_version', sa.String(length=30), nullable=False),
        sa.Column('detection_method', sa.String(length=50), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['shipment_id'], ['shipments.shipment_id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_strategic_detection_results_result_id', 'strategic_detection_results', ['result_id'], unique=True)
    op.create_index('ix_strategic_detection_results_shipment_id', 'strategic_detection_results', ['shipment_id'])
    op.create_index('ix_strategic_detection_results_is_strategic', 'strategic_detection_results', ['is_strategic'])
    op.create_index('ix_strategic_detection_results_export_blocked', 'strategic_detection_results', ['export_blocked'])

    op.create_table(
        'strategic_manual_review_queue',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('queue_id', sa.String(length=30), nullable=False),
        sa.Column('detection_result_id', sa.String(length=36), nullable=False),
        sa.Column('shipment_id', sa.String(length=50), nullable=False),
        sa.Column('priority', sa.String(length=20), nullable=False, server_default='normal'),
        sa.Column('review_reason', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('assigned_to', sa.String(length=255), nullable=True),
        sa.Column('decision', sa.String(length=20), nullable=True),
        sa.Column('review_notes', sa.String(length=2000), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('assigned_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['detection_result_id'], ['strategic_detection_results.result_id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_strategic_manual_review_queue_queue_id', 'strategic_manual_review_queue', ['queue_id'], unique=True)
    op.create_index('ix_strategic_manual_review_queue_detection_result_id', 'strategic_manual_review_queue', ['detection_result_id'])
    op.create_index('ix_strategic_manual_review_queue_shipment_id', 'strategic_manual_review_queue', ['shipment_id'])
    op.create_index('ix_strategic_manual_review_queue_status', 'strategic_manual_review_queue', ['status'])

    op.create_table(
        'permit_uploads',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('permit_id', sa.String(length=36), nullable=False),
        sa.Column('shipment_id', sa.String(length=50), nullable=False),
        sa.Column('permit_type', sa.String(length=50), nullable=False),
        sa.Column('permit_number', sa.String(length=100), nullable=True),
        sa.Column('file_path', sa.String(length=500), nullable=False),
        sa.Column('original_filename', sa.String(length=255), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=False),
        sa.Column('mime_type', sa.String(length=100), nullable=False),
        sa.Column('upload_status', sa.String(length=20), nullable=False, server_default='uploaded'),
        sa.Column('validation_result', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('is_valid', sa.Boolean(), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('compliance_deadline', sa.DateTime(), nullable=True),
        sa.Column('uploaded_by', sa.String(length=255), nullable=False),
        sa.Column('uploaded_at', sa.DateTime(), nullable=False),
        sa.Column('validated_at', sa.DateTime(), nullable=True),
        sa.Column('expired_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['shipment_id'], ['shipments.shipment_id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_permit_uploads_permit_id', 'permit_uploads', ['permit_id'], unique=True)
    op.create_index('ix_permit_uploads_shipment_id', 'permit_uploads', ['shipment_id'])
    op.create_index('ix_permit_uploads_permit_type', 'permit_uploads', ['permit_type'])
    op.create_index('ix_permit_uploads_upload_status', 'permit_uploads', ['upload_status'])
    op.create_index('ix_permit_uploads_is_valid', 'permit_uploads', ['is_valid'])

    op.create_table(
        'export_validation_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shipment_id', sa.String(length=50), nullable=False),
        sa.Column('trigger', sa.String(length=30), nullable=False),
        sa.Column('validation_result', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('export_permitted', sa.Boolean(), nullable=False),
        sa.Column('blocking_reasons', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('missing_permits', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('compliance_score', sa.Integer(), nullable=False),
        sa.Column('validated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['shipment_id'], ['shipments.shipment_id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_export_validation_log_shipment_id', 'export_validation_log', ['shipment_id'])
    op.create_index('ix_export_validation_log_validated_at', 'export_validation_log', ['validated_at'])

    op.create_table(
        'audit_trail',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_id', sa.String(length=36), nullable=False),
        sa.Column('shipment_id', sa.String(length=50), nullable=False),
        sa.Column('action_type', sa.String(length=30), nullable=False),
        sa.Column('actor', sa.String(length=255), nullable=False),
        sa.Column('details', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('previous_hash', sa.String(length=64), nullable=True),
        sa.Column('current_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_trail_event_id', 'audit_trail', ['event_id'], unique=True)
    op.create_index('ix_audit_trail_shipment_id', 'audit_trail', ['shipment_id'])
    op.create_index('ix_audit_trail_action_type', 'audit_trail', ['action_type'])
    op.create_index('ix_audit_trail_created_at', 'audit_trail', ['created_at'])


def downgrade() -> None:
    op.drop_table('audit_trail')
    op.drop_table('export_validation_log')
    op.drop_table('permit_uploads')
    op.drop_table('strategic_manual_review_queue')
    op.drop_table('strategic_detection_results')
    op.drop_table('strategic_items')
    op.drop_table('shipments')
