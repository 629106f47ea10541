"""Create pack label tables

Revision ID: 001_pack_labels
Revises:
Create Date: 2026-02-17
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001_pack_labels'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create sequence, group, label and scan event tables"""

    # ====================
    # PACK SEQUENCES TABLE
    # ====================
    op.create_table(
        'pack_sequences',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('prefix', sa.String(10), nullable=False),
        sa.Column('month_code', sa.String(1), nullable=False),
        sa.Column('year_code', sa.String(1), nullable=False),
        sa.Column('last_serial', sa.String(5), server_default='00000', nullable=False,
                  comment='Last issued serial, base-31 encoded'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('prefix', 'month_code', 'year_code', name='uq_pack_sequence_bucket'),
    )

    # ====================
    # LABEL GROUPS TABLE
    # ====================
    op.create_table(
        'label_groups',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('group_id', sa.String(40), nullable=False, unique=True),
        sa.Column('label_count', sa.Integer, server_default='0', nullable=False),
        sa.Column('merchant_id', sa.String(64), nullable=True),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_label_groups_group_id', 'label_groups', ['group_id'])

    # ====================
    # PACK LABELS TABLE
    # ====================
    op.create_table(
        'pack_labels',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('label_id', sa.String(11), nullable=False, unique=True),
        sa.Column('group_id', sa.String(36), sa.ForeignKey('label_groups.id', ondelete='SET NULL'), nullable=True),
        sa.Column('merchant_id', sa.String(64), nullable=True),
        sa.Column('status', sa.String(20), server_default='available', nullable=False),
        sa.Column('current_order_id', sa.String(64), nullable=True),
        sa.Column('previous_uses', sa.Integer, server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_pack_labels_label_id', 'pack_labels', ['label_id'])
    op.create_index('ix_pack_labels_status', 'pack_labels', ['status'])

    # ====================
    # SCAN EVENTS TABLE
    # ====================
    op.create_table(
        'scan_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('label_id', sa.String(36), sa.ForeignKey('pack_labels.id', ondelete='CASCADE'), nullable=False),
        sa.Column('merchant_id', sa.String(64), nullable=True),
        sa.Column('event_type', sa.String(20), nullable=False),
        sa.Column('location', sa.String(100), nullable=True),
        sa.Column('scanned_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_scan_events_label_id', 'scan_events', ['label_id'])


def downgrade():
    """Drop pack label tables"""
    op.drop_index('ix_scan_events_label_id', table_name='scan_events')
    op.drop_table('scan_events')
    op.drop_index('ix_pack_labels_status', table_name='pack_labels')
    op.drop_index('ix_pack_labels_label_id', table_name='pack_labels')
    op.drop_table('pack_labels')
    op.drop_index('ix_label_groups_group_id', table_name='label_groups')
    op.drop_table('label_groups')
    op.drop_table('pack_sequences')
