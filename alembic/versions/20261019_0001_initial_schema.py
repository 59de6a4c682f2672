"""Initial schema - images and durable workflow tables

Revision ID: 0001
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Image submissions
    op.create_table(
        'images',
        sa.Column('instance_id', sa.String(64), primary_key=True),
        sa.Column('image_key', sa.String(64), unique=True, nullable=False),
        sa.Column('tags', sa.Text(), nullable=True),
        sa.Column('alt_text', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Workflow instances
    op.create_table(
        'workflow_instances',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('params', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, index=True),
        sa.Column('stage', sa.String(50), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('output', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Cached step results
    op.create_table(
        'workflow_steps',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('instance_id', sa.String(64), sa.ForeignKey('workflow_instances.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('output', sa.JSON(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, default=0),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('instance_id', 'name', name='uq_workflow_steps_instance_name'),
    )

    # Event inbox
    op.create_table(
        'workflow_events',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('instance_id', sa.String(64), sa.ForeignKey('workflow_instances.id', ondelete='CASCADE'), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('consumed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        'ix_workflow_events_inbox',
        'workflow_events',
        ['instance_id', 'event_type', 'consumed_at'],
    )


def downgrade() -> None:
    op.drop_index('ix_workflow_events_inbox', table_name='workflow_events')
    op.drop_table('workflow_events')
    op.drop_table('workflow_steps')
    op.drop_table('workflow_instances')
    op.drop_table('images')
