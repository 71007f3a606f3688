"""Call history schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19 00:00:00.000000

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
        'calls',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('call_control_id', sa.String(), nullable=False),
        sa.Column('direction', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=True),
        sa.Column('from_number', sa.String(), nullable=True),
        sa.Column('to_number', sa.String(), nullable=True),
        sa.Column('conference_id', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('connected_at', sa.DateTime(), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('duration_seconds', sa.Float(), nullable=True),
        sa.Column('hangup_cause', sa.String(), nullable=True),
        sa.Column('transcript', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_calls_id'), 'calls', ['id'], unique=False)
    op.create_index(op.f('ix_calls_call_control_id'), 'calls', ['call_control_id'], unique=True)
    op.create_index(op.f('ix_calls_conference_id'), 'calls', ['conference_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_calls_conference_id'), table_name='calls')
    op.drop_index(op.f('ix_calls_call_control_id'), table_name='calls')
    op.drop_index(op.f('ix_calls_id'), table_name='calls')
    op.drop_table('calls')
