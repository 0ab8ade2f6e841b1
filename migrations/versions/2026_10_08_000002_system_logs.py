"""add system_logs

Revision ID: 000002_system_logs
Revises: 000001_init
Create Date: 2026-10-08
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = '000002_system_logs'
down_revision = '000001_init'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'system_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('level', sa.Enum('debug', 'info', 'warn', 'error', name='loglevel'), nullable=False),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('user_email', sa.String(), nullable=True),
        sa.Column('user_ip', sa.String(), nullable=True),
        sa.Column('user_agent', sa.String(), nullable=True),
        sa.Column('resource_type', sa.String(), nullable=True),
        sa.Column('resource_id', sa.String(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_system_logs_action', 'system_logs', ['action'])
    op.create_index('ix_system_logs_created_at', 'system_logs', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_system_logs_created_at', table_name='system_logs')
    op.drop_index('ix_system_logs_action', table_name='system_logs')
    op.drop_table('system_logs')
    op.execute('DROP TYPE IF EXISTS loglevel;')
