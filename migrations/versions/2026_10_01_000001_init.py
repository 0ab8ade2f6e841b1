"""init

Revision ID: 000001_init
Revises:
Create Date: 2026-10-01
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '000001_init'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS \"uuid-ossp\";")

    op.create_table(
        'profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('account_type', sa.Enum('admin', 'user', name='accounttype'), nullable=False),
        sa.Column('profile_image_url', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'])
    op.create_table(
        'farms',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('farm_name', sa.String(), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_table(
        'visitor_entries',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('farm_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('farms.id'), nullable=False),
        sa.Column('visitor_name', sa.String(), nullable=False),
        sa.Column('visit_datetime', sa.DateTime(), nullable=False),
        sa.Column('profile_photo_url', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_visitor_entries_visit_datetime', 'visitor_entries', ['visit_datetime'])


def downgrade() -> None:
    op.drop_index('ix_visitor_entries_visit_datetime', table_name='visitor_entries')
    op.drop_table('visitor_entries')
    op.drop_table('farms')
    op.drop_index('ix_profiles_email', table_name='profiles')
    op.drop_table('profiles')
    op.execute('DROP TYPE IF EXISTS accounttype;')
