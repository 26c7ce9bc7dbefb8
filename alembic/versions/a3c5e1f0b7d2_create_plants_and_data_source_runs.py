"""create plants and data_source_runs

Revision ID: a3c5e1f0b7d2
Revises:
Create Date: 2026-10-16 09:12:44.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'a3c5e1f0b7d2'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

plant_source_enum = sa.Enum('db', 'csv', 'perenual', 'trefle', 'wikipedia', name='plant_source_enum')


def upgrade() -> None:
    op.create_table(
        'plants',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('family', sa.String(length=200), nullable=True),
        sa.Column('genus', sa.String(length=200), nullable=True),
        sa.Column('species', sa.String(length=200), nullable=True),
        sa.Column('scientific_name', sa.String(length=400), nullable=True),
        sa.Column('common_name', sa.String(length=200), nullable=True),
        sa.Column('growth_rate', sa.Text(), nullable=True),
        sa.Column('hardiness_zones', sa.Text(), nullable=True),
        sa.Column('height', sa.Text(), nullable=True),
        sa.Column('width', sa.Text(), nullable=True),
        sa.Column('type', sa.Text(), nullable=True),
        sa.Column('foliage', sa.Text(), nullable=True),
        sa.Column('leaf', sa.Text(), nullable=True),
        sa.Column('flower', sa.Text(), nullable=True),
        sa.Column('ripen', sa.Text(), nullable=True),
        sa.Column('reproduction', sa.Text(), nullable=True),
        sa.Column('ph', sa.Text(), nullable=True),
        sa.Column('habitat', sa.Text(), nullable=True),
        sa.Column('habitat_range', sa.Text(), nullable=True),
        sa.Column('other_uses', sa.Text(), nullable=True),
        sa.Column('pfaf', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('pollinators', sa.Text(), nullable=True),
        sa.Column('soils', sa.Text(), nullable=True),
        sa.Column('ph_split', sa.Text(), nullable=True),
        sa.Column('preferences', sa.Text(), nullable=True),
        sa.Column('tolerances', sa.Text(), nullable=True),
        sa.Column('images', sa.Text(), nullable=True),
        sa.Column('edibility', sa.Boolean(), nullable=True),
        sa.Column('medicinal', sa.Boolean(), nullable=True),
        sa.Column('source', plant_source_enum, nullable=False, server_default='db'),
        sa.Column('data_sources', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            'common_name IS NOT NULL OR (genus IS NOT NULL AND species IS NOT NULL)',
            name='ck_plants_has_identity',
        ),
    )
    op.create_index('ix_plants_genus', 'plants', ['genus'])
    op.create_index('ix_plants_species', 'plants', ['species'])
    op.create_index('ix_plants_common_name', 'plants', ['common_name'])

    op.create_table(
        'data_source_runs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('job', sa.String(length=50), nullable=False),
        sa.Column('source', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('records_read', sa.Integer(), nullable=True),
        sa.Column('inserted', sa.Integer(), nullable=True),
        sa.Column('updated', sa.Integer(), nullable=True),
        sa.Column('unchanged', sa.Integer(), nullable=True),
        sa.Column('skipped', sa.Integer(), nullable=True),
        sa.Column('errors', sa.Integer(), nullable=True),
        sa.Column('error_detail', sa.Text(), nullable=True),
        sa.Column('triggered_by', sa.String(length=20), nullable=True),
    )
    op.create_index('ix_data_source_runs_job', 'data_source_runs', ['job'])
    op.create_index('ix_data_source_runs_source', 'data_source_runs', ['source'])


def downgrade() -> None:
    op.drop_index('ix_data_source_runs_source', table_name='data_source_runs')
    op.drop_index('ix_data_source_runs_job', table_name='data_source_runs')
    op.drop_table('data_source_runs')
    op.drop_index('ix_plants_common_name', table_name='plants')
    op.drop_index('ix_plants_species', table_name='plants')
    op.drop_index('ix_plants_genus', table_name='plants')
    op.drop_table('plants')
    plant_source_enum.drop(op.get_bind(), checkfirst=True)
