"""Dataset catalog table

Revision ID: 001_dataset_catalog
Revises:
Create Date: 2026-10-16

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_dataset_catalog'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the dataset catalog."""
    op.create_table(
        'dataset_catalog',
        sa.Column('dataset_id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('original_name', sa.String(512), nullable=False),
        sa.Column('file_path', sa.Text(), nullable=True),
        sa.Column('file_size', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('mime_type', sa.String(255), nullable=True),
        sa.Column('extension', sa.String(32), nullable=True),
        sa.Column('category', sa.String(64), nullable=False, server_default='json'),
        sa.Column('storage', sa.String(16), nullable=False),
        sa.Column('record_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('schema', sa.JSON(), nullable=False),
        sa.Column('processing', sa.JSON(), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint("storage IN ('postgres', 'mongodb')", name='ck_dataset_catalog_storage'),
    )

    op.create_index('idx_dataset_catalog_name', 'dataset_catalog', ['name'])
    op.create_index('idx_dataset_catalog_original_name', 'dataset_catalog', ['original_name'])
    op.create_index('idx_dataset_catalog_storage', 'dataset_catalog', ['storage'])
    op.create_index('idx_dataset_catalog_created_at', 'dataset_catalog', ['created_at'])


def downgrade() -> None:
    """Drop the dataset catalog."""
    op.drop_index('idx_dataset_catalog_created_at', table_name='dataset_catalog')
    op.drop_index('idx_dataset_catalog_storage', table_name='dataset_catalog')
    op.drop_index('idx_dataset_catalog_original_name', table_name='dataset_catalog')
    op.drop_index('idx_dataset_catalog_name', table_name='dataset_catalog')
    op.drop_table('dataset_catalog')
