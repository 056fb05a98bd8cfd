"""Initial version control schema

Revision ID: 001_version_control
Revises:
Create Date: 2026-10-19 09:12:31.402118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


# revision identifiers, used by Alembic.
revision: str = '001_version_control'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(JSONB(), 'postgresql')


def upgrade() -> None:
    # Create repositories table
    op.create_table(
        'repositories',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('project_id', sa.Uuid, nullable=False),
        sa.Column('project_name', sa.String(255), nullable=False),
        sa.Column('default_branch', sa.String(255), nullable=False, server_default='main'),
        sa.Column('created_by', sa.Uuid, nullable=True),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('project_id', name='uq_repositories_project_id')
    )

    # Create branches table (head FK added once commits exists)
    op.create_table(
        'branches',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('repository_id', sa.Uuid, sa.ForeignKey('repositories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('head_commit_id', sa.Uuid, nullable=True),
        sa.Column('created_by', sa.Uuid, nullable=True),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('repository_id', 'name', name='uq_branches_repository_name')
    )

    # Create commits table
    op.create_table(
        'commits',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('repository_id', sa.Uuid, sa.ForeignKey('repositories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('branch_id', sa.Uuid, sa.ForeignKey('branches.id', ondelete='CASCADE'), nullable=False),
        sa.Column('parent_commit_id', sa.Uuid, sa.ForeignKey('commits.id'), nullable=True),
        sa.Column('author_id', sa.Uuid, nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('depth', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.func.now())
    )

    with op.batch_alter_table('branches') as batch_op:
        batch_op.create_foreign_key(
            'fk_branches_head_commit_id', 'commits', ['head_commit_id'], ['id']
        )

    # Create blob_records table
    op.create_table(
        'blob_records',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('content_hash', sa.String(64), nullable=False),
        sa.Column('storage_path', sa.Text, nullable=False),
        sa.Column('storage_url', sa.Text, nullable=True),
        sa.Column('size_bytes', sa.BigInteger, nullable=False),
        sa.Column('format', sa.String(16), nullable=False),
        sa.Column('mime_type', sa.String(100), nullable=True),
        sa.Column('duration', sa.DECIMAL(10, 3), nullable=True),
        sa.Column('uploaded_by', sa.Uuid, nullable=True),
        sa.Column('reference_count', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('content_hash', name='uq_blob_records_content_hash'),
        sa.CheckConstraint('reference_count >= 0', name='ck_blob_records_reference_count')
    )

    # Create stems table
    op.create_table(
        'stems',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('commit_id', sa.Uuid, sa.ForeignKey('commits.id', ondelete='CASCADE'), nullable=False),
        sa.Column('track_name', sa.String(255), nullable=False),
        sa.Column('track_index', sa.Integer, nullable=False),
        sa.Column('track_color', sa.String(32), nullable=True),
        sa.Column('stem_type', sa.String(10), nullable=False),
        sa.Column('audio_file_id', sa.Uuid, sa.ForeignKey('blob_records.id'), nullable=True),
        sa.Column('midi_data', JSONType, nullable=True),
        sa.Column('fx_settings', JSONType, nullable=True),
        sa.Column('duration', sa.DECIMAL(10, 3), nullable=True),
        sa.Column('waveform_summary', JSONType, nullable=True),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("stem_type IN ('audio', 'midi', 'both')", name='ck_stems_stem_type')
    )

    # Create indexes for performance
    op.create_index('ix_commits_branch_created', 'commits', ['branch_id', 'created_at'])
    op.create_index('ix_commits_repository_created', 'commits', ['repository_id', 'created_at'])
    op.create_index('ix_commits_parent', 'commits', ['parent_commit_id'])
    op.create_index('ix_stems_commit_id', 'stems', ['commit_id'])
    op.create_index('ix_stems_audio_file_id', 'stems', ['audio_file_id'])


def downgrade() -> None:
    # Drop indexes
    op.drop_index('ix_stems_audio_file_id')
    op.drop_index('ix_stems_commit_id')
    op.drop_index('ix_commits_parent')
    op.drop_index('ix_commits_repository_created')
    op.drop_index('ix_commits_branch_created')

    # Drop tables in reverse order
    op.drop_table('stems')
    op.drop_table('blob_records')
    with op.batch_alter_table('branches') as batch_op:
        batch_op.drop_constraint('fk_branches_head_commit_id', type_='foreignkey')
    op.drop_table('commits')
    op.drop_table('branches')
    op.drop_table('repositories')
