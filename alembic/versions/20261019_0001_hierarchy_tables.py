"""hierarchy tables: programs, folders, lists, courses

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261019_0001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column(
            'created_at', sa.DateTime(),
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
        sa.Column(
            'updated_at', sa.DateTime(),
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
    ]


def upgrade() -> None:
    op.create_table(
        'programs',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column(
            'type', sa.String(length=32), nullable=False,
            server_default='program'
        ),
        sa.Column(
            'status', sa.String(length=32), nullable=False,
            server_default='active'
        ),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_programs_name', 'programs', ['name'])

    op.create_table(
        'folders',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column(
            'program_id', sa.Integer,
            sa.ForeignKey('programs.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column(
            'position', sa.Integer, nullable=False, server_default='0'
        ),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('color', sa.String(length=32), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_folders_program_id', 'folders', ['program_id'])

    op.create_table(
        'lists',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column(
            'folder_id', sa.Integer,
            sa.ForeignKey('folders.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column(
            'position', sa.Integer, nullable=False, server_default='0'
        ),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_lists_folder_id', 'lists', ['folder_id'])

    op.create_table(
        'courses',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column(
            'list_id', sa.Integer,
            sa.ForeignKey('lists.id', ondelete='CASCADE'), nullable=True
        ),
        sa.Column('folder_id', sa.Integer, nullable=True),
        sa.Column('program_id', sa.Integer, nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column(
            'priority', sa.String(length=16), nullable=False,
            server_default='medium'
        ),
        sa.Column('status', sa.String(length=50), nullable=True),
        sa.Column('modality', sa.String(length=50), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('deliverables', sa.JSON(), nullable=False),
        sa.Column('assignee_ids', sa.JSON(), nullable=False),
        sa.Column('owner_email', sa.String(length=255), nullable=True),
        sa.Column('lead_email', sa.String(length=255), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_courses_list_id', 'courses', ['list_id'])
    op.create_index('ix_courses_folder_id', 'courses', ['folder_id'])
    op.create_index('ix_courses_program_id', 'courses', ['program_id'])


def downgrade() -> None:
    op.drop_index('ix_courses_program_id', table_name='courses')
    op.drop_index('ix_courses_folder_id', table_name='courses')
    op.drop_index('ix_courses_list_id', table_name='courses')
    op.drop_table('courses')
    op.drop_index('ix_lists_folder_id', table_name='lists')
    op.drop_table('lists')
    op.drop_index('ix_folders_program_id', table_name='folders')
    op.drop_table('folders')
    op.drop_index('ix_programs_name', table_name='programs')
    op.drop_table('programs')
