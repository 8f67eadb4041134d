"""status/priority vocabularies and bulk operation history

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261019_0002'
down_revision = '20261019_0001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    for table in ('statuses', 'priorities'):
        op.create_table(
            table,
            sa.Column('id', sa.Integer, primary_key=True),
            sa.Column(
                'value', sa.String(length=50), nullable=False, unique=True
            ),
            sa.Column('label', sa.String(length=100), nullable=False),
            sa.Column(
                'sort_order', sa.Integer, nullable=False, server_default='0'
            ),
        )

    op.create_table(
        'bulk_operations',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('kind', sa.String(length=50), nullable=False),
        sa.Column('params', sa.JSON(), nullable=False),
        sa.Column('course_ids', sa.JSON(), nullable=False),
        sa.Column(
            'successful_count', sa.Integer, nullable=False,
            server_default='0'
        ),
        sa.Column(
            'failed_count', sa.Integer, nullable=False, server_default='0'
        ),
        sa.Column(
            'created_at', sa.DateTime(),
            server_default=sa.text('CURRENT_TIMESTAMP')
        ),
    )
    op.create_index(
        'ix_bulk_operations_kind', 'bulk_operations', ['kind']
    )


def downgrade() -> None:
    op.drop_index('ix_bulk_operations_kind', table_name='bulk_operations')
    op.drop_table('bulk_operations')
    op.drop_table('priorities')
    op.drop_table('statuses')
