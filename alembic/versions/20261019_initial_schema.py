"""Initial schema: users, projects, members, tasks, comments, notifications, counters

Revision ID: 3c1d9e7a2b40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3c1d9e7a2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'Counters',
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('seq', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('name'),
    )

    op.create_table(
        'Users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_number', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='employee'),
        sa.Column('avatar_url', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_number'),
    )
    op.create_index('ix_Users_email', 'Users', ['email'], unique=True)

    op.create_table(
        'Projects',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('project_number', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='planning'),
        sa.Column('priority', sa.String(length=20), nullable=False, server_default='medium'),
        sa.Column('deadline', sa.Date(), nullable=True),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['created_by'], ['Users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('project_number'),
    )
    op.create_index('ix_Projects_created_by', 'Projects', ['created_by'])

    op.create_table(
        'ProjectMembers',
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.ForeignKeyConstraint(['project_id'], ['Projects.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['Users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('project_id', 'user_id'),
    )

    op.create_table(
        'Tasks',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('task_number', sa.Integer(), nullable=True),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('assignee_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('title', sa.String(length=150), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='todo'),
        sa.Column('priority', sa.String(length=20), nullable=False, server_default='medium'),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['project_id'], ['Projects.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by'], ['Users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['assignee_id'], ['Users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('task_number'),
    )
    op.create_index('ix_Tasks_project_id', 'Tasks', ['project_id'])
    op.create_index('ix_Tasks_assignee_id', 'Tasks', ['assignee_id'])
    op.create_index('ix_Tasks_project_status', 'Tasks', ['project_id', 'status'])

    op.create_table(
        'Comments',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('task_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('author_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('content', sa.String(length=1000), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['task_id'], ['Tasks.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['author_id'], ['Users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_Comments_task_id', 'Comments', ['task_id'])

    op.create_table(
        'Notifications',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('notification_number', sa.Integer(), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('recipient_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('related_task_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('related_project_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['recipient_id'], ['Users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['related_task_id'], ['Tasks.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['related_project_id'], ['Projects.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('notification_number'),
    )
    op.create_index(
        'ix_Notifications_recipient_read',
        'Notifications',
        ['recipient_id', 'is_read'],
    )


def downgrade() -> None:
    op.drop_index('ix_Notifications_recipient_read', table_name='Notifications')
    op.drop_table('Notifications')
    op.drop_index('ix_Comments_task_id', table_name='Comments')
    op.drop_table('Comments')
    op.drop_index('ix_Tasks_project_status', table_name='Tasks')
    op.drop_index('ix_Tasks_assignee_id', table_name='Tasks')
    op.drop_index('ix_Tasks_project_id', table_name='Tasks')
    op.drop_table('Tasks')
    op.drop_table('ProjectMembers')
    op.drop_index('ix_Projects_created_by', table_name='Projects')
    op.drop_table('Projects')
    op.drop_index('ix_Users_email', table_name='Users')
    op.drop_table('Users')
    op.drop_table('Counters')
