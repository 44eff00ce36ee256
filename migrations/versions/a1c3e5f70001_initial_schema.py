"""Initial schema — departments, users, issues, comments, votes, notifications

Revision ID: a1c3e5f70001
Revises: None
Create Date: 2026-10-18

New tables:
    - departments, users
    - issues, images, issue_status_history
    - comments (self-referencing replies)
    - votes (one per user per issue / comment)
    - notifications
    - ai_usage_logs: token/cost tracking per classifier call
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'a1c3e5f70001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ── departments ───────────────────────────────────────────────────────
    op.create_table(
        'departments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(150), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )

    # ── users ─────────────────────────────────────────────────────────────
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('external_id', sa.String(128), nullable=False),
        sa.Column('name', sa.String(200), nullable=True),
        sa.Column('email', sa.String(200), nullable=True, unique=True),
        sa.Column('profile_url', sa.String(500), nullable=True),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('department_id', sa.String(36), sa.ForeignKey('departments.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_users_external_id', 'users', ['external_id'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_department_id', 'users', ['department_id'])

    # ── issues ────────────────────────────────────────────────────────────
    op.create_table(
        'issues',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('severity', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('department_id', sa.String(36), sa.ForeignKey('departments.id'), nullable=True),
        sa.Column('author_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
        sa.CheckConstraint(
            'severity IS NULL OR (severity >= 1 AND severity <= 10)',
            name='ck_issues_severity_range',
        ),
    )
    op.create_index('ix_issues_status', 'issues', ['status'])
    op.create_index('ix_issues_department_id', 'issues', ['department_id'])
    op.create_index('ix_issues_author_id', 'issues', ['author_id'])
    op.create_index('ix_issues_created_at', 'issues', ['created_at'])

    op.create_table(
        'images',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('url', sa.String(500), nullable=False),
        sa.Column('issue_id', sa.String(36), sa.ForeignKey('issues.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_images_issue_id', 'images', ['issue_id'])

    op.create_table(
        'issue_status_history',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True)),
        sa.Column('issue_id', sa.String(36), sa.ForeignKey('issues.id'), nullable=False),
        sa.Column('changed_by_id', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
    )
    op.create_index('ix_issue_status_history_issue_id', 'issue_status_history', ['issue_id'])

    # ── comments ──────────────────────────────────────────────────────────
    op.create_table(
        'comments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('author_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('issue_id', sa.String(36), sa.ForeignKey('issues.id'), nullable=True),
        sa.Column('parent_id', sa.String(36), sa.ForeignKey('comments.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_comments_author_id', 'comments', ['author_id'])
    op.create_index('ix_comments_issue_id', 'comments', ['issue_id'])
    op.create_index('ix_comments_parent_id', 'comments', ['parent_id'])
    op.create_index('ix_comments_created_at', 'comments', ['created_at'])

    # ── votes ─────────────────────────────────────────────────────────────
    op.create_table(
        'votes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('type', sa.String(10), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('issue_id', sa.String(36), sa.ForeignKey('issues.id'), nullable=True),
        sa.Column('comment_id', sa.String(36), sa.ForeignKey('comments.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.UniqueConstraint('user_id', 'issue_id', name='uq_votes_user_issue'),
        sa.UniqueConstraint('user_id', 'comment_id', name='uq_votes_user_comment'),
        sa.CheckConstraint(
            '(issue_id IS NULL) <> (comment_id IS NULL)',
            name='ck_votes_single_target',
        ),
    )
    op.create_index('ix_votes_user_id', 'votes', ['user_id'])
    op.create_index('ix_votes_issue_id', 'votes', ['issue_id'])
    op.create_index('ix_votes_comment_id', 'votes', ['comment_id'])

    # ── notifications ─────────────────────────────────────────────────────
    op.create_table(
        'notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('issue_id', sa.String(36), sa.ForeignKey('issues.id'), nullable=True),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_issue_id', 'notifications', ['issue_id'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])

    # ── ai_usage_logs ─────────────────────────────────────────────────────
    op.create_table(
        'ai_usage_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider', sa.String(30), nullable=False),
        sa.Column('model', sa.String(80), nullable=False),
        sa.Column('prompt_tokens', sa.Integer(), default=0),
        sa.Column('completion_tokens', sa.Integer(), default=0),
        sa.Column('total_tokens', sa.Integer(), default=0),
        sa.Column('cost_usd', sa.Float(), default=0.0),
        sa.Column('latency_ms', sa.Integer(), default=0),
        sa.Column('purpose', sa.String(100), default=''),
        sa.Column('issue_id', sa.String(36), nullable=True),
        sa.Column('success', sa.Boolean(), default=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_ai_usage_logs_issue_id', 'ai_usage_logs', ['issue_id'])


def downgrade():
    op.drop_table('ai_usage_logs')
    op.drop_table('notifications')
    op.drop_table('votes')
    op.drop_table('comments')
    op.drop_table('issue_status_history')
    op.drop_table('images')
    op.drop_table('issues')
    op.drop_table('users')
    op.drop_table('departments')
