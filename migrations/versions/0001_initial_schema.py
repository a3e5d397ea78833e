"""initial_schema

Creates the tracker tables:
  - users              local and externally provisioned accounts
  - stories            owner-scoped story tree (self-referencing parent_id)
  - story_assignees    many-to-many story ↔ user
  - story_tags         coloured labels per story

Tables are created conditionally so the migration can run against a database
that already received them via db.create_all() in development.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing = set(sa_inspect(bind).get_table_names())

    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=True),
            sa.Column("password_hash", sa.String(length=256), nullable=True),
            sa.Column("auth_provider", sa.String(length=20), nullable=True),
            sa.Column("external_subject", sa.String(length=200), nullable=True),
            sa.Column("last_login_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
            sa.UniqueConstraint("external_subject"),
        )
        op.create_index("ix_users_email", "users", ["email"])

    if "stories" not in existing:
        op.create_table(
            "stories",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("owner_id", sa.String(length=36), nullable=False),
            sa.Column("parent_id", sa.String(length=36), nullable=True),
            sa.Column("assignee_id", sa.String(length=36), nullable=True,
                      comment="Legacy single assignee; assignee_links is authoritative"),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True,
                      comment="BACKLOG | READY | IN_PROGRESS | BLOCKED | REVIEW | DONE | ARCHIVED | NULL"),
            sa.Column("priority", sa.Integer(), nullable=False, comment="1 high – 5 low"),
            sa.Column("effort", sa.Integer(), nullable=True),
            sa.Column("position", sa.Integer(), nullable=False),
            sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["parent_id"], ["stories.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["assignee_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_stories_owner_id", "stories", ["owner_id"])
        op.create_index("ix_stories_parent_id", "stories", ["parent_id"])
        op.create_index("ix_stories_owner_status_position", "stories",
                        ["owner_id", "status", "position"])

    if "story_assignees" not in existing:
        op.create_table(
            "story_assignees",
            sa.Column("story_id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["story_id"], ["stories.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("story_id", "user_id"),
        )

    if "story_tags" not in existing:
        op.create_table(
            "story_tags",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("story_id", sa.String(length=36), nullable=False),
            sa.Column("label", sa.String(length=50), nullable=False),
            sa.Column("color", sa.String(length=7), nullable=False),
            sa.ForeignKeyConstraint(["story_id"], ["stories.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_story_tags_story_id", "story_tags", ["story_id"])


def downgrade():
    op.drop_table("story_tags")
    op.drop_table("story_assignees")
    op.drop_index("ix_stories_owner_status_position", table_name="stories")
    op.drop_table("stories")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
