"""
totracker
Story domain models.

Models:
    - Story: unit of work, optionally nested under a parent story
    - StoryAssignee: many-to-many link between stories and users
    - Tag: coloured label attached to a story
"""

import uuid
from datetime import datetime, timezone

from totracker.models import db

# ── Shared constants ─────────────────────────────────────────────────────

# Display / precedence order used by the kanban columns and the backlog sort.
STORY_STATUSES = (
    "BACKLOG", "READY", "IN_PROGRESS", "BLOCKED", "REVIEW", "DONE", "ARCHIVED",
)

DEFAULT_STATUS = "BACKLOG"
DEFAULT_PRIORITY = 3
MIN_PRIORITY = 1
MAX_PRIORITY = 5

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000
TAG_LABEL_MAX_LENGTH = 50


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class StoryAssignee(db.Model):
    """Join row: a user assigned to a story."""

    __tablename__ = "story_assignees"

    story_id = db.Column(
        db.String(36), db.ForeignKey("stories.id", ondelete="CASCADE"), primary_key=True,
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
    )
    assigned_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    story = db.relationship("Story", back_populates="assignee_links")
    user = db.relationship("User")


class Tag(db.Model):
    __tablename__ = "story_tags"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    story_id = db.Column(
        db.String(36), db.ForeignKey("stories.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    label = db.Column(db.String(TAG_LABEL_MAX_LENGTH), nullable=False)
    color = db.Column(db.String(7), nullable=False, default="#64748B")

    story = db.relationship("Story", back_populates="tags")

    def to_dict(self):
        return {"id": self.id, "label": self.label, "color": self.color}


class Story(db.Model):
    """
    A story in the owner's tree.

    Ordering: ``position`` ranks a top-level story inside its (owner, status)
    scope; children are created with position 0. Siblings are listed by
    (due_date asc with nulls last, position asc).

    Deleting a story deletes its whole subtree.
    """

    __tablename__ = "stories"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    owner_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    parent_id = db.Column(
        db.String(36), db.ForeignKey("stories.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )
    assignee_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, comment="Legacy single assignee; assignee_links is authoritative",
    )

    title = db.Column(db.String(TITLE_MAX_LENGTH), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(20), nullable=True, default=DEFAULT_STATUS,
        comment="BACKLOG | READY | IN_PROGRESS | BLOCKED | REVIEW | DONE | ARCHIVED | NULL",
    )
    priority = db.Column(db.Integer, nullable=False, default=DEFAULT_PRIORITY, comment="1 high – 5 low")
    effort = db.Column(db.Integer, nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.Index("ix_stories_owner_status_position", "owner_id", "status", "position"),
    )

    # ── Relationships
    owner = db.relationship("User", back_populates="owned_stories", foreign_keys=[owner_id])
    assignee = db.relationship("User", foreign_keys=[assignee_id])
    parent = db.relationship("Story", back_populates="children", remote_side=[id])
    children = db.relationship(
        "Story",
        back_populates="parent",
        cascade="all",
        order_by=lambda: [Story.due_date.is_(None), Story.due_date, Story.position],
    )
    assignee_links = db.relationship(
        "StoryAssignee", back_populates="story", cascade="all, delete-orphan",
        order_by="StoryAssignee.assigned_at",
    )
    tags = db.relationship(
        "Tag", back_populates="story", cascade="all, delete-orphan",
        order_by="Tag.label",
    )

    @property
    def assignees(self):
        """Users linked through the assignee relation."""
        return [link.user for link in self.assignee_links if link.user is not None]

    def __repr__(self):
        return f"<Story {self.id}: {self.title}>"
