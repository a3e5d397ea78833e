"""
Demo data seeding, exposed as ``flask seed-demo``.

Idempotent: nothing happens when the demo account already exists.
"""

import logging

from totracker.models import db
from totracker.models.auth import User
from totracker.models.story import Story, StoryAssignee, Tag
from totracker.utils.crypto import hash_password

logger = logging.getLogger(__name__)

DEMO_EMAIL = "demo@totracker.dev"
DEMO_PASSWORD = "demo1234"
DEMO_NAME = "Demo Product Owner"

_DOCS = ("documentation", "#0EA5E9")
_INFRA = ("infrastructure", "#8B5CF6")
_ENHANCEMENT = ("enhancement", "#10B981")
_TESTING = ("testing", "#F59E0B")

# (title, description, status, priority, effort, tags, assigned)
DEMO_STORIES = [
    ("[R2 Migration] Story 11: Production Deployment Checklist & Monitoring",
     "Deploy to production and set up monitoring for R2 migration.",
     "DONE", 1, 8, [_DOCS, _INFRA], True),
    ("Story 1: Architecture Design & Interface Specification",
     "Design the architecture and define interfaces for the system.",
     "BACKLOG", 2, 5, [_ENHANCEMENT], True),
    ("[R2 Migration] Story 6: Remove Static File Serving for Production",
     "Remove static file serving and migrate to R2.",
     "BACKLOG", 3, 3, [_ENHANCEMENT, _INFRA], True),
    ("[R2 Migration] Story 4: Implement R2MediaStorage Service",
     "Implement the R2 media storage service.",
     "BACKLOG", 3, 13, [_ENHANCEMENT, _INFRA], True),
    ("[R2 Migration] Story 7: Unit Tests for R2MediaStorage",
     "Write comprehensive unit tests for the R2 media storage service.",
     "BACKLOG", 3, 5, [_INFRA, _TESTING], True),
    ("[R2 Migration] Story 10: Data Migration Script for Existing Uploads",
     "Migrate existing uploads to the new storage backend.",
     "BACKLOG", 3, 8, [_INFRA], True),
    ("Update some pages",
     "Update various pages across the application.",
     "BACKLOG", 3, 2, [], True),
    ("Update /dashboard/settings",
     "Update the dashboard settings page with new options.",
     "BACKLOG", 3, 3, [], False),
]


def seed_demo_data() -> int:
    """Create the demo user and its stories. Returns the number of stories created."""
    if User.query.filter_by(email=DEMO_EMAIL).first():
        logger.info("Demo user already present, skipping seed")
        return 0

    user = User(
        email=DEMO_EMAIL,
        name=DEMO_NAME,
        password_hash=hash_password(DEMO_PASSWORD),
        auth_provider="local",
    )
    db.session.add(user)
    db.session.flush()

    for position, (title, description, status, priority, effort, tags, assigned) in enumerate(DEMO_STORIES):
        story = Story(
            owner_id=user.id,
            title=title,
            description=description,
            status=status,
            priority=priority,
            effort=effort,
            position=position,
            assignee_id=user.id if assigned else None,
        )
        story.tags = [Tag(label=label, color=color) for label, color in tags]
        if assigned:
            story.assignee_links = [StoryAssignee(user_id=user.id)]
        db.session.add(story)

    db.session.flush()
    logger.info("Seeded demo user %s with %d stories", DEMO_EMAIL, len(DEMO_STORIES))
    return len(DEMO_STORIES)
