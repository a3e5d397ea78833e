"""
Auth Models: users of the tracker.

A user is either a local account (bcrypt password hash, created through
/api/v1/auth/register) or provisioned on first sight from an external
identity provider token (no password hash).
"""

import uuid
from datetime import datetime, timezone

from totracker.models import db


def _uuid():
    return str(uuid.uuid4())


AUTH_PROVIDERS = {"local", "external"}


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    email = db.Column(db.String(200), nullable=False, unique=True)
    name = db.Column(db.String(120))
    password_hash = db.Column(db.String(256))  # NULL for externally provisioned users
    auth_provider = db.Column(db.String(20), default="local")
    external_subject = db.Column(db.String(200), unique=True)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_users_email", "email"),
    )

    # Relationships
    owned_stories = db.relationship(
        "Story", back_populates="owner",
        cascade="all", foreign_keys="Story.owner_id",
    )

    def to_summary(self):
        """Public shape embedded in stories and assignee pickers."""
        return {"id": self.id, "email": self.email, "name": self.name}

    def to_dict(self):
        d = self.to_summary()
        d.update({
            "auth_provider": self.auth_provider,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        })
        return d

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"
