"""Story service layer: owner-scoped story CRUD and ordering rules.

Transaction policy: functions use flush() for ID generation, never commit().
Caller (route handler) is responsible for db.session.commit().

Operations:
- Payload validation (create and partial patch)
- Tree listing for an owner, ordered by (due_date asc nulls last, position asc)
- Creation with position assignment (1 + max in (owner, status) scope)
- Partial patch with all-or-nothing assignee / tag replacement
- Deletion (cascades to the subtree)

Every lookup is scoped to the caller; stories owned by somebody else raise
NotFoundError exactly like missing ones.
"""
import logging
import re

from sqlalchemy import func

from totracker.core.exceptions import NotFoundError, ValidationError
from totracker.models import db
from totracker.models.auth import User
from totracker.models.story import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    DESCRIPTION_MAX_LENGTH,
    MAX_PRIORITY,
    MIN_PRIORITY,
    STORY_STATUSES,
    TAG_LABEL_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    Story,
    StoryAssignee,
    Tag,
)
from totracker.services.story_serializer import story_to_record
from totracker.utils.helpers import parse_timestamp

logger = logging.getLogger(__name__)

_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")

# wire field → model attribute, for fields copied straight across
_SIMPLE_FIELDS = {
    "title": "title",
    "description": "description",
    "status": "status",
    "priority": "priority",
    "effort": "effort",
    "position": "position",
    "dueDate": "due_date",
    "startDate": "start_date",
}


# ═════════════════════════════════════════════════════════════════════════════
# Validation
# ═════════════════════════════════════════════════════════════════════════════

def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_title(value, errors):
    if not isinstance(value, str):
        errors["title"] = "must be a string"
        return None
    value = value.strip()
    if not 1 <= len(value) <= TITLE_MAX_LENGTH:
        errors["title"] = f"must be 1-{TITLE_MAX_LENGTH} characters"
    return value


def _check_description(value, errors):
    if value is None:
        return None
    if not isinstance(value, str):
        errors["description"] = "must be a string or null"
    elif len(value) > DESCRIPTION_MAX_LENGTH:
        errors["description"] = f"must be at most {DESCRIPTION_MAX_LENGTH} characters"
    return value


def _check_status(value, errors):
    if value is not None and value not in STORY_STATUSES:
        errors["status"] = f"must be one of: {', '.join(STORY_STATUSES)} or null"
    return value


def _check_priority(value, errors):
    if not _is_int(value) or not MIN_PRIORITY <= value <= MAX_PRIORITY:
        errors["priority"] = f"must be an integer {MIN_PRIORITY}-{MAX_PRIORITY}"
    return value


def _check_effort(value, errors):
    if value is not None and (not _is_int(value) or value < 0):
        errors["effort"] = "must be a non-negative integer or null"
    return value


def _check_position(value, errors):
    if not _is_int(value):
        errors["position"] = "must be an integer"
    return value


def _check_timestamp(field, value, errors):
    try:
        return parse_timestamp(value)
    except ValueError:
        errors[field] = "must be an ISO-8601 datetime or null"
        return None


def _check_parent_id(value, errors):
    if value is not None and (not isinstance(value, str) or not value.strip()):
        errors["parentId"] = "must be a story id or null"
    return value or None


def _check_assignees(value, errors):
    """Accept a list of user ids or of user dicts carrying an ``id``."""
    if not isinstance(value, list):
        errors["assignees"] = "must be a list"
        return []
    ids = []
    for entry in value:
        user_id = entry.get("id") if isinstance(entry, dict) else entry
        if not isinstance(user_id, str) or not user_id:
            errors["assignees"] = "entries must be user ids or objects with an id"
            return []
        if user_id not in ids:
            ids.append(user_id)
    return ids


def _check_tags(value, errors):
    if not isinstance(value, list):
        errors["tags"] = "must be a list"
        return []
    tags = []
    for entry in value:
        if not isinstance(entry, dict):
            errors["tags"] = "entries must be objects with label and color"
            return []
        label = entry.get("label")
        color = entry.get("color", "#64748B")
        if not isinstance(label, str) or not 1 <= len(label.strip()) <= TAG_LABEL_MAX_LENGTH:
            errors["tags"] = f"label must be 1-{TAG_LABEL_MAX_LENGTH} characters"
            return []
        if not isinstance(color, str) or not _COLOR_RE.match(color):
            errors["tags"] = "color must look like #RRGGBB"
            return []
        tags.append({"label": label.strip(), "color": color.upper()})
    return tags


def validate_story_payload(data, *, partial: bool) -> dict:
    """Validate a create (partial=False) or patch (partial=True) payload.

    Returns a dict keyed by wire field name holding only the supplied (or,
    on create, defaulted) fields, with timestamps parsed. Unknown keys are
    ignored. ``effort``, ``position``, ``assignees`` and ``tags`` are patch-only.

    Raises:
        ValidationError: with per-field details; nothing has been written.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid request", details={"body": "must be a JSON object"})

    errors: dict[str, str] = {}
    clean: dict = {}

    if "title" in data:
        clean["title"] = _check_title(data["title"], errors)
    elif not partial:
        errors["title"] = "required"

    if "description" in data:
        clean["description"] = _check_description(data["description"], errors)

    if "status" in data:
        clean["status"] = _check_status(data["status"], errors)
    elif not partial:
        clean["status"] = DEFAULT_STATUS

    if "priority" in data:
        clean["priority"] = _check_priority(data["priority"], errors)
    elif not partial:
        clean["priority"] = DEFAULT_PRIORITY

    if "parentId" in data:
        clean["parentId"] = _check_parent_id(data["parentId"], errors)

    for field in ("dueDate", "startDate"):
        if field in data:
            clean[field] = _check_timestamp(field, data[field], errors)

    if partial:
        if "effort" in data:
            clean["effort"] = _check_effort(data["effort"], errors)
        if "position" in data:
            clean["position"] = _check_position(data["position"], errors)
        if "assignees" in data:
            clean["assignees"] = _check_assignees(data["assignees"], errors)
        if "tags" in data:
            clean["tags"] = _check_tags(data["tags"], errors)

    if errors:
        raise ValidationError("Invalid request", details=errors)
    return clean


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════

def _sibling_order():
    return (Story.due_date.is_(None), Story.due_date, Story.position)


def get_owned_story(owner_id: str, story_id: str) -> Story:
    """Return the caller's story or raise NotFoundError."""
    story = Story.query.filter_by(id=story_id, owner_id=owner_id).first()
    if not story:
        raise NotFoundError(resource="Story", resource_id=story_id, owner_id=owner_id)
    return story


def list_story_tree(owner_id: str) -> list[dict]:
    """Top-level stories of the owner with nested descendants, as records."""
    roots = (
        Story.query
        .filter_by(owner_id=owner_id, parent_id=None)
        .order_by(*_sibling_order())
        .all()
    )
    return [story_to_record(story) for story in roots]


def next_position(owner_id: str, status: str | None) -> int:
    """1 + the highest position in the owner's status scope.

    A null status widens the scope to all of the owner's stories.
    """
    query = db.session.query(func.max(Story.position)).filter(Story.owner_id == owner_id)
    if status:
        query = query.filter(Story.status == status)
    current = query.scalar()
    return (current or 0) + 1


def _resolve_parent(owner_id: str, parent_id: str | None, story: Story | None = None):
    """Validate that parent_id names one of the owner's stories and closes no cycle."""
    if parent_id is None:
        return None
    parent = Story.query.filter_by(id=parent_id, owner_id=owner_id).first()
    if not parent:
        raise ValidationError(
            "Invalid request", details={"parentId": "does not reference one of your stories"},
        )
    if story is not None:
        ancestor = parent
        while ancestor is not None:
            if ancestor.id == story.id:
                raise ValidationError(
                    "Invalid request",
                    details={"parentId": "would make the story its own ancestor"},
                )
            ancestor = ancestor.parent
    return parent


# ═════════════════════════════════════════════════════════════════════════════
# Mutations
# ═════════════════════════════════════════════════════════════════════════════

def create_story(owner_id: str, data) -> Story:
    """Create a story for the owner.

    Top-level stories are appended to their (owner, status) scope; children
    start at position 0.
    """
    clean = validate_story_payload(data, partial=False)
    parent = _resolve_parent(owner_id, clean.get("parentId"))

    story = Story(
        owner_id=owner_id,
        title=clean["title"],
        description=clean.get("description"),
        status=clean["status"],
        priority=clean["priority"],
        parent_id=parent.id if parent else None,
        due_date=clean.get("dueDate"),
        start_date=clean.get("startDate"),
        position=0 if parent else next_position(owner_id, clean["status"]),
    )
    db.session.add(story)
    db.session.flush()
    logger.info("Created story id=%s owner=%s position=%s", story.id, owner_id, story.position)
    return story


def replace_assignees(story: Story, user_ids: list[str]) -> None:
    """Swap the story's assignee links for exactly ``user_ids``."""
    users = User.query.filter(User.id.in_(user_ids)).all() if user_ids else []
    found = {user.id: user for user in users}
    missing = [uid for uid in user_ids if uid not in found]
    if missing:
        raise ValidationError(
            "Invalid request", details={"assignees": f"unknown user ids: {', '.join(missing)}"},
        )

    story.assignee_links = []
    db.session.flush()
    for uid in user_ids:
        story.assignee_links.append(StoryAssignee(user=found[uid]))


def replace_tags(story: Story, tags: list[dict]) -> None:
    story.tags = [Tag(label=t["label"], color=t["color"]) for t in tags]


def patch_story(owner_id: str, story_id: str, data) -> Story:
    """Apply a partial update; fields absent from ``data`` stay untouched."""
    clean = validate_story_payload(data, partial=True)
    story = get_owned_story(owner_id, story_id)

    if "parentId" in clean:
        parent = _resolve_parent(owner_id, clean["parentId"], story=story)
        story.parent_id = parent.id if parent else None

    for field, attr in _SIMPLE_FIELDS.items():
        if field in clean:
            setattr(story, attr, clean[field])

    if "assignees" in clean:
        replace_assignees(story, clean["assignees"])
    if "tags" in clean:
        replace_tags(story, clean["tags"])

    db.session.flush()
    logger.debug("Patched story id=%s fields=%s", story.id, sorted(clean))
    return story


def delete_story(owner_id: str, story_id: str) -> int:
    """Delete the story and its descendants. Returns how many rows went."""
    story = get_owned_story(owner_id, story_id)

    count = 0
    stack = [story]
    while stack:
        node = stack.pop()
        count += 1
        stack.extend(node.children)

    db.session.delete(story)
    db.session.flush()
    logger.info("Deleted story id=%s with %d descendant(s)", story_id, count - 1)
    return count
