"""Story serializer: ORM story trees to transport-safe dicts.

Two steps:
    story_to_record(story)   ORM row → plain dict with raw values, recursing
                             into children (no session access afterwards)
    serialize_story(record)  plain dict → wire dict; every date field becomes
                             ISO-8601 UTC text or None, children recursively

serialize_story is pure and deterministic, and re-serializing its own output
returns an equal dict.
"""

from totracker.utils.helpers import format_timestamp

DATE_FIELDS = ("dueDate", "startDate", "createdAt", "updatedAt")


def _user_summary(user):
    if user is None:
        return None
    return {"id": user.id, "email": user.email, "name": user.name}


def story_to_record(story) -> dict:
    """Copy an ORM Story (and its whole subtree) into plain dicts."""
    return {
        "id": story.id,
        "title": story.title,
        "description": story.description,
        "status": story.status,
        "priority": story.priority,
        "effort": story.effort,
        "position": story.position,
        "ownerId": story.owner_id,
        "assigneeId": story.assignee_id,
        "assignee": _user_summary(story.assignee),
        "assignees": [_user_summary(user) for user in story.assignees],
        "tags": [tag.to_dict() for tag in story.tags],
        "parentId": story.parent_id,
        "dueDate": story.due_date,
        "startDate": story.start_date,
        "createdAt": story.created_at,
        "updatedAt": story.updated_at,
        "children": [story_to_record(child) for child in story.children],
    }


def serialize_story(record: dict) -> dict:
    """Return the wire form of a story record.

    Date fields are normalised with format_timestamp; nested user and tag
    dicts are copied; children are serialized recursively.
    """
    result = dict(record)
    for field in DATE_FIELDS:
        result[field] = format_timestamp(record.get(field))
    result["assignee"] = dict(record["assignee"]) if record.get("assignee") else None
    result["assignees"] = [dict(user) for user in record.get("assignees") or []]
    result["tags"] = [dict(tag) for tag in record.get("tags") or []]
    result["children"] = [serialize_story(child) for child in record.get("children") or []]
    return result


def serialize_story_model(story) -> dict:
    """Convenience: ORM story → wire dict."""
    return serialize_story(story_to_record(story))
