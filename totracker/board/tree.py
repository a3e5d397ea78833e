"""
Typed view of a serialized story tree.

``StoryNode.from_dict`` is the boundary check for payloads coming back from
the story API: a malformed tree is rejected here, before it reaches the
client state store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

from totracker.models.story import STORY_STATUSES


class MalformedStoryError(ValueError):
    """Raised when a serialized story does not have the expected shape."""

    def __init__(self, message: str, story_id: Any = None) -> None:
        self.story_id = story_id
        if story_id is not None:
            message = f"{message} (story {story_id!r})"
        super().__init__(message)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class StoryNode:
    """One story plus its nested children.

    ``attributes`` holds every serialized field except ``children``; the
    typed fields mirror the ones the boards sort, group and move by.
    """

    id: str
    title: str
    status: str | None
    priority: int
    position: int
    parent_id: str | None
    due_date: str | None
    attributes: dict = field(default_factory=dict)
    children: list[StoryNode] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any, parent_id: str | None = None) -> StoryNode:
        """Validate ``data`` recursively and build the node tree.

        ``parent_id`` is the id of the enclosing node; a child whose own
        ``parentId`` points elsewhere is rejected.

        Raises:
            MalformedStoryError: on any shape violation.
        """
        if not isinstance(data, dict):
            raise MalformedStoryError(f"Expected an object, got {type(data).__name__}")

        story_id = data.get("id")
        if not isinstance(story_id, str) or not story_id:
            raise MalformedStoryError("Missing or invalid id", story_id)

        title = data.get("title")
        if not isinstance(title, str):
            raise MalformedStoryError("Missing or invalid title", story_id)

        status = data.get("status")
        if status is not None and status not in STORY_STATUSES:
            raise MalformedStoryError(f"Unknown status {status!r}", story_id)

        priority = data.get("priority")
        if not _is_int(priority):
            raise MalformedStoryError("Priority must be an integer", story_id)

        position = data.get("position", 0)
        if not _is_int(position):
            raise MalformedStoryError("Position must be an integer", story_id)

        due_date = data.get("dueDate")
        if due_date is not None and not isinstance(due_date, str):
            raise MalformedStoryError("dueDate must be an ISO string or null", story_id)

        declared_parent = data.get("parentId")
        if parent_id is not None and declared_parent not in (None, parent_id):
            raise MalformedStoryError(
                f"parentId {declared_parent!r} does not match enclosing story {parent_id!r}",
                story_id,
            )

        raw_children = data.get("children") or []
        if not isinstance(raw_children, list):
            raise MalformedStoryError("children must be a list", story_id)

        attributes = {k: v for k, v in data.items() if k != "children"}
        effective_parent = parent_id if parent_id is not None else declared_parent
        attributes["parentId"] = effective_parent

        return cls(
            id=story_id,
            title=title,
            status=status,
            priority=priority,
            position=position,
            parent_id=effective_parent,
            due_date=due_date,
            attributes=attributes,
            children=[cls.from_dict(child, story_id) for child in raw_children],
        )

    def walk(self) -> Iterator[StoryNode]:
        """Yield this node then every descendant, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()
