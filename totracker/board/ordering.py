"""
Backlog sorting and grouping.

Sort keys:
    priority    ascending (1 is highest)
    position    ascending
    effort      ascending, missing effort counts as 0
    status      BACKLOG < READY < IN_PROGRESS < BLOCKED < REVIEW < DONE
                < ARCHIVED < unset

Sorting is stable, so ties keep their incoming order. Grouping keeps the
sorted order inside each group; groups appear in order of first occurrence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from totracker.models.story import STORY_STATUSES

NO_STATUS = "NO_STATUS"

STATUS_PRECEDENCE = {status: rank for rank, status in enumerate(STORY_STATUSES)}
STATUS_PRECEDENCE[NO_STATUS] = len(STORY_STATUSES)

STATUS_LABELS = {
    NO_STATUS: "No Status",
    "BACKLOG": "Backlog",
    "READY": "Ready",
    "IN_PROGRESS": "In progress",
    "BLOCKED": "Blocked",
    "REVIEW": "In review",
    "DONE": "Done",
    "ARCHIVED": "Archived",
}

PRIORITY_LABELS = {
    1: "High Priority",
    2: "Medium Priority",
    3: "Normal Priority",
    4: "Low Priority",
}

UNGROUPED = "Ungrouped"


class SortBy(str, Enum):
    PRIORITY = "priority"
    POSITION = "position"
    EFFORT = "effort"
    STATUS = "status"


class GroupBy(str, Enum):
    NONE = "none"
    STATUS = "status"
    PRIORITY = "priority"


@dataclass(frozen=True)
class BoardSettings:
    """Per-session backlog preferences, injected into the backlog view."""

    group_by: GroupBy = GroupBy.PRIORITY
    sort_by: SortBy = SortBy.PRIORITY

    @classmethod
    def from_dict(cls, data: dict | None) -> BoardSettings:
        """Build from persisted preferences; unknown values fall back to defaults."""
        data = data or {}
        try:
            group_by = GroupBy(data.get("groupBy", GroupBy.PRIORITY.value))
        except ValueError:
            group_by = GroupBy.PRIORITY
        try:
            sort_by = SortBy(data.get("sortBy", SortBy.PRIORITY.value))
        except ValueError:
            sort_by = SortBy.PRIORITY
        return cls(group_by=group_by, sort_by=sort_by)

    def to_dict(self) -> dict:
        return {"groupBy": self.group_by.value, "sortBy": self.sort_by.value}


@dataclass
class StoryGroup:
    key: str
    label: str
    stories: list[dict] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.stories)

    @property
    def estimate(self) -> int:
        """Sum of effort across the group (missing effort counts as 0)."""
        return sum(s.get("effort") or 0 for s in self.stories)


def status_key(story: dict) -> str:
    return story.get("status") or NO_STATUS


def _sort_key(sort_by: SortBy):
    if sort_by is SortBy.PRIORITY:
        return lambda s: s["priority"]
    if sort_by is SortBy.POSITION:
        return lambda s: s.get("position", 0)
    if sort_by is SortBy.EFFORT:
        return lambda s: s.get("effort") or 0
    return lambda s: STATUS_PRECEDENCE[status_key(s)]


def sort_stories(stories: list[dict], sort_by: SortBy | str = SortBy.PRIORITY) -> list[dict]:
    """Return a new list sorted by ``sort_by``."""
    return sorted(stories, key=_sort_key(SortBy(sort_by)))


def group_key(story: dict, group_by: GroupBy) -> str:
    if group_by is GroupBy.STATUS:
        return status_key(story)
    if group_by is GroupBy.PRIORITY:
        return str(story["priority"])
    return UNGROUPED


def group_label(key: str, group_by: GroupBy) -> str:
    if group_by is GroupBy.STATUS:
        return STATUS_LABELS.get(key, key)
    if group_by is GroupBy.PRIORITY:
        return PRIORITY_LABELS.get(int(key), f"Priority {key}")
    return key


def group_stories(stories: list[dict], group_by: GroupBy | str = GroupBy.NONE) -> list[StoryGroup]:
    """Split already-sorted stories into groups, preserving order."""
    group_by = GroupBy(group_by)
    groups: dict[str, StoryGroup] = {}
    if group_by is GroupBy.NONE:
        return [StoryGroup(key=UNGROUPED, label=UNGROUPED, stories=list(stories))]
    for story in stories:
        key = group_key(story, group_by)
        if key not in groups:
            groups[key] = StoryGroup(key=key, label=group_label(key, group_by))
        groups[key].stories.append(story)
    return list(groups.values())


def arrange(stories: list[dict], settings: BoardSettings) -> list[StoryGroup]:
    """Sort then group according to ``settings``."""
    return group_stories(sort_stories(stories, settings.sort_by), settings.group_by)
