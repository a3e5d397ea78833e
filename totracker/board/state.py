"""
Client story state store.

A normalized, immutable-by-convention snapshot of the caller's story tree:

    by_id     story id → flat story attributes (serialized fields, minus
              ``children``, plus the derived ``dueDateKey``)
    children  parent id, or ROOT_KEY for top-level stories → ordered child ids

Every operation returns a new StoryState and never mutates its input, so a
view can swap its current snapshot under a lock and hand the old one to
readers without copying.

Invariant (see ``check_invariants``): every id in a child list has an entry
in ``by_id``, and every ``by_id`` entry appears in exactly one child list,
the one keyed by its parent (or ROOT_KEY).
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

from totracker.board.tree import MalformedStoryError, StoryNode

logger = logging.getLogger(__name__)

# Story ids are non-empty strings, so None never collides with one.
ROOT_KEY = None


class StateInvariantError(Exception):
    """Raised by check_invariants when the index and the map disagree."""


def due_date_key(due_date: str | None) -> str | None:
    """Calendar day (``YYYY-MM-DD``) of a serialized UTC timestamp."""
    return due_date[:10] if due_date else None


def parent_key(story: dict) -> str | None:
    return story.get("parentId") or ROOT_KEY


@dataclass(frozen=True)
class StoryState:
    by_id: dict = field(default_factory=dict)
    children: dict = field(default_factory=lambda: {ROOT_KEY: []})

    def get(self, story_id: str) -> dict | None:
        return self.by_id.get(story_id)

    def child_ids(self, key: str | None = ROOT_KEY) -> list[str]:
        return list(self.children.get(key, []))

    def roots(self) -> list[dict]:
        return [self.by_id[i] for i in self.children.get(ROOT_KEY, []) if i in self.by_id]

    def __contains__(self, story_id) -> bool:
        return story_id in self.by_id

    def __len__(self) -> int:
        return len(self.by_id)


@dataclass
class BacklogNode:
    story: dict
    children: list[BacklogNode] = field(default_factory=list)


def _flatten(node: StoryNode, parent_id: str | None) -> dict:
    attrs = dict(node.attributes)
    attrs["parentId"] = parent_id
    attrs["dueDateKey"] = due_date_key(node.due_date)
    return attrs


# ═════════════════════════════════════════════════════════════════════════════
# Construction
# ═════════════════════════════════════════════════════════════════════════════


def normalize_stories(stories: list) -> StoryState:
    """Build a state from the serialized tree returned by GET /stories.

    Raises:
        MalformedStoryError: the tree is not a list of well-formed stories,
            or an id occurs twice.
    """
    if not isinstance(stories, list):
        raise MalformedStoryError(f"Expected a list of stories, got {type(stories).__name__}")

    by_id: dict[str, dict] = {}
    children: dict[str | None, list[str]] = {ROOT_KEY: []}

    def register(node: StoryNode, parent_id: str | None) -> None:
        if node.id in by_id:
            raise MalformedStoryError("Duplicate story id", node.id)
        by_id[node.id] = _flatten(node, parent_id)
        children.setdefault(parent_id or ROOT_KEY, []).append(node.id)
        children.setdefault(node.id, [])
        for child in node.children:
            register(child, node.id)

    for raw in stories:
        register(StoryNode.from_dict(raw), None)

    logger.debug("Normalized %d stories", len(by_id))
    return StoryState(by_id=by_id, children=children)


# ═════════════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════════════


def update_story(state: StoryState, story_id: str, patch: dict) -> StoryState:
    """Return a state with ``patch`` applied to one story's attributes.

    Unknown ids leave the state untouched. Patching ``dueDate`` alone keeps
    ``dueDateKey`` in step. The child index is not touched; relinking only
    happens through merge_story.
    """
    story = state.by_id.get(story_id)
    if story is None:
        return state

    updated = {**story, **patch}
    if "dueDate" in patch and "dueDateKey" not in patch:
        updated["dueDateKey"] = due_date_key(patch["dueDate"])

    return StoryState(by_id={**state.by_id, story_id: updated}, children=state.children)


def merge_story(state: StoryState, server_story: dict, replace_existing: bool = True) -> StoryState:
    """Fold the server's canonical copy of a story into the state.

    With ``replace_existing`` false a story already present is left as is
    (a create response that arrives after a reload already brought it in).

    If the story's parent changed, its id leaves the old child list and is
    appended to the new one exactly once. Nested children in the payload are
    merged the same way.
    """
    node = StoryNode.from_dict(server_story)
    existing = state.by_id.get(node.id)
    if existing is not None and not replace_existing:
        return state

    by_id = dict(state.by_id)
    children = dict(state.children)
    _merge_node(by_id, children, node, node.parent_id, existing)

    if existing is not None and existing.get("parentId") != node.parent_id:
        logger.debug("Story %s relinked %s → %s", node.id,
                     existing.get("parentId") or ROOT_KEY, node.parent_id or ROOT_KEY)
    return StoryState(by_id=by_id, children=children)


def _merge_node(by_id: dict, children: dict, node: StoryNode,
                parent_id: str | None, existing: dict | None) -> None:
    normalized = _flatten(node, parent_id)
    new_key = parent_id or ROOT_KEY

    if existing is not None and parent_key(existing) != new_key:
        old_key = parent_key(existing)
        children[old_key] = [i for i in children.get(old_key, []) if i != node.id]

    siblings = children.get(new_key, [])
    if node.id not in siblings:
        children[new_key] = [*siblings, node.id]
    children.setdefault(node.id, [])

    by_id[node.id] = normalized
    for child in node.children:
        _merge_node(by_id, children, child, node.id, by_id.get(child.id))


def remove_story(state: StoryState, story_id: str) -> StoryState:
    """Return a state without ``story_id`` and its whole subtree."""
    story = state.by_id.get(story_id)
    if story is None:
        return state

    doomed: set[str] = set()
    stack = [story_id]
    while stack:
        current = stack.pop()
        doomed.add(current)
        stack.extend(state.children.get(current, []))

    by_id = {k: v for k, v in state.by_id.items() if k not in doomed}
    children = {k: v for k, v in state.children.items() if k not in doomed}
    key = parent_key(story)
    if key in children:
        children[key] = [i for i in children[key] if i != story_id]

    return StoryState(by_id=by_id, children=children)


# ═════════════════════════════════════════════════════════════════════════════
# Projections
# ═════════════════════════════════════════════════════════════════════════════


def build_backlog_tree(state: StoryState, parent_id: str | None = None) -> list[BacklogNode]:
    """Nested tree of undated stories, in child-index order.

    A dated story is left out together with its subtree.
    """
    nodes = []
    for story_id in state.children.get(parent_id or ROOT_KEY, []):
        story = state.by_id.get(story_id)
        if story is None or story.get("dueDateKey") is not None:
            continue
        nodes.append(BacklogNode(story=story, children=build_backlog_tree(state, story_id)))
    return nodes


def build_calendar_assignments(state: StoryState) -> dict[str, list[dict]]:
    """Day key → dated stories on that day, priority ascending (stable)."""
    assignments: dict[str, list[dict]] = {}
    for story in state.by_id.values():
        key = story.get("dueDateKey")
        if key:
            assignments.setdefault(key, []).append(story)
    return {
        key: sorted(stories, key=lambda s: s["priority"])
        for key, stories in assignments.items()
    }


def check_invariants(state: StoryState) -> None:
    """Raise StateInvariantError if the child index and the id map disagree."""
    if ROOT_KEY not in state.children:
        raise StateInvariantError("Missing root child list")

    occurrences: Counter = Counter()
    for key, ids in state.children.items():
        for story_id in ids:
            if story_id not in state.by_id:
                raise StateInvariantError(f"Child list {key!r} references unknown story {story_id!r}")
            occurrences[story_id] += 1
            expected = parent_key(state.by_id[story_id])
            if expected != key:
                raise StateInvariantError(
                    f"Story {story_id!r} listed under {key!r} but its parent is {expected!r}"
                )

    for story_id in state.by_id:
        count = occurrences.get(story_id, 0)
        if count != 1:
            raise StateInvariantError(f"Story {story_id!r} appears in {count} child lists")
