"""
Board views over the shared client state store.

Each board projects the StoryState into what it renders and turns drops and
edits into reconciler calls:

    KanbanBoard    top-level stories by status column; drop = status change
    CalendarBoard  undated backlog tree + dated stories per day;
                   drop = due-date change
    BacklogBoard   sorted/grouped top-level rows (BoardSettings);
                   drop = row reorder, inline edits, child create/delete
"""

import logging
from datetime import date, timedelta

from totracker.board.drops import (
    KANBAN_COLUMNS,
    UNRESOLVED,
    array_move,
    day_key_to_timestamp,
    resolve_due_date_target,
    resolve_position_target,
    resolve_status_target,
)
from totracker.board.ordering import BoardSettings, arrange, status_key
from totracker.board.reconcile import StoryReconciler, StoryStore
from totracker.board.state import (
    build_backlog_tree,
    build_calendar_assignments,
    normalize_stories,
)

logger = logging.getLogger(__name__)


class _Board:
    def __init__(self, gateway, *, dispatcher=None, stories=None):
        self.gateway = gateway
        self.store = StoryStore(normalize_stories(stories) if stories is not None else None)
        self.reconciler = StoryReconciler(self.store, gateway, dispatcher)

    @property
    def state(self):
        return self.store.state

    @property
    def has_error(self) -> bool:
        return self.store.has_error

    def load(self):
        """Replace the local state with a fresh copy from the server."""
        state = normalize_stories(self.gateway.list_stories())
        self.store.replace(state)
        logger.info("%s loaded %d stories", type(self).__name__, len(state))
        return state

    def parent_title(self, story_id):
        story = self.state.get(story_id)
        if not story or not story.get("parentId"):
            return None
        parent = self.state.get(story["parentId"])
        return parent["title"] if parent else None


class KanbanBoard(_Board):
    def columns(self) -> dict:
        """Column id → top-level stories in that column.

        Stories whose status has no column (BLOCKED, ARCHIVED) are not shown.
        """
        columns = {column: [] for column in KANBAN_COLUMNS}
        for story in self.state.roots():
            key = status_key(story)
            if key in columns:
                columns[key].append(story)
        return columns

    def drop(self, story_id, over_id) -> bool:
        """Drop a card on a column. Returns False for ignored drops."""
        status = resolve_status_target(over_id)
        if status is UNRESOLVED:
            return False
        return self.reconciler.move(story_id, {"status": status})


class CalendarBoard(_Board):
    def backlog(self):
        return build_backlog_tree(self.state)

    def assignments(self):
        return build_calendar_assignments(self.state)

    def drop(self, story_id, over_id) -> bool:
        """Drop a story on a day cell (``day-YYYY-MM-DD``) or on the backlog."""
        key = resolve_due_date_target(over_id)
        if key is UNRESOLVED:
            return False
        timestamp = day_key_to_timestamp(key)
        return self.reconciler.move(
            story_id,
            {"dueDateKey": key},
            {"dueDate": timestamp, "startDate": timestamp},
        )

    def create(self, fields: dict) -> None:
        self.reconciler.create(fields)

    @staticmethod
    def month_days(year: int, month: int) -> list:
        """The 42 days (six Monday-first weeks) shown for a month."""
        first = date(year, month, 1)
        start = first - timedelta(days=first.weekday())
        return [start + timedelta(days=i) for i in range(42)]


class BacklogBoard(_Board):
    EDITABLE_FIELDS = frozenset({"title", "description", "status", "priority", "effort", "assignees"})

    def __init__(self, gateway, *, settings=None, dispatcher=None, stories=None):
        super().__init__(gateway, dispatcher=dispatcher, stories=stories)
        self.settings = settings or BoardSettings()

    def groups(self):
        return arrange(self.state.roots(), self.settings)

    def row_ids(self) -> list:
        """Top-level story ids in display order, across groups."""
        return [story["id"] for group in self.groups() for story in group.stories]

    def children_of(self, story_id) -> list:
        state = self.state
        return [state.by_id[i] for i in state.child_ids(story_id) if i in state.by_id]

    def drop(self, active_id, over_id) -> bool:
        """Reorder rows and renumber every row's position to its new index.

        Only the dragged story's new position is sent to the server.
        """
        rows = self.row_ids()
        new_index = resolve_position_target(rows, active_id, over_id)
        if new_index is UNRESOLVED:
            return False
        reordered = array_move(rows, rows.index(active_id), new_index)
        positions = {story_id: {"position": index} for index, story_id in enumerate(reordered)}
        return self.reconciler.move_many(active_id, positions, {"position": new_index})

    def edit(self, story_id, patch: dict) -> bool:
        """Inline edit of row fields. ``assignees`` is a list of user dicts."""
        unknown = set(patch) - self.EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Not editable inline: {', '.join(sorted(unknown))}")
        request_patch = dict(patch)
        if "assignees" in patch:
            request_patch["assignees"] = [user["id"] for user in patch["assignees"]]
        return self.reconciler.edit(story_id, patch, request_patch)

    def create_child(self, parent_id, title) -> None:
        self.reconciler.create({"title": title, "parentId": parent_id})

    def delete_child(self, child_id) -> None:
        self.reconciler.delete(child_id)
