"""
Tests for the client boards: drops, optimistic updates and reconciliation.

The gateway is a MagicMock and mutations go through a DeferredDispatcher, so
each test decides when (and in which order) server responses arrive.
"""

from datetime import date
from unittest.mock import MagicMock

import pytest

from totracker.board.dispatch import DeferredDispatcher, ImmediateDispatcher
from totracker.board.ordering import BoardSettings, GroupBy, SortBy
from totracker.board.state import ROOT_KEY, check_invariants
from totracker.board.views import BacklogBoard, CalendarBoard, KanbanBoard
from totracker.integrations.story_gateway import StoryGatewayError


def _story(story_id, **kw):
    story = {
        "id": story_id,
        "title": story_id.upper(),
        "description": None,
        "status": "BACKLOG",
        "priority": 3,
        "position": 0,
        "effort": None,
        "dueDate": None,
        "startDate": None,
        "parentId": None,
        "assignees": [],
        "tags": [],
        "children": [],
    }
    story.update(kw)
    return story


@pytest.fixture()
def gateway():
    return MagicMock()


@pytest.fixture()
def dispatcher():
    return DeferredDispatcher()


def _server_echo(story_id, patch, base):
    """Server copy of ``base`` with ``patch`` applied."""
    return {**base, **patch, "id": story_id}


# ═════════════════════════════════════════════════════════════════════════════
# Kanban
# ═════════════════════════════════════════════════════════════════════════════


class TestKanbanBoard:
    @pytest.fixture()
    def board(self, gateway, dispatcher):
        stories = [
            _story("a", status="BACKLOG", children=[_story("a1", parentId="a", status="DONE")]),
            _story("b", status=None),
            _story("c", status="BLOCKED"),
        ]
        return KanbanBoard(gateway, dispatcher=dispatcher, stories=stories)

    def test_columns_show_top_level_stories(self, board):
        columns = board.columns()
        assert list(columns) == ["NO_STATUS", "BACKLOG", "READY", "IN_PROGRESS", "REVIEW", "DONE"]
        assert [s["id"] for s in columns["BACKLOG"]] == ["a"]
        assert [s["id"] for s in columns["NO_STATUS"]] == ["b"]
        assert columns["DONE"] == []
        shown = [s["id"] for stories in columns.values() for s in stories]
        assert "c" not in shown

    def test_drop_on_same_column_is_noop(self, board, dispatcher, gateway):
        assert board.drop("a", "BACKLOG") is False
        assert dispatcher.pending == []
        gateway.patch_story.assert_not_called()

    def test_drop_on_unknown_target_is_ignored(self, board, dispatcher):
        assert board.drop("a", "somewhere") is False
        assert board.drop("a", None) is False
        assert dispatcher.pending == []

    def test_drop_applies_optimistically(self, board, dispatcher):
        assert board.drop("a", "DONE") is True
        assert board.state.get("a")["status"] == "DONE"
        assert len(dispatcher.pending) == 1

    def test_failed_drop_rolls_back_and_flags(self, board, dispatcher, gateway):
        gateway.patch_story.side_effect = StoryGatewayError("boom", status_code=500)
        board.drop("a", "DONE")
        dispatcher.complete()

        gateway.patch_story.assert_called_once_with("a", {"status": "DONE"})
        assert board.state.get("a")["status"] == "BACKLOG"
        assert board.has_error
        check_invariants(board.state)

    def test_successful_drop_merges_server_copy(self, board, dispatcher, gateway):
        gateway.patch_story.return_value = _story("a", status="DONE", title="Server title")
        board.drop("a", "DONE")
        dispatcher.complete()

        story = board.state.get("a")
        assert story["status"] == "DONE"
        assert story["title"] == "Server title"
        assert not board.has_error

    def test_drop_on_no_status_sends_null(self, board, dispatcher, gateway):
        gateway.patch_story.return_value = _story("a", status=None)
        assert board.drop("a", "NO_STATUS") is True
        dispatcher.complete()
        gateway.patch_story.assert_called_once_with("a", {"status": None})
        assert board.state.get("a")["status"] is None

    def test_next_mutation_clears_error(self, board, dispatcher, gateway):
        gateway.patch_story.side_effect = StoryGatewayError("boom")
        board.drop("a", "DONE")
        dispatcher.complete()
        assert board.has_error

        board.drop("b", "READY")
        assert not board.has_error

    def test_rollback_restores_only_the_moved_field(self, board, dispatcher, gateway):
        def patch(story_id, body):
            if "status" in body:
                raise StoryGatewayError("rejected", status_code=400)
            return _story(story_id, **body)

        gateway.patch_story.side_effect = patch
        board.drop("a", "DONE")
        board.reconciler.edit("a", {"title": "Edited while in flight"})

        dispatcher.complete(0)

        story = board.state.get("a")
        assert story["status"] == "BACKLOG"
        assert story["title"] == "Edited while in flight"

    def test_parent_title(self, board):
        assert board.parent_title("a1") == "A"
        assert board.parent_title("a") is None

    def test_load_replaces_state(self, gateway):
        gateway.list_stories.return_value = [_story("x"), _story("y", status="READY")]
        board = KanbanBoard(gateway, dispatcher=ImmediateDispatcher())
        assert len(board.state) == 0

        board.load()
        assert board.state.child_ids(ROOT_KEY) == ["x", "y"]


# ═════════════════════════════════════════════════════════════════════════════
# Calendar
# ═════════════════════════════════════════════════════════════════════════════


class TestCalendarBoard:
    @pytest.fixture()
    def board(self, gateway, dispatcher):
        stories = [
            _story("undated", children=[_story("kid", parentId="undated")]),
            _story("dated", priority=2, dueDate="2025-03-04T09:30:00.000Z"),
            _story("urgent", priority=1, dueDate="2025-03-04T18:00:00.000Z"),
        ]
        return CalendarBoard(gateway, dispatcher=dispatcher, stories=stories)

    def test_backlog_and_assignments(self, board):
        backlog = board.backlog()
        assert [n.story["id"] for n in backlog] == ["undated"]
        assert [n.story["id"] for n in backlog[0].children] == ["kid"]
        assert [s["id"] for s in board.assignments()["2025-03-04"]] == ["urgent", "dated"]

    def test_drop_on_day_sends_midnight_utc(self, board, dispatcher, gateway):
        gateway.patch_story.side_effect = lambda sid, body: _story(sid, **body)
        assert board.drop("undated", "day-2025-03-05") is True
        assert board.state.get("undated")["dueDateKey"] == "2025-03-05"

        dispatcher.complete()
        gateway.patch_story.assert_called_once_with(
            "undated",
            {"dueDate": "2025-03-05T00:00:00.000Z", "startDate": "2025-03-05T00:00:00.000Z"},
        )
        assert board.state.get("undated")["dueDateKey"] == "2025-03-05"
        assert [n.story["id"] for n in board.backlog()] == []

    def test_drop_on_backlog_clears_date(self, board, dispatcher, gateway):
        assert board.drop("dated", "backlog") is True
        assert board.state.get("dated")["dueDateKey"] is None
        dispatcher.pending[0][0]()
        gateway.patch_story.assert_called_once_with("dated", {"dueDate": None, "startDate": None})

    def test_drop_on_same_day_is_noop(self, board, dispatcher):
        assert board.drop("dated", "day-2025-03-04") is False
        assert dispatcher.pending == []

    @pytest.mark.parametrize("over_id", ["day-bogus", "day-2025-13-01", "nowhere", None])
    def test_bad_targets_are_ignored(self, board, dispatcher, over_id):
        assert board.drop("undated", over_id) is False
        assert dispatcher.pending == []

    def test_failed_drop_restores_day(self, board, dispatcher, gateway):
        gateway.patch_story.side_effect = StoryGatewayError("offline")
        board.drop("dated", "day-2025-03-10")
        dispatcher.complete()

        assert board.state.get("dated")["dueDateKey"] == "2025-03-04"
        assert board.has_error

    def test_create_merges_new_story(self, board, dispatcher, gateway):
        gateway.create_story.return_value = _story("new", dueDate="2025-03-07T00:00:00.000Z")
        board.create({"title": "New", "dueDate": "2025-03-07T00:00:00.000Z"})
        dispatcher.complete()

        assert "new" in board.state
        assert board.state.child_ids(ROOT_KEY)[-1] == "new"
        assert [s["id"] for s in board.assignments()["2025-03-07"]] == ["new"]
        check_invariants(board.state)

    def test_month_days(self):
        days = CalendarBoard.month_days(2025, 3)
        assert len(days) == 42
        assert days[0] == date(2025, 2, 24)
        assert days[0].weekday() == 0
        assert date(2025, 3, 31) in days


# ═════════════════════════════════════════════════════════════════════════════
# Backlog
# ═════════════════════════════════════════════════════════════════════════════


class TestBacklogBoard:
    @pytest.fixture()
    def board(self, gateway, dispatcher):
        stories = [
            _story("a", priority=1, position=0, children=[_story("a1", parentId="a")]),
            _story("b", priority=2, position=1),
            _story("c", priority=3, position=2),
        ]
        return BacklogBoard(gateway, dispatcher=dispatcher, stories=stories)

    def test_groups_follow_settings(self, gateway):
        stories = [_story("x", status="DONE", effort=5), _story("y", status="DONE", effort=2)]
        board = BacklogBoard(
            gateway,
            settings=BoardSettings(group_by=GroupBy.STATUS, sort_by=SortBy.EFFORT),
            stories=stories,
        )
        groups = board.groups()
        assert [(g.key, [s["id"] for s in g.stories], g.estimate) for g in groups] == [
            ("DONE", ["y", "x"], 7),
        ]

    def test_rows_are_top_level_only(self, board):
        assert board.row_ids() == ["a", "b", "c"]
        assert [s["id"] for s in board.children_of("a")] == ["a1"]

    def test_drop_sets_position_to_target_index(self, board, dispatcher, gateway):
        assert board.drop("a", "c") is True
        assert board.state.get("a")["position"] == 2
        dispatcher.pending[0][0]()
        gateway.patch_story.assert_called_once_with("a", {"position": 2})

    @pytest.fixture()
    def by_position(self, gateway, dispatcher):
        stories = [
            _story("a", position=1),
            _story("b", position=2),
            _story("c", position=3),
        ]
        settings = BoardSettings(group_by=GroupBy.NONE, sort_by=SortBy.POSITION)
        return BacklogBoard(gateway, settings=settings, dispatcher=dispatcher, stories=stories)

    def test_drop_reorders_rows_sorted_by_position(self, by_position, dispatcher, gateway):
        assert by_position.drop("a", "c") is True
        assert by_position.row_ids() == ["b", "c", "a"]
        assert [by_position.state.get(i)["position"] for i in ("b", "c", "a")] == [0, 1, 2]

        dispatcher.pending[0][0]()
        gateway.patch_story.assert_called_once_with("a", {"position": 2})

    def test_failed_reorder_restores_every_position(self, by_position, dispatcher, gateway):
        gateway.patch_story.side_effect = StoryGatewayError("conflict", status_code=409)
        by_position.drop("c", "a")
        assert by_position.row_ids() == ["c", "a", "b"]
        by_position.edit("b", {"title": "Kept"})

        dispatcher.complete(0)

        assert by_position.row_ids() == ["a", "b", "c"]
        assert [by_position.state.get(i)["position"] for i in ("a", "b", "c")] == [1, 2, 3]
        assert by_position.state.get("b")["title"] == "Kept"
        assert by_position.has_error

    def test_successful_reorder_merges_server_copy(self, by_position, dispatcher, gateway):
        gateway.patch_story.return_value = _story("a", position=2)
        by_position.drop("a", "c")
        dispatcher.complete()

        assert by_position.row_ids() == ["b", "c", "a"]
        assert not by_position.has_error

    def test_drop_on_itself_is_ignored(self, board, dispatcher):
        assert board.drop("a", "a") is False
        assert board.drop("a", "a1") is False
        assert dispatcher.pending == []

    def test_failed_edit_keeps_local_value(self, board, dispatcher, gateway):
        gateway.patch_story.side_effect = StoryGatewayError("nope", status_code=400)
        assert board.edit("b", {"title": "Better title"}) is True
        dispatcher.complete()

        assert board.state.get("b")["title"] == "Better title"
        assert board.has_error

    def test_assignee_edit_sends_ids(self, board, dispatcher, gateway):
        people = [{"id": "u1", "name": "Ada", "email": "ada@totracker.dev"}]
        board.edit("b", {"assignees": people})
        assert board.state.get("b")["assignees"] == people

        dispatcher.pending[0][0]()
        gateway.patch_story.assert_called_once_with("b", {"assignees": ["u1"]})

    def test_edit_rejects_non_inline_fields(self, board, dispatcher):
        with pytest.raises(ValueError, match="parentId"):
            board.edit("b", {"parentId": "a"})
        assert dispatcher.pending == []

    def test_edit_unknown_story(self, board, dispatcher):
        assert board.edit("ghost", {"title": "x"}) is False
        assert dispatcher.pending == []

    def test_create_child_merges_under_parent(self, board, dispatcher, gateway):
        gateway.create_story.return_value = _story("b1", parentId="b", title="Child")
        board.create_child("b", "Child")
        dispatcher.complete()

        gateway.create_story.assert_called_once_with({"title": "Child", "parentId": "b"})
        assert [s["id"] for s in board.children_of("b")] == ["b1"]
        assert board.row_ids() == ["a", "b", "c"]
        check_invariants(board.state)

    def test_delete_child_removes_story(self, board, dispatcher, gateway):
        board.delete_child("a1")
        assert "a1" in board.state
        dispatcher.complete()

        gateway.delete_story.assert_called_once_with("a1")
        assert "a1" not in board.state
        assert board.children_of("a") == []
        check_invariants(board.state)

    def test_failed_delete_keeps_story(self, board, dispatcher, gateway):
        gateway.delete_story.side_effect = StoryGatewayError("locked")
        board.delete_child("a1")
        dispatcher.complete()

        assert "a1" in board.state
        assert board.has_error

    def test_late_success_overwrites_newer_local_value(self, board, dispatcher, gateway):
        gateway.patch_story.side_effect = lambda sid, body: _story(sid, priority=2, position=1, **body)
        board.edit("b", {"title": "First"})
        board.edit("b", {"title": "Second"})

        dispatcher.complete(1)
        dispatcher.complete(0)
        assert board.state.get("b")["title"] == "First"
