"""Tests for backlog sorting / grouping (totracker.board.ordering)."""

import pytest

from totracker.board.ordering import (
    NO_STATUS,
    BoardSettings,
    GroupBy,
    SortBy,
    arrange,
    group_stories,
    sort_stories,
)


def _row(story_id, **kw):
    row = {"id": story_id, "priority": 3, "position": 0, "effort": None, "status": "BACKLOG"}
    row.update(kw)
    return row


def _ids(stories):
    return [s["id"] for s in stories]


def test_sort_by_priority_then_group_by_priority():
    stories = [_row("low", priority=3), _row("high", priority=1)]
    ordered = sort_stories(stories, SortBy.PRIORITY)
    assert _ids(ordered) == ["high", "low"]

    groups = group_stories(ordered, GroupBy.PRIORITY)
    assert [(g.key, g.count) for g in groups] == [("1", 1), ("3", 1)]
    assert groups[0].label == "High Priority"


def test_sort_is_stable():
    stories = [_row("a"), _row("b"), _row("c")]
    assert _ids(sort_stories(stories, "priority")) == ["a", "b", "c"]


def test_sort_by_position():
    stories = [_row("a", position=3), _row("b", position=1), _row("c", position=2)]
    assert _ids(sort_stories(stories, SortBy.POSITION)) == ["b", "c", "a"]


def test_sort_by_effort_treats_missing_as_zero():
    stories = [_row("big", effort=8), _row("none"), _row("small", effort=1)]
    assert _ids(sort_stories(stories, SortBy.EFFORT)) == ["none", "small", "big"]


def test_sort_by_status_precedence_with_unset_last():
    stories = [
        _row("unset", status=None),
        _row("archived", status="ARCHIVED"),
        _row("done", status="DONE"),
        _row("blocked", status="BLOCKED"),
        _row("backlog", status="BACKLOG"),
        _row("review", status="REVIEW"),
        _row("ready", status="READY"),
        _row("wip", status="IN_PROGRESS"),
    ]
    assert _ids(sort_stories(stories, SortBy.STATUS)) == [
        "backlog", "ready", "wip", "blocked", "review", "done", "archived", "unset",
    ]


def test_sort_does_not_mutate_input():
    stories = [_row("b", priority=2), _row("a", priority=1)]
    sort_stories(stories)
    assert _ids(stories) == ["b", "a"]


def test_group_by_status_uses_no_status_sentinel():
    groups = group_stories([_row("x", status=None), _row("y", status="DONE")], GroupBy.STATUS)
    assert [g.key for g in groups] == [NO_STATUS, "DONE"]
    assert groups[0].label == "No Status"


def test_group_none_is_single_group():
    groups = group_stories([_row("a"), _row("b")], GroupBy.NONE)
    assert len(groups) == 1
    assert groups[0].key == "Ungrouped"
    assert _ids(groups[0].stories) == ["a", "b"]


@pytest.mark.parametrize("group_by", [GroupBy.PRIORITY, GroupBy.STATUS])
def test_grouping_preserves_story_set_and_order(group_by):
    stories = [
        _row("a", priority=2, status="DONE"),
        _row("b", priority=1, status=None),
        _row("c", priority=2, status="READY"),
        _row("d", priority=5, status="DONE"),
    ]
    groups = group_stories(stories, group_by)
    flattened = [s["id"] for g in groups for s in g.stories]
    assert sorted(flattened) == ["a", "b", "c", "d"]
    for group in groups:
        assert _ids(group.stories) == [s for s in _ids(stories) if s in _ids(group.stories)]


def test_group_estimate_sums_effort():
    groups = group_stories([_row("a", effort=3), _row("b"), _row("c", effort=5)], GroupBy.NONE)
    assert groups[0].estimate == 8


def test_unknown_priority_label():
    groups = group_stories([_row("a", priority=5)], GroupBy.PRIORITY)
    assert groups[0].label == "Priority 5"


def test_arrange_applies_settings():
    settings = BoardSettings(group_by=GroupBy.STATUS, sort_by=SortBy.EFFORT)
    groups = arrange(
        [_row("a", effort=5, status="DONE"), _row("b", effort=1, status="DONE"), _row("c", status="READY")],
        settings,
    )
    assert [(g.key, _ids(g.stories)) for g in groups] == [("READY", ["c"]), ("DONE", ["b", "a"])]


class TestBoardSettings:
    def test_defaults(self):
        settings = BoardSettings()
        assert settings.group_by is GroupBy.PRIORITY
        assert settings.sort_by is SortBy.PRIORITY

    def test_from_persisted_preferences(self):
        settings = BoardSettings.from_dict({"groupBy": "status", "sortBy": "effort"})
        assert settings == BoardSettings(group_by=GroupBy.STATUS, sort_by=SortBy.EFFORT)
        assert settings.to_dict() == {"groupBy": "status", "sortBy": "effort"}

    def test_unknown_values_fall_back(self):
        settings = BoardSettings.from_dict({"groupBy": "owner", "sortBy": "age"})
        assert settings == BoardSettings()
