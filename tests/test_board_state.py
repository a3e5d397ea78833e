"""Tests for the client story state store (totracker.board.state / tree)."""

import pytest

from totracker.board.state import (
    ROOT_KEY,
    StateInvariantError,
    StoryState,
    build_backlog_tree,
    build_calendar_assignments,
    check_invariants,
    merge_story,
    normalize_stories,
    remove_story,
    update_story,
)
from totracker.board.tree import MalformedStoryError, StoryNode


def _story(story_id, *, children=(), **kw):
    data = {
        "id": story_id,
        "title": f"Story {story_id}",
        "status": "BACKLOG",
        "priority": 3,
        "position": 0,
        "effort": None,
        "parentId": None,
        "dueDate": None,
        "children": list(children),
    }
    data.update(kw)
    return data


@pytest.fixture()
def tree():
    return [
        _story("p1", children=[
            _story("c1", parentId="p1", children=[_story("g1", parentId="c1")]),
            _story("c2", parentId="p1", dueDate="2025-03-04T00:00:00.000Z"),
        ]),
        _story("p2", priority=1, dueDate="2025-03-04T15:00:00.000Z"),
        _story("p3"),
    ]


# ── StoryNode.from_dict ────────────────────────────────────────────────────


class TestStoryNode:
    def test_builds_typed_tree(self, tree):
        node = StoryNode.from_dict(tree[0])
        assert node.id == "p1"
        assert [c.id for c in node.children] == ["c1", "c2"]
        assert [n.id for n in node.walk()] == ["p1", "c1", "g1", "c2"]
        assert "children" not in node.attributes

    @pytest.mark.parametrize("broken", [
        "not a dict",
        {"title": "no id", "priority": 3},
        _story("x", title=None),
        _story("x", status="SOMEDAY"),
        _story("x", priority="3"),
        _story("x", priority=True),
        _story("x", dueDate=20250301),
        _story("x", children="nope"),
    ])
    def test_rejects_malformed(self, broken):
        with pytest.raises(MalformedStoryError):
            StoryNode.from_dict(broken)

    def test_rejects_child_claiming_other_parent(self):
        with pytest.raises(MalformedStoryError) as exc:
            StoryNode.from_dict(_story("p", children=[_story("c", parentId="elsewhere")]))
        assert exc.value.story_id == "c"


# ── normalize_stories ────────────────────────────────────────────────────────


class TestNormalize:
    def test_index_shape(self, tree):
        state = normalize_stories(tree)
        assert state.children[ROOT_KEY] == ["p1", "p2", "p3"]
        assert state.children["p1"] == ["c1", "c2"]
        assert state.children["c1"] == ["g1"]
        assert state.get("g1")["parentId"] == "c1"
        assert state.get("p2")["dueDateKey"] == "2025-03-04"
        assert state.get("p3")["dueDateKey"] is None
        assert len(state) == 6
        check_invariants(state)

    def test_story_called_root_is_an_ordinary_story(self):
        state = normalize_stories([
            _story("root", children=[_story("x", parentId="root")]),
            _story("other"),
        ])
        assert state.child_ids(ROOT_KEY) == ["root", "other"]
        assert state.child_ids("root") == ["x"]
        assert [s["id"] for s in state.roots()] == ["root", "other"]
        check_invariants(state)

        moved = merge_story(state, _story("x"))
        assert moved.child_ids(ROOT_KEY) == ["root", "other", "x"]
        assert moved.child_ids("root") == []
        check_invariants(moved)

    def test_day_key_of_years_below_1000(self):
        state = normalize_stories([_story("old", dueDate="0999-01-01T00:00:00.000Z")])
        assert state.get("old")["dueDateKey"] == "0999-01-01"

    def test_rejects_duplicate_ids(self):
        with pytest.raises(MalformedStoryError):
            normalize_stories([_story("a"), _story("b", children=[_story("a", parentId="b")])])

    def test_rejects_non_list(self):
        with pytest.raises(MalformedStoryError):
            normalize_stories({"stories": []})

    def test_empty(self):
        state = normalize_stories([])
        assert state.children == {ROOT_KEY: []}
        check_invariants(state)


# ── transitions ──────────────────────────────────────────────────────────────


class TestUpdate:
    def test_returns_new_state(self, tree):
        state = normalize_stories(tree)
        updated = update_story(state, "p3", {"status": "DONE"})
        assert updated.get("p3")["status"] == "DONE"
        assert state.get("p3")["status"] == "BACKLOG"
        assert updated.children is state.children

    def test_unknown_id_is_noop(self, tree):
        state = normalize_stories(tree)
        assert update_story(state, "missing", {"status": "DONE"}) is state

    def test_due_date_keeps_key_in_step(self, tree):
        state = update_story(normalize_stories(tree), "p3", {"dueDate": "2025-04-01T00:00:00.000Z"})
        assert state.get("p3")["dueDateKey"] == "2025-04-01"


class TestMerge:
    def test_replaces_attributes(self, tree):
        state = normalize_stories(tree)
        merged = merge_story(state, _story("p3", title="Renamed", status="DONE"))
        assert merged.get("p3")["title"] == "Renamed"
        assert merged.children[ROOT_KEY] == ["p1", "p2", "p3"]
        check_invariants(merged)

    def test_relinks_on_parent_change(self, tree):
        state = normalize_stories(tree)
        merged = merge_story(state, _story("c2", parentId="p3"))
        assert merged.children["p1"] == ["c1"]
        assert merged.children["p3"] == ["c2"]
        assert merged.get("c2")["parentId"] == "p3"
        check_invariants(merged)

    def test_relink_to_root(self, tree):
        merged = merge_story(normalize_stories(tree), _story("g1", parentId=None))
        assert merged.children["c1"] == []
        assert merged.children[ROOT_KEY][-1] == "g1"
        check_invariants(merged)

    def test_repeated_merge_appends_once(self, tree):
        state = normalize_stories(tree)
        new = _story("n1", parentId="p3")
        merged = merge_story(merge_story(state, new), new)
        assert merged.children["p3"] == ["n1"]
        check_invariants(merged)

    def test_keep_existing(self, tree):
        state = normalize_stories(tree)
        assert merge_story(state, _story("p3", title="Other"), replace_existing=False) is state

    def test_new_story_without_replace(self, tree):
        merged = merge_story(normalize_stories(tree), _story("n1"), replace_existing=False)
        assert merged.children[ROOT_KEY] == ["p1", "p2", "p3", "n1"]

    def test_nested_children_merged(self):
        state = normalize_stories([_story("p")])
        merged = merge_story(state, _story("p", children=[_story("c", parentId="p")]))
        assert merged.children["p"] == ["c"]
        check_invariants(merged)


class TestRemove:
    def test_removes_subtree(self, tree):
        state = remove_story(normalize_stories(tree), "c1")
        assert "c1" not in state
        assert "g1" not in state
        assert state.children["p1"] == ["c2"]
        assert "c1" not in state.children
        check_invariants(state)

    def test_unknown_is_noop(self, tree):
        state = normalize_stories(tree)
        assert remove_story(state, "missing") is state


# ── projections ──────────────────────────────────────────────────────────────


class TestProjections:
    def test_backlog_tree_keeps_undated_only(self, tree):
        nodes = build_backlog_tree(normalize_stories(tree))
        assert [n.story["id"] for n in nodes] == ["p1", "p3"]
        assert [c.story["id"] for c in nodes[0].children] == ["c1"]
        assert [g.story["id"] for g in nodes[0].children[0].children] == ["g1"]

    def test_calendar_sorted_by_priority(self, tree):
        assignments = build_calendar_assignments(normalize_stories(tree))
        assert list(assignments) == ["2025-03-04"]
        assert [s["id"] for s in assignments["2025-03-04"]] == ["p2", "c2"]


# ── invariants ───────────────────────────────────────────────────────────────


class TestInvariants:
    def test_dangling_child_reference(self):
        state = StoryState(by_id={}, children={ROOT_KEY: ["ghost"]})
        with pytest.raises(StateInvariantError):
            check_invariants(state)

    def test_unlisted_story(self):
        state = StoryState(by_id={"a": {"id": "a", "parentId": None}}, children={ROOT_KEY: []})
        with pytest.raises(StateInvariantError):
            check_invariants(state)

    def test_listed_twice(self):
        state = StoryState(
            by_id={"a": {"id": "a", "parentId": None}, "b": {"id": "b", "parentId": None}},
            children={ROOT_KEY: ["a", "b", "a"]},
        )
        with pytest.raises(StateInvariantError):
            check_invariants(state)

    def test_listed_under_wrong_parent(self):
        state = StoryState(
            by_id={"a": {"id": "a", "parentId": None}, "b": {"id": "b", "parentId": None}},
            children={ROOT_KEY: ["a"], "a": ["b"]},
        )
        with pytest.raises(StateInvariantError):
            check_invariants(state)
