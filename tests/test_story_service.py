"""Unit tests for totracker.services.story_service: validation and ordering rules.

Service functions flush but never commit; each test runs inside the autouse
``session`` fixture, which rolls back and recreates tables afterwards.
"""

import pytest

from totracker.core.exceptions import NotFoundError, ValidationError
from totracker.models import db
from totracker.models.story import Story
from totracker.services import story_service as svc


# ── validate_story_payload ───────────────────────────────────────────────────


class TestValidatePayload:
    def test_create_defaults(self):
        clean = svc.validate_story_payload({"title": "  Padded  "}, partial=False)
        assert clean == {"title": "Padded", "status": "BACKLOG", "priority": 3}

    def test_partial_keeps_only_supplied_fields(self):
        clean = svc.validate_story_payload({"status": "DONE"}, partial=True)
        assert clean == {"status": "DONE"}

    def test_patch_only_fields_ignored_on_create(self):
        clean = svc.validate_story_payload({"title": "x", "effort": 3, "position": 9}, partial=False)
        assert "effort" not in clean
        assert "position" not in clean

    def test_collects_every_error(self):
        with pytest.raises(ValidationError) as exc:
            svc.validate_story_payload({"priority": "high", "status": "LATER"}, partial=False)
        assert set(exc.value.details) == {"title", "priority", "status"}

    def test_non_object_body(self):
        with pytest.raises(ValidationError) as exc:
            svc.validate_story_payload(["title"], partial=False)
        assert "body" in exc.value.details

    def test_assignees_deduplicated(self):
        clean = svc.validate_story_payload({"assignees": ["u1", {"id": "u1"}, "u2"]}, partial=True)
        assert clean["assignees"] == ["u1", "u2"]

    def test_timestamps_parsed(self):
        clean = svc.validate_story_payload({"dueDate": "2025-03-01T12:00:00+02:00"}, partial=True)
        assert clean["dueDate"].isoformat() == "2025-03-01T10:00:00+00:00"


# ── Ordering / scoping ──────────────────────────────────────────────────────


class TestPositions:
    def test_next_position_empty_scope(self, user):
        assert svc.next_position(user.id, "BACKLOG") == 1

    def test_next_position_follows_max(self, user):
        db.session.add(Story(owner_id=user.id, title="a", status="READY", position=4))
        db.session.add(Story(owner_id=user.id, title="b", status="BACKLOG", position=9))
        db.session.flush()
        assert svc.next_position(user.id, "READY") == 5
        assert svc.next_position(user.id, None) == 10


class TestMutations:
    def test_create_then_patch(self, user):
        story = svc.create_story(user.id, {"title": "Draft sprint plan"})
        assert story.position == 1
        svc.patch_story(user.id, story.id, {"status": "DONE", "effort": 2})
        db.session.expire_all()
        reloaded = db.session.get(Story, story.id)
        assert (reloaded.status, reloaded.effort, reloaded.title) == ("DONE", 2, "Draft sprint plan")

    def test_get_owned_story_hides_foreign(self, user, other_user):
        story = svc.create_story(other_user.id, {"title": "Theirs"})
        with pytest.raises(NotFoundError):
            svc.get_owned_story(user.id, story.id)

    def test_story_cannot_be_its_own_parent(self, user):
        story = svc.create_story(user.id, {"title": "Loop"})
        with pytest.raises(ValidationError):
            svc.patch_story(user.id, story.id, {"parentId": story.id})

    def test_delete_counts_subtree(self, user):
        root = svc.create_story(user.id, {"title": "Root"})
        child = svc.create_story(user.id, {"title": "Child", "parentId": root.id})
        svc.create_story(user.id, {"title": "Grandchild", "parentId": child.id})
        svc.create_story(user.id, {"title": "Sibling", "parentId": root.id})
        db.session.expire_all()

        assert svc.delete_story(user.id, root.id) == 4
        assert Story.query.count() == 0

    def test_list_story_tree_returns_records(self, user):
        root = svc.create_story(user.id, {"title": "Root"})
        svc.create_story(user.id, {"title": "Child", "parentId": root.id})
        db.session.commit()

        records = svc.list_story_tree(user.id)
        assert len(records) == 1
        assert records[0]["children"][0]["title"] == "Child"
