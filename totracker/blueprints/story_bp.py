"""
totracker
Story Blueprint: owner-scoped CRUD API for stories.

Endpoints:
    GET    /api/v1/stories            Story tree of the caller
    POST   /api/v1/stories            Create story
    GET    /api/v1/stories/<id>       Single story (+ subtree)
    PATCH  /api/v1/stories/<id>       Partial update
    DELETE /api/v1/stories/<id>       Delete story and its subtree

Every route runs behind the auth middleware; g.current_user_id is the owner
scope for all lookups.
"""

import logging

from flask import Blueprint, g, jsonify, request

from totracker.core.exceptions import NotFoundError, ValidationError
from totracker.models import db
from totracker.services import story_service
from totracker.services.story_serializer import serialize_story, serialize_story_model
from totracker.utils.errors import E, api_error
from totracker.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

story_bp = Blueprint("stories", __name__, url_prefix="/api/v1")


# ── Error handlers ────────────────────────────────────────────────────────────


@story_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    logger.debug("Story lookup failed: %s", error)
    db.session.rollback()
    return api_error(E.NOT_FOUND, "Story not found")


@story_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    db.session.rollback()
    return api_error(E.VALIDATION_INVALID, str(error), details=error.details)


# ═════════════════════════════════════════════════════════════════════════════
# STORIES
# ═════════════════════════════════════════════════════════════════════════════


@story_bp.route("/stories", methods=["GET"])
def list_stories():
    """Return the caller's story tree ordered by (dueDate asc, position asc)."""
    records = story_service.list_story_tree(g.current_user_id)
    return jsonify({"stories": [serialize_story(r) for r in records]}), 200


@story_bp.route("/stories", methods=["POST"])
def create_story():
    """Create a story.

    Body JSON:
        title         required, 1-200 chars
        description   optional, ≤ 2000 chars
        status        optional, defaults to BACKLOG (null allowed)
        priority      optional, 1-5, defaults to 3
        parentId      optional, one of the caller's stories
        dueDate       optional ISO-8601 datetime
        startDate     optional ISO-8601 datetime
    """
    data = request.get_json(silent=True)
    story = story_service.create_story(g.current_user_id, data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"story": serialize_story_model(story)}), 201


@story_bp.route("/stories/<story_id>", methods=["GET"])
def get_story(story_id):
    story = story_service.get_owned_story(g.current_user_id, story_id)
    return jsonify({"story": serialize_story_model(story)}), 200


@story_bp.route("/stories/<story_id>", methods=["PATCH"])
def patch_story(story_id):
    """Partially update a story.

    Accepts any subset of the create fields plus:
        effort      non-negative integer or null
        position    integer
        assignees   list of user ids (or {id} objects); replaces all links
        tags        list of {label, color}; replaces all tags
    """
    data = request.get_json(silent=True)
    story = story_service.patch_story(g.current_user_id, story_id, data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"story": serialize_story_model(story)}), 200


@story_bp.route("/stories/<story_id>", methods=["DELETE"])
def delete_story(story_id):
    """Delete a story; its descendants go with it."""
    story_service.delete_story(g.current_user_id, story_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"ok": True}), 200
