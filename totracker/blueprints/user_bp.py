"""
User Blueprint: directory used by assignee pickers.

    GET /api/v1/users     { users: [{id, email, name}], total }
"""

from flask import Blueprint, jsonify

from totracker.blueprints import paginate_query
from totracker.services.user_service import users_query

user_bp = Blueprint("users", __name__, url_prefix="/api/v1")


@user_bp.route("/users", methods=["GET"])
def list_users():
    """List users (paginated with ?limit= / ?offset=)."""
    users, total = paginate_query(users_query())
    return jsonify({"users": [u.to_summary() for u in users], "total": total}), 200
