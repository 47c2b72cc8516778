"""
routes/users.py — Current-user route handler.

Endpoints (base url_prefix=/api/v1/users):
  GET    /users/me    → 200  the caller's synced profile
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.services import auth_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/me", methods=["GET"])
@require_auth
def me():
    """GET /users/me — Return the authenticated user's profile."""
    result = auth_service.get_current_user(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
