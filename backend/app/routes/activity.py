"""
routes/activity.py — Activity feed route handler.

Endpoints (base url_prefix=/api/v1/groups):
  GET /groups/:id/activity[?limit=N]  → 200  expenses, payments and membership
                                             changes, newest first
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.errors import AppError, ErrorCode
from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.services import activity_service

activity_bp = Blueprint("activity", __name__)


def _parse_limit(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        limit = int(raw)
    except ValueError:
        limit = 0
    if limit < 1:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "limit must be a positive integer.",
            400,
            field="limit",
        )
    return limit


@activity_bp.route("/<int:group_id>/activity", methods=["GET"])
@require_auth
def get_activity(group_id: int):
    limit = _parse_limit(request.args.get("limit"))

    result = activity_service.get_activity(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
        limit=limit,
    )
    return jsonify({"data": result, "warnings": []}), 200
